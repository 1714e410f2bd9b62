"""
Tests for engine setup and the transactional session scope.
"""

from uuid import uuid4

import pytest
from sqlalchemy import select

from pco_kernel.db.engine import get_engine, get_session, reset_engine, session_scope
from pco_kernel.models.stock import StockLotModel


def _lot(name):
    return StockLotModel(id=uuid4(), lwin18="101403320181200750", product_name=name, available_cases=1)


class TestEngineLifecycle:

    def test_uninitialized_engine_rejected(self):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session()

    def test_sqlite_in_memory_shared_across_sessions(self, db_session):
        with session_scope() as session:
            session.add(_lot("Opus One 2018"))

        names = db_session.execute(select(StockLotModel.product_name)).scalars().all()
        assert names == ["Opus One 2018"]


class TestSessionScope:

    def test_exception_rolls_back(self, db_session, captured_logs):
        with pytest.raises(ValueError):
            with session_scope() as session:
                session.add(_lot("Petrus 2015"))
                session.flush()
                raise ValueError("bad row")

        assert db_session.execute(select(StockLotModel)).first() is None
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())
