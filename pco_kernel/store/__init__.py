"""Storage port and its in-memory / SQLAlchemy implementations."""

from pco_kernel.store.base import OrderStore
from pco_kernel.store.memory import InMemoryOrderStore
from pco_kernel.store.sqlalchemy_store import SqlAlchemyOrderStore

__all__ = ["OrderStore", "InMemoryOrderStore", "SqlAlchemyOrderStore"]
