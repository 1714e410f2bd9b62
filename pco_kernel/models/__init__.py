"""SQLAlchemy ORM models for orders, activity, parties, pricing and stock."""


def import_all_models() -> None:
    """Import every model module so Base.metadata knows all tables."""
    import pco_kernel.models.activity_log  # noqa: F401
    import pco_kernel.models.order  # noqa: F401
    import pco_kernel.models.party  # noqa: F401
    import pco_kernel.models.pricing  # noqa: F401
    import pco_kernel.models.stock  # noqa: F401
