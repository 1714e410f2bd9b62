"""
Private Client Orders kernel.

Domain types, storage, logging and error primitives shared by the pricing
engines, services and the order/pricing modules:
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging with request-scoped context
- Injectable clock
- Storage port with in-memory and SQLAlchemy implementations
- Append-only order activity log
"""

__version__ = "0.1.0"
