"""Order persistence collaborator."""

from .order_store import (
    InMemoryOrderStore,
    InvalidTransitionError,
    IOrderStore,
    OrderNotFoundError,
    OrderStoreError,
    SqliteOrderStore,
    create_order_store,
)

__all__ = [
    "InMemoryOrderStore",
    "InvalidTransitionError",
    "IOrderStore",
    "OrderNotFoundError",
    "OrderStoreError",
    "SqliteOrderStore",
    "create_order_store",
]
