"""Domain model shared by every pipeline component."""

from .order import (
    TERMINAL_STATUSES,
    Order,
    OrderKind,
    OrderRequest,
    OrderStatus,
    OrderValidationError,
    Quote,
    StatusEvent,
    Venue,
)

__all__ = [
    "TERMINAL_STATUSES",
    "Order",
    "OrderKind",
    "OrderRequest",
    "OrderStatus",
    "OrderValidationError",
    "Quote",
    "StatusEvent",
    "Venue",
]
