"""
Order domain model for the execution pipeline.

Defines the order lifecycle state machine, order kinds and venues, the
validated ingestion request, and the value objects that flow between the
quote router, the execution orchestrator and the status broadcaster.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional
from uuid import uuid4


class OrderValidationError(ValueError):
    """Raised when an inbound order request is malformed."""


class OrderStatus(Enum):
    """Lifecycle status of an order."""

    PENDING = "pending"
    ROUTING = "routing"
    BUILDING = "building"
    SUBMITTING = "submitting"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """True for CONFIRMED and FAILED."""
        return self in TERMINAL_STATUSES

    def can_transition_to(self, target: "OrderStatus") -> bool:
        """Check whether moving from this status to ``target`` is legal."""
        return target in _ALLOWED_TRANSITIONS[self]

    @classmethod
    def parse(cls, value: str) -> "OrderStatus":
        """Parse a wire value case-insensitively.

        Raises:
            ValueError: If value names no status
        """
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown order status: {value}")


TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.CONFIRMED, OrderStatus.FAILED}
)

# ROUTING is re-entered on refinement and whenever a retry restarts the
# pipeline from a later stage.
_ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.ROUTING, OrderStatus.FAILED}),
    OrderStatus.ROUTING: frozenset(
        {OrderStatus.ROUTING, OrderStatus.BUILDING, OrderStatus.FAILED}
    ),
    OrderStatus.BUILDING: frozenset(
        {OrderStatus.SUBMITTING, OrderStatus.ROUTING, OrderStatus.FAILED}
    ),
    OrderStatus.SUBMITTING: frozenset(
        {OrderStatus.CONFIRMED, OrderStatus.ROUTING, OrderStatus.FAILED}
    ),
    OrderStatus.CONFIRMED: frozenset(),
    OrderStatus.FAILED: frozenset(),
}


class OrderKind(Enum):
    """Order kinds accepted at ingestion.

    MARKET orders execute immediately and are the only kind the pipeline
    runs; LIMIT and SNIPER (triggered) orders are accepted and queued but
    fail as unsupported when they reach execution.
    """

    MARKET = "market"
    LIMIT = "limit"
    SNIPER = "sniper"

    @property
    def priority(self) -> int:
        """Queue priority; lower numbers are dispatched first."""
        return _KIND_PRIORITY.get(self, UNKNOWN_KIND_PRIORITY)


UNKNOWN_KIND_PRIORITY = 5

_KIND_PRIORITY: Dict[OrderKind, int] = {
    OrderKind.MARKET: 1,
    OrderKind.LIMIT: 2,
    OrderKind.SNIPER: 3,
}


class Venue(Enum):
    """Liquidity venues the router compares."""

    RAYDIUM = "raydium"
    METEORA = "meteora"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class OrderRequest:
    """
    Validated order submission.

    Attributes:
        kind: Order kind
        source_asset: Asset sold
        destination_asset: Asset bought
        quantity: Input quantity, strictly positive
        slippage_tolerance: Maximum acceptable price impact in [0, 1]
    """

    kind: OrderKind
    source_asset: str
    destination_asset: str
    quantity: float
    slippage_tolerance: float = 0.01

    def __post_init__(self) -> None:
        if not self.source_asset:
            raise OrderValidationError("From token is required")
        if not self.destination_asset:
            raise OrderValidationError("To token is required")
        if not self.quantity > 0:
            raise OrderValidationError("Amount must be positive")
        if not 0.0 <= self.slippage_tolerance <= 1.0:
            raise OrderValidationError("Slippage tolerance must be between 0 and 1")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderRequest":
        """
        Build a request from an ingestion payload.

        Accepts ``type``, ``fromToken``, ``toToken``, ``amount`` and an
        optional ``slippageTolerance``.

        Raises:
            OrderValidationError: If any field is missing or invalid
        """
        if not isinstance(data, dict):
            raise OrderValidationError("Order payload must be a JSON object")

        try:
            kind = OrderKind(str(data["type"]).lower())
        except KeyError:
            raise OrderValidationError("Order type is required")
        except ValueError:
            raise OrderValidationError(f"Unsupported order type: {data['type']}")

        amount = data.get("amount")
        tolerance = data.get("slippageTolerance", 0.01)
        for name, value in (("amount", amount), ("slippageTolerance", tolerance)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise OrderValidationError(f"Field '{name}' must be a number")

        return cls(
            kind=kind,
            source_asset=str(data.get("fromToken") or ""),
            destination_asset=str(data.get("toToken") or ""),
            quantity=float(amount),
            slippage_tolerance=float(tolerance),
        )


@dataclass
class Order:
    """
    A unit of execution work moving through the pipeline.

    The orchestrator is the only writer of status, venue, price and retry
    fields; the order store persists every change.
    """

    kind: OrderKind
    source_asset: str
    destination_asset: str
    quantity: float
    slippage_tolerance: float = 0.01
    id: str = field(default_factory=lambda: str(uuid4()))
    status: OrderStatus = OrderStatus.PENDING
    selected_venue: Optional[Venue] = None
    raydium_price: Optional[float] = None
    meteora_price: Optional[float] = None
    execution_price: Optional[float] = None
    settlement_reference: Optional[str] = None
    retry_count: int = 0
    failure_reason: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    @classmethod
    def from_request(cls, request: OrderRequest) -> "Order":
        """Create a new PENDING order from a validated request."""
        return cls(
            kind=request.kind,
            source_asset=request.source_asset,
            destination_asset=request.destination_asset,
            quantity=request.quantity,
            slippage_tolerance=request.slippage_tolerance,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        """Convert the order to a JSON-ready dictionary."""
        return {
            "id": self.id,
            "type": self.kind.value,
            "status": self.status.value,
            "fromToken": self.source_asset,
            "toToken": self.destination_asset,
            "amount": self.quantity,
            "slippageTolerance": self.slippage_tolerance,
            "selectedDex": self.selected_venue.value if self.selected_venue else None,
            "raydiumPrice": self.raydium_price,
            "meteoraPrice": self.meteora_price,
            "executionPrice": self.execution_price,
            "txHash": self.settlement_reference,
            "retryCount": self.retry_count,
            "failureReason": self.failure_reason,
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
            "completedAt": _isoformat(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Order":
        """Rebuild an order from ``to_dict`` output."""
        selected = data.get("selectedDex")
        return cls(
            id=data["id"],
            kind=OrderKind(data["type"]),
            status=OrderStatus(data["status"]),
            source_asset=data["fromToken"],
            destination_asset=data["toToken"],
            quantity=float(data["amount"]),
            slippage_tolerance=float(data["slippageTolerance"]),
            selected_venue=Venue(selected) if selected else None,
            raydium_price=data.get("raydiumPrice"),
            meteora_price=data.get("meteoraPrice"),
            execution_price=data.get("executionPrice"),
            settlement_reference=data.get("txHash"),
            retry_count=int(data.get("retryCount", 0)),
            failure_reason=data.get("failureReason"),
            created_at=_parse_datetime(data.get("createdAt")) or _utcnow(),
            updated_at=_parse_datetime(data.get("updatedAt")) or _utcnow(),
            completed_at=_parse_datetime(data.get("completedAt")),
        )


@dataclass(frozen=True)
class Quote:
    """
    A venue's priced offer for a swap.

    Attributes:
        venue: Quoting venue
        price: Unit price (destination per source)
        output_amount: Expected output for the requested input quantity
        price_impact: Estimated adverse price impact as a fraction
        timestamp: Quote time in epoch milliseconds
    """

    venue: Venue
    price: float
    output_amount: float
    price_impact: float
    timestamp: int = field(default_factory=_now_ms)


@dataclass(frozen=True)
class StatusEvent:
    """Outbound order status notification."""

    order_id: str
    status: OrderStatus
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=_now_ms)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_wire(self) -> Dict[str, Any]:
        """Render the client-facing payload, omitting unset data keys."""
        payload: Dict[str, Any] = {
            "orderId": self.order_id,
            "status": self.status.value,
            "message": self.message,
            "timestamp": self.timestamp,
        }
        data = {
            key: value.value if isinstance(value, Enum) else value
            for key, value in self.data.items()
            if value is not None
        }
        if data:
            payload["data"] = data
        return payload
