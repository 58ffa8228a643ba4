"""
Durable order store used by the execution pipeline.

The pipeline only depends on ``IOrderStore``. Two backends are provided:
an in-memory store for tests and single-process runs, and a SQLite store
with a short-TTL read-through cache in front of the database.
"""

import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from order_engine.core.logger import get_module_logger
from order_engine.models.order import (
    Order,
    OrderKind,
    OrderRequest,
    OrderStatus,
    Venue,
)


class OrderStoreError(Exception):
    """Base exception for order store failures."""


class OrderNotFoundError(OrderStoreError):
    """Raised when an order id is unknown to the store."""


class InvalidTransitionError(OrderStoreError):
    """Raised when a status update would break the lifecycle state machine."""


UPDATABLE_FIELDS = frozenset(
    {
        "selected_venue",
        "raydium_price",
        "meteora_price",
        "execution_price",
        "settlement_reference",
        "failure_reason",
    }
)


def apply_status_update(
    order: Order, status: OrderStatus, fields: Dict[str, Any]
) -> Order:
    """
    Return a copy of ``order`` with a validated status change applied.

    Only non-None partial fields are written. ``completed_at`` is stamped
    when, and only when, the new status is terminal.

    Raises:
        InvalidTransitionError: If the transition is not allowed
        OrderStoreError: If an unknown field is supplied
    """
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise OrderStoreError(f"Unknown order fields: {sorted(unknown)}")

    if not order.status.can_transition_to(status):
        raise InvalidTransitionError(
            f"Order {order.id}: illegal transition "
            f"{order.status.value} -> {status.value}"
        )

    now = datetime.now(timezone.utc)
    changes: Dict[str, Any] = {
        key: value for key, value in fields.items() if value is not None
    }
    changes["status"] = status
    changes["updated_at"] = now
    if status.is_terminal:
        changes["completed_at"] = now

    return replace(order, **changes)


class IOrderStore(ABC):
    """Interface for the order persistence collaborator."""

    @abstractmethod
    async def create(self, request: OrderRequest) -> Order:
        """Persist a new PENDING order built from ``request``."""

    @abstractmethod
    async def update_status(
        self, order_id: str, status: OrderStatus, **fields: Any
    ) -> Order:
        """
        Persist a status transition with optional partial fields.

        Raises:
            OrderNotFoundError: If the order does not exist
            InvalidTransitionError: If the transition is illegal
        """

    @abstractmethod
    async def get(self, order_id: str) -> Optional[Order]:
        """Return the order or None when absent."""

    @abstractmethod
    async def increment_retry(self, order_id: str) -> int:
        """Atomically increment the retry counter and return the new value."""

    @abstractmethod
    async def list_by_status(self, status: OrderStatus) -> List[Order]:
        """Return orders in ``status``, newest first."""

    def close(self) -> None:
        """Release backend resources."""


class InMemoryOrderStore(IOrderStore):
    """Dictionary-backed store; callers always receive copies."""

    def __init__(self) -> None:
        self._orders: Dict[str, Order] = {}
        self._lock = threading.Lock()
        self._logger = get_module_logger("persistence.memory")

    async def create(self, request: OrderRequest) -> Order:
        order = Order.from_request(request)
        with self._lock:
            self._orders[order.id] = order
        self._logger.info(f"Order {order.id} created ({order.kind.value})")
        return replace(order)

    async def update_status(
        self, order_id: str, status: OrderStatus, **fields: Any
    ) -> Order:
        with self._lock:
            current = self._orders.get(order_id)
            if current is None:
                raise OrderNotFoundError(f"Order not found: {order_id}")
            updated = apply_status_update(current, status, fields)
            self._orders[order_id] = updated
        return replace(updated)

    async def get(self, order_id: str) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
        return replace(order) if order else None

    async def increment_retry(self, order_id: str) -> int:
        with self._lock:
            current = self._orders.get(order_id)
            if current is None:
                raise OrderNotFoundError(f"Order not found: {order_id}")
            self._orders[order_id] = replace(
                current,
                retry_count=current.retry_count + 1,
                updated_at=datetime.now(timezone.utc),
            )
            return current.retry_count + 1

    async def list_by_status(self, status: OrderStatus) -> List[Order]:
        with self._lock:
            matches = [o for o in self._orders.values() if o.status == status]
        matches.sort(key=lambda o: o.created_at, reverse=True)
        return [replace(o) for o in matches]

    def add(self, order: Order) -> None:
        """Insert a pre-built order, e.g. one restored from elsewhere."""
        with self._lock:
            self._orders[order.id] = replace(order)


class SqliteOrderStore(IOrderStore):
    """
    SQLite-backed store with a read-through cache.

    Every write refreshes the cache entry, so reads issued by the pipeline
    right after its own writes are never stale. Entries expire after
    ``cache_ttl`` seconds.
    """

    _COLUMNS = (
        "id, type, status, from_token, to_token, amount, slippage_tolerance, "
        "selected_dex, raydium_price, meteora_price, execution_price, tx_hash, "
        "retry_count, failure_reason, created_at, updated_at, completed_at"
    )

    def __init__(self, db_path: str, cache_ttl: float = 60.0) -> None:
        """
        Initialize SQLite storage.

        Args:
            db_path: Path to SQLite database file
            cache_ttl: Seconds a cached order stays valid
        """
        self._db_path = db_path
        self._cache_ttl = cache_ttl
        self._cache: Dict[str, Tuple[float, Order]] = {}
        self._lock = threading.Lock()
        self._logger = get_module_logger("persistence.sqlite")

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _init_database(self) -> None:
        with sqlite3.connect(self._db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS orders (
                    id TEXT PRIMARY KEY,
                    type TEXT NOT NULL,
                    status TEXT NOT NULL,
                    from_token TEXT NOT NULL,
                    to_token TEXT NOT NULL,
                    amount REAL NOT NULL,
                    slippage_tolerance REAL NOT NULL DEFAULT 0.01,
                    selected_dex TEXT,
                    raydium_price REAL,
                    meteora_price REAL,
                    execution_price REAL,
                    tx_hash TEXT,
                    retry_count INTEGER NOT NULL DEFAULT 0,
                    failure_reason TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    completed_at TEXT
                )
            """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_orders_created_at ON orders(created_at)"
            )

    @staticmethod
    def _to_row(order: Order) -> tuple:
        return (
            order.id,
            order.kind.value,
            order.status.value,
            order.source_asset,
            order.destination_asset,
            order.quantity,
            order.slippage_tolerance,
            order.selected_venue.value if order.selected_venue else None,
            order.raydium_price,
            order.meteora_price,
            order.execution_price,
            order.settlement_reference,
            order.retry_count,
            order.failure_reason,
            order.created_at.isoformat(),
            order.updated_at.isoformat(),
            order.completed_at.isoformat() if order.completed_at else None,
        )

    @staticmethod
    def _from_row(row: tuple) -> Order:
        return Order(
            id=row[0],
            kind=OrderKind(row[1]),
            status=OrderStatus(row[2]),
            source_asset=row[3],
            destination_asset=row[4],
            quantity=row[5],
            slippage_tolerance=row[6],
            selected_venue=Venue(row[7]) if row[7] else None,
            raydium_price=row[8],
            meteora_price=row[9],
            execution_price=row[10],
            settlement_reference=row[11],
            retry_count=row[12],
            failure_reason=row[13],
            created_at=datetime.fromisoformat(row[14]),
            updated_at=datetime.fromisoformat(row[15]),
            completed_at=datetime.fromisoformat(row[16]) if row[16] else None,
        )

    def _write(self, order: Order) -> None:
        placeholders = ", ".join("?" for _ in range(17))
        try:
            with sqlite3.connect(self._db_path) as conn:
                conn.execute(
                    f"INSERT OR REPLACE INTO orders ({self._COLUMNS}) "
                    f"VALUES ({placeholders})",
                    self._to_row(order),
                )
        except sqlite3.Error as e:
            self._logger.error(f"Failed to save order {order.id}: {e}")
            raise OrderStoreError(f"Failed to save order {order.id}: {e}") from e
        now = time.monotonic()
        self._prune_cache(now)
        self._cache[order.id] = (now + self._cache_ttl, order)

    def _prune_cache(self, now: float) -> None:
        expired = [key for key, (expires, _) in self._cache.items() if expires <= now]
        for key in expired:
            del self._cache[key]

    def _read(self, order_id: str) -> Optional[Order]:
        cached = self._cache.get(order_id)
        if cached and cached[0] > time.monotonic():
            return cached[1]

        try:
            with sqlite3.connect(self._db_path) as conn:
                row = conn.execute(
                    f"SELECT {self._COLUMNS} FROM orders WHERE id = ?", (order_id,)
                ).fetchone()
        except sqlite3.Error as e:
            self._logger.error(f"Failed to load order {order_id}: {e}")
            raise OrderStoreError(f"Failed to load order {order_id}: {e}") from e

        if row is None:
            self._cache.pop(order_id, None)
            return None

        order = self._from_row(row)
        self._cache[order_id] = (time.monotonic() + self._cache_ttl, order)
        return order

    async def create(self, request: OrderRequest) -> Order:
        order = Order.from_request(request)
        with self._lock:
            self._write(order)
        self._logger.info(f"Order {order.id} created ({order.kind.value})")
        return replace(order)

    async def update_status(
        self, order_id: str, status: OrderStatus, **fields: Any
    ) -> Order:
        with self._lock:
            current = self._read(order_id)
            if current is None:
                raise OrderNotFoundError(f"Order not found: {order_id}")
            updated = apply_status_update(current, status, fields)
            self._write(updated)
        return replace(updated)

    async def get(self, order_id: str) -> Optional[Order]:
        with self._lock:
            order = self._read(order_id)
        return replace(order) if order else None

    async def increment_retry(self, order_id: str) -> int:
        with self._lock:
            current = self._read(order_id)
            if current is None:
                raise OrderNotFoundError(f"Order not found: {order_id}")
            updated = replace(
                current,
                retry_count=current.retry_count + 1,
                updated_at=datetime.now(timezone.utc),
            )
            self._write(updated)
            return updated.retry_count

    async def list_by_status(self, status: OrderStatus) -> List[Order]:
        with self._lock:
            try:
                with sqlite3.connect(self._db_path) as conn:
                    rows = conn.execute(
                        f"SELECT {self._COLUMNS} FROM orders WHERE status = ? "
                        "ORDER BY created_at DESC",
                        (status.value,),
                    ).fetchall()
            except sqlite3.Error as e:
                self._logger.error(f"Failed to list orders by status: {e}")
                raise OrderStoreError(f"Failed to list orders: {e}") from e
        return [self._from_row(row) for row in rows]

    def invalidate(self, order_id: Optional[str] = None) -> None:
        """Drop one cached order, or the whole cache when None."""
        with self._lock:
            if order_id is None:
                self._cache.clear()
            else:
                self._cache.pop(order_id, None)

    def close(self) -> None:
        """Clear the cache; connections are opened per operation."""
        self.invalidate()


def create_order_store(
    database_path: Optional[str] = None, cache_ttl: float = 60.0
) -> IOrderStore:
    """
    Factory function to create an order store.

    Args:
        database_path: SQLite file path; None selects the in-memory store
        cache_ttl: Read-through cache TTL for the SQLite store

    Returns:
        IOrderStore: Configured store
    """
    if database_path:
        return SqliteOrderStore(database_path, cache_ttl=cache_ttl)
    return InMemoryOrderStore()
