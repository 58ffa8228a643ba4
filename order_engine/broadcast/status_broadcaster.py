"""
Status broadcaster for live order updates.

Keeps the registry of client connections watching each order and fans
every status event out to exactly those connections. Once an order
reaches a terminal status its connections are closed after a short grace
period so clients can read the final payload first.
"""

import asyncio
import json
import threading
import time
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Set, Tuple

from order_engine.broadcast.connections import ISubscriberConnection
from order_engine.core.logger import get_module_logger
from order_engine.models.order import StatusEvent


class BroadcastError(Exception):
    """Base exception for broadcaster errors."""


class IStatusSink(ABC):
    """Receiver of order status transitions."""

    @abstractmethod
    async def publish(self, event: StatusEvent) -> None:
        """Deliver a status event. Must not raise on delivery failures."""


class StatusBroadcaster(IStatusSink):
    """
    Order-keyed registry of subscriber connections.

    The registry map is the only structure touched by the pipeline, by new
    subscriptions and by transport-driven unsubscribes at the same time, so
    every mutation happens under ``_lock`` and no I/O happens while holding it.

    Attributes:
        _connections: Order id to set of live connections
        _watchers: Tasks waiting for each connection to close
        _cleanup_tasks: Pending post-terminal teardown per order
    """

    def __init__(self, close_delay: float = 5.0) -> None:
        """
        Initialize status broadcaster.

        Args:
            close_delay: Seconds between a terminal event and forced closure
        """
        if close_delay < 0:
            raise BroadcastError("close_delay must be non-negative")

        self._close_delay = close_delay
        self._connections: Dict[str, Set[ISubscriberConnection]] = {}
        self._watchers: Dict[Tuple[str, int], asyncio.Task] = {}
        self._cleanup_tasks: Dict[str, asyncio.Task] = {}
        self._lock = threading.RLock()
        self._logger = get_module_logger("broadcast.status_broadcaster")

    def subscribe(self, order_id: str, connection: ISubscriberConnection) -> None:
        """
        Register a connection for an order's events.

        A watcher task removes the connection again as soon as it closes or
        fails, so callers never need to unsubscribe explicitly.

        Raises:
            BroadcastError: If order_id is empty
        """
        if not order_id:
            raise BroadcastError("Order id cannot be empty")

        with self._lock:
            self._connections.setdefault(order_id, set()).add(connection)
            key = (order_id, id(connection))
            if key not in self._watchers:
                try:
                    loop = asyncio.get_running_loop()
                except RuntimeError:
                    loop = None
                if loop is not None:
                    self._watchers[key] = loop.create_task(
                        self._watch_connection(order_id, connection)
                    )

        self._logger.info(f"Order {order_id}: subscriber connection registered")

    def unsubscribe(self, order_id: str, connection: ISubscriberConnection) -> bool:
        """
        Remove a connection; redundant calls are no-ops.

        Returns:
            bool: True if the connection was registered
        """
        with self._lock:
            subscribers = self._connections.get(order_id)
            removed = bool(subscribers) and connection in subscribers
            if removed:
                subscribers.discard(connection)
                if not subscribers:
                    del self._connections[order_id]
            watcher = self._watchers.pop((order_id, id(connection)), None)

        self._cancel_watcher(watcher)
        if removed:
            self._logger.info(f"Order {order_id}: subscriber connection unregistered")
        return removed

    async def publish(self, event: StatusEvent) -> None:
        """
        Fan an event out to every subscriber of its order.

        Subscribers that are closed or fail delivery are dropped without
        affecting the others. Terminal events schedule teardown of the
        remaining subscribers after ``close_delay``.
        """
        with self._lock:
            subscribers = list(self._connections.get(event.order_id, ()))

        if not subscribers:
            self._logger.debug(f"Order {event.order_id}: no active connections")
            return

        message = json.dumps(event.to_wire())
        results = await asyncio.gather(
            *(self._deliver(connection, message) for connection in subscribers),
            return_exceptions=True,
        )

        for connection, result in zip(subscribers, results):
            if isinstance(result, BaseException):
                self._logger.error(
                    f"Order {event.order_id}: failed to send status update: {result}"
                )
                self.unsubscribe(event.order_id, connection)
            elif result is False:
                self.unsubscribe(event.order_id, connection)

        self._logger.debug(
            f"Order {event.order_id}: broadcast {event.status.value} "
            f"to {len(subscribers)} connection(s)"
        )

        if event.is_terminal:
            self._schedule_close(event.order_id)

    async def _deliver(self, connection: ISubscriberConnection, message: str) -> bool:
        if not connection.is_open:
            return False
        await connection.send(message)
        return True

    async def send_error(self, order_id: str, error: str) -> None:
        """Send an out-of-band error frame to an order's subscribers."""
        with self._lock:
            subscribers = list(self._connections.get(order_id, ()))

        message = json.dumps(
            {
                "type": "error",
                "orderId": order_id,
                "error": error,
                "timestamp": int(time.time() * 1000),
            }
        )
        for connection in subscribers:
            try:
                if connection.is_open:
                    await connection.send(message)
            except Exception as e:
                self._logger.error(f"Order {order_id}: failed to send error: {e}")
                self.unsubscribe(order_id, connection)

    def _schedule_close(self, order_id: str) -> None:
        with self._lock:
            if order_id in self._cleanup_tasks:
                return
            task = asyncio.get_running_loop().create_task(
                self._close_after_delay(order_id)
            )
            self._cleanup_tasks[order_id] = task

    async def _close_after_delay(self, order_id: str) -> None:
        try:
            await asyncio.sleep(self._close_delay)
            await self.close_order_connections(order_id)
        finally:
            with self._lock:
                self._cleanup_tasks.pop(order_id, None)

    async def close_order_connections(self, order_id: str) -> int:
        """
        Close and forget every connection for an order.

        Safe to call repeatedly and concurrently with ``unsubscribe``.

        Returns:
            int: Number of connections closed by this call
        """
        with self._lock:
            subscribers = self._connections.pop(order_id, set())
            watchers = [
                self._watchers.pop((order_id, id(connection)), None)
                for connection in subscribers
            ]

        for watcher in watchers:
            self._cancel_watcher(watcher)

        for connection in subscribers:
            try:
                await connection.close()
            except Exception as e:
                self._logger.error(f"Order {order_id}: error closing connection: {e}")

        if subscribers:
            self._logger.info(
                f"Order {order_id}: closed {len(subscribers)} connection(s)"
            )
        return len(subscribers)

    async def _watch_connection(
        self, order_id: str, connection: ISubscriberConnection
    ) -> None:
        try:
            await connection.wait_closed()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._logger.error(f"Order {order_id}: subscriber connection error: {e}")
        self.unsubscribe(order_id, connection)

    @staticmethod
    def _cancel_watcher(watcher: Optional[asyncio.Task]) -> None:
        if watcher is None or watcher.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if watcher is not current:
            watcher.cancel()

    def get_active_connections(self) -> int:
        """Total open subscriptions across all orders."""
        with self._lock:
            return sum(len(subscribers) for subscribers in self._connections.values())

    def get_order_connections(self, order_id: str) -> int:
        """Open subscriptions for one order."""
        with self._lock:
            return len(self._connections.get(order_id, ()))

    def get_watched_orders(self) -> List[str]:
        with self._lock:
            return list(self._connections)

    async def shutdown(self) -> None:
        """Cancel pending teardowns and close every connection."""
        with self._lock:
            pending = list(self._cleanup_tasks.values())
            self._cleanup_tasks.clear()
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for order_id in self.get_watched_orders():
            await self.close_order_connections(order_id)
