"""Event hub for in-process engine lifecycle notifications.

Components announce job and system lifecycle changes (an order admitted, a
job finished, the queue paused) through the hub; interested components
subscribe without holding a reference to the publisher. Client-facing
order status streaming is handled separately by the status broadcaster.
"""

import asyncio
import inspect
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Set


class EventType:
    """Event type constants for engine lifecycle notifications."""

    # Admission and worker events
    ORDER_ADMITTED: str = "order_admitted"
    JOB_STARTED: str = "job_started"
    JOB_COMPLETED: str = "job_completed"
    JOB_FAILED: str = "job_failed"

    # Queue control events
    QUEUE_PAUSED: str = "queue_paused"
    QUEUE_RESUMED: str = "queue_resumed"
    QUEUE_CLEANED: str = "queue_cleaned"

    # System events
    SYSTEM_STARTUP: str = "system_startup"
    SYSTEM_SHUTDOWN: str = "system_shutdown"


class EventHubInterface(ABC):
    """Abstract interface for event hub implementations."""

    @abstractmethod
    def subscribe(self, event_type: str, callback: Callable[[Any], None]) -> None:
        """Subscribe to an event type with a callback function."""

    @abstractmethod
    def unsubscribe(self, event_type: str, callback: Callable[[Any], None]) -> None:
        """Unsubscribe from an event type."""

    @abstractmethod
    def publish(self, event_type: str, data: Any) -> None:
        """Publish an event to all subscribers."""


class EventHub(EventHubInterface):
    """Thread-safe observer registry keyed by event type.

    Synchronous callbacks run inline; coroutine callbacks are scheduled on
    the running loop. A failing callback is logged and never prevents
    delivery to the remaining subscribers.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Callable[[Any], Any]]] = {}
        self._lock: threading.RLock = threading.RLock()
        self._pending_tasks: Set[asyncio.Task] = set()
        self._logger = logging.getLogger(__name__)

    def subscribe(self, event_type: str, callback: Callable[[Any], Any]) -> None:
        """Subscribe to an event type with a callback function.

        Args:
            event_type: The type of event to subscribe to (use EventType constants)
            callback: Sync or async callable receiving the event data

        Raises:
            ValueError: If event_type is empty or None
            TypeError: If callback is not callable
        """
        if not event_type:
            raise ValueError("Event type cannot be empty or None")

        if not callable(callback):
            raise TypeError("Callback must be callable")

        with self._lock:
            callbacks = self._subscribers.setdefault(event_type, [])
            if callback not in callbacks:
                callbacks.append(callback)

    def unsubscribe(self, event_type: str, callback: Callable[[Any], Any]) -> None:
        """Unsubscribe from an event type.

        Raises:
            ValueError: If event_type is empty or None
            KeyError: If the callback is not subscribed to event_type
        """
        if not event_type:
            raise ValueError("Event type cannot be empty or None")

        with self._lock:
            callbacks = self._subscribers.get(event_type)
            if not callbacks or callback not in callbacks:
                raise KeyError(
                    f"Callback not found in subscribers for event type: {event_type}"
                )

            callbacks.remove(callback)
            if not callbacks:
                del self._subscribers[event_type]

    def publish(self, event_type: str, data: Any) -> None:
        """Publish an event to all subscribers.

        Args:
            event_type: The type of event to publish (use EventType constants)
            data: The event data passed to every subscriber

        Raises:
            ValueError: If event_type is empty or None
        """
        if not event_type:
            raise ValueError("Event type cannot be empty or None")

        with self._lock:
            subscribers = list(self._subscribers.get(event_type, []))

        for callback in subscribers:
            try:
                if inspect.iscoroutinefunction(callback):
                    self._schedule_async_callback(callback, data)
                else:
                    callback(data)
            except Exception as e:
                self._logger.error(
                    f"Error executing callback for event {event_type}: {e}"
                )

    def _schedule_async_callback(
        self, callback: Callable[[Any], Any], data: Any
    ) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.warning(
                f"No running event loop; dropping async callback {callback!r}"
            )
            return

        task = loop.create_task(callback(data))
        self._pending_tasks.add(task)
        task.add_done_callback(self._handle_async_callback_completion)

    def _handle_async_callback_completion(self, task: asyncio.Task) -> None:
        self._pending_tasks.discard(task)
        if task.cancelled():
            self._logger.warning("Async callback was cancelled")
            return
        if task.exception() is not None:
            self._logger.error(f"Async callback failed: {task.exception()}")

    def get_subscriber_count(self, event_type: str) -> int:
        """Get the number of subscribers for a specific event type.

        Raises:
            ValueError: If event_type is empty or None
        """
        if not event_type:
            raise ValueError("Event type cannot be empty or None")

        with self._lock:
            return len(self._subscribers.get(event_type, []))

    def clear_subscribers(self, event_type: Optional[str] = None) -> None:
        """Clear subscribers for one event type, or all when None."""
        if event_type is not None and not event_type:
            raise ValueError("Event type cannot be empty")

        with self._lock:
            if event_type is None:
                self._subscribers.clear()
            else:
                self._subscribers.pop(event_type, None)
