"""
Admission and concurrency control for order execution.

Admitted orders wait in a priority queue (lower number first, FIFO among
equals) until one of a fixed pool of workers takes them. Each worker waits
for the dispatch rate limiter, then runs the order's whole execution,
including in-process retries, before taking the next job.
"""

import asyncio
import itertools
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from order_engine.admission.rate_limiter import SlidingWindowRateLimiter
from order_engine.core.event_hub import EventHubInterface, EventType
from order_engine.core.logger import get_module_logger
from order_engine.models.order import Order, OrderStatus


class AdmissionError(Exception):
    """Base exception for admission errors."""


class OrderExecutorProtocol(Protocol):
    """What the controller needs from the execution orchestrator."""

    async def execute_order(self, order: Order, retry_attempt: int = 0) -> Order:
        ...


class JobState(Enum):
    """Bookkeeping state of an admitted job."""

    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class JobRecord:
    """
    Queue-side bookkeeping for one admitted order.

    Attributes:
        order: Order handed to the executor
        priority: Dispatch priority, lower first
        sequence: Admission sequence number for FIFO tie-breaks
        state: Current job state
        enqueued_at: Admission time (epoch seconds)
        started_at: Dispatch time
        finished_at: Completion time
        order_status: Final order status reported by the executor
        error: Failure text when the job failed
    """

    order: Order
    priority: int
    sequence: int
    state: JobState = JobState.WAITING
    enqueued_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    order_status: Optional[OrderStatus] = None
    error: Optional[str] = None

    @property
    def order_id(self) -> str:
        return self.order.id

    @property
    def is_finished(self) -> bool:
        return self.state in (JobState.COMPLETED, JobState.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.order_id,
            "state": self.state.value,
            "priority": self.priority,
            "orderType": self.order.kind.value,
            "orderStatus": self.order_status.value if self.order_status else None,
            "enqueuedAt": self.enqueued_at,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "error": self.error,
        }


@dataclass
class AdmissionConfig:
    """
    Configuration for the admission controller.

    Attributes:
        max_concurrent_orders: Worker pool size
        orders_per_minute: Dispatches allowed per rate window
        rate_period: Rate window length in seconds
        job_retention_hours: Age after which finished jobs are dropped
        cleanup_interval: Seconds between background cleanups, 0 disables
    """

    max_concurrent_orders: int = 10
    orders_per_minute: int = 100
    rate_period: float = 60.0
    job_retention_hours: float = 24.0
    cleanup_interval: float = 3600.0

    def __post_init__(self) -> None:
        if self.max_concurrent_orders <= 0:
            raise AdmissionError("max_concurrent_orders must be positive")
        if self.orders_per_minute <= 0:
            raise AdmissionError("orders_per_minute must be positive")
        if self.job_retention_hours < 0:
            raise AdmissionError("job_retention_hours must be non-negative")


class AdmissionController:
    """
    Bounded-concurrency, rate-limited dispatcher for order execution.

    The controller never retries a job: retries belong to the executor,
    and an exception escaping it marks the job FAILED.
    """

    def __init__(
        self,
        executor: OrderExecutorProtocol,
        config: Optional[AdmissionConfig] = None,
        connection_counter: Optional[Callable[[], int]] = None,
        event_hub: Optional[EventHubInterface] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
    ) -> None:
        """
        Initialize admission controller.

        Args:
            executor: Orchestrator whose ``execute_order`` runs each job
            config: Pool, rate and retention settings
            connection_counter: Returns the live subscriber connection count
            event_hub: Optional hub receiving job lifecycle events
            rate_limiter: Overrides the limiter built from ``config``
        """
        self._executor = executor
        self._config = config or AdmissionConfig()
        self._connection_counter = connection_counter
        self._event_hub = event_hub
        self._rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            max_calls=self._config.orders_per_minute,
            period=self._config.rate_period,
        )
        self._logger = get_module_logger("admission.controller")

        self._queue: asyncio.PriorityQueue[Tuple[int, int, str]] = (
            asyncio.PriorityQueue()
        )
        self._resume_event = asyncio.Event()
        self._resume_event.set()
        self._jobs: Dict[str, JobRecord] = {}
        self._jobs_lock = threading.RLock()
        self._sequence = itertools.count()

        self._workers: List[asyncio.Task] = []
        self._cleanup_task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return not self._resume_event.is_set()

    async def submit(self, order: Order) -> bool:
        """
        Admit an order for execution exactly once.

        Args:
            order: Order to execute

        Returns:
            bool: False if a job for this order id already exists
        """
        with self._jobs_lock:
            if order.id in self._jobs:
                self._logger.info(f"Order {order.id}: already admitted, ignoring")
                return False
            record = JobRecord(
                order=order,
                priority=order.kind.priority,
                sequence=next(self._sequence),
            )
            self._jobs[order.id] = record

        self._queue.put_nowait((record.priority, record.sequence, order.id))
        self._logger.info(
            f"Order {order.id}: admitted with priority {record.priority} "
            f"({self._queue.qsize()} waiting)"
        )
        self._publish_event(
            EventType.ORDER_ADMITTED,
            {"order_id": order.id, "priority": record.priority},
        )
        return True

    def start(self) -> None:
        """Start the worker pool and background cleanup."""
        if self._running:
            self._logger.warning("Admission controller already running")
            return

        self._running = True
        loop = asyncio.get_running_loop()
        self._workers = [
            loop.create_task(self._worker(index), name=f"order-worker-{index}")
            for index in range(self._config.max_concurrent_orders)
        ]
        if self._config.cleanup_interval > 0:
            self._cleanup_task = loop.create_task(self._background_cleanup())

        self._logger.info(
            f"Started {len(self._workers)} workers "
            f"(rate limit {self._config.orders_per_minute}/{self._config.rate_period}s)"
        )

    async def stop(self) -> None:
        """Cancel workers and background cleanup; running jobs are abandoned."""
        self._running = False

        tasks = list(self._workers)
        if self._cleanup_task is not None:
            tasks.append(self._cleanup_task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._workers = []
        self._cleanup_task = None
        self._logger.info("Stopped admission controller")

    async def join(self) -> None:
        """Wait until every admitted job has finished."""
        await self._queue.join()

    def pause(self) -> None:
        """Stop dispatching new jobs; running jobs continue."""
        if self.is_paused:
            return
        self._resume_event.clear()
        self._logger.info("Order queue paused")
        self._publish_event(EventType.QUEUE_PAUSED, {})

    def resume(self) -> None:
        """Resume dispatching jobs."""
        if not self.is_paused:
            return
        self._resume_event.set()
        self._logger.info("Order queue resumed")
        self._publish_event(EventType.QUEUE_RESUMED, {})

    async def _worker(self, index: int) -> None:
        while True:
            # Paused workers leave jobs in the queue
            await self._resume_event.wait()
            _, _, order_id = await self._queue.get()
            try:
                await self._resume_event.wait()
                with self._jobs_lock:
                    record = self._jobs.get(order_id)
                if record is None:
                    continue
                await self._run_job(record, index)
            finally:
                self._queue.task_done()

    async def _run_job(self, record: JobRecord, worker_index: int) -> None:
        record.state = JobState.DELAYED
        waited = await self._rate_limiter.acquire()
        if waited > 0.001:
            self._logger.info(
                f"Order {record.order_id}: rate limited for {waited:.3f}s"
            )

        record.state = JobState.ACTIVE
        record.started_at = time.time()
        self._logger.info(
            f"Order {record.order_id}: dispatched to worker {worker_index}"
        )
        self._publish_event(EventType.JOB_STARTED, {"order_id": record.order_id})

        try:
            result = await self._executor.execute_order(record.order)
        except asyncio.CancelledError:
            record.state = JobState.FAILED
            record.error = "Worker cancelled"
            record.finished_at = time.time()
            raise
        except Exception as e:
            self._logger.error(
                f"Order {record.order_id}: job failed with unexpected error: {e}"
            )
            record.state = JobState.FAILED
            record.error = str(e) or type(e).__name__
        else:
            record.order_status = result.status
            if result.status == OrderStatus.CONFIRMED:
                record.state = JobState.COMPLETED
            else:
                record.state = JobState.FAILED
                record.error = result.failure_reason
        record.finished_at = time.time()

        event_type = (
            EventType.JOB_COMPLETED
            if record.state == JobState.COMPLETED
            else EventType.JOB_FAILED
        )
        self._publish_event(
            event_type, {"order_id": record.order_id, "error": record.error}
        )

    def get_queue_stats(self) -> Dict[str, int]:
        """
        Snapshot of job counts by state.

        Returns:
            Dict with waiting, active, completed, failed, delayed, total and
            activeConnections
        """
        stats = {state.value: 0 for state in JobState}
        with self._jobs_lock:
            for record in self._jobs.values():
                stats[record.state.value] += 1
            stats["total"] = len(self._jobs)

        stats["activeConnections"] = self._count_connections()
        return stats

    def _count_connections(self) -> int:
        if self._connection_counter is None:
            return 0
        try:
            return self._connection_counter()
        except Exception as e:
            self._logger.error(f"Failed to read active connection count: {e}")
            return 0

    def get_job_status(self, order_id: str) -> Optional[Dict[str, Any]]:
        """Job bookkeeping for an order, or None if unknown or cleaned up."""
        with self._jobs_lock:
            record = self._jobs.get(order_id)
            return record.to_dict() if record else None

    async def cleanup(self, max_age_seconds: Optional[float] = None) -> int:
        """
        Drop finished job records older than the retention age.

        Order history in the order store is never touched.

        Args:
            max_age_seconds: Age threshold; defaults to job_retention_hours

        Returns:
            int: Number of records removed
        """
        if max_age_seconds is None:
            max_age_seconds = self._config.job_retention_hours * 3600
        cutoff = time.time() - max_age_seconds

        with self._jobs_lock:
            expired = [
                order_id
                for order_id, record in self._jobs.items()
                if record.is_finished
                and record.finished_at is not None
                and record.finished_at <= cutoff
            ]
            for order_id in expired:
                del self._jobs[order_id]

        if expired:
            self._logger.info(f"Cleaned up {len(expired)} finished jobs")
            self._publish_event(EventType.QUEUE_CLEANED, {"removed": len(expired)})
        return len(expired)

    async def _background_cleanup(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._config.cleanup_interval)
                await self.cleanup()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._logger.error(f"Error in background cleanup: {e}")

    def _publish_event(self, event_type: str, data: Dict[str, Any]) -> None:
        if self._event_hub is None:
            return
        try:
            self._event_hub.publish(event_type, data)
        except Exception as e:
            self._logger.error(f"Failed to publish {event_type} event: {e}")
