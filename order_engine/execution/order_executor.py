"""
Execution orchestrator.

Drives one order through ROUTING, BUILDING, SUBMITTING and CONFIRMED. Every
transition is persisted through the order store before the matching status
event is published. Failures are retried in-process with exponential
backoff: a retry awaits the same entry point again from inside the failing
call, so an order never has two attempts running at once.
"""

import asyncio
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

from order_engine.broadcast.status_broadcaster import IStatusSink
from order_engine.core.logger import get_module_logger
from order_engine.execution.errors import (
    ErrorCategory,
    SlippageExceededError,
    UnsupportedOrderKindError,
    classify_failure,
)
from order_engine.execution.retry_policies import (
    IRetryPolicy,
    create_execution_retry_policy,
)
from order_engine.execution.settlement import ISettlementClient
from order_engine.models.order import Order, OrderKind, OrderStatus, StatusEvent
from order_engine.persistence.order_store import IOrderStore
from order_engine.routing.quote_router import QuoteRouter

# Order attribute -> status event payload key
_WIRE_KEYS = {
    "selected_venue": "selectedDex",
    "raydium_price": "raydiumPrice",
    "meteora_price": "meteoraPrice",
    "execution_price": "executionPrice",
    "settlement_reference": "txHash",
    "failure_reason": "error",
}


@dataclass
class ExecutionConfig:
    """
    Orchestrator settings.

    Attributes:
        max_retries: Retries allowed after the first attempt
        retry_base_delay: First backoff delay in seconds
        retry_business_failures: Whether slippage violations consume retries
    """

    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_business_failures: bool = True

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.retry_base_delay < 0:
            raise ValueError("retry_base_delay must be non-negative")


class OrderExecutor:
    """
    Runs the per-order execution state machine.

    Attributes:
        _router: Quote router comparing venues
        _store: Order persistence collaborator
        _sink: Receiver of status events
        _settlement: Transaction builder and submitter
        _retry_policy: Decides retry eligibility and backoff
        _in_flight: Ids of orders with an attempt in progress
    """

    def __init__(
        self,
        quote_router: QuoteRouter,
        order_store: IOrderStore,
        status_sink: IStatusSink,
        settlement_client: ISettlementClient,
        config: Optional[ExecutionConfig] = None,
        retry_policy: Optional[IRetryPolicy] = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            quote_router: Router used for the ROUTING stage
            order_store: Store every transition is persisted to
            status_sink: Receiver of every published status event
            settlement_client: Settlement layer for BUILDING and SUBMITTING
            config: Retry settings; defaults apply when None
            retry_policy: Overrides the policy derived from ``config``
        """
        self._config = config or ExecutionConfig()
        self._router = quote_router
        self._store = order_store
        self._sink = status_sink
        self._settlement = settlement_client
        self._retry_policy = retry_policy or create_execution_retry_policy(
            max_retries=self._config.max_retries,
            base_delay=self._config.retry_base_delay,
            retry_business_failures=self._config.retry_business_failures,
        )
        self._logger = get_module_logger("execution.order_executor")

        self._in_flight: Set[str] = set()
        self._lock = threading.Lock()

        self._processed_orders_count = 0
        self._confirmed_count = 0
        self._failed_count = 0
        self._retry_count = 0
        self._failures_by_category: Dict[str, int] = {
            category.value: 0 for category in ErrorCategory
        }

    async def execute_order(self, order: Order, retry_attempt: int = 0) -> Order:
        """
        Execute an order to a terminal status.

        Called with ``retry_attempt=0`` by the admission layer; retries
        re-enter here with the attempt number incremented. Never raises for
        pipeline failures: the order ends FAILED instead.

        Args:
            order: Order to execute
            retry_attempt: Retries already performed for this order

        Returns:
            Order: Final persisted state of the order
        """
        if retry_attempt > 0:
            return await self._attempt(order, retry_attempt)

        with self._lock:
            if order.id in self._in_flight:
                self._logger.warning(
                    f"Order {order.id}: execution already in progress, ignoring"
                )
                duplicate = True
            else:
                self._in_flight.add(order.id)
                self._processed_orders_count += 1
                duplicate = False

        if duplicate:
            return await self._store.get(order.id) or order

        try:
            stored = await self._load_stored(order.id)
            if stored is not None and stored.is_terminal:
                self._logger.warning(
                    f"Order {order.id}: already {stored.status.value}, "
                    f"skipping execution"
                )
                return stored
            return await self._attempt(order, 0)
        finally:
            with self._lock:
                self._in_flight.discard(order.id)

    async def _attempt(self, order: Order, retry_attempt: int) -> Order:
        self._logger.info(
            f"Order {order.id}: processing attempt {retry_attempt + 1} "
            f"({order.kind.value} {order.quantity} "
            f"{order.source_asset}->{order.destination_asset})"
        )
        try:
            return await self._run_pipeline(order)
        except Exception as e:
            return await self._handle_failure(order, retry_attempt, e)

    async def _run_pipeline(self, order: Order) -> Order:
        if order.kind != OrderKind.MARKET:
            raise UnsupportedOrderKindError(
                f"Order type '{order.kind.value}' is not supported for execution"
            )

        await self._transition(order.id, OrderStatus.ROUTING, "Comparing DEX prices")

        quotes = await self._router.fetch_quotes(
            order.source_asset, order.destination_asset, order.quantity
        )
        self._router.validate(quotes.raydium, quotes.meteora)
        best = self._router.select_best(quotes.raydium, quotes.meteora)

        await self._transition(
            order.id,
            OrderStatus.ROUTING,
            "Best DEX selected",
            selected_venue=best.venue,
            raydium_price=quotes.raydium.price,
            meteora_price=quotes.meteora.price,
        )

        await self._transition(order.id, OrderStatus.BUILDING, "Creating transaction")
        transaction = await self._settlement.build_transaction(order, best)
        if transaction.price_impact > order.slippage_tolerance:
            raise SlippageExceededError(
                transaction.price_impact, order.slippage_tolerance
            )

        await self._transition(
            order.id, OrderStatus.SUBMITTING, "Transaction sent to network"
        )
        receipt = await self._settlement.submit(transaction)

        confirmed = await self._transition(
            order.id,
            OrderStatus.CONFIRMED,
            "Transaction successful",
            settlement_reference=receipt.reference,
            execution_price=receipt.execution_price,
        )

        with self._lock:
            self._confirmed_count += 1
        self._logger.info(
            f"Order {order.id}: confirmed on {best.venue.value} "
            f"price={receipt.execution_price} tx={receipt.reference}"
        )
        return confirmed

    async def _handle_failure(
        self, order: Order, retry_attempt: int, error: Exception
    ) -> Order:
        category = classify_failure(error)
        with self._lock:
            self._failures_by_category[category.value] += 1

        if self._retry_policy.should_retry(retry_attempt, error):
            try:
                retry_count = await self._store.increment_retry(order.id)
            except Exception as store_error:
                self._logger.error(
                    f"Order {order.id}: could not record retry: {store_error}"
                )
                return await self._fail_order(order, error)

            delay = self._retry_policy.calculate_delay(retry_attempt)
            with self._lock:
                self._retry_count += 1
            self._logger.warning(
                f"Order {order.id}: attempt {retry_attempt + 1} failed "
                f"({category.value}: {error}); retry {retry_count}/"
                f"{self._retry_policy.max_retries} in {delay:.2f}s"
            )

            await asyncio.sleep(delay)
            return await self.execute_order(order, retry_attempt + 1)

        return await self._fail_order(order, error)

    async def _fail_order(self, order: Order, error: Exception) -> Order:
        reason = str(error) or type(error).__name__
        stored = await self._load_stored(order.id)
        if stored is not None and stored.is_terminal:
            self._logger.error(
                f"Order {order.id}: failure after terminal "
                f"{stored.status.value} ignored: {reason}"
            )
            return stored

        self._logger.error(f"Order {order.id}: execution failed: {reason}")

        with self._lock:
            self._failed_count += 1

        failed = await self._transition(
            order.id,
            OrderStatus.FAILED,
            "Order execution failed",
            tolerate_store_errors=True,
            failure_reason=reason,
        )
        return failed or await self._load_stored(order.id) or order

    async def _load_stored(self, order_id: str) -> Optional[Order]:
        try:
            return await self._store.get(order_id)
        except Exception as e:
            self._logger.error(f"Order {order_id}: could not load stored state: {e}")
            return None

    async def _transition(
        self,
        order_id: str,
        status: OrderStatus,
        message: str,
        tolerate_store_errors: bool = False,
        **fields: Any,
    ) -> Optional[Order]:
        """
        Persist a status change, then publish it.

        Args:
            order_id: Order being transitioned
            status: New status
            message: Human-readable event message
            tolerate_store_errors: Log persistence errors instead of raising
            **fields: Partial order fields stored with the status

        Returns:
            Optional[Order]: Updated order, or None if a tolerated store
            error occurred
        """
        updated: Optional[Order] = None
        try:
            updated = await self._store.update_status(order_id, status, **fields)
        except Exception as e:
            if not tolerate_store_errors:
                raise
            self._logger.error(
                f"Order {order_id}: failed to persist {status.value}: {e}"
            )

        data = {_WIRE_KEYS[key]: value for key, value in fields.items()}
        await self._publish(StatusEvent(order_id, status, message, data))
        return updated

    async def _publish(self, event: StatusEvent) -> None:
        try:
            await self._sink.publish(event)
        except Exception as e:
            self._logger.error(
                f"Order {event.order_id}: failed to publish "
                f"{event.status.value} event: {e}"
            )

    def is_executing(self, order_id: str) -> bool:
        with self._lock:
            return order_id in self._in_flight

    def get_execution_statistics(self) -> Dict[str, Any]:
        """
        Get orchestrator statistics.

        Returns:
            Dictionary containing execution statistics
        """
        with self._lock:
            finished = self._confirmed_count + self._failed_count
            return {
                "processed_orders": self._processed_orders_count,
                "confirmed_orders": self._confirmed_count,
                "failed_orders": self._failed_count,
                "in_flight_orders": len(self._in_flight),
                "retries": self._retry_count,
                "success_rate": self._confirmed_count / finished if finished else 0.0,
                "failures_by_category": dict(self._failures_by_category),
                "max_retries": self._retry_policy.max_retries,
            }
