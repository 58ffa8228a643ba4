"""
Settlement layer used by the execution orchestrator.

Builds a transaction descriptor for the selected quote and submits it.
The simulated client models network latency and a small probability of
transient submission failure so the retry path gets exercised.
"""

import asyncio
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

from order_engine.core.logger import get_module_logger
from order_engine.execution.errors import SubmissionError
from order_engine.models.order import Order, Quote, Venue


@dataclass(frozen=True)
class TransactionDescriptor:
    """
    Swap transaction ready for submission.

    Attributes:
        order_id: Owning order
        venue: Venue the swap routes through
        source_asset: Asset sold
        destination_asset: Asset bought
        quantity: Input quantity
        expected_price: Quoted unit price
        expected_output: Quoted output amount
        minimum_output: Output floor derived from the slippage tolerance
        price_impact: Quoted price impact fraction
    """

    order_id: str
    venue: Venue
    source_asset: str
    destination_asset: str
    quantity: float
    expected_price: float
    expected_output: float
    minimum_output: float
    price_impact: float

    @classmethod
    def from_quote(cls, order: Order, quote: Quote) -> "TransactionDescriptor":
        return cls(
            order_id=order.id,
            venue=quote.venue,
            source_asset=order.source_asset,
            destination_asset=order.destination_asset,
            quantity=order.quantity,
            expected_price=quote.price,
            expected_output=quote.output_amount,
            minimum_output=quote.output_amount * (1 - order.slippage_tolerance),
            price_impact=quote.price_impact,
        )


@dataclass(frozen=True)
class SettlementReceipt:
    """Outcome of a successful submission."""

    reference: str
    execution_price: float


class ISettlementClient(ABC):
    """Interface to the settlement layer."""

    @abstractmethod
    async def build_transaction(
        self, order: Order, quote: Quote
    ) -> TransactionDescriptor:
        """Build the transaction for ``order`` against the selected quote."""

    @abstractmethod
    async def submit(self, transaction: TransactionDescriptor) -> SettlementReceipt:
        """
        Submit a transaction and wait for settlement.

        Raises:
            SubmissionError: If the transaction could not be submitted
        """


class SimulatedSettlementClient(ISettlementClient):
    """Settlement stand-in with configurable latency and failure rate."""

    def __init__(
        self,
        execution_delay: float = 2.5,
        build_delay: float = 0.5,
        failure_probability: float = 0.05,
        rng: Optional[random.Random] = None,
    ) -> None:
        """
        Initialize simulated settlement client.

        Args:
            execution_delay: Seconds a submission takes to settle
            build_delay: Seconds spent building a transaction
            failure_probability: Chance in [0, 1] that a submission fails
            rng: Random generator, injectable for reproducible runs
        """
        if not 0.0 <= failure_probability <= 1.0:
            raise ValueError("failure_probability must be between 0 and 1")

        self._execution_delay = execution_delay
        self._build_delay = build_delay
        self._failure_probability = failure_probability
        self._rng = rng or random.Random()
        self._logger = get_module_logger("execution.settlement")

    async def build_transaction(
        self, order: Order, quote: Quote
    ) -> TransactionDescriptor:
        await asyncio.sleep(self._build_delay)
        return TransactionDescriptor.from_quote(order, quote)

    async def submit(self, transaction: TransactionDescriptor) -> SettlementReceipt:
        self._logger.info(
            f"Order {transaction.order_id}: submitting swap on "
            f"{transaction.venue.value} qty={transaction.quantity}"
        )
        await asyncio.sleep(self._execution_delay)

        if self._rng.random() < self._failure_probability:
            raise SubmissionError("Network error: Transaction failed to submit")

        return SettlementReceipt(
            reference=uuid4().hex,
            execution_price=transaction.expected_price,
        )
