"""
Retry policies for order execution.

A policy answers two questions for the orchestrator: may this failure be
retried after ``n`` retries, and how long to wait before the next attempt.
The orchestrator owns the retry loop itself.
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from order_engine.execution.errors import (
    SlippageExceededError,
    UnsupportedOrderKindError,
)
from order_engine.persistence.order_store import (
    InvalidTransitionError,
    OrderNotFoundError,
)


class BackoffType(Enum):
    """Enumeration of supported backoff types."""

    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    FIXED = "fixed"


@dataclass(frozen=True)
class RetryConfig:
    """
    Configuration for retry policies.

    Attributes:
        max_retries: Retries allowed after the first attempt
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound on any single delay
        backoff_type: Growth of the delay between retries
        jitter_enabled: Whether to add random jitter to delays
        jitter_max: Maximum jitter as a fraction of the delay (0.0 to 1.0)
        retry_exceptions: Exception types eligible for retry
        stop_exceptions: Exception types never retried
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    backoff_type: BackoffType = BackoffType.EXPONENTIAL
    jitter_enabled: bool = False
    jitter_max: float = 0.1
    retry_exceptions: tuple = (Exception,)
    stop_exceptions: tuple = ()

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if not 0.0 <= self.jitter_max <= 1.0:
            raise ValueError("jitter_max must be between 0.0 and 1.0")


class IRetryPolicy(ABC):
    """Interface for retry policy implementations."""

    @property
    @abstractmethod
    def max_retries(self) -> int:
        """Retry budget per order."""

    @abstractmethod
    def calculate_delay(self, retries_done: int) -> float:
        """
        Calculate the wait before the next attempt.

        Args:
            retries_done: Retries already performed (0 before the first retry)

        Returns:
            float: Delay in seconds
        """

    @abstractmethod
    def should_retry(self, retries_done: int, exception: Exception) -> bool:
        """
        Decide whether a failed attempt may be retried.

        Args:
            retries_done: Retries already performed
            exception: Error raised by the failed attempt
        """


class RetryPolicy(IRetryPolicy):
    """Configurable policy supporting exponential, linear and fixed backoff."""

    def __init__(self, config: RetryConfig, rng: Optional[random.Random] = None):
        self._config = config
        self._rng = rng or random.Random()

    @property
    def config(self) -> RetryConfig:
        return self._config

    @property
    def max_retries(self) -> int:
        return self._config.max_retries

    def calculate_delay(self, retries_done: int) -> float:
        """
        Delay before retry number ``retries_done + 1``.

        Exponential backoff yields base, 2·base, 4·base, ...
        """
        if self._config.backoff_type == BackoffType.EXPONENTIAL:
            delay = self._config.base_delay * (2**retries_done)
        elif self._config.backoff_type == BackoffType.LINEAR:
            delay = self._config.base_delay * (retries_done + 1)
        else:
            delay = self._config.base_delay

        delay = min(delay, self._config.max_delay)

        if self._config.jitter_enabled and delay > 0:
            jitter_amount = delay * self._config.jitter_max
            delay = max(0.0, delay + self._rng.uniform(-jitter_amount, jitter_amount))

        return delay

    def should_retry(self, retries_done: int, exception: Exception) -> bool:
        if retries_done >= self._config.max_retries:
            return False
        if isinstance(exception, self._config.stop_exceptions):
            return False
        return isinstance(exception, self._config.retry_exceptions)


def create_execution_retry_policy(
    max_retries: int = 3,
    base_delay: float = 1.0,
    retry_business_failures: bool = True,
) -> RetryPolicy:
    """
    Factory function for the orchestrator's retry policy.

    Unsupported kinds and store state errors (missing order, illegal
    transition) are never retried.

    Args:
        max_retries: Retry budget per order
        base_delay: First backoff delay in seconds
        retry_business_failures: When False, slippage violations fail the
            order immediately instead of consuming the retry budget

    Returns:
        RetryPolicy: Exponential, jitter-free policy
    """
    stop_exceptions: tuple = (
        UnsupportedOrderKindError,
        InvalidTransitionError,
        OrderNotFoundError,
    )
    if not retry_business_failures:
        stop_exceptions += (SlippageExceededError,)

    return RetryPolicy(
        RetryConfig(
            max_retries=max_retries,
            base_delay=base_delay,
            max_delay=max(base_delay * (2 ** max(max_retries, 0)), base_delay),
            backoff_type=BackoffType.EXPONENTIAL,
            jitter_enabled=False,
            stop_exceptions=stop_exceptions,
        )
    )
