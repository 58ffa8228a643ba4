"""
Execution error taxonomy.

Transient infrastructure errors and business-rule failures are separate
branches of ``ExecutionError`` so the retry policy can tell them apart.
"""

from enum import Enum

from order_engine.routing.quote_router import QuoteRoutingError


class ExecutionError(Exception):
    """Base exception for execution pipeline errors."""


class TransientExecutionError(ExecutionError):
    """Infrastructure failure that may succeed on a later attempt."""


class SubmissionError(TransientExecutionError):
    """Raised when the settlement layer rejects or loses a transaction."""


class BusinessRuleError(ExecutionError):
    """Deterministic failure given the same inputs."""


class SlippageExceededError(BusinessRuleError):
    """Raised when the selected quote's impact exceeds the order tolerance."""

    def __init__(self, price_impact: float, slippage_tolerance: float) -> None:
        super().__init__(
            f"Price impact {price_impact} exceeds max slippage {slippage_tolerance}"
        )
        self.price_impact = price_impact
        self.slippage_tolerance = slippage_tolerance


class UnsupportedOrderKindError(BusinessRuleError):
    """Raised for order kinds the pipeline does not execute."""


class ErrorCategory(Enum):
    """Coarse classification used for logging and statistics."""

    TRANSIENT = "transient"
    BUSINESS_RULE = "business_rule"
    UNEXPECTED = "unexpected"


def classify_failure(error: BaseException) -> ErrorCategory:
    """Map a pipeline exception to its category."""
    if isinstance(error, BusinessRuleError):
        return ErrorCategory.BUSINESS_RULE
    if isinstance(error, (TransientExecutionError, QuoteRoutingError)):
        return ErrorCategory.TRANSIENT
    return ErrorCategory.UNEXPECTED
