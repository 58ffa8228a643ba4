"""Order execution state machine, retry policy and settlement layer."""

from .errors import (
    BusinessRuleError,
    ErrorCategory,
    ExecutionError,
    SlippageExceededError,
    SubmissionError,
    TransientExecutionError,
    UnsupportedOrderKindError,
    classify_failure,
)
from .order_executor import ExecutionConfig, OrderExecutor
from .retry_policies import (
    BackoffType,
    IRetryPolicy,
    RetryConfig,
    RetryPolicy,
    create_execution_retry_policy,
)
from .settlement import (
    ISettlementClient,
    SettlementReceipt,
    SimulatedSettlementClient,
    TransactionDescriptor,
)

__all__ = [
    "BackoffType",
    "BusinessRuleError",
    "ErrorCategory",
    "ExecutionConfig",
    "ExecutionError",
    "IRetryPolicy",
    "ISettlementClient",
    "OrderExecutor",
    "RetryConfig",
    "RetryPolicy",
    "SettlementReceipt",
    "SimulatedSettlementClient",
    "SlippageExceededError",
    "SubmissionError",
    "TransactionDescriptor",
    "TransientExecutionError",
    "UnsupportedOrderKindError",
    "classify_failure",
    "create_execution_retry_policy",
]
