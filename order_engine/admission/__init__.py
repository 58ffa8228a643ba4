"""Admission control: priority queue, worker pool and dispatch rate limit."""

from .admission_controller import (
    AdmissionConfig,
    AdmissionController,
    AdmissionError,
    JobRecord,
    JobState,
)
from .rate_limiter import SlidingWindowRateLimiter

__all__ = [
    "AdmissionConfig",
    "AdmissionController",
    "AdmissionError",
    "JobRecord",
    "JobState",
    "SlidingWindowRateLimiter",
]
