from .process_runner import ProcessRunner
from .types import (
    ExecutionOptions,
    ExecutionResult,
    ProgressCallback,
    RetryPolicy,
)

__all__ = [
    "ExecutionOptions",
    "ExecutionResult",
    "ProcessRunner",
    "ProgressCallback",
    "RetryPolicy",
]
