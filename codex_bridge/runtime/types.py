from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from ..config import config

ProgressCallback = Callable[[str], Union[None, Awaitable[None]]]

FAILURE_TIMEOUT = "TIMEOUT"
FAILURE_LAUNCH = "LAUNCH_FAILED"
FAILURE_NON_ZERO_EXIT = "NON_ZERO_EXIT"

# Failure classes worth another attempt; a completed non-zero exit is final.
TRANSIENT_FAILURES = frozenset({FAILURE_TIMEOUT, FAILURE_LAUNCH})


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_ms: int = 1000
    backoff_multiplier: float = 2.0

    def delay_seconds(self, attempt: int) -> float:
        """Backoff to wait after failed attempt number ``attempt`` (1-based)."""
        if self.backoff_ms <= 0:
            return 0.0
        return (self.backoff_ms * (self.backoff_multiplier ** max(0, attempt - 1))) / 1000.0


@dataclass(frozen=True)
class ExecutionOptions:
    timeout_ms: int = field(default_factory=lambda: int(config.RUNNER.DEFAULT_TIMEOUT_MS))
    max_output_bytes: int = field(default_factory=lambda: int(config.RUNNER.MAX_OUTPUT_BYTES))
    retry: Optional[RetryPolicy] = None
    cwd: Optional[str] = None
    env: Optional[Mapping[str, str]] = None


@dataclass(frozen=True)
class ExecutionResult:
    """Normalized outcome of one process attempt."""

    ok: bool
    stdout: str
    stderr: str
    exit_code: int
    timed_out: bool = False
    partial_stdout: str = ""
    truncated: bool = False
    failure_reason: Optional[str] = None
    attempts: int = 1

    @property
    def is_transient_failure(self) -> bool:
        return self.failure_reason in TRANSIENT_FAILURES

    def as_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "exit_code": self.exit_code,
            "timed_out": self.timed_out,
            "truncated": self.truncated,
            "failure_reason": self.failure_reason,
            "attempts": self.attempts,
        }
