from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(eq=False)
class BridgeError(Exception):
    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"ok": False, "error": {"code": self.code, "message": self.message}}
        if self.details:
            payload["error"]["details"] = self.details
        return payload


class ConfigError(BridgeError):
    """Mutually exclusive execution options were requested together."""

    def __init__(self, message: str) -> None:
        super().__init__("CONFIG_ERROR", message)


class ExecutionError(BridgeError):
    """Engine process timed out, could not start, or exited non-zero."""

    def __init__(
        self,
        message: str,
        *,
        timed_out: bool = False,
        exit_code: int | None = None,
        launch_failed: bool = False,
    ) -> None:
        if timed_out:
            code = "TIMEOUT"
        elif launch_failed:
            code = "LAUNCH_FAILED"
        else:
            code = "EXECUTION_FAILED"
        details: dict[str, Any] = {}
        if exit_code is not None:
            details["exit_code"] = exit_code
        super().__init__(code, message, details)
        self.timed_out = timed_out
        self.exit_code = exit_code


class ParseError(BridgeError):
    def __init__(self, message: str, line_number: int | None = None) -> None:
        details = {"line": line_number} if line_number is not None else {}
        text = f"line {line_number}: {message}" if line_number is not None else message
        super().__init__("PARSE_ERROR", text, details)
        self.line_number = line_number


class ValidationError(BridgeError):
    def __init__(self, errors: list[str]) -> None:
        super().__init__(
            "VALIDATION_ERROR",
            f"{len(errors)} edit validation error(s)",
            {"errors": list(errors)},
        )
        self.errors = list(errors)


class CacheMiss(BridgeError):
    def __init__(self, cache_key: str) -> None:
        super().__init__("CACHE_MISS", f"Cache key '{cache_key}' not found or expired", {"cache_key": cache_key})
        self.cache_key = cache_key


class ChunkRangeError(BridgeError):
    def __init__(self, chunk_index: int, available: int) -> None:
        super().__init__(
            "CHUNK_OUT_OF_RANGE",
            f"Chunk index {chunk_index} out of range. Available chunks: 1-{available}",
            {"chunk_index": chunk_index, "available": available},
        )
        self.chunk_index = chunk_index
        self.available = available
