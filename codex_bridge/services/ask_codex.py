"""
Ask-Codex service.

Request model and handler behind the "ask codex" tool: either runs the Codex
CLI once (plain or change mode) or serves a cached change-mode chunk without
spawning anything.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from ..change_mode.orchestrator import ChangeModeOrchestrator
from ..change_mode.prompt_builder import build_change_mode_prompt
from ..engines.codex.command_builder import ApprovalPolicy, CodexExecOptions, SandboxMode
from ..engines.codex.executor import CodexExecutor
from ..engines.codex.output_parser import format_codex_response_for_tool, is_error_response
from ..runtime.types import ProgressCallback, RetryPolicy

logger = logging.getLogger(__name__)

CODEX_RESPONSE_HEADER = "Codex response:"


class AskCodexRequest(BaseModel):
    """
    Arguments accepted by the ask-codex tool.
    """
    prompt: str = Field(min_length=1)
    model: Optional[str] = None
    sandbox: bool = False
    """Alias for full_auto."""
    full_auto: Optional[bool] = None
    approval_policy: Optional[ApprovalPolicy] = None
    sandbox_mode: Optional[SandboxMode] = None
    yolo: bool = False
    cd: Optional[str] = None
    """Working directory, already resolved to an absolute path by the caller."""
    change_mode: bool = False
    chunk_index: Optional[Any] = None
    """1-based chunk to return; numeric strings are accepted."""
    chunk_cache_key: Optional[str] = None
    timeout_ms: Optional[int] = Field(default=None, ge=1)
    max_attempts: int = Field(default=1, ge=1)
    format_output: bool = False
    """Render the Codex transcript as Markdown (configuration, reasoning, response)."""

    @field_validator("chunk_index", mode="before")
    @classmethod
    def _coerce_numeric_chunk_index(cls, value: Any) -> Any:
        # Non-numeric values are kept so the orchestrator can reject them by name.
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value.strip())
        return value

    def to_exec_options(self) -> CodexExecOptions:
        full_auto = self.full_auto if self.full_auto is not None else self.sandbox
        retry = RetryPolicy(max_attempts=self.max_attempts) if self.max_attempts > 1 else None
        return CodexExecOptions(
            model=self.model,
            full_auto=bool(full_auto),
            approval_policy=self.approval_policy,
            sandbox_mode=self.sandbox_mode,
            yolo=self.yolo,
            cd=self.cd,
            timeout_ms=self.timeout_ms,
            retry=retry,
        )


async def ask_codex(
    request: AskCodexRequest,
    on_progress: ProgressCallback | None = None,
    *,
    executor: CodexExecutor | None = None,
    orchestrator: ChangeModeOrchestrator | None = None,
) -> str:
    """
    Handle one ask-codex call.

    ConfigError and ExecutionError propagate; change-mode problems come back
    as text from the orchestrator.
    """
    orchestrator = orchestrator or ChangeModeOrchestrator()

    if request.change_mode and request.chunk_index is not None and request.chunk_cache_key:
        logger.debug("serving cached chunk %s for key %s", request.chunk_index, request.chunk_cache_key)
        return orchestrator.process(
            "",
            chunk_index=request.chunk_index,
            cache_key=request.chunk_cache_key,
            prompt=request.prompt,
        )

    executor = executor or CodexExecutor()
    engine_prompt = build_change_mode_prompt(request.prompt) if request.change_mode else request.prompt
    result = await executor.execute(engine_prompt, request.to_exec_options(), on_progress)

    if request.change_mode:
        return orchestrator.process(
            result,
            chunk_index=request.chunk_index,
            prompt=request.prompt,
        )
    if is_error_response(result):
        logger.info("codex response looks like an error report")
    if request.format_output:
        result = format_codex_response_for_tool(result)
    return f"{CODEX_RESPONSE_HEADER}\n{result}"
