from __future__ import annotations

import logging
import os
import tempfile

from codex_bridge.config import config
from codex_bridge.errors import ExecutionError
from codex_bridge.runtime.process_runner import ProcessRunner
from codex_bridge.runtime.types import (
    FAILURE_LAUNCH,
    ExecutionOptions,
    ExecutionResult,
    ProgressCallback,
)

from .command_builder import CodexCommandBuilder, CodexExecOptions

logger = logging.getLogger(__name__)


class CodexExecutor:
    """
    Runs one ``codex exec`` call and returns its stdout.

    Large prompts are written to a temporary file connected to the child's
    standard input so the argument vector stays under platform limits. The
    temp file is removed on every exit path. A failed run whose partial
    stdout is long enough is returned instead of raising.
    """

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        command_builder: CodexCommandBuilder | None = None,
    ) -> None:
        self.runner = runner or ProcessRunner(process_prefix="Codex")
        self.command_builder = command_builder or CodexCommandBuilder()

    async def execute(
        self,
        prompt: str,
        options: CodexExecOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> str:
        options = options or CodexExecOptions()
        # Option conflicts are rejected before anything touches disk or spawns.
        self.command_builder.validate(options)

        concise_prompt = f"{config.CODEX.CONCISE_PREFIX}{prompt}"
        prompt_bytes = len(concise_prompt.encode("utf-8"))
        use_stdin = (
            options.use_stdin_for_long_prompts
            and prompt_bytes > int(config.CODEX.STDIN_PROMPT_THRESHOLD_BYTES)
        )
        exec_options = ExecutionOptions(
            timeout_ms=int(options.timeout_ms or config.RUNNER.DEFAULT_TIMEOUT_MS),
            max_output_bytes=int(options.max_output_bytes or config.RUNNER.MAX_OUTPUT_BYTES),
            retry=options.retry,
        )

        temp_path: str | None = None
        try:
            if use_stdin:
                fd, temp_path = tempfile.mkstemp(prefix="codex-prompt-", suffix=".txt")
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(concise_prompt)
                logger.debug("using temp file for large prompt (%s bytes)", prompt_bytes)
                args = self.command_builder.build_args(options, None)
            else:
                args = self.command_builder.build_args(options, concise_prompt)

            result = await self.runner.run(
                self.command_builder.executable,
                args,
                exec_options,
                on_progress=on_progress,
                stdin_path=temp_path,
            )
        finally:
            if temp_path is not None:
                try:
                    os.unlink(temp_path)
                except OSError:
                    logger.debug("failed to delete temp prompt file %s", temp_path, exc_info=True)

        return self._resolve_output(result, exec_options.timeout_ms)

    async def run_command(self, args: list[str], on_progress: ProgressCallback | None = None) -> str:
        """Run the codex executable with ``args`` verbatim (no prompt, no option checks)."""
        exec_options = ExecutionOptions()
        result = await self.runner.run(
            self.command_builder.executable,
            list(args),
            exec_options,
            on_progress=on_progress,
        )
        return self._resolve_output(result, exec_options.timeout_ms)

    def _resolve_output(self, result: ExecutionResult, timeout_ms: int) -> str:
        if result.ok:
            if result.truncated:
                logger.warning("codex output was truncated at the capture limit")
            return result.stdout

        salvage_min = int(config.CODEX.SALVAGE_MIN_CHARS)
        if result.partial_stdout and len(result.partial_stdout) > salvage_min:
            logger.warning(
                "codex run failed (%s) but %s chars of partial output are available; using them",
                result.failure_reason,
                len(result.partial_stdout),
            )
            return result.partial_stdout

        logger.error("codex execution failed: %s", result.as_dict())
        if result.timed_out:
            raise ExecutionError(f"Codex CLI timed out after {timeout_ms}ms", timed_out=True)
        if result.failure_reason == FAILURE_LAUNCH:
            raise ExecutionError(
                f"Codex CLI could not be started: {result.stderr}",
                exit_code=result.exit_code,
                launch_failed=True,
            )
        error_message = result.stderr.strip() or "Unknown error"
        raise ExecutionError(
            f"Codex CLI failed with exit code {result.exit_code}: {error_message}",
            exit_code=result.exit_code,
        )


async def execute_codex_cli(
    prompt: str,
    options: CodexExecOptions | None = None,
    on_progress: ProgressCallback | None = None,
) -> str:
    return await CodexExecutor().execute(prompt, options, on_progress)
