from __future__ import annotations

import asyncio
import codecs
import inspect
import logging
import os
import signal
import subprocess
from typing import IO, Any, Awaitable, Callable, Mapping, Sequence

from ..config import config
from .types import (
    FAILURE_LAUNCH,
    FAILURE_NON_ZERO_EXIT,
    FAILURE_TIMEOUT,
    ExecutionOptions,
    ExecutionResult,
    ProgressCallback,
)

logger = logging.getLogger(__name__)


class _CappedBuffer:
    """Byte accumulator that keeps at most ``limit`` bytes and drops the rest."""

    def __init__(self, limit: int) -> None:
        self.limit = max(0, int(limit))
        self.size = 0
        self.truncated = False
        self._chunks: list[bytes] = []

    def feed(self, data: bytes) -> bytes:
        room = self.limit - self.size
        if room <= 0:
            if data:
                self.truncated = True
            return b""
        kept = data[:room]
        if len(kept) < len(data):
            self.truncated = True
        self._chunks.append(kept)
        self.size += len(kept)
        return kept

    def text(self) -> str:
        return b"".join(self._chunks).decode("utf-8", errors="replace")


class ProcessRunner:
    """
    Runs an external command with a hard timeout, per-stream output caps and
    an optional retry policy for transient failures.

    A failed attempt never raises: launch errors, timeouts and non-zero exits
    are all reported through ``ExecutionResult``. Whatever stdout was read
    before the failure is kept as ``partial_stdout`` so callers can salvage it.
    """

    def __init__(
        self,
        *,
        process_prefix: str = "Engine",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.process_prefix = process_prefix
        self._sleep = sleep

    async def run(
        self,
        command: str,
        args: Sequence[str],
        options: ExecutionOptions | None = None,
        on_progress: ProgressCallback | None = None,
        stdin_path: str | None = None,
    ) -> ExecutionResult:
        options = options or ExecutionOptions()
        policy = options.retry
        max_attempts = max(1, int(policy.max_attempts)) if policy is not None else 1

        attempt = 0
        while True:
            attempt += 1
            result = await self._run_once(command, args, options, on_progress, stdin_path, attempt)
            if result.ok or policy is None or not result.is_transient_failure:
                return result
            if attempt >= max_attempts:
                logger.error(
                    "[%s] giving up after %s attempt(s): %s",
                    self.process_prefix,
                    attempt,
                    result.failure_reason,
                )
                return result
            delay = policy.delay_seconds(attempt)
            logger.warning(
                "[%s] attempt %s/%s failed (%s); retrying in %.2fs",
                self.process_prefix,
                attempt,
                max_attempts,
                result.failure_reason,
                delay,
            )
            await self._sleep(delay)

    def build_subprocess_env(self, base_env: dict[str, str], overrides: Mapping[str, str] | None) -> dict[str, str]:
        if overrides:
            base_env.update({str(key): str(value) for key, value in overrides.items()})
        return base_env

    async def _run_once(
        self,
        command: str,
        args: Sequence[str],
        options: ExecutionOptions,
        on_progress: ProgressCallback | None,
        stdin_path: str | None,
        attempt: int,
    ) -> ExecutionResult:
        env = self.build_subprocess_env(os.environ.copy(), options.env)
        stdin_handle: IO[bytes] | None = None
        try:
            if stdin_path is not None:
                stdin_handle = open(stdin_path, "rb")
            try:
                proc = await self._create_subprocess(
                    command,
                    *args,
                    cwd=options.cwd,
                    env=env,
                    stdin=stdin_handle,
                )
            except OSError as exc:
                logger.error("[%s] failed to launch %s: %s", self.process_prefix, command, exc)
                return ExecutionResult(
                    ok=False,
                    stdout="",
                    stderr=f"failed to launch {command}: {exc}",
                    exit_code=-1,
                    failure_reason=FAILURE_LAUNCH,
                    attempts=attempt,
                )
            return await self._capture_process_output(proc, options, on_progress, attempt)
        finally:
            if stdin_handle is not None:
                stdin_handle.close()

    async def _capture_process_output(
        self,
        proc: asyncio.subprocess.Process,
        options: ExecutionOptions,
        on_progress: ProgressCallback | None,
        attempt: int,
    ) -> ExecutionResult:
        prefix = self.process_prefix
        read_size = int(config.RUNNER.STREAM_READ_SIZE)
        stdout_buffer = _CappedBuffer(options.max_output_bytes)
        stderr_buffer = _CappedBuffer(options.max_output_bytes)
        progress_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        progress_enabled = on_progress is not None

        async def report(kept: bytes) -> None:
            nonlocal progress_enabled
            if not progress_enabled or on_progress is None:
                return
            text = progress_decoder.decode(kept)
            if not text:
                return
            try:
                outcome = on_progress(text)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                progress_enabled = False
                logger.warning("[%s] progress callback failed; further progress dropped", prefix, exc_info=True)

        async def read_stream(
            stream: asyncio.StreamReader | None,
            buffer: _CappedBuffer,
            forward: bool,
        ) -> None:
            if stream is None:
                return
            while True:
                chunk = await stream.read(read_size)
                if not chunk:
                    break
                kept = buffer.feed(chunk)
                if kept and forward:
                    await report(kept)

        stdout_task = asyncio.create_task(read_stream(proc.stdout, stdout_buffer, True))
        stderr_task = asyncio.create_task(read_stream(proc.stderr, stderr_buffer, False))

        timeout_sec = max(0.001, options.timeout_ms / 1000.0)
        timed_out = False
        try:
            await asyncio.wait_for(proc.wait(), timeout=timeout_sec)
        except asyncio.TimeoutError:
            timed_out = True
            logger.error("[%s] hard timeout reached (%sms), terminating process", prefix, options.timeout_ms)
            await self._terminate_process_tree(proc, prefix)
        finally:
            try:
                await asyncio.wait_for(
                    asyncio.gather(stdout_task, stderr_task, return_exceptions=True),
                    timeout=5,
                )
            except asyncio.TimeoutError:
                logger.warning("[%s] stream readers did not finish in time; cancelling", prefix)
                stdout_task.cancel()
                stderr_task.cancel()
                await asyncio.gather(stdout_task, stderr_task, return_exceptions=True)

        raw_stdout = stdout_buffer.text()
        raw_stderr = stderr_buffer.text()
        truncated = stdout_buffer.truncated or stderr_buffer.truncated
        if truncated:
            logger.warning("[%s] output exceeded %s bytes and was truncated", prefix, options.max_output_bytes)
        returncode = proc.returncode if proc.returncode is not None else 1

        failure_reason: str | None = None
        if timed_out:
            failure_reason = FAILURE_TIMEOUT
        elif returncode != 0:
            failure_reason = FAILURE_NON_ZERO_EXIT
        return ExecutionResult(
            ok=failure_reason is None,
            stdout=raw_stdout,
            stderr=raw_stderr,
            exit_code=returncode,
            timed_out=timed_out,
            partial_stdout=raw_stdout,
            truncated=truncated,
            failure_reason=failure_reason,
            attempts=attempt,
        )

    async def _create_subprocess(
        self,
        *cmd: str,
        cwd: str | None,
        env: dict[str, str],
        stdin: IO[bytes] | None = None,
    ) -> asyncio.subprocess.Process:
        kwargs: dict[str, Any] = {
            "stdin": stdin if stdin is not None else asyncio.subprocess.DEVNULL,
            "stdout": asyncio.subprocess.PIPE,
            "stderr": asyncio.subprocess.PIPE,
            "cwd": cwd,
            "env": env,
        }
        if os.name == "nt":
            kwargs["creationflags"] = int(getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0))
        else:
            kwargs["start_new_session"] = True
        return await asyncio.create_subprocess_exec(*cmd, **kwargs)

    async def _terminate_process_tree(self, proc: asyncio.subprocess.Process, prefix: str) -> None:
        if proc.returncode is not None:
            return
        if os.name == "nt":
            await self._terminate_process_tree_windows(proc, prefix)
            return
        await self._terminate_process_tree_posix(proc, prefix)

    async def _terminate_process_tree_posix(self, proc: asyncio.subprocess.Process, prefix: str) -> None:
        grace = float(config.RUNNER.TERMINATE_GRACE_SEC)
        try:
            pgid = os.getpgid(proc.pid)
        except Exception:
            pgid = None

        if pgid is not None and pgid == proc.pid:
            try:
                os.killpg(pgid, signal.SIGTERM)
                await asyncio.wait_for(proc.wait(), timeout=grace)
                return
            except asyncio.TimeoutError:
                logger.warning("[%s] process group SIGTERM timeout, escalating to SIGKILL", prefix)
                try:
                    os.killpg(pgid, signal.SIGKILL)
                    await asyncio.wait_for(proc.wait(), timeout=grace)
                    return
                except Exception:
                    logger.warning("[%s] process group SIGKILL failed", prefix, exc_info=True)
            except ProcessLookupError:
                return
            except Exception:
                logger.warning("[%s] process group termination failed", prefix, exc_info=True)
        elif pgid is not None:
            logger.warning(
                "[%s] subprocess is not process-group leader (pgid=%s,pid=%s); fallback terminate",
                prefix,
                pgid,
                proc.pid,
            )

        try:
            proc.terminate()
            await asyncio.wait_for(proc.wait(), timeout=3)
        except Exception:
            try:
                proc.kill()
                await asyncio.wait_for(proc.wait(), timeout=3)
            except Exception:
                logger.warning("[%s] fallback terminate/kill failed", prefix, exc_info=True)

    async def _terminate_process_tree_windows(self, proc: asyncio.subprocess.Process, prefix: str) -> None:
        ctrl_break = getattr(signal, "CTRL_BREAK_EVENT", None)
        if ctrl_break is not None:
            try:
                proc.send_signal(ctrl_break)
                await asyncio.wait_for(proc.wait(), timeout=3)
                return
            except Exception:
                logger.debug("[%s] CTRL_BREAK did not stop the process", prefix, exc_info=True)

        try:
            proc.terminate()
            await asyncio.wait_for(proc.wait(), timeout=3)
            return
        except Exception:
            logger.debug("[%s] terminate did not stop the process", prefix, exc_info=True)

        try:
            proc.kill()
            await asyncio.wait_for(proc.wait(), timeout=3)
        except Exception:
            logger.warning("[%s] windows terminate/kill failed", prefix, exc_info=True)
