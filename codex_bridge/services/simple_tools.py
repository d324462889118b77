from __future__ import annotations

import logging
import platform
import sys

from .. import __version__
from ..engines.codex.executor import CodexExecutor
from ..errors import ExecutionError
from ..runtime.types import ProgressCallback

logger = logging.getLogger(__name__)

INSTALL_HINT = "*Note: Install Codex CLI with: npm install -g @openai/codex*"


def ping(message: str = "") -> str:
    return message or "Pong!"


async def codex_help(
    on_progress: ProgressCallback | None = None,
    *,
    executor: CodexExecutor | None = None,
) -> str:
    executor = executor or CodexExecutor()
    return await executor.run_command(["--help"], on_progress)


def _system_information(codex_version: str) -> str:
    return "\n".join(
        [
            "**System Information:**",
            f"- Codex CLI: {codex_version}",
            f"- Python: {platform.python_version()}",
            f"- Platform: {sys.platform}",
            f"- codex-bridge: v{__version__}",
        ]
    )


async def version_info(
    on_progress: ProgressCallback | None = None,
    *,
    executor: CodexExecutor | None = None,
) -> str:
    """Report the Codex CLI, interpreter and bridge versions; a missing CLI is reported, not raised."""
    executor = executor or CodexExecutor()
    try:
        codex_version = await executor.run_command(["--version"], on_progress)
    except ExecutionError as exc:
        logger.warning("codex --version failed: %s", exc)
        return f"{_system_information('Not installed or not accessible')}\n\n{INSTALL_HINT}"
    return _system_information(codex_version.strip())
