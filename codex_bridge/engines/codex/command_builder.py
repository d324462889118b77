from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from codex_bridge.config import config
from codex_bridge.errors import ConfigError
from codex_bridge.runtime.types import RetryPolicy

FLAG_MODEL = "-m"
FLAG_FULL_AUTO = "--full-auto"
FLAG_ASK_FOR_APPROVAL = "--ask-for-approval"
FLAG_SANDBOX_MODE = "--sandbox"
FLAG_YOLO = "--dangerously-bypass-approvals-and-sandbox"
FLAG_CD = "--cd"
FLAG_SKIP_GIT_REPO_CHECK = "--skip-git-repo-check"
EXEC_SUBCOMMAND = "exec"
STDIN_PROMPT_ARG = "-"


class ApprovalPolicy(str, Enum):
    NEVER = "never"
    ON_REQUEST = "on-request"
    ON_FAILURE = "on-failure"
    UNTRUSTED = "untrusted"


class SandboxMode(str, Enum):
    READ_ONLY = "read-only"
    WORKSPACE_WRITE = "workspace-write"
    DANGER_FULL_ACCESS = "danger-full-access"


@dataclass(frozen=True)
class CodexExecOptions:
    model: Optional[str] = None
    full_auto: bool = False
    approval_policy: Optional[ApprovalPolicy] = None
    sandbox_mode: Optional[SandboxMode] = None
    yolo: bool = False
    cd: Optional[str] = None
    timeout_ms: Optional[int] = None
    max_output_bytes: Optional[int] = None
    retry: Optional[RetryPolicy] = None
    use_stdin_for_long_prompts: bool = True


class CodexCommandBuilder:
    def __init__(self, executable: str | None = None) -> None:
        self.executable = executable or str(config.CODEX.COMMAND)

    def validate(self, options: CodexExecOptions) -> None:
        if options.yolo and options.approval_policy is not None:
            raise ConfigError("Cannot use both yolo and approval_policy")
        if options.yolo and options.sandbox_mode is not None:
            raise ConfigError("Cannot use both yolo and sandbox_mode")

    def build_args(self, options: CodexExecOptions, prompt: str | None) -> list[str]:
        """
        Build the argument vector for ``codex``.

        ``prompt=None`` means the prompt arrives on standard input; codex is
        then told to read it with ``-``.
        """
        self.validate(options)
        args: list[str] = []
        if options.yolo:
            args.append(FLAG_YOLO)
        elif options.full_auto:
            args.append(FLAG_FULL_AUTO)
        else:
            if options.approval_policy is not None:
                args.extend([FLAG_ASK_FOR_APPROVAL, ApprovalPolicy(options.approval_policy).value])
            if options.sandbox_mode is not None:
                args.extend([FLAG_SANDBOX_MODE, SandboxMode(options.sandbox_mode).value])
        if options.model:
            args.extend([FLAG_MODEL, options.model])
        if options.cd:
            args.extend([FLAG_CD, options.cd])
        args.append(FLAG_SKIP_GIT_REPO_CHECK)
        args.append(EXEC_SUBCOMMAND)
        args.append(prompt if prompt is not None else STDIN_PROMPT_ARG)
        return args
