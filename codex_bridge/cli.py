from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Sequence

from pydantic import ValidationError as RequestValidationError

from .change_mode.orchestrator import ChangeModeOrchestrator
from .engines.codex.command_builder import ApprovalPolicy, SandboxMode
from .errors import BridgeError
from .logging_config import setup_logging
from .services.ask_codex import AskCodexRequest, ask_codex
from .services.brainstorm import BrainstormRequest, Methodology, brainstorm
from .services.simple_tools import codex_help, ping, version_info


def _add_codex_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--model", help="Model passed to codex (-m)")
    parser.add_argument("--full-auto", action="store_true", help="workspace-write sandbox, on-failure approval")
    parser.add_argument(
        "--approval-policy",
        choices=[policy.value for policy in ApprovalPolicy],
        help="When codex asks for approval",
    )
    parser.add_argument(
        "--sandbox-mode",
        choices=[mode.value for mode in SandboxMode],
        help="File system access granted to codex",
    )
    parser.add_argument("--yolo", action="store_true", help="Bypass approvals and sandbox (dangerous)")
    parser.add_argument("--cd", help="Resolved working directory for codex")
    parser.add_argument("--timeout-ms", type=int, default=None, help="Hard timeout per attempt")
    parser.add_argument("--verbose", action="store_true", help="Echo codex output to stderr while it runs")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="codex-bridge",
        description="Run the Codex CLI and page its structured edits",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    ask = subparsers.add_parser("ask", help="Send a prompt to codex")
    _add_codex_options(ask)
    ask.add_argument("--change-mode", action="store_true", help="Return structured OLD/NEW edits")
    ask.add_argument("--chunk-index", type=int, default=None, help="Chunk to print (1-based)")
    ask.add_argument("--max-attempts", type=int, default=1, help="Attempts for timeouts/launch failures")
    ask.add_argument("--format-output", action="store_true", help="Render the codex transcript as Markdown")
    ask.add_argument("prompt", nargs="+", help="Prompt text")

    ideas = subparsers.add_parser("brainstorm", help="Generate ideas with a brainstorming framework")
    _add_codex_options(ideas)
    ideas.add_argument(
        "--methodology",
        choices=[methodology.value for methodology in Methodology],
        default=Methodology.AUTO.value,
        help="Ideation framework",
    )
    ideas.add_argument("--domain", help="Domain context, e.g. software or marketing")
    ideas.add_argument("--constraints", help="Known limits: budget, time, technical")
    ideas.add_argument("--existing-context", help="Background or previous attempts")
    ideas.add_argument("--idea-count", type=int, default=12, help="Number of ideas")
    ideas.add_argument("--no-analysis", dest="include_analysis", action="store_false", help="Skip idea ratings")
    ideas.add_argument("prompt", nargs="+", help="Challenge or question")

    changes = subparsers.add_parser("changes", help="Page edits from saved codex output")
    changes.add_argument("--chunk-index", type=int, default=None, help="Chunk to print (1-based)")
    changes.add_argument("--no-repair", dest="auto_repair", action="store_false", help="Disable line-range repair")
    changes.add_argument("--max-chunk-chars", type=int, default=None, help="Override the chunk budget")
    changes.add_argument("source", nargs="?", default="-", help="File with codex output, '-' for stdin")

    ping_parser = subparsers.add_parser("ping", help="Echo a message")
    ping_parser.add_argument("message", nargs="*", help="Message to echo")
    subparsers.add_parser("help", help="Show codex --help")
    subparsers.add_parser("version", help="Show codex, Python and bridge versions")
    return parser


def _echo_progress(text: str) -> None:
    sys.stderr.write(text)
    sys.stderr.flush()


def _run(parsed: argparse.Namespace) -> str:
    if parsed.command == "ask":
        request = AskCodexRequest(
            prompt=" ".join(parsed.prompt).strip(),
            model=parsed.model,
            full_auto=bool(parsed.full_auto),
            approval_policy=parsed.approval_policy,
            sandbox_mode=parsed.sandbox_mode,
            yolo=bool(parsed.yolo),
            cd=parsed.cd,
            change_mode=bool(parsed.change_mode),
            chunk_index=parsed.chunk_index,
            timeout_ms=parsed.timeout_ms,
            max_attempts=parsed.max_attempts,
            format_output=bool(parsed.format_output),
        )
        on_progress = _echo_progress if parsed.verbose else None
        return asyncio.run(ask_codex(request, on_progress))

    if parsed.command == "brainstorm":
        ideas_request = BrainstormRequest(
            prompt=" ".join(parsed.prompt),
            model=parsed.model,
            approval_policy=parsed.approval_policy,
            sandbox_mode=parsed.sandbox_mode,
            full_auto=bool(parsed.full_auto),
            yolo=bool(parsed.yolo),
            cd=parsed.cd,
            methodology=parsed.methodology,
            domain=parsed.domain,
            constraints=parsed.constraints,
            existing_context=parsed.existing_context,
            idea_count=parsed.idea_count,
            include_analysis=bool(parsed.include_analysis),
            timeout_ms=parsed.timeout_ms,
        )
        on_progress = _echo_progress if parsed.verbose else None
        return asyncio.run(brainstorm(ideas_request, on_progress))

    if parsed.command == "changes":
        if parsed.source == "-":
            raw_text = sys.stdin.read()
        else:
            raw_text = Path(parsed.source).read_text(encoding="utf-8")
        orchestrator = ChangeModeOrchestrator(max_chunk_chars=parsed.max_chunk_chars)
        return orchestrator.process(
            raw_text,
            chunk_index=parsed.chunk_index,
            auto_repair=bool(parsed.auto_repair),
        )
    if parsed.command == "ping":
        return ping(" ".join(parsed.message))
    if parsed.command == "help":
        return asyncio.run(codex_help())
    if parsed.command == "version":
        return asyncio.run(version_info())
    raise BridgeError("INVALID_COMMAND", "Unsupported command")


def main(argv: Sequence[str] | None = None) -> int:
    argv_list = list(sys.argv[1:] if argv is None else argv)
    parsed = _build_parser().parse_args(argv_list)
    setup_logging(verbose=bool(getattr(parsed, "verbose", False)))
    try:
        print(_run(parsed))
        return 0
    except BridgeError as exc:
        print(json.dumps(exc.to_payload(), ensure_ascii=False, indent=2), file=sys.stderr)
        return 2
    except RequestValidationError as exc:
        payload = BridgeError("INVALID_REQUEST", "Invalid request", {"errors": exc.errors()}).to_payload()
        print(json.dumps(payload, ensure_ascii=False, indent=2, default=str), file=sys.stderr)
        return 2
    except OSError as exc:
        payload = BridgeError("IO_ERROR", str(exc)).to_payload()
        print(json.dumps(payload, ensure_ascii=False, indent=2), file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
