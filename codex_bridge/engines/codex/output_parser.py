"""
Codex CLI transcript parsing.

``codex exec`` prints a banner, a ``--------`` delimited configuration block
and then timestamped sections (``User instructions:``, ``thinking``,
``codex``) followed by a ``tokens used: N`` line. This module splits that
transcript into a ``CodexOutput`` and renders it back as Markdown for tool
callers.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_TIMESTAMP = re.compile(r"^\[([^\]]+)\]\s*")
_TOKENS_USED = re.compile(r"tokens used:\s*([\d,]+)", re.IGNORECASE)
_SEPARATOR = "--------"
_CODE_BLOCK = re.compile(r"```[\s\S]*?```")
_DIFF_BLOCK = re.compile(r"```diff[\s\S]*?```")

_SECTION_HEADERS = {
    "user instructions:": "user_instructions",
    "thinking": "thinking",
    "codex": "response",
    "assistant": "response",
}

ERROR_KEYWORDS = (
    "error",
    "failed",
    "unable",
    "cannot",
    "authentication",
    "permission denied",
    "rate limit",
    "quota exceeded",
)


class CodexOutput(BaseModel):
    metadata: Dict[str, str] = Field(default_factory=dict)
    """Configuration block entries, keys lowercased with spaces as underscores."""
    user_instructions: str = ""
    thinking: Optional[str] = None
    response: str = ""
    tokens_used: Optional[int] = None
    timestamps: List[str] = Field(default_factory=list)
    raw_output: str = ""


def _section_header(line: str) -> str | None:
    label = _TIMESTAMP.sub("", line).strip().lower()
    return _SECTION_HEADERS.get(label)


def _parse_metadata(lines: list[str]) -> dict[str, str]:
    metadata: dict[str, str] = {}
    for line in lines:
        key, sep, value = line.partition(":")
        if not sep or not key.strip():
            continue
        metadata[re.sub(r"\s+", "_", key.strip().lower())] = value.strip()
    return metadata


def parse_codex_output(raw_output: str) -> CodexOutput:
    """
    Split a Codex CLI transcript into its parts.

    Unknown text before the first separator is dropped as banner noise. When
    no response section is found the whole raw output becomes the response.
    """
    timestamps: list[str] = []
    metadata_lines: list[str] = []
    instruction_lines: list[str] = []
    thinking_lines: list[str] = []
    response_lines: list[str] = []
    tokens_used: int | None = None
    section = "header"

    for line in raw_output.replace("\r\n", "\n").split("\n"):
        stamp = _TIMESTAMP.match(line)
        if stamp:
            timestamps.append(stamp.group(1))

        tokens = _TOKENS_USED.search(line)
        if tokens:
            tokens_used = int(tokens.group(1).replace(",", ""))
            continue

        if "OpenAI Codex" in line:
            section = "header"
            continue
        if line.startswith(_SEPARATOR):
            if section == "header":
                section = "metadata"
            elif section == "metadata":
                section = "content"
            continue
        header = _section_header(line)
        if header is not None:
            section = header
            continue

        if section == "metadata":
            if line.strip():
                metadata_lines.append(line.strip())
        elif section == "user_instructions":
            instruction_lines.append(line)
        elif section == "thinking":
            thinking_lines.append(line)
        elif section in ("response", "content"):
            response_lines.append(line)

    thinking = "\n".join(thinking_lines).strip()
    response = "\n".join(response_lines).strip() or raw_output
    logger.debug("parsed codex output: %s response chars, tokens used %s", len(response), tokens_used)
    return CodexOutput(
        metadata=_parse_metadata(metadata_lines),
        user_instructions="\n".join(instruction_lines).strip(),
        thinking=thinking or None,
        response=response,
        tokens_used=tokens_used,
        timestamps=timestamps,
        raw_output=raw_output,
    )


def format_codex_response(
    output: CodexOutput,
    include_thinking: bool = True,
    include_metadata: bool = True,
) -> str:
    parts: list[str] = []
    metadata = output.metadata
    if include_metadata and (metadata.get("model") or metadata.get("sandbox")):
        config_lines = ["**Codex Configuration:**"]
        for key, label in (("model", "Model"), ("sandbox", "Sandbox"), ("approval", "Approval")):
            if metadata.get(key):
                config_lines.append(f"- {label}: {metadata[key]}")
        parts.append("\n".join(config_lines) + "\n\n")

    if include_thinking and output.thinking:
        parts.append(f"**Reasoning:**\n{output.thinking}\n\n")

    if include_metadata or include_thinking:
        parts.append("**Response:**\n")
    parts.append(output.response)

    if output.tokens_used:
        parts.append(f"\n\n*Tokens used: {output.tokens_used}*")
    return "".join(parts)


def format_codex_response_for_tool(
    raw_output: str,
    include_thinking: bool = True,
    include_metadata: bool = True,
) -> str:
    return format_codex_response(parse_codex_output(raw_output), include_thinking, include_metadata)


def extract_code_blocks(text: str) -> list[str]:
    return _CODE_BLOCK.findall(text)


def extract_diff_blocks(text: str) -> list[str]:
    return _DIFF_BLOCK.findall(text)


def is_error_response(output: Union[CodexOutput, str]) -> bool:
    """Keyword heuristic; a response that merely discusses errors also matches."""
    text = output if isinstance(output, str) else output.response
    lowered = text.lower()
    return any(keyword in lowered for keyword in ERROR_KEYWORDS)
