"""Finite-state parser for the OLD/NEW edit block protocol.

A block looks like::

    **FILE: src/app.py**
    OLD lines 10-14:
    ```python
    ...
    ```
    NEW lines 10-15:
    ```python
    ...
    ```

Markers are case-insensitive and may be wrapped in ``**``. Text outside
blocks is ignored, and so is a marker that does not lead into a block: a
stray ``New:`` heading, or an ``Old:`` heading not followed by a fence. Each
input line is classified according to the current state and the pair
``(state, kind)`` is looked up in ``TRANSITIONS``; a pair mapped to an error
message raises ``ParseError`` with the line number. A transition marked
``reprocess`` hands the same line to the next state.

Inside a body, a fence with a language tag opens a nested fence and the
next bare fence closes it, so Markdown bodies survive. A bare fence at depth
zero always closes the body.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

from ..errors import ParseError
from ..models import Edit

logger = logging.getLogger(__name__)

FENCE = "```"

_FILE_MARKER = re.compile(r"^\s*\**\s*FILE\s*:\s*(?P<path>.*?)\s*\**\s*$", re.IGNORECASE)
_SECTION_MARKER = re.compile(
    r"^\s*\**\s*(?P<kind>OLD|NEW)(?:\s+lines?)?"
    r"(?:\s+(?P<start>[0-9?]+)(?:\s*(?:-|to)\s*(?P<end>[0-9?]+))?)?"
    r"\s*\**\s*:?\s*\**\s*$",
    re.IGNORECASE,
)


class ParseState(str, Enum):
    SEEKING_BLOCK = "seeking_block"
    IN_OLD_RANGE = "in_old_range"
    IN_OLD_BODY = "in_old_body"
    AWAITING_NEW = "awaiting_new"
    IN_NEW_RANGE = "in_new_range"
    IN_NEW_BODY = "in_new_body"


class LineKind(str, Enum):
    BLANK = "blank"
    FILE = "file"
    OLD = "old"
    NEW = "new"
    FENCE_OPEN = "fence_open"
    FENCE_CLOSE = "fence_close"
    BODY = "body"
    TEXT = "text"


class Transition(NamedTuple):
    action: str | None
    next_state: ParseState | None
    error: str | None = None
    reprocess: bool = False


def _go(next_state: ParseState, action: str | None = None) -> Transition:
    return Transition(action, next_state)


def _fail(message: str) -> Transition:
    return Transition(None, None, message)


def _abandon_old() -> Transition:
    return Transition("abandon_old", ParseState.SEEKING_BLOCK, reprocess=True)


_S = ParseState
_K = LineKind

_NO_NEW_BODY = "NEW section has no fenced code body"
_NO_MATCHING_NEW = "OLD section has no matching NEW section"

TRANSITIONS: dict[tuple[ParseState, LineKind], Transition] = {
    (_S.SEEKING_BLOCK, _K.BLANK): _go(_S.SEEKING_BLOCK),
    (_S.SEEKING_BLOCK, _K.TEXT): _go(_S.SEEKING_BLOCK),
    (_S.SEEKING_BLOCK, _K.FENCE_OPEN): _go(_S.SEEKING_BLOCK),
    (_S.SEEKING_BLOCK, _K.FILE): _go(_S.SEEKING_BLOCK, "set_subject"),
    (_S.SEEKING_BLOCK, _K.OLD): _go(_S.IN_OLD_RANGE, "open_old"),
    (_S.SEEKING_BLOCK, _K.NEW): _go(_S.SEEKING_BLOCK),
    (_S.IN_OLD_RANGE, _K.BLANK): _go(_S.IN_OLD_RANGE),
    (_S.IN_OLD_RANGE, _K.FENCE_OPEN): _go(_S.IN_OLD_BODY),
    (_S.IN_OLD_RANGE, _K.TEXT): _abandon_old(),
    (_S.IN_OLD_RANGE, _K.FILE): _abandon_old(),
    (_S.IN_OLD_RANGE, _K.OLD): _abandon_old(),
    (_S.IN_OLD_RANGE, _K.NEW): _abandon_old(),
    (_S.IN_OLD_BODY, _K.BODY): _go(_S.IN_OLD_BODY, "append_old"),
    (_S.IN_OLD_BODY, _K.FENCE_CLOSE): _go(_S.AWAITING_NEW),
    (_S.AWAITING_NEW, _K.BLANK): _go(_S.AWAITING_NEW),
    (_S.AWAITING_NEW, _K.TEXT): _go(_S.AWAITING_NEW),
    (_S.AWAITING_NEW, _K.NEW): _go(_S.IN_NEW_RANGE, "open_new"),
    (_S.AWAITING_NEW, _K.FENCE_OPEN): _fail(_NO_MATCHING_NEW),
    (_S.AWAITING_NEW, _K.FILE): _fail(_NO_MATCHING_NEW),
    (_S.AWAITING_NEW, _K.OLD): _fail(_NO_MATCHING_NEW),
    (_S.IN_NEW_RANGE, _K.BLANK): _go(_S.IN_NEW_RANGE),
    (_S.IN_NEW_RANGE, _K.FENCE_OPEN): _go(_S.IN_NEW_BODY),
    (_S.IN_NEW_RANGE, _K.TEXT): _fail(_NO_NEW_BODY),
    (_S.IN_NEW_RANGE, _K.FILE): _fail(_NO_NEW_BODY),
    (_S.IN_NEW_RANGE, _K.OLD): _fail(_NO_NEW_BODY),
    (_S.IN_NEW_RANGE, _K.NEW): _fail(_NO_NEW_BODY),
    (_S.IN_NEW_BODY, _K.BODY): _go(_S.IN_NEW_BODY, "append_new"),
    (_S.IN_NEW_BODY, _K.FENCE_CLOSE): _go(_S.SEEKING_BLOCK, "emit_edit"),
}

END_OF_INPUT_ERRORS: dict[ParseState, str] = {
    _S.IN_OLD_BODY: "unterminated code fence in OLD section",
    _S.AWAITING_NEW: _NO_MATCHING_NEW,
    _S.IN_NEW_RANGE: _NO_NEW_BODY,
    _S.IN_NEW_BODY: "unterminated code fence in NEW section",
}

_BODY_STATES = frozenset({_S.IN_OLD_BODY, _S.IN_NEW_BODY})


def normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _line_number(token: str | None) -> int:
    if token is None or not token.isdigit():
        return 0
    return int(token)


def classify_line(
    line: str, state: ParseState, fence_depth: int = 0
) -> tuple[LineKind, re.Match[str] | None]:
    stripped = line.strip()
    if state in _BODY_STATES:
        closes = stripped == FENCE and fence_depth == 0
        return (LineKind.FENCE_CLOSE if closes else LineKind.BODY), None
    if not stripped:
        return LineKind.BLANK, None
    if stripped.startswith(FENCE):
        return LineKind.FENCE_OPEN, None
    match = _FILE_MARKER.match(line)
    if match:
        return LineKind.FILE, match
    match = _SECTION_MARKER.match(line)
    if match:
        kind = LineKind.OLD if match.group("kind").upper() == "OLD" else LineKind.NEW
        return kind, match
    return LineKind.TEXT, None


@dataclass
class _BlockDraft:
    file: str | None = None
    opened_at: int = 0
    old_start: int = 0
    old_end: int = 0
    old_lines: list[str] = field(default_factory=list)
    new_start: int = 0
    new_end: int = 0
    new_lines: list[str] = field(default_factory=list)

    def to_edit(self) -> Edit:
        return Edit(
            file=self.file,
            old_start_line=self.old_start,
            old_end_line=self.old_end,
            old_code="\n".join(self.old_lines),
            new_start_line=self.new_start,
            new_end_line=self.new_end,
            new_code="\n".join(self.new_lines),
        )


class EditParser:
    """Turns raw engine text into an ordered list of ``Edit`` records."""

    def __init__(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self.state = ParseState.SEEKING_BLOCK
        self._subject: str | None = None
        self._draft: _BlockDraft | None = None
        self._edits: list[Edit] = []
        self._fence_depth = 0

    def parse(self, text: str) -> list[Edit]:
        self._reset()
        lines = normalize_line_endings(text).split("\n")
        for line_number, line in enumerate(lines, start=1):
            self._feed(line, line_number)

        if self.state is ParseState.IN_OLD_RANGE:
            self._on_abandon_old("", None, len(lines))
            self.state = ParseState.SEEKING_BLOCK
        if self.state is not ParseState.SEEKING_BLOCK:
            raise ParseError(self._describe(END_OF_INPUT_ERRORS[self.state]), len(lines))

        logger.debug("parsed %s edit block(s)", len(self._edits))
        return list(self._edits)

    def _feed(self, line: str, line_number: int) -> None:
        while True:
            kind, match = classify_line(line, self.state, self._fence_depth)
            transition = TRANSITIONS.get((self.state, kind))
            if transition is None or transition.error is not None:
                message = transition.error if transition is not None else f"unexpected {kind.value} line"
                raise ParseError(self._describe(message), line_number)
            if transition.action is not None:
                getattr(self, f"_on_{transition.action}")(line, match, line_number)
            assert transition.next_state is not None
            self.state = transition.next_state
            if not transition.reprocess:
                return

    def _describe(self, message: str) -> str:
        if self._draft is not None and self._draft.opened_at:
            return f"{message} (block opened at line {self._draft.opened_at})"
        return message

    def _on_set_subject(self, line: str, match: re.Match[str] | None, line_number: int) -> None:
        assert match is not None
        subject = match.group("path").strip().strip("`").strip()
        self._subject = subject or None

    def _on_open_old(self, line: str, match: re.Match[str] | None, line_number: int) -> None:
        assert match is not None
        self._draft = _BlockDraft(
            file=self._subject,
            opened_at=line_number,
            old_start=_line_number(match.group("start")),
            old_end=_line_number(match.group("end")),
        )
        self._subject = None

    def _on_abandon_old(self, line: str, match: re.Match[str] | None, line_number: int) -> None:
        assert self._draft is not None
        logger.debug("ignoring OLD marker at line %s with no fenced body", self._draft.opened_at)
        self._subject = self._draft.file
        self._draft = None

    def _track_nested_fence(self, line: str) -> None:
        stripped = line.strip()
        if stripped == FENCE:
            self._fence_depth -= 1
        elif stripped.startswith(FENCE):
            self._fence_depth += 1

    def _on_append_old(self, line: str, match: re.Match[str] | None, line_number: int) -> None:
        assert self._draft is not None
        self._track_nested_fence(line)
        self._draft.old_lines.append(line)

    def _on_open_new(self, line: str, match: re.Match[str] | None, line_number: int) -> None:
        assert self._draft is not None and match is not None
        self._draft.new_start = _line_number(match.group("start"))
        self._draft.new_end = _line_number(match.group("end"))

    def _on_append_new(self, line: str, match: re.Match[str] | None, line_number: int) -> None:
        assert self._draft is not None
        self._track_nested_fence(line)
        self._draft.new_lines.append(line)

    def _on_emit_edit(self, line: str, match: re.Match[str] | None, line_number: int) -> None:
        assert self._draft is not None
        self._edits.append(self._draft.to_edit())
        self._draft = None


def parse_edits(text: str) -> list[Edit]:
    return EditParser().parse(text)
