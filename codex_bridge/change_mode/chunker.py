from __future__ import annotations

import logging
from typing import Sequence

from ..config import config
from ..models import Edit, EditChunk
from .formatter import format_edit

logger = logging.getLogger(__name__)

# Blank line placed between rendered blocks.
BLOCK_SEPARATOR_CHARS = 2


def estimate_edit_size(edit: Edit) -> int:
    return len(format_edit(edit)) + BLOCK_SEPARATOR_CHARS


def chunk_edits(edits: Sequence[Edit], max_chars: int | None = None) -> list[EditChunk]:
    """
    Greedily pack edits into chunks of at most ``max_chars`` rendered characters.

    Order is kept and an edit is never split; one edit larger than the budget
    gets a chunk of its own.
    """
    budget = int(max_chars if max_chars is not None else config.CHANGE_MODE.CHUNK_MAX_CHARS)
    if budget <= 0:
        raise ValueError(f"chunk budget must be positive, got {budget}")

    groups: list[tuple[list[Edit], int]] = []
    current: list[Edit] = []
    current_size = 0
    for edit in edits:
        size = estimate_edit_size(edit)
        if current and current_size + size > budget:
            groups.append((current, current_size))
            current, current_size = [], 0
        current.append(edit)
        current_size += size
        if size > budget:
            logger.debug("edit for %s exceeds chunk budget (%s > %s)", edit.file, size, budget)
    if current or not groups:
        groups.append((current, current_size))

    total = len(groups)
    return [
        EditChunk(
            edits=group,
            chunk_index=index,
            total_chunks=total,
            has_more=index < total,
            estimated_size=size,
        )
        for index, (group, size) in enumerate(groups, start=1)
    ]


def single_chunk(edits: Sequence[Edit]) -> EditChunk:
    """Everything in one chunk; used when regular chunking fails."""
    return EditChunk(
        edits=list(edits),
        chunk_index=1,
        total_chunks=1,
        has_more=False,
        estimated_size=sum(len(format_edit(edit)) for edit in edits),
    )
