from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Sequence

from ..models import Edit
from .parser import FENCE

NO_FILE_LABEL = "(no file)"


@dataclass(frozen=True)
class Pagination:
    current: int
    total: int
    cache_key: str | None = None


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def format_edit(edit: Edit) -> str:
    """Render one edit as a canonical OLD/NEW block that ``parse_edits`` reads back."""
    lines: list[str] = []
    if edit.file:
        lines.append(f"**FILE: {edit.file}**")
    lines.extend(
        [
            f"OLD lines {edit.old_start_line}-{edit.old_end_line}:",
            FENCE,
            edit.old_code,
            FENCE,
            f"NEW lines {edit.new_start_line}-{edit.new_end_line}:",
            FENCE,
            edit.new_code,
            FENCE,
        ]
    )
    return "\n".join(lines)


def format_pagination_footer(pagination: Pagination) -> str:
    current, total = pagination.current, pagination.total
    header = f"Chunk {current} of {total}."
    if current >= total:
        return f"---\n{header} This is the last chunk."
    if not pagination.cache_key:
        return (
            f"---\n{header} The cache key is unavailable; re-run the request to "
            f"retrieve chunks {current + 1}-{total}."
        )
    return (
        f"---\n{header} To fetch the next chunk, repeat the request with "
        f"chunk_index={current + 1} and chunk_cache_key={pagination.cache_key}"
    )


def format_chunk_response(edits: Sequence[Edit], pagination: Pagination | None = None) -> str:
    if edits:
        body = "\n\n".join(format_edit(edit) for edit in edits)
    else:
        body = "No edits in this chunk."
    if pagination is not None and pagination.total > 1:
        body = f"{body}\n\n{format_pagination_footer(pagination)}"
    return body


def summarize_edits(edits: Sequence[Edit], total_chunks: int = 1) -> str:
    per_file = Counter(edit.file or NO_FILE_LABEL for edit in edits)
    lines = [
        f"Change summary: {_plural(len(edits), 'edit')} across "
        f"{_plural(len(per_file), 'file')} in {_plural(total_chunks, 'chunk')}."
    ]
    for name, count in sorted(per_file.items()):
        lines.append(f"- {name}: {_plural(count, 'edit')}")
    return "\n".join(lines)
