from __future__ import annotations

import logging
from typing import Sequence

from ..errors import ValidationError
from ..models import Edit, ValidationReport

logger = logging.getLogger(__name__)


def _label(index: int, edit: Edit) -> str:
    if edit.file:
        return f"Edit {index} ({edit.file})"
    return f"Edit {index}"


def validate_edits(edits: Sequence[Edit]) -> ValidationReport:
    """Check every edit and collect all violations instead of stopping at the first."""
    errors: list[str] = []
    for index, edit in enumerate(edits, start=1):
        label = _label(index, edit)
        if edit.old_end_line < edit.old_start_line:
            errors.append(
                f"{label}: old range end line {edit.old_end_line} is before start line {edit.old_start_line}"
            )
        if edit.new_end_line < edit.new_start_line:
            errors.append(
                f"{label}: new range end line {edit.new_end_line} is before start line {edit.new_start_line}"
            )
        if not edit.old_code:
            errors.append(f"{label}: old code is empty")
        if not edit.new_code:
            errors.append(f"{label}: new code is empty")
    return ValidationReport(valid=not errors, errors=errors)


def _inferred_end(start: int, end: int, body: str) -> int:
    if end != 0 and end >= start:
        return end
    return start + len(body.split("\n")) - 1


def repair_edit(edit: Edit) -> Edit:
    old_end = _inferred_end(edit.old_start_line, edit.old_end_line, edit.old_code)
    new_end = _inferred_end(edit.new_start_line, edit.new_end_line, edit.new_code)
    if old_end == edit.old_end_line and new_end == edit.new_end_line:
        return edit
    return edit.model_copy(update={"old_end_line": old_end, "new_end_line": new_end})


def repair_edits(edits: Sequence[Edit]) -> list[Edit]:
    """Infer missing or inverted end lines from the code body length."""
    return [repair_edit(edit) for edit in edits]


def validate_and_repair(edits: Sequence[Edit], auto_repair: bool = True) -> list[Edit]:
    """
    Validate, repair once if allowed, and validate once more.

    Raises ValidationError with every remaining violation; there is never a
    second repair pass and a batch is accepted whole or not at all.
    """
    report = validate_edits(edits)
    if report.valid:
        return list(edits)
    if not auto_repair:
        raise ValidationError(report.errors)

    logger.debug("attempting auto-repair of %s validation error(s)", len(report.errors))
    repaired = repair_edits(edits)
    report = validate_edits(repaired)
    if not report.valid:
        raise ValidationError(report.errors)
    return repaired
