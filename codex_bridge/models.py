"""
Data Models for Codex Bridge.

This module defines the Pydantic models used by the change-mode pipeline:
- Edit: one old-code/new-code change unit with explicit line ranges
- EditChunk: an order-preserving, size-bounded group of edits
- ValidationReport: collected structural violations for a batch of edits
"""

from typing import List, Optional
from pydantic import BaseModel, Field


class Edit(BaseModel):
    """
    One code change unit parsed from the engine response.

    Line numbers are 1-based; 0 marks a number the engine did not give (or
    gave in an unusable form). The repair pass fills in missing end lines.
    """
    model_config = {"frozen": True}

    file: Optional[str] = None
    """Subject of the edit (usually a path); absent when the block had no FILE line."""

    old_start_line: int = 0
    old_end_line: int = 0
    old_code: str = ""

    new_start_line: int = 0
    new_end_line: int = 0
    new_code: str = ""


class EditChunk(BaseModel):
    """A contiguous slice of the validated edit sequence plus pagination metadata."""
    model_config = {"frozen": True}

    edits: List[Edit] = Field(default_factory=list)
    chunk_index: int = Field(ge=1)
    total_chunks: int = Field(ge=1)
    has_more: bool = False
    estimated_size: int = Field(default=0, ge=0)
    """Rendered size of the chunk's edits in characters."""


class ValidationReport(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
