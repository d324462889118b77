from __future__ import annotations

import logging
from typing import Any, Sequence

from ..config import config
from ..errors import CacheMiss, ChunkRangeError, ParseError, ValidationError
from ..models import Edit, EditChunk
from .chunk_cache import ChunkCache, get_chunk_cache
from .chunker import chunk_edits, single_chunk
from .formatter import Pagination, format_chunk_response, summarize_edits
from .parser import normalize_line_endings, parse_edits
from .validator import validate_and_repair

logger = logging.getLogger(__name__)

DEGRADED_RAW_OUTPUT = "degraded:raw_output_passthrough"
DEGRADED_SINGLE_CHUNK = "degraded:single_chunk_fallback"


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


class ChangeModeOrchestrator:
    """
    Turns engine output into paginated OLD/NEW edit responses.

    Two entry modes share ``process``:
    - fresh synthesis: raw text is parsed, validated (and repaired), chunked,
      cached when it spans several chunks, and one chunk is rendered;
    - continuation: a cache key and chunk index select a previously cached
      chunk; no raw text is needed.

    ``process`` always returns text. Parse, validation, cache and range
    problems are reported as readable messages, never raised.
    """

    def __init__(
        self,
        cache: ChunkCache | None = None,
        *,
        max_chunk_chars: int | None = None,
        summary_min_edits: int | None = None,
        excerpt_chars: int | None = None,
    ) -> None:
        self._cache = cache
        self.max_chunk_chars = max_chunk_chars
        self.summary_min_edits = int(
            summary_min_edits if summary_min_edits is not None else config.CHANGE_MODE.SUMMARY_MIN_EDITS
        )
        self.excerpt_chars = int(excerpt_chars if excerpt_chars is not None else config.CHANGE_MODE.ERROR_EXCERPT_CHARS)

    @property
    def cache(self) -> ChunkCache:
        return self._cache if self._cache is not None else get_chunk_cache()

    def process(
        self,
        raw_text: str,
        *,
        chunk_index: Any = None,
        cache_key: str | None = None,
        prompt: str | None = None,
        auto_repair: bool = True,
    ) -> str:
        if chunk_index is not None and not _is_positive_int(chunk_index):
            return f"Invalid chunk index: {chunk_index!r}. Must be a positive integer starting from 1."

        try:
            if cache_key:
                return self._continue(cache_key, chunk_index or 1)
            if chunk_index is not None and chunk_index > 1 and not (raw_text or "").strip():
                return (
                    f"Chunk index {chunk_index} requested but no cache key provided. "
                    "Please use the cache key from the initial response or start with chunk 1."
                )
            return self._synthesize(raw_text or "", chunk_index, prompt, auto_repair)
        except Exception as exc:
            logger.exception("change mode processing failed")
            return f"Failed to process change mode output: {exc}"

    def _continue(self, cache_key: str, chunk_index: int) -> str:
        try:
            chunks = self._load_chunk_sequence(cache_key, chunk_index)
        except CacheMiss:
            return f"Cache key '{cache_key}' not found or expired. Please regenerate the response."
        except ChunkRangeError as exc:
            return exc.message

        logger.debug("using cached chunk %s of %s", chunk_index, len(chunks))
        chunk = chunks[chunk_index - 1]
        result = format_chunk_response(
            chunk.edits,
            Pagination(current=chunk_index, total=len(chunks), cache_key=cache_key),
        )
        if chunk_index == 1:
            all_edits = [edit for cached in chunks for edit in cached.edits]
            result = self._with_summary(result, all_edits, len(chunks))
        return result

    def _load_chunk_sequence(self, cache_key: str, chunk_index: int) -> tuple[EditChunk, ...]:
        chunks = self.cache.lookup(cache_key)
        if not chunks:
            raise CacheMiss(cache_key)
        if chunk_index > len(chunks):
            raise ChunkRangeError(chunk_index, len(chunks))
        return chunks

    def _synthesize(
        self,
        raw_text: str,
        chunk_index: int | None,
        prompt: str | None,
        auto_repair: bool,
    ) -> str:
        normalized = normalize_line_endings(raw_text)

        try:
            edits = parse_edits(normalized)
        except ParseError as exc:
            logger.error("failed to parse change mode output: %s", exc.message)
            return (
                f"Failed to parse change mode output: {exc.message}\n\n"
                f"First {self.excerpt_chars} chars of output:\n{self._excerpt(normalized)}"
            )

        if not edits:
            logger.warning(
                "%s: no edit blocks found; first 200 chars: %r",
                DEGRADED_RAW_OUTPUT,
                normalized[:200],
            )
            return f"No edits found in response. Ensure the OLD/NEW format is used.\n\n{normalized}"

        try:
            edits = validate_and_repair(edits, auto_repair=auto_repair)
        except ValidationError as exc:
            listing = "\n".join(exc.errors)
            heading = "Edit validation failed after auto-repair attempt" if auto_repair else "Edit validation failed"
            return (
                f"{heading}:\n{listing}\n\n"
                f"First {self.excerpt_chars} chars of output:\n{self._excerpt(normalized)}\n\n"
                "To debug, request the raw output or check the change mode format."
            )

        chunks = self._chunk(edits)

        cache_key: str | None = None
        if len(chunks) > 1 and prompt:
            try:
                cache_key = self.cache.cache_chunks(prompt, chunks)
                logger.debug("cached %s chunks with key %s", len(chunks), cache_key)
            except Exception:
                logger.warning("failed to cache chunks; continuing without a cache key", exc_info=True)

        requested = chunk_index or 1
        return_index = min(max(1, requested), len(chunks))
        chunk = chunks[return_index - 1]
        result = format_chunk_response(
            chunk.edits,
            Pagination(current=return_index, total=len(chunks), cache_key=cache_key) if len(chunks) > 1 else None,
        )
        if return_index == 1:
            result = self._with_summary(result, edits, len(chunks))

        logger.debug(
            "change mode: parsed %s edits, %s chunks, returning chunk %s",
            len(edits),
            len(chunks),
            return_index,
        )
        return result

    def _chunk(self, edits: list[Edit]) -> list[EditChunk]:
        try:
            return chunk_edits(edits, self.max_chunk_chars)
        except Exception:
            logger.error("%s: chunking failed, returning all edits in one chunk", DEGRADED_SINGLE_CHUNK, exc_info=True)
            return [single_chunk(edits)]

    def _with_summary(self, result: str, edits: Sequence[Edit], total_chunks: int) -> str:
        if len(edits) <= self.summary_min_edits:
            return result
        return f"{summarize_edits(edits, total_chunks)}\n\n{result}"

    def _excerpt(self, text: str) -> str:
        if len(text) <= self.excerpt_chars:
            return text
        return f"{text[: self.excerpt_chars]}..."


def process_change_mode_output(
    raw_text: str,
    *,
    chunk_index: Any = None,
    cache_key: str | None = None,
    prompt: str | None = None,
    auto_repair: bool = True,
) -> str:
    return ChangeModeOrchestrator().process(
        raw_text,
        chunk_index=chunk_index,
        cache_key=cache_key,
        prompt=prompt,
        auto_repair=auto_repair,
    )
