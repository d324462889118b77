from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from codex_bridge.change_mode.chunk_cache import ChunkCache
from codex_bridge.change_mode.chunker import chunk_edits
from codex_bridge.change_mode.formatter import format_edit
from codex_bridge.change_mode.orchestrator import ChangeModeOrchestrator
from codex_bridge.engines.codex.command_builder import SandboxMode
from codex_bridge.services.ask_codex import AskCodexRequest, ask_codex
from tests.common.edit_blocks import numbered_edits


def _executor(output="plain answer"):
    executor = MagicMock()
    executor.execute = AsyncMock(return_value=output)
    return executor


@pytest.mark.asyncio
async def test_plain_mode_prefixes_codex_header():
    executor = _executor("42")

    result = await ask_codex(AskCodexRequest(prompt="meaning of life"), executor=executor)

    assert result == "Codex response:\n42"
    prompt, options, on_progress = executor.execute.call_args.args
    assert prompt == "meaning of life"
    assert options.full_auto is False
    assert options.retry is None
    assert on_progress is None


@pytest.mark.asyncio
async def test_change_mode_wraps_prompt_and_formats_edits():
    edits = numbered_edits(2)
    executor = _executor("\n\n".join(format_edit(edit) for edit in edits))

    result = await ask_codex(
        AskCodexRequest(prompt="double every value", change_mode=True),
        executor=executor,
        orchestrator=ChangeModeOrchestrator(ChunkCache()),
    )

    engine_prompt = executor.execute.call_args.args[0]
    assert engine_prompt.startswith("double every value")
    assert "OLD lines <start>-<end>:" in engine_prompt
    assert result == "\n\n".join(format_edit(edit) for edit in edits)


@pytest.mark.asyncio
async def test_continuation_serves_cached_chunk_without_spawning():
    cache = ChunkCache()
    chunks = chunk_edits(numbered_edits(9), max_chars=600)
    cache.store("cx-abc", chunks)
    executor = _executor()

    result = await ask_codex(
        AskCodexRequest(prompt="x", change_mode=True, chunk_index="2", chunk_cache_key="cx-abc"),
        executor=executor,
        orchestrator=ChangeModeOrchestrator(cache),
    )

    executor.execute.assert_not_called()
    assert "Chunk 2 of 3." in result
    assert "chunk_index=3 and chunk_cache_key=cx-abc" in result


@pytest.mark.asyncio
async def test_invalid_chunk_index_string_is_reported_by_orchestrator():
    executor = _executor()

    result = await ask_codex(
        AskCodexRequest(prompt="x", change_mode=True, chunk_index="two", chunk_cache_key="cx-abc"),
        executor=executor,
        orchestrator=ChangeModeOrchestrator(ChunkCache()),
    )

    assert result == "Invalid chunk index: 'two'. Must be a positive integer starting from 1."
    executor.execute.assert_not_called()


def test_request_maps_to_exec_options():
    request = AskCodexRequest(
        prompt="p",
        model="o4",
        sandbox=True,
        sandbox_mode=SandboxMode.READ_ONLY,
        cd="/repo",
        timeout_ms=1000,
        max_attempts=3,
    )

    options = request.to_exec_options()

    assert options.full_auto is True
    assert options.model == "o4"
    assert options.sandbox_mode is SandboxMode.READ_ONLY
    assert options.cd == "/repo"
    assert options.timeout_ms == 1000
    assert options.retry is not None and options.retry.max_attempts == 3


def test_explicit_full_auto_overrides_sandbox_alias():
    assert AskCodexRequest(prompt="p", sandbox=True, full_auto=False).to_exec_options().full_auto is False


def test_numeric_chunk_index_strings_are_coerced():
    assert AskCodexRequest(prompt="p", chunk_index=" 3 ").chunk_index == 3
    assert AskCodexRequest(prompt="p", chunk_index="-3").chunk_index == -3
    assert AskCodexRequest(prompt="p", chunk_index="3rd").chunk_index == "3rd"


def test_empty_prompt_is_rejected():
    with pytest.raises(ValidationError):
        AskCodexRequest(prompt="")


@pytest.mark.asyncio
async def test_format_output_renders_the_codex_transcript():
    transcript = "\n".join(
        ["--------", "model: gpt-5", "sandbox: read-only", "--------", "[t] codex", "All set.", "[t] tokens used: 12"]
    )
    executor = _executor(transcript)

    result = await ask_codex(AskCodexRequest(prompt="p", format_output=True), executor=executor)

    assert result == (
        "Codex response:\n"
        "**Codex Configuration:**\n- Model: gpt-5\n- Sandbox: read-only\n\n"
        "**Response:**\nAll set.\n\n*Tokens used: 12*"
    )
