from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from codex_bridge.engines.codex.command_builder import SandboxMode
from codex_bridge.services.brainstorm import (
    BrainstormRequest,
    Methodology,
    brainstorm,
    build_brainstorm_prompt,
)


def _executor(output="### Idea 1: Cache it"):
    executor = MagicMock()
    executor.execute = AsyncMock(return_value=output)
    return executor


def test_prompt_carries_framework_context_and_analysis():
    request = BrainstormRequest(
        prompt="  speed up CI  ",
        methodology="scamper",
        domain="software",
        constraints="no new hardware",
        existing_context="tests take 40 minutes",
        idea_count=5,
    )

    prompt = build_brainstorm_prompt(request)

    assert prompt.startswith("# BRAINSTORMING SESSION\n\n## Challenge: speed up CI\n")
    assert "**SCAMPER Creative Triggers:**" in prompt
    assert "Domain: software" in prompt
    assert "Constraints: no new hardware" in prompt
    assert "Background: tests take 40 minutes" in prompt
    assert "Generate 5 actionable ideas." in prompt
    assert "Rate each: Feasibility (1-5), Impact (1-5), Innovation (1-5)" in prompt
    assert "Ratings: F:[1-5] I:[1-5] N:[1-5]" in prompt
    assert prompt.endswith("Begin:")


def test_prompt_without_analysis_or_context_omits_those_lines():
    prompt = build_brainstorm_prompt(BrainstormRequest(prompt="name the product", include_analysis=False))

    assert "## Analysis" not in prompt
    assert "Ratings:" not in prompt
    assert "Domain:" not in prompt
    assert "I'll intelligently combine multiple methodologies:" in prompt


def test_auto_methodology_mentions_the_domain():
    prompt = build_brainstorm_prompt(BrainstormRequest(prompt="grow signups", domain="marketing"))

    assert "Given the marketing domain, I'll apply the most effective combination of:" in prompt


@pytest.mark.parametrize(
    "payload",
    [
        {"prompt": ""},
        {"prompt": "   "},
        {"prompt": "x", "idea_count": 0},
        {"prompt": "x", "methodology": "brainwriting"},
    ],
)
def test_invalid_requests_are_rejected(payload):
    with pytest.raises(ValidationError):
        BrainstormRequest(**payload)


@pytest.mark.asyncio
async def test_brainstorm_reports_progress_and_runs_codex_once():
    executor = _executor()
    messages = []
    request = BrainstormRequest(
        prompt="speed up CI",
        methodology=Methodology.LATERAL,
        idea_count=3,
        sandbox_mode="read-only",
        model="o4-mini",
    )

    result = await brainstorm(request, messages.append, executor=executor)

    assert result == "### Idea 1: Cache it"
    assert messages == ["Generating 3 ideas via lateral methodology..."]
    prompt, options, on_progress = executor.execute.call_args.args
    assert "**Lateral Thinking Approach:**" in prompt
    assert options.model == "o4-mini"
    assert options.sandbox_mode is SandboxMode.READ_ONLY
    assert on_progress is not None
    executor.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_async_progress_callback_is_awaited():
    executor = _executor()
    seen = []

    async def on_progress(text):
        seen.append(text)

    await brainstorm(BrainstormRequest(prompt="p", idea_count=2), on_progress, executor=executor)

    assert seen == ["Generating 2 ideas via auto methodology..."]
