"""
Brainstorm service.

Wraps a challenge in a methodology-driven ideation prompt and runs it through
the Codex CLI once. The engine answer is returned unchanged.
"""

from __future__ import annotations

import inspect
import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..change_mode.prompt_builder import render_template
from ..engines.codex.command_builder import ApprovalPolicy, CodexExecOptions, SandboxMode
from ..engines.codex.executor import CodexExecutor
from ..runtime.types import ProgressCallback

logger = logging.getLogger(__name__)


class Methodology(str, Enum):
    DIVERGENT = "divergent"
    CONVERGENT = "convergent"
    SCAMPER = "scamper"
    DESIGN_THINKING = "design-thinking"
    LATERAL = "lateral"
    AUTO = "auto"


METHODOLOGY_INSTRUCTIONS: dict[Methodology, str] = {
    Methodology.DIVERGENT: """**Divergent Thinking Approach:**
- Generate maximum quantity of ideas without self-censoring
- Build on wild or seemingly impractical ideas
- Combine unrelated concepts for unexpected solutions
- Use "Yes, and..." thinking to expand each concept
- Postpone evaluation until all ideas are generated""",
    Methodology.CONVERGENT: """**Convergent Thinking Approach:**
- Focus on refining and improving existing concepts
- Synthesize related ideas into stronger solutions
- Apply critical evaluation criteria
- Prioritize based on feasibility and impact
- Develop implementation pathways for top ideas""",
    Methodology.SCAMPER: """**SCAMPER Creative Triggers:**
- **Substitute:** What can be substituted or replaced?
- **Combine:** What can be combined or merged?
- **Adapt:** What can be adapted from other domains?
- **Modify:** What can be magnified, minimized, or altered?
- **Put to other use:** How else can this be used?
- **Eliminate:** What can be removed or simplified?
- **Reverse:** What can be rearranged or reversed?""",
    Methodology.DESIGN_THINKING: """**Human-Centered Design Thinking:**
- **Empathize:** Consider user needs, pain points, and contexts
- **Define:** Frame problems from user perspective
- **Ideate:** Generate user-focused solutions
- **Consider Journey:** Think through complete user experience
- **Prototype Mindset:** Focus on testable, iterative concepts""",
    Methodology.LATERAL: """**Lateral Thinking Approach:**
- Make unexpected connections between unrelated fields
- Challenge fundamental assumptions
- Use random word association to trigger new directions
- Apply metaphors and analogies from other domains
- Reverse conventional thinking patterns""",
    Methodology.AUTO: """**AI-Optimized Approach:**
{% if domain %}Given the {{ domain }} domain, I'll apply the most effective combination of:{% else %}I'll intelligently combine multiple methodologies:{% endif %}
- Divergent exploration with domain-specific knowledge
- SCAMPER triggers and lateral thinking
- Human-centered perspective for practical value""",
}

BRAINSTORM_TEMPLATE = """# BRAINSTORMING SESSION

## Challenge: {{ prompt }}

## Framework
{{ framework }}

## Context
{% if domain %}Domain: {{ domain }}{% endif %}
{% if constraints %}Constraints: {{ constraints }}{% endif %}
{% if existing_context %}Background: {{ existing_context }}{% endif %}

## Requirements
Generate {{ idea_count }} actionable ideas. Keep descriptions concise (2-3 sentences max).

{% if include_analysis %}## Analysis
Rate each: Feasibility (1-5), Impact (1-5), Innovation (1-5){% endif %}

## Format
### Idea [N]: [Name]
Description: [2-3 sentences]
{% if include_analysis %}Ratings: F:[1-5] I:[1-5] N:[1-5]{% endif %}

Begin:"""


class BrainstormRequest(BaseModel):
    """
    Arguments accepted by the brainstorm tool.
    """
    prompt: str = Field(min_length=1)
    """Challenge or question to explore."""
    model: Optional[str] = None
    approval_policy: Optional[ApprovalPolicy] = None
    sandbox_mode: Optional[SandboxMode] = None
    full_auto: bool = False
    yolo: bool = False
    cd: Optional[str] = None
    methodology: Methodology = Methodology.AUTO
    domain: Optional[str] = None
    """e.g. software, business, research, marketing."""
    constraints: Optional[str] = None
    existing_context: Optional[str] = None
    idea_count: int = Field(default=12, gt=0)
    include_analysis: bool = True
    timeout_ms: Optional[int] = Field(default=None, ge=1)

    @field_validator("prompt")
    @classmethod
    def _require_non_blank_prompt(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("a brainstorming challenge or question is required")
        return value.strip()

    def to_exec_options(self) -> CodexExecOptions:
        return CodexExecOptions(
            model=self.model,
            full_auto=self.full_auto,
            approval_policy=self.approval_policy,
            sandbox_mode=self.sandbox_mode,
            yolo=self.yolo,
            cd=self.cd,
            timeout_ms=self.timeout_ms,
        )


def build_brainstorm_prompt(request: BrainstormRequest) -> str:
    framework = render_template(METHODOLOGY_INSTRUCTIONS[request.methodology], domain=request.domain)
    return render_template(
        BRAINSTORM_TEMPLATE,
        prompt=request.prompt,
        framework=framework,
        domain=request.domain,
        constraints=request.constraints,
        existing_context=request.existing_context,
        idea_count=request.idea_count,
        include_analysis=request.include_analysis,
    )


async def brainstorm(
    request: BrainstormRequest,
    on_progress: ProgressCallback | None = None,
    *,
    executor: CodexExecutor | None = None,
) -> str:
    executor = executor or CodexExecutor()
    engine_prompt = build_brainstorm_prompt(request)
    logger.debug(
        "brainstorm: methodology '%s' for domain '%s'",
        request.methodology.value,
        request.domain or "general",
    )
    if on_progress is not None:
        outcome = on_progress(
            f"Generating {request.idea_count} ideas via {request.methodology.value} methodology..."
        )
        if inspect.isawaitable(outcome):
            await outcome
    return await executor.execute(engine_prompt, request.to_exec_options(), on_progress)
