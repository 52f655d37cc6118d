"""Roadmap scoring: deterministic RICE score plus LLM-suggested RICE inputs.

Architecture
------------
A roadmap item carries four 1-10 inputs:

- **Reach**: how many users/accounts the item affects.
- **Impact**: how much it moves the user experience or business metric.
- **Confidence**: how strong the evidence behind the estimates is.
- **Effort**: how much work it takes (the divisor).

``compute_rice_score`` turns them into ``reach * impact * confidence / effort``
rounded half-up to one decimal, or ``None`` while any input is missing.  It is
the only place the score is derived; every create/update recomputes it.

``suggest_scores`` asks the LLM for a value + reasoning per input.  The
suggestion is advisory: nothing is persisted until a human applies it, and the
applied values then go through ``compute_rice_score`` like any other edit.
"""
from __future__ import annotations

import json
import logging
import math
import os
import re
from dataclasses import asdict, dataclass, field
from typing import Any

from foundry.config import get_settings

log = logging.getLogger(__name__)

RICE_FIELDS = ("reach", "impact", "confidence", "effort")
RICE_MIN, RICE_MAX = 1, 10


class LLMCallError(Exception):
    """LLM call failed or returned unparseable output."""
    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


# ---------------------------------------------------------------------------
# RICE score
# ---------------------------------------------------------------------------


def compute_rice_score(
    reach: int | None, impact: int | None, confidence: int | None, effort: int | None,
) -> float | None:
    """Return ``reach * impact * confidence / effort`` to one decimal, or None if any input is missing."""
    if not reach or not impact or not confidence or not effort:
        return None
    raw = reach * impact * confidence / effort
    return math.floor(raw * 10 + 0.5) / 10  # half-up, not banker's rounding


def derive_score(current: Any, patch: dict[str, Any]) -> float | None:
    """Score an item would have after *patch* is applied on top of *current*.

    *current* is anything with RICE attributes (ORM row or None for a new item).
    """
    values = []
    for name in RICE_FIELDS:
        if name in patch:
            values.append(patch[name])
        else:
            values.append(getattr(current, name, None))
    return compute_rice_score(*values)


# ---------------------------------------------------------------------------
# LLM Client
# ---------------------------------------------------------------------------


class LLMClient:
    """Unified async LLM client supporting Anthropic and OpenAI."""

    def __init__(
        self,
        provider: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
    ):
        settings = get_settings()
        self.provider = provider or settings.llm_provider
        self.model = model or settings.llm_model
        self._api_key = api_key
        self._base_url = base_url
        self._client: Any = None
        self._init_client()

    def _init_client(self) -> None:
        if self.provider == "anthropic":
            import anthropic
            self.model = self.model or "claude-haiku-4-5-20251001"
            self._client = anthropic.AsyncAnthropic(
                api_key=self._api_key or os.environ.get("ANTHROPIC_API_KEY")
            )
        elif self.provider in ("openai", "openai_compatible"):
            import openai
            self.model = self.model or "gpt-4o-mini"
            kwargs: dict[str, Any] = {}
            key = self._api_key or os.environ.get("OPENAI_API_KEY")
            if key:
                kwargs["api_key"] = key
            url = self._base_url or os.environ.get("OPENAI_BASE_URL")
            if url:
                kwargs["base_url"] = url
            self._client = openai.AsyncOpenAI(**kwargs)
        else:
            raise ValueError(f"Unknown LLM provider: {self.provider!r}")

    async def _complete(self, system: str, messages: list[dict[str, str]], json_mode: bool) -> str:
        try:
            if self.provider == "anthropic":
                response = await self._client.messages.create(
                    model=self.model,
                    max_tokens=2048,
                    system=system,
                    messages=messages,
                )
                return response.content[0].text.strip()
            kwargs: dict[str, Any] = {}
            if json_mode:
                kwargs["response_format"] = {"type": "json_object"}
            response = await self._client.chat.completions.create(
                model=self.model,
                max_tokens=2048,
                messages=[{"role": "system", "content": system}, *messages],
                **kwargs,
            )
            return response.choices[0].message.content or ("{}" if json_mode else "")
        except Exception as exc:
            raise LLMCallError(f"LLM API call failed: {exc}", retryable=True) from exc

    async def call(self, system: str, user: str) -> dict[str, Any]:
        """Send system+user message to the LLM, return parsed JSON."""
        text = await self._complete(system, [{"role": "user", "content": user}], json_mode=True)
        m = re.search(r'```(?:json)?\s*(\{.*\})\s*```', text, re.DOTALL)
        if m:
            text = m.group(1)
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            raise LLMCallError(
                f"LLM returned invalid JSON: {text[:200]}", retryable=False,
            ) from exc
        if not isinstance(parsed, dict):
            raise LLMCallError(f"LLM returned non-object JSON: {text[:200]}", retryable=False)
        return parsed

    async def chat(self, system: str, messages: list[dict[str, str]]) -> str:
        """Multi-turn conversation; returns the assistant's reply text."""
        return await self._complete(system, messages, json_mode=False)


# ---------------------------------------------------------------------------
# Score suggestion
# ---------------------------------------------------------------------------

DEFAULT_SCORE_PROMPT = """\
You are a product management assistant helping score a roadmap item using \
RICE-like methodology.

Score the item on four dimensions (1-10 each):

**Reach** (1-10): How many users/accounts will this affect?
- 1 = <1% of users, 10 = >80% of users
- Consider the linked problems' scope

**Impact** (1-10): How significantly will this improve the user experience or business metric?
- 1 = Barely noticeable, 10 = Transformative
- Consider alignment with objectives

**Confidence** (1-10): How confident are we in the estimates?
- 1 = Pure speculation, 10 = Strong evidence from multiple sources
- Consider: number of linked problems, evidence quality, data availability

**Effort** (1-10): How much work is required?
- 1 = Trivial (hours), 10 = Major (months+)
- Consider: type (initiative vs feature), description complexity

IMPORTANT RULES:
- Be honest about confidence. If evidence is thin, confidence should be low.
- Flag every assumption explicitly.
- Score based on evidence, not optimism.
- If information is missing, note it and score conservatively.

Respond with ONLY valid JSON:
{
  "reach": {"value": <1-10>, "reasoning": "<why>"},
  "impact": {"value": <1-10>, "reasoning": "<why>"},
  "confidence": {"value": <1-10>, "reasoning": "<why>"},
  "effort": {"value": <1-10>, "reasoning": "<why>"},
  "overall_rationale": "<brief explanation of the scoring>",
  "assumptions": ["<assumption 1>", "<assumption 2>"]
}
"""


@dataclass
class DimensionSuggestion:
    value: int
    reasoning: str


@dataclass
class ScoreSuggestion:
    reach: DimensionSuggestion
    impact: DimensionSuggestion
    confidence: DimensionSuggestion
    effort: DimensionSuggestion
    overall_rationale: str = ""
    assumptions: list[str] = field(default_factory=list)

    @property
    def values(self) -> dict[str, int]:
        return {name: getattr(self, name).value for name in RICE_FIELDS}

    @property
    def score(self) -> float | None:
        return compute_rice_score(**self.values)

    def as_dict(self) -> dict[str, Any]:
        return {**asdict(self), "score": self.score}


_ITEM_FIELDS: list[tuple[str, str]] = [
    ("TYPE", "type"),
    ("STATUS", "status"),
    ("DESCRIPTION", "description"),
    ("RATIONALE", "rationale"),
    ("EFFORT SIZE", "effort_size"),
    ("TARGET MONTH", "target_month"),
]


def build_item_dossier(item) -> str:
    """Assemble the roadmap item, its problems and its objectives into a prompt body.

    Expects *item* loaded with ``problem_links``/``objective_links``.
    """
    sections: list[str] = [f"ROADMAP ITEM: {item.title}"]
    for label, attr in _ITEM_FIELDS:
        val = getattr(item, attr, None)
        sections.append(f"{label}: {val if val else 'not provided'}")

    problems = [link.problem for link in item.problem_links if link.problem is not None]
    if problems:
        sections.append("\nLINKED PROBLEMS:")
        for i, p in enumerate(problems, 1):
            sections.append(f"{i}. {p.title} (severity: {p.severity or 'unknown'}, status: {p.status})")
            sections.append(f"   {p.statement}")
    else:
        sections.append("\nNo linked problems (limited evidence).")

    objectives = [link.objective for link in item.objective_links if link.objective is not None]
    if objectives:
        sections.append("\nLINKED OBJECTIVES:")
        for i, o in enumerate(objectives, 1):
            sections.append(f"{i}. {o.name} (weight: {o.weight}, metric: {o.metric or 'none'})")
    else:
        sections.append("\nNo linked objectives.")

    return "\n".join(sections)


def _clamp(val: Any, default: int) -> int:
    try:
        n = int(round(float(val)))
    except (TypeError, ValueError, OverflowError):
        log.warning("Unrecognizable RICE value %r, defaulting to %d", val, default)
        return default
    return max(RICE_MIN, min(RICE_MAX, n))


def _validate_dimension(raw: Any, default: int) -> DimensionSuggestion:
    if isinstance(raw, dict):
        return DimensionSuggestion(_clamp(raw.get("value"), default), str(raw.get("reasoning", "")))
    # Tolerate a bare number instead of {value, reasoning}
    return DimensionSuggestion(_clamp(raw, default), "")


def validate_score_suggestion(raw: dict[str, Any]) -> ScoreSuggestion:
    """Validate and normalize an LLM score suggestion. Missing values default conservatively."""
    assumptions = raw.get("assumptions", [])
    if not isinstance(assumptions, list):
        assumptions = []
    return ScoreSuggestion(
        reach=_validate_dimension(raw.get("reach"), 1),
        impact=_validate_dimension(raw.get("impact"), 1),
        confidence=_validate_dimension(raw.get("confidence"), 1),
        effort=_validate_dimension(raw.get("effort"), 10),
        overall_rationale=str(raw.get("overall_rationale", "")),
        assumptions=[str(a) for a in assumptions[:10]],
    )


async def suggest_scores(item, client: LLMClient, prompt: str | None = None) -> ScoreSuggestion:
    """Ask the LLM for RICE inputs for *item* (loaded with links)."""
    raw = await client.call(prompt or DEFAULT_SCORE_PROMPT, build_item_dossier(item))
    return validate_score_suggestion(raw)
