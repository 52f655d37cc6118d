"""Tests for the RICE scorer, score suggestions and the LLM client's JSON handling."""
from __future__ import annotations

import json
from decimal import ROUND_HALF_UP, Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from foundry.scorer import (
    LLMCallError,
    LLMClient,
    build_item_dossier,
    compute_rice_score,
    derive_score,
    suggest_scores,
    validate_score_suggestion,
)


def _half_up(r, i, c, e) -> float:
    return float((Decimal(r * i * c) / Decimal(e)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


# ---------------------------------------------------------------------------
# compute_rice_score
# ---------------------------------------------------------------------------


class TestComputeRiceScore:
    def test_basic(self):
        assert compute_rice_score(5, 5, 5, 5) == 25.0

    def test_rounds_to_one_decimal(self):
        assert compute_rice_score(3, 7, 2, 9) == 4.7

    def test_half_rounds_up(self):
        # 0.25 and 1.25 would go to 0.2 / 1.2 with banker's rounding
        assert compute_rice_score(1, 1, 1, 4) == 0.3
        assert compute_rice_score(1, 1, 5, 4) == 1.3

    def test_maximum(self):
        assert compute_rice_score(10, 10, 10, 1) == 1000.0

    @pytest.mark.parametrize("args", [
        (None, 5, 5, 5), (5, None, 5, 5), (5, 5, None, 5), (5, 5, 5, None), (None, None, None, None),
    ])
    def test_missing_input_gives_none(self, args):
        assert compute_rice_score(*args) is None

    def test_zero_effort_gives_none(self):
        assert compute_rice_score(5, 5, 5, 0) is None

    @pytest.mark.parametrize("args", [(7, 3, 9, 8), (2, 9, 7, 6), (10, 1, 3, 7), (4, 4, 4, 3), (9, 9, 9, 2)])
    def test_matches_decimal_half_up(self, args):
        assert compute_rice_score(*args) == _half_up(*args)


class TestDeriveScore:
    def test_new_item(self):
        assert derive_score(None, {"reach": 2, "impact": 3, "confidence": 4, "effort": 6}) == 4.0

    def test_new_item_incomplete(self):
        assert derive_score(None, {"reach": 2, "impact": 3}) is None

    def test_patch_overrides_current(self):
        current = SimpleNamespace(reach=2, impact=3, confidence=4, effort=6)
        assert derive_score(current, {"effort": 3}) == 8.0

    def test_clearing_an_input_clears_score(self):
        current = SimpleNamespace(reach=2, impact=3, confidence=4, effort=6)
        assert derive_score(current, {"reach": None}) is None

    def test_unrelated_patch_keeps_score(self):
        current = SimpleNamespace(reach=2, impact=3, confidence=4, effort=6)
        assert derive_score(current, {"title": "Renamed"}) == 4.0


# ---------------------------------------------------------------------------
# Score suggestion
# ---------------------------------------------------------------------------


class TestValidateScoreSuggestion:
    def test_well_formed(self):
        raw = {
            "reach": {"value": 6, "reasoning": "Most admins"},
            "impact": {"value": 8, "reasoning": "Blocks renewals"},
            "confidence": {"value": 5, "reasoning": "Two signals"},
            "effort": {"value": 4, "reasoning": "Small change"},
            "overall_rationale": "Worth it",
            "assumptions": ["Admins churn"],
        }
        s = validate_score_suggestion(raw)
        assert s.values == {"reach": 6, "impact": 8, "confidence": 5, "effort": 4}
        assert s.reach.reasoning == "Most admins"
        assert s.score == 60.0
        assert s.assumptions == ["Admins churn"]

    def test_out_of_range_values_are_clamped(self):
        s = validate_score_suggestion({
            "reach": {"value": 15}, "impact": {"value": 0},
            "confidence": {"value": -3}, "effort": {"value": 11},
        })
        assert s.values == {"reach": 10, "impact": 1, "confidence": 1, "effort": 10}

    def test_missing_values_default_conservatively(self):
        s = validate_score_suggestion({})
        assert s.values == {"reach": 1, "impact": 1, "confidence": 1, "effort": 10}
        assert s.score == 0.1

    def test_unparseable_value_defaults(self):
        s = validate_score_suggestion({"reach": {"value": "lots"}})
        assert s.reach.value == 1

    def test_non_finite_values_default(self):
        raw = json.loads(
            '{"reach": {"value": 1e999, "reasoning": "x"}, "impact": Infinity, '
            '"confidence": {"value": -Infinity}, "effort": NaN}'
        )
        s = validate_score_suggestion(raw)
        assert s.values == {"reach": 1, "impact": 1, "confidence": 1, "effort": 10}
        assert s.reach.reasoning == "x"

    def test_bare_numbers_accepted(self):
        s = validate_score_suggestion({"reach": 7, "impact": "3", "confidence": 4.6, "effort": 2})
        assert s.values == {"reach": 7, "impact": 3, "confidence": 5, "effort": 2}

    def test_non_list_assumptions_dropped(self):
        assert validate_score_suggestion({"assumptions": "none"}).assumptions == []

    def test_as_dict_includes_score(self):
        d = validate_score_suggestion({"reach": 2, "impact": 2, "confidence": 2, "effort": 2}).as_dict()
        assert d["score"] == 4.0
        assert d["reach"] == {"value": 2, "reasoning": ""}


def _item_with_links():
    problem = SimpleNamespace(title="Slow exports", statement="Exports time out", severity="high", status="accepted")
    objective = SimpleNamespace(name="Reduce churn", weight=2.0, metric="Logo churn")
    return SimpleNamespace(
        title="Async exports", type="feature", status="proposed", description="Queue exports",
        rationale=None, effort_size="M", target_month="2026-11",
        problem_links=[SimpleNamespace(problem=problem)],
        objective_links=[SimpleNamespace(objective=objective)],
    )


class TestDossier:
    def test_includes_item_problems_and_objectives(self):
        dossier = build_item_dossier(_item_with_links())
        assert "ROADMAP ITEM: Async exports" in dossier
        assert "TYPE: feature" in dossier
        assert "RATIONALE: not provided" in dossier
        assert "1. Slow exports (severity: high, status: accepted)" in dossier
        assert "1. Reduce churn (weight: 2.0, metric: Logo churn)" in dossier

    def test_without_links(self):
        item = _item_with_links()
        item.problem_links = []
        item.objective_links = []
        dossier = build_item_dossier(item)
        assert "No linked problems" in dossier
        assert "No linked objectives." in dossier


class TestSuggestScores:
    @pytest.mark.asyncio
    async def test_calls_llm_with_dossier(self):
        client = MagicMock(spec=LLMClient)
        client.call = AsyncMock(return_value={"reach": 4, "impact": 5, "confidence": 6, "effort": 3})
        suggestion = await suggest_scores(_item_with_links(), client)
        assert suggestion.score == 40.0
        system, user = client.call.call_args.args
        assert "RICE" in system
        assert "Async exports" in user

    @pytest.mark.asyncio
    async def test_custom_prompt(self):
        client = MagicMock(spec=LLMClient)
        client.call = AsyncMock(return_value={})
        await suggest_scores(_item_with_links(), client, prompt="Score it")
        assert client.call.call_args.args[0] == "Score it"


# ---------------------------------------------------------------------------
# LLMClient JSON handling
# ---------------------------------------------------------------------------


def _client_returning(text: str) -> LLMClient:
    with patch.object(LLMClient, "_init_client"):
        client = LLMClient(provider="anthropic", model="test-model")
    client._complete = AsyncMock(return_value=text)
    return client


class TestLLMClientCall:
    @pytest.mark.asyncio
    async def test_plain_json(self):
        assert await _client_returning('{"a": 1}').call("sys", "user") == {"a": 1}

    @pytest.mark.asyncio
    async def test_fenced_json(self):
        client = _client_returning('Here you go:\n```json\n{"a": 2}\n```')
        assert await client.call("sys", "user") == {"a": 2}

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        with pytest.raises(LLMCallError) as exc_info:
            await _client_returning("not json").call("sys", "user")
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_non_object_raises(self):
        with pytest.raises(LLMCallError):
            await _client_returning("[1, 2]").call("sys", "user")

    @pytest.mark.asyncio
    async def test_chat_returns_text(self):
        client = _client_returning("Sure, here is a draft.")
        reply = await client.chat("sys", [{"role": "user", "content": "hi"}])
        assert reply == "Sure, here is a draft."
        assert client._complete.call_args.kwargs == {"json_mode": False}

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown LLM provider"):
            LLMClient(provider="carrier-pigeon")

    @pytest.mark.asyncio
    async def test_provider_errors_are_wrapped(self):
        with patch.object(LLMClient, "_init_client"):
            client = LLMClient(provider="anthropic", model="m")
        client._client = MagicMock()
        client._client.messages.create = AsyncMock(side_effect=RuntimeError("boom"))
        with pytest.raises(LLMCallError) as exc_info:
            await client.call("sys", "user")
        assert exc_info.value.retryable is True
