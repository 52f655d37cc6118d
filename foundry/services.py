"""Shared business logic for the Foundry API and MCP server.

Functions take an ``EntityStore`` and leave the transaction open: callers
commit on success (or let the session scope roll back).  Status changes on
problems and roadmap items go through the status gate and may return a
``GatingFailure`` instead of the updated entity.
"""
from __future__ import annotations

import json
import logging
from collections import Counter
from datetime import datetime
from typing import Any

from sqlalchemy import delete
from sqlalchemy.orm import Session

from foundry.compose import DEFAULT_SOURCES, compose_raw_text, validate_capture
from foundry.extractor import SignalInsights, extract_signal_insights
from foundry.gating import GatingFailure, check_problem_transition, check_roadmap_item_transition
from foundry.graph import count_orphans
from foundry.models import (
    Objective,
    Prd,
    PrdMessage,
    Problem,
    Release,
    RoadmapItem,
    RoadmapItemObjective,
    RoadmapItemProblem,
    Signal,
    SignalProblem,
)
from foundry.prd_chat import open_questions, prd_gaps, send_prd_message
from foundry.scorer import RICE_FIELDS, LLMClient, ScoreSuggestion, derive_score, suggest_scores
from foundry.store import EntityStore
from foundry.strategy import ItemRecord, item_record, load_lineage

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared field tuples
# ---------------------------------------------------------------------------

SIGNAL_META_FIELDS = ("source", "source_url", "customer", "arr", "severity", "frequency", "renewal_risk")

ITEM_FIELDS = (
    "title", "description", "rationale", "type", "status", "target_month", "effort_size",
    "reach", "impact", "confidence", "effort", "score", "parent_id", "release_id",
)

PRD_FIELDS = (
    "title", "status", "roadmap_item_id", "summary", "problem_statement", "objectives",
    "user_stories", "design_asset_link", "acceptance_criteria", "evidence",
)

# Columns a patch may not set to null
_REQUIRED: dict[str, tuple[str, ...]] = {
    "signal": ("raw_text", "status"),
    "problem": ("title", "statement", "status"),
    "objective": ("name", "weight"),
    "release": ("name", "status"),
    "roadmap_item": ("title", "type", "status"),
    "prd": ("title", "status"),
}

# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def signal_summary(sig: Signal) -> dict:
    return {
        "id": sig.id, "raw_text": sig.raw_text, "status": sig.status,
        **{f: getattr(sig, f) for f in SIGNAL_META_FIELDS},
        "created_at": _iso(sig.created_at), "updated_at": _iso(sig.updated_at),
        "problems": [
            {"link_id": link.id, "problem_id": link.problem_id, "problem_title": link.problem.title,
             "problem_status": link.problem.status, "quote": link.quote}
            for link in sig.problem_links if link.problem is not None
        ],
    }


def problem_detail(prob: Problem) -> dict:
    return {
        "id": prob.id, "title": prob.title, "statement": prob.statement,
        "who_affected": prob.who_affected, "workflow_block": prob.workflow_block,
        "business_impact": prob.business_impact, "retention_or_growth": prob.retention_or_growth,
        "severity": prob.severity, "frequency": prob.frequency, "status": prob.status,
        "created_at": _iso(prob.created_at), "updated_at": _iso(prob.updated_at),
        "signals": [
            {"link_id": link.id, "signal_id": link.signal_id, "quote": link.quote,
             "customer": link.signal.customer if link.signal else None,
             "source": link.signal.source if link.signal else None}
            for link in prob.signal_links
        ],
        "roadmap_items": [
            {"link_id": link.id, "roadmap_item_id": link.roadmap_item_id, "title": link.roadmap_item.title,
             "type": link.roadmap_item.type, "status": link.roadmap_item.status}
            for link in prob.roadmap_links if link.roadmap_item is not None
        ],
    }


def objective_summary(obj: Objective) -> dict:
    return {
        "id": obj.id, "name": obj.name, "timeframe": obj.timeframe, "metric": obj.metric,
        "weight": obj.weight, "roadmap_item_ids": [link.roadmap_item_id for link in obj.roadmap_links],
    }


def release_summary(rel: Release) -> dict:
    return {
        "id": rel.id, "name": rel.name, "description": rel.description,
        "target_date": rel.target_date, "status": rel.status,
        "roadmap_item_ids": [item.id for item in rel.roadmap_items],
    }


def roadmap_item_summary(item: RoadmapItem) -> dict:
    return {
        **{f: getattr(item, f) for f in ITEM_FIELDS},
        "id": item.id,
        "problems": [
            {"link_id": link.id, "problem_id": link.problem_id,
             "title": link.problem.title, "status": link.problem.status}
            for link in item.problem_links if link.problem is not None
        ],
        "objectives": [
            {"link_id": link.id, "objective_id": link.objective_id,
             "name": link.objective.name, "impact_to_objective": link.impact_to_objective}
            for link in item.objective_links if link.objective is not None
        ],
    }


def message_summary(msg: PrdMessage) -> dict:
    return {"id": msg.id, "role": msg.role, "content": msg.content, "created_at": _iso(msg.created_at)}


def prd_detail(prd: Prd) -> dict:
    return {
        **{f: getattr(prd, f) for f in PRD_FIELDS},
        "id": prd.id,
        "open_questions": open_questions(prd),
        "gaps": prd_gaps(prd),
        "messages": [message_summary(m) for m in prd.messages],
    }


# ---------------------------------------------------------------------------
# Mutation helpers
# ---------------------------------------------------------------------------


def clean_patch(kind: str, patch: dict[str, Any]) -> dict[str, Any]:
    """Drop explicit nulls for columns that cannot be cleared."""
    required = _REQUIRED.get(kind, ())
    return {k: v for k, v in patch.items() if not (v is None and k in required)}


def _encode_prd(data: dict[str, Any]) -> dict[str, Any]:
    if "open_questions" in data and data["open_questions"] is not None:
        data = {**data, "open_questions": json.dumps(data["open_questions"])}
    return data


def create_entity(store: EntityStore, kind: str, data: dict[str, Any]) -> Any:
    """Insert an entity that needs no gating (objective, release, PRD)."""
    if kind == "prd":
        data = {**_encode_prd(data), "status": "draft"}
    return store.insert(kind, data)


def update_entity(store: EntityStore, kind: str, entity_id: int, patch: dict[str, Any]) -> Any | None:
    """Plain partial update for kinds without a status gate. None if the entity is gone."""
    patch = clean_patch(kind, patch)
    if kind == "prd":
        patch = _encode_prd(patch)
    return store.update(kind, entity_id, patch)


def delete_entity(store: EntityStore, kind: str, entity_id: int) -> bool:
    return store.delete(kind, entity_id)


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------


def create_signal(store: EntityStore, data: dict[str, Any]) -> Signal:
    return store.insert("signal", {**data, "status": "new"})


def create_signal_from_capture(store: EntityStore, capture, meta: dict[str, Any]) -> Signal:
    """Create a signal from a structured capture. Raises ``ValueError`` with the first missing field."""
    error = validate_capture(capture)
    if error:
        raise ValueError(error)
    data = {k: v for k, v in meta.items() if k in SIGNAL_META_FIELDS}
    if not data.get("source"):
        data["source"] = DEFAULT_SOURCES[capture.type]
    return create_signal(store, {**data, "raw_text": compose_raw_text(capture)})


# ---------------------------------------------------------------------------
# Problems
# ---------------------------------------------------------------------------


def create_problem(store: EntityStore, data: dict[str, Any]) -> Problem:
    return store.insert("problem", {**data, "status": "draft"})


def update_problem(store: EntityStore, problem_id: int, patch: dict[str, Any]) -> Problem | GatingFailure | None:
    """Partial update, gated when the patch moves the problem to ``accepted``.

    Returns None (nothing written) if the problem no longer exists.
    """
    patch = clean_patch("problem", patch)
    if store.get("problem", problem_id) is None:
        log.info("Update of missing problem %s ignored", problem_id)
        return None
    if "status" in patch:
        links = store.find("roadmap_item_problem", {"problem_id": problem_id})
        failure = check_problem_transition(patch["status"], len(links))
        if failure is not None:
            log.info("Problem %s blocked from %s: %s", problem_id, patch["status"], failure.missing)
            return failure
    return store.update("problem", problem_id, patch)


# ---------------------------------------------------------------------------
# Roadmap items
# ---------------------------------------------------------------------------


def check_item_transition(
    store: EntityStore, record: ItemRecord, target_status: str | None,
) -> GatingFailure | None:
    """Stage 1: gate *record* (already carrying pending type/parent) against fresh ancestor links."""
    if target_status != "committed" or record.status == "committed":
        return None
    return check_roadmap_item_transition(record, target_status, load_lineage(store, record))


def derive_item_fields(current: RoadmapItem | None, patch: dict[str, Any]) -> dict[str, Any]:
    """Stage 2: the patch plus the fields derived from it."""
    return {**patch, "score": derive_score(current, patch)}


def create_roadmap_item(store: EntityStore, data: dict[str, Any]) -> RoadmapItem | GatingFailure:
    """Insert a roadmap item. Creating it directly as ``committed`` is gated like an update."""
    data = clean_patch("roadmap_item", data)
    # A new item has no links yet; id 0 never collides with an autoincrement id
    record = ItemRecord(id=0, type=data.get("type", "feature"), status="proposed", parent_id=data.get("parent_id"))
    failure = check_item_transition(store, record, data.get("status"))
    if failure is not None:
        log.info("New roadmap item blocked from committed: %s", failure.missing)
        return failure
    return store.insert("roadmap_item", derive_item_fields(None, data))


def update_roadmap_item(
    store: EntityStore, item_id: int, patch: dict[str, Any],
) -> RoadmapItem | GatingFailure | None:
    """Validate the transition, derive the score, persist.

    Returns None (nothing written) if the item no longer exists.
    """
    patch = clean_patch("roadmap_item", patch)
    item = store.get("roadmap_item", item_id, with_links=True)
    if item is None:
        log.info("Update of missing roadmap item %s ignored", item_id)
        return None

    overrides = {k: patch[k] for k in ("type", "parent_id") if k in patch}
    failure = check_item_transition(store, item_record(item, **overrides), patch.get("status"))
    if failure is not None:
        log.info("Roadmap item %s blocked from committed: %s", item_id, failure.missing)
        return failure

    return store.update("roadmap_item", item_id, derive_item_fields(item, patch))


def assign_release(store: EntityStore, item_id: int, release_id: int | None) -> RoadmapItem | None:
    return store.update("roadmap_item", item_id, {"release_id": release_id})


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------

LINK_KINDS = ("signal_problem", "roadmap_item_problem", "roadmap_item_objective")


def link_signal_problem(store: EntityStore, problem_id: int, signal_id: int, quote: str | None = None) -> SignalProblem:
    return store.insert("signal_problem", {"problem_id": problem_id, "signal_id": signal_id, "quote": quote or None})


def link_item_problem(store: EntityStore, item_id: int, problem_id: int) -> RoadmapItemProblem:
    return store.insert("roadmap_item_problem", {"roadmap_item_id": item_id, "problem_id": problem_id})


def link_item_objective(
    store: EntityStore, item_id: int, objective_id: int, impact_to_objective: int | None = None,
) -> RoadmapItemObjective:
    return store.insert("roadmap_item_objective", {
        "roadmap_item_id": item_id, "objective_id": objective_id, "impact_to_objective": impact_to_objective,
    })


def unlink(store: EntityStore, kind: str, link_id: int) -> bool:
    if kind not in LINK_KINDS:
        raise ValueError(f"Not a link kind: {kind!r}")
    return store.delete(kind, link_id)


# ---------------------------------------------------------------------------
# AI operations
# ---------------------------------------------------------------------------


def _ensure_client(client: LLMClient | None) -> LLMClient:
    return client if client is not None else LLMClient()


async def run_signal_analysis(signal: Signal, client: LLMClient | None = None) -> SignalInsights:
    return await extract_signal_insights(signal, _ensure_client(client))


def accept_suggested_problem(
    store: EntityStore, signal_id: int, suggestion: dict[str, Any], quote: str | None = None,
) -> Problem:
    """Create a draft problem from one suggestion and link it to the signal (caller must commit)."""
    return accept_suggested_problems(store, signal_id, [suggestion], [quote] if quote else [])[0]


def accept_suggested_problems(
    store: EntityStore, signal_id: int, suggestions: list[dict[str, Any]], quotes: list[str],
) -> list[Problem]:
    """Create draft problems, link each with the matching quote (else the first), mark the signal processed."""
    created: list[Problem] = []
    for i, suggestion in enumerate(suggestions):
        problem = create_problem(store, {
            "title": suggestion["title"],
            "statement": suggestion["statement"],
            "who_affected": suggestion.get("who_affected"),
            "severity": suggestion.get("severity"),
        })
        quote = quotes[i] if i < len(quotes) else (quotes[0] if quotes else None)
        link_signal_problem(store, problem.id, signal_id, quote)
        created.append(problem)
    store.update("signal", signal_id, {"status": "processed"})
    log.info("Signal %s processed: %d problems created", signal_id, len(created))
    return created


async def suggest_item_score(item: RoadmapItem, client: LLMClient | None = None) -> ScoreSuggestion:
    """AI RICE suggestion for *item* (loaded with links). Nothing is persisted."""
    return await suggest_scores(item, _ensure_client(client))


def apply_score_suggestion(
    store: EntityStore, item_id: int, values: dict[str, int],
) -> RoadmapItem | GatingFailure | None:
    """Write accepted RICE inputs through the normal update pipeline so the score is recomputed."""
    return update_roadmap_item(store, item_id, {k: values[k] for k in RICE_FIELDS if k in values})


async def chat_on_prd(session: Session, prd: Prd, content: str, client: LLMClient | None = None) -> PrdMessage:
    return await send_prd_message(session, prd, content, _ensure_client(client))


# ---------------------------------------------------------------------------
# Stats & admin
# ---------------------------------------------------------------------------


def compute_stats(store: EntityStore) -> dict:
    signals = store.find("signal")
    problems = store.find("problem")
    items = store.find("roadmap_item")
    return {
        "totals": {
            "signals": len(signals),
            "problems": len(problems),
            "objectives": len(store.find("objective")),
            "releases": len(store.find("release")),
            "roadmap_items": len(items),
            "prds": len(store.find("prd")),
        },
        "signals_by_status": dict(Counter(s.status for s in signals)),
        "problems_by_status": dict(Counter(p.status for p in problems)),
        "roadmap_by_type": dict(Counter(i.type for i in items)),
        "roadmap_by_status": dict(Counter(i.status for i in items)),
        "orphans": count_orphans(store),
    }


def reset_all(session: Session) -> None:
    """Delete every row, links first (caller must commit)."""
    for model in (
        PrdMessage, Prd, SignalProblem, RoadmapItemProblem, RoadmapItemObjective,
        RoadmapItem, Release, Objective, Problem, Signal,
    ):
        session.execute(delete(model))
