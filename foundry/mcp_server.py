from __future__ import annotations

import json
import logging
from collections import Counter
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, contextmanager

from mcp.server.fastmcp import FastMCP

from foundry import services
from foundry.db import current_db_path, init_db, session_scope
from foundry.gating import GatingFailure
from foundry.graph import build_graph, count_orphans, filter_graph, orphan_counts_from_graph
from foundry.logging_config import setup_logging
from foundry.scorer import LLMCallError
from foundry.store import EntityStore
from foundry.strategy import ITEM_STATUSES, ITEM_TYPES, PROBLEM_STATUSES, SIGNAL_STATUSES

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def foundry_lifespan(server: FastMCP) -> AsyncIterator[None]:
    setup_logging()
    init_db()
    yield


mcp = FastMCP(
    "Foundry",
    instructions=(
        "Foundry is a product management workspace: customer signals, problems, objectives, "
        "and a roadmap of initiatives, epics and features. "
        "Start with get_stats() for an overview and get_orphans() for strategy gaps, "
        "then list_roadmap_items() / list_problems() to browse. "
        "Status changes may be refused with {'error': 'gating', 'missing': [...]} until "
        "the required links exist."
    ),
    lifespan=foundry_lifespan,
    json_response=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def _store():
    with session_scope() as session:
        yield EntityStore(session)


def _get_or_error(store: EntityStore, kind: str, entity_id: int, label: str = "Entity", with_links: bool = False):
    obj = store.get(kind, entity_id, with_links=with_links)
    if not obj:
        return None, {"error": f"{label} {entity_id} not found"}
    return obj, None


def _patch(**fields) -> dict:
    return {k: v for k, v in fields.items() if v is not None}


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@mcp.resource("foundry://overview")
def foundry_overview() -> str:
    """Overview of Foundry: data model, status gates and orphan rules."""
    return json.dumps({
        "system": "Foundry - product management workspace",
        "data_model": {
            "signal": "Raw voice-of-customer text (call note, ticket, survey answer). Status new/processed/discarded.",
            "problem": "Validated pain statement backed by signals. Status draft/shaped/proposed/accepted/rejected.",
            "objective": "Strategic goal with a priority weight.",
            "roadmap_item": (
                "Initiative > epic > feature via parent_id. RICE inputs reach/impact/confidence/effort "
                "(1-10) give score = reach*impact*confidence/effort."
            ),
            "release": "Release bucket for roadmap items.",
            "prd": "Product requirements document tied to a roadmap item.",
        },
        "gates": {
            "problem -> accepted": "At least one linked roadmap item.",
            "initiative -> committed": "An objective link and an accepted problem link.",
            "epic -> committed": "A parent initiative and an accepted problem, direct or on the parent.",
            "feature -> committed": "A parent epic and an accepted problem, direct, on the epic or on its initiative.",
        },
        "orphans": (
            "Accepted problems without roadmap links, and committed/in-progress/done items "
            "that no longer meet their commit requirements."
        ),
    }, indent=2)


# ---------------------------------------------------------------------------
# Tools: Browse
# ---------------------------------------------------------------------------


@mcp.tool()
def list_roadmap_items(type: str | None = None, status: str | None = None, limit: int = 100) -> list[dict]:
    """List roadmap items by score.

    Args:
        type: Optional filter: initiative, epic or feature.
        status: Optional filter: proposed, committed, in-progress or done.
        limit: Max results (default 100).
    """
    with _store() as store:
        filters = _patch(type=type, status=status)
        items = store.find("roadmap_item", filters, with_links=True)
        return [services.roadmap_item_summary(i) for i in items[:max(1, limit)]]


@mcp.tool()
def get_roadmap_item(item_id: int) -> dict:
    """Get a roadmap item with its problem and objective links."""
    with _store() as store:
        item, err = _get_or_error(store, "roadmap_item", item_id, "Roadmap item", with_links=True)
        return err if err else services.roadmap_item_summary(item)


@mcp.tool()
def list_problems(status: str | None = None, limit: int = 100) -> list[dict]:
    """List problems, newest first. Optional status filter."""
    with _store() as store:
        problems = store.find("problem", _patch(status=status), with_links=True)
        return [services.problem_detail(p) for p in problems[:max(1, limit)]]


@mcp.tool()
def list_signals(status: str | None = None, limit: int = 100) -> list[dict]:
    """List signals, newest first. Optional status filter: new, processed, discarded."""
    if status is not None and status not in SIGNAL_STATUSES:
        return [{"error": f"status must be one of: {', '.join(SIGNAL_STATUSES)}"}]
    with _store() as store:
        signals = store.find("signal", _patch(status=status), with_links=True)
        return [services.signal_summary(s) for s in signals[:max(1, limit)]]


@mcp.tool()
def list_objectives() -> list[dict]:
    """List objectives with the roadmap items aligned to them."""
    with _store() as store:
        return [services.objective_summary(o) for o in store.find("objective", with_links=True)]


# ---------------------------------------------------------------------------
# Tools: Status changes (gated)
# ---------------------------------------------------------------------------


@mcp.tool()
def set_problem_status(problem_id: int, status: str) -> dict:
    """Move a problem to a new status. Accepting requires a linked roadmap item."""
    if status not in PROBLEM_STATUSES:
        return {"error": f"status must be one of: {', '.join(PROBLEM_STATUSES)}"}
    with _store() as store:
        result = services.update_problem(store, problem_id, {"status": status})
        if result is None:
            return {"error": f"Problem {problem_id} not found"}
        if isinstance(result, GatingFailure):
            return result.as_dict()
        store.commit()
        return {"ok": True, "problem_id": problem_id, "status": result.status}


@mcp.tool()
def update_roadmap_item(
    item_id: int,
    status: str | None = None, type: str | None = None, parent_id: int | None = None,
    title: str | None = None, description: str | None = None,
    reach: int | None = None, impact: int | None = None,
    confidence: int | None = None, effort: int | None = None,
) -> dict:
    """Update a roadmap item. Only provided (non-null) arguments are applied.

    Committing is gated on the links the item's type requires; RICE changes recompute the score.
    """
    if status is not None and status not in ITEM_STATUSES:
        return {"error": f"status must be one of: {', '.join(ITEM_STATUSES)}"}
    if type is not None and type not in ITEM_TYPES:
        return {"error": f"type must be one of: {', '.join(ITEM_TYPES)}"}
    for name, value in (("reach", reach), ("impact", impact), ("confidence", confidence), ("effort", effort)):
        if value is not None and not 1 <= value <= 10:
            return {"error": f"{name} must be between 1 and 10"}
    with _store() as store:
        result = services.update_roadmap_item(store, item_id, _patch(
            status=status, type=type, parent_id=parent_id, title=title, description=description,
            reach=reach, impact=impact, confidence=confidence, effort=effort,
        ))
        if result is None:
            return {"error": f"Roadmap item {item_id} not found"}
        if isinstance(result, GatingFailure):
            return result.as_dict()
        store.commit()
        item = store.get("roadmap_item", item_id, with_links=True)
        return services.roadmap_item_summary(item)


# ---------------------------------------------------------------------------
# Tools: Links
# ---------------------------------------------------------------------------


@mcp.tool()
def link_problem_to_roadmap_item(item_id: int, problem_id: int) -> dict:
    """Justify a roadmap item with a problem."""
    with _store() as store:
        for kind, entity_id, label in (("roadmap_item", item_id, "Roadmap item"), ("problem", problem_id, "Problem")):
            _, err = _get_or_error(store, kind, entity_id, label)
            if err:
                return err
        if store.find("roadmap_item_problem", {"roadmap_item_id": item_id, "problem_id": problem_id}):
            return {"error": "Link already exists"}
        link = services.link_item_problem(store, item_id, problem_id)
        store.commit()
        return {"ok": True, "link_id": link.id}


@mcp.tool()
def link_objective_to_roadmap_item(item_id: int, objective_id: int, impact_to_objective: int | None = None) -> dict:
    """Align a roadmap item to an objective."""
    with _store() as store:
        for kind, entity_id, label in (("roadmap_item", item_id, "Roadmap item"), ("objective", objective_id, "Objective")):
            _, err = _get_or_error(store, kind, entity_id, label)
            if err:
                return err
        if store.find("roadmap_item_objective", {"roadmap_item_id": item_id, "objective_id": objective_id}):
            return {"error": "Link already exists"}
        link = services.link_item_objective(store, item_id, objective_id, impact_to_objective)
        store.commit()
        return {"ok": True, "link_id": link.id}


# ---------------------------------------------------------------------------
# Tools: Graph & Stats
# ---------------------------------------------------------------------------


@mcp.tool()
def get_graph_summary(include_orphan_nodes: bool = True) -> dict:
    """Strategy graph summary: node/edge counts per type and orphan counts (plus the orphan nodes)."""
    with _store() as store:
        graph = build_graph(store)
        orphans = filter_graph(graph, orphans_only=True)
        return {
            "nodes_by_type": dict(Counter(n.type for n in graph.nodes)),
            "edges_by_type": dict(Counter(e.type for e in graph.edges)),
            "orphan_counts": orphan_counts_from_graph(graph),
            "orphans": [
                {"id": n.id, "type": n.type, "label": n.label, "status": n.status}
                for n in (orphans.nodes if include_orphan_nodes else [])
            ],
        }


@mcp.tool()
def get_orphans() -> dict:
    """Orphan counts per type: accepted problems with no roadmap item, committed items missing links."""
    with _store() as store:
        return count_orphans(store)


@mcp.tool()
def get_stats() -> dict:
    """Totals and status breakdowns across the workspace, plus the database in use."""
    with _store() as store:
        stats = services.compute_stats(store)
    db_path = current_db_path()
    return {**stats, "database": str(db_path) if db_path else None}


# ---------------------------------------------------------------------------
# Tools: AI
# ---------------------------------------------------------------------------


@mcp.tool()
async def analyze_signal(signal_id: int) -> dict:
    """Run LLM analysis on a signal: quotes, suggested problems, missing metadata, sentiment."""
    with _store() as store:
        sig, err = _get_or_error(store, "signal", signal_id, "Signal")
        if err:
            return err
        try:
            insights = await services.run_signal_analysis(sig)
        except LLMCallError as exc:
            return {"error": f"Analysis failed: {exc}"}
        return {"signal_id": signal_id, **insights.as_dict()}


@mcp.tool()
async def suggest_roadmap_score(item_id: int) -> dict:
    """Ask the LLM for RICE inputs for a roadmap item. Nothing is saved."""
    with _store() as store:
        item, err = _get_or_error(store, "roadmap_item", item_id, "Roadmap item", with_links=True)
        if err:
            return err
        try:
            suggestion = await services.suggest_item_score(item)
        except LLMCallError as exc:
            return {"error": f"Scoring failed: {exc}"}
        return {"item_id": item_id, **suggestion.as_dict()}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Run the Foundry MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()
