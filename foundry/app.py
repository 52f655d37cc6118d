from __future__ import annotations

import logging
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Callable, Generator

from fastapi import Depends, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from foundry import services
from foundry.config import get_settings
from foundry.db import init_db, session_generator
from foundry.gating import GatingFailure
from foundry.graph import build_graph, count_orphans, filter_graph
from foundry.importer import import_signals_xlsx
from foundry.logging_config import setup_logging
from foundry.schemas import (
    AcceptProblemsIn,
    AcceptProblemsOut,
    ApplyScoreIn,
    GatingFailureOut,
    GraphOut,
    ImportResult,
    ItemObjectiveLink,
    ItemProblemLink,
    LinkOut,
    ObjectiveCreate,
    ObjectiveOut,
    ObjectiveUpdate,
    OrphanCountsOut,
    PrdChatIn,
    PrdChatOut,
    PrdCreate,
    PrdOut,
    PrdUpdate,
    ProblemCreate,
    ProblemOut,
    ProblemUpdate,
    ReleaseAssign,
    ReleaseCreate,
    ReleaseOut,
    ReleaseUpdate,
    RoadmapItemCreate,
    RoadmapItemOut,
    RoadmapItemUpdate,
    SignalCaptureCreate,
    SignalCreate,
    SignalOut,
    SignalProblemLink,
    SignalUpdate,
    StatsOut,
)
from foundry.scorer import LLMCallError
from foundry.store import EntityStore

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    init_db()
    yield


app = FastAPI(
    title="Foundry",
    version="0.1.0",
    description=(
        "Product management workspace API: capture customer signals, shape problems, "
        "plan a scored roadmap aligned to objectives, and write PRDs. "
        "Status changes are gated on the strategy links they require. "
        "All endpoints return JSON. No authentication required."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Signals", "description": "Raw voice-of-customer observations."},
        {"name": "Problems", "description": "Validated problem statements. Accepting one is gated."},
        {"name": "Objectives", "description": "Strategic goals roadmap items align to."},
        {"name": "Releases", "description": "Release buckets for roadmap items."},
        {"name": "Roadmap", "description": "Initiatives, epics and features. Committing one is gated."},
        {"name": "PRDs", "description": "Product requirement documents and the PRD assistant."},
        {"name": "AI", "description": "LLM-powered analysis and suggestions. Requires an LLM API key."},
        {"name": "Graph", "description": "Strategy graph and orphan detection."},
        {"name": "Stats", "description": "Aggregate statistics."},
        {"name": "Admin", "description": "Import and reset."},
    ],
)

_GATED = {409: {"model": GatingFailureOut, "description": "Required links are missing"}}


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    yield from session_generator()


def db_store(session: Session = Depends(db_session)) -> EntityStore:
    return EntityStore(session)


def _get_or_404(store: EntityStore, kind: str, entity_id: int, label: str = "Entity", with_links: bool = False):
    obj = store.get(kind, entity_id, with_links=with_links)
    if not obj:
        raise HTTPException(404, f"{label} not found")
    return obj


def _csv(value: str | None) -> list[str] | None:
    if not value:
        return None
    return [v.strip() for v in value.split(",") if v.strip()]


def _gating_response(failure: GatingFailure) -> JSONResponse:
    return JSONResponse(status_code=409, content=failure.as_dict())


def _insert_link(store: EntityStore, insert: Callable[[], Any]) -> dict:
    try:
        link = insert()
        store.commit()
    except IntegrityError as exc:
        store.rollback()
        raise HTTPException(409, "Link already exists") from exc
    return {"id": link.id}


def _llm_error(exc: LLMCallError) -> HTTPException:
    log.warning("LLM call failed: %s", exc)
    return HTTPException(502, f"AI request failed: {exc}")


# ---------------------------------------------------------------------------
# Routes: Signals
# ---------------------------------------------------------------------------


@app.get("/api/signals", response_model=list[SignalOut],
         tags=["Signals"], summary="List signals, newest first")
async def list_signals(
    status: str | None = Query(None, description="Comma-separated: new, processed, discarded"),
    store: EntityStore = Depends(db_store),
):
    signals = store.find("signal", with_links=True)
    statuses = _csv(status)
    if statuses:
        signals = [s for s in signals if s.status in statuses]
    return [services.signal_summary(s) for s in signals]


@app.post("/api/signals", response_model=SignalOut, status_code=201,
          tags=["Signals"], summary="Create a signal from raw text")
async def create_signal(body: SignalCreate, store: EntityStore = Depends(db_store)):
    sig = services.create_signal(store, body.model_dump())
    store.commit()
    return services.signal_summary(_get_or_404(store, "signal", sig.id, "Signal", with_links=True))


@app.post("/api/signals/capture", response_model=SignalOut, status_code=201,
          tags=["Signals"], summary="Create a signal from a structured capture form")
async def capture_signal(body: SignalCaptureCreate, store: EntityStore = Depends(db_store)):
    try:
        sig = services.create_signal_from_capture(store, body.capture, body.model_dump(exclude={"capture"}))
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    store.commit()
    return services.signal_summary(_get_or_404(store, "signal", sig.id, "Signal", with_links=True))


@app.get("/api/signals/{signal_id}", response_model=SignalOut,
         tags=["Signals"], summary="Get a signal with its linked problems")
async def get_signal(signal_id: int, store: EntityStore = Depends(db_store)):
    return services.signal_summary(_get_or_404(store, "signal", signal_id, "Signal", with_links=True))


@app.put("/api/signals/{signal_id}", response_model=SignalOut,
         tags=["Signals"], summary="Update signal fields (partial update)")
async def update_signal(signal_id: int, body: SignalUpdate, store: EntityStore = Depends(db_store)):
    if services.update_entity(store, "signal", signal_id, body.model_dump(exclude_unset=True)) is None:
        raise HTTPException(404, "Signal not found")
    store.commit()
    return services.signal_summary(_get_or_404(store, "signal", signal_id, "Signal", with_links=True))


@app.delete("/api/signals/{signal_id}", tags=["Signals"], summary="Delete a signal and its problem links")
async def delete_signal(signal_id: int, store: EntityStore = Depends(db_store)):
    if not services.delete_entity(store, "signal", signal_id):
        raise HTTPException(404, "Signal not found")
    store.commit()
    return {"ok": True}


# ---------------------------------------------------------------------------
# Routes: Problems
# ---------------------------------------------------------------------------


@app.get("/api/problems", response_model=list[ProblemOut],
         tags=["Problems"], summary="List problems, newest first")
async def list_problems(
    status: str | None = Query(None, description="Comma-separated: draft, shaped, proposed, accepted, rejected"),
    store: EntityStore = Depends(db_store),
):
    problems = store.find("problem", with_links=True)
    statuses = _csv(status)
    if statuses:
        problems = [p for p in problems if p.status in statuses]
    return [services.problem_detail(p) for p in problems]


@app.post("/api/problems", response_model=ProblemOut, status_code=201,
          tags=["Problems"], summary="Create a draft problem")
async def create_problem(body: ProblemCreate, store: EntityStore = Depends(db_store)):
    prob = services.create_problem(store, body.model_dump())
    store.commit()
    return services.problem_detail(_get_or_404(store, "problem", prob.id, "Problem", with_links=True))


@app.get("/api/problems/{problem_id}", response_model=ProblemOut,
         tags=["Problems"], summary="Get a problem with its signals and roadmap items")
async def get_problem(problem_id: int, store: EntityStore = Depends(db_store)):
    return services.problem_detail(_get_or_404(store, "problem", problem_id, "Problem", with_links=True))


@app.put("/api/problems/{problem_id}", response_model=ProblemOut, responses=_GATED,
         tags=["Problems"], summary="Update a problem; accepting needs a linked roadmap item")
async def update_problem(problem_id: int, body: ProblemUpdate, store: EntityStore = Depends(db_store)):
    result = services.update_problem(store, problem_id, body.model_dump(exclude_unset=True))
    if result is None:
        raise HTTPException(404, "Problem not found")
    if isinstance(result, GatingFailure):
        return _gating_response(result)
    store.commit()
    return services.problem_detail(_get_or_404(store, "problem", problem_id, "Problem", with_links=True))


@app.delete("/api/problems/{problem_id}", tags=["Problems"],
            summary="Delete a problem and all its signal and roadmap links")
async def delete_problem(problem_id: int, store: EntityStore = Depends(db_store)):
    if not services.delete_entity(store, "problem", problem_id):
        raise HTTPException(404, "Problem not found")
    store.commit()
    return {"ok": True}


@app.post("/api/problems/{problem_id}/signals", response_model=LinkOut, status_code=201,
          tags=["Problems"], summary="Link a signal to a problem as evidence")
async def link_signal(problem_id: int, body: SignalProblemLink, store: EntityStore = Depends(db_store)):
    _get_or_404(store, "problem", problem_id, "Problem")
    _get_or_404(store, "signal", body.signal_id, "Signal")
    return _insert_link(store, lambda: services.link_signal_problem(store, problem_id, body.signal_id, body.quote))


@app.delete("/api/signal-links/{link_id}", tags=["Problems"], summary="Remove a signal/problem link")
async def unlink_signal(link_id: int, store: EntityStore = Depends(db_store)):
    if not services.unlink(store, "signal_problem", link_id):
        raise HTTPException(404, "Link not found")
    store.commit()
    return {"ok": True}


# ---------------------------------------------------------------------------
# Routes: Objectives
# ---------------------------------------------------------------------------


@app.get("/api/objectives", response_model=list[ObjectiveOut], tags=["Objectives"], summary="List objectives")
async def list_objectives(store: EntityStore = Depends(db_store)):
    return [services.objective_summary(o) for o in store.find("objective", with_links=True)]


@app.post("/api/objectives", response_model=ObjectiveOut, status_code=201,
          tags=["Objectives"], summary="Create an objective")
async def create_objective(body: ObjectiveCreate, store: EntityStore = Depends(db_store)):
    obj = services.create_entity(store, "objective", body.model_dump())
    store.commit()
    return services.objective_summary(_get_or_404(store, "objective", obj.id, "Objective", with_links=True))


@app.get("/api/objectives/{objective_id}", response_model=ObjectiveOut,
         tags=["Objectives"], summary="Get an objective")
async def get_objective(objective_id: int, store: EntityStore = Depends(db_store)):
    return services.objective_summary(_get_or_404(store, "objective", objective_id, "Objective", with_links=True))


@app.put("/api/objectives/{objective_id}", response_model=ObjectiveOut,
         tags=["Objectives"], summary="Update objective fields (partial update)")
async def update_objective(objective_id: int, body: ObjectiveUpdate, store: EntityStore = Depends(db_store)):
    if services.update_entity(store, "objective", objective_id, body.model_dump(exclude_unset=True)) is None:
        raise HTTPException(404, "Objective not found")
    store.commit()
    return services.objective_summary(_get_or_404(store, "objective", objective_id, "Objective", with_links=True))


@app.delete("/api/objectives/{objective_id}", tags=["Objectives"],
            summary="Delete an objective and its roadmap alignments")
async def delete_objective(objective_id: int, store: EntityStore = Depends(db_store)):
    if not services.delete_entity(store, "objective", objective_id):
        raise HTTPException(404, "Objective not found")
    store.commit()
    return {"ok": True}


# ---------------------------------------------------------------------------
# Routes: Releases
# ---------------------------------------------------------------------------


@app.get("/api/releases", response_model=list[ReleaseOut],
         tags=["Releases"], summary="List releases by target date, latest first")
async def list_releases(store: EntityStore = Depends(db_store)):
    return [services.release_summary(r) for r in store.find("release", with_links=True)]


@app.post("/api/releases", response_model=ReleaseOut, status_code=201,
          tags=["Releases"], summary="Create a release")
async def create_release(body: ReleaseCreate, store: EntityStore = Depends(db_store)):
    rel = services.create_entity(store, "release", body.model_dump())
    store.commit()
    return services.release_summary(_get_or_404(store, "release", rel.id, "Release", with_links=True))


@app.get("/api/releases/{release_id}", response_model=ReleaseOut, tags=["Releases"], summary="Get a release")
async def get_release(release_id: int, store: EntityStore = Depends(db_store)):
    return services.release_summary(_get_or_404(store, "release", release_id, "Release", with_links=True))


@app.put("/api/releases/{release_id}", response_model=ReleaseOut,
         tags=["Releases"], summary="Update release fields (partial update)")
async def update_release(release_id: int, body: ReleaseUpdate, store: EntityStore = Depends(db_store)):
    if services.update_entity(store, "release", release_id, body.model_dump(exclude_unset=True)) is None:
        raise HTTPException(404, "Release not found")
    store.commit()
    return services.release_summary(_get_or_404(store, "release", release_id, "Release", with_links=True))


@app.delete("/api/releases/{release_id}", tags=["Releases"],
            summary="Delete a release; its roadmap items become unassigned")
async def delete_release(release_id: int, store: EntityStore = Depends(db_store)):
    if not services.delete_entity(store, "release", release_id):
        raise HTTPException(404, "Release not found")
    store.commit()
    return {"ok": True}


# ---------------------------------------------------------------------------
# Routes: Roadmap items
# ---------------------------------------------------------------------------


@app.get("/api/roadmap-items", response_model=list[RoadmapItemOut],
         tags=["Roadmap"], summary="List roadmap items by score (unscored last)")
async def list_roadmap_items(
    type: str | None = Query(None, description="Comma-separated: initiative, epic, feature"),
    status: str | None = Query(None, description="Comma-separated: proposed, committed, in-progress, done"),
    store: EntityStore = Depends(db_store),
):
    items = store.find("roadmap_item", with_links=True)
    types, statuses = _csv(type), _csv(status)
    if types:
        items = [i for i in items if i.type in types]
    if statuses:
        items = [i for i in items if i.status in statuses]
    return [services.roadmap_item_summary(i) for i in items]


@app.post("/api/roadmap-items", response_model=RoadmapItemOut, status_code=201, responses=_GATED,
          tags=["Roadmap"], summary="Create a roadmap item (score derived from RICE inputs)")
async def create_roadmap_item(body: RoadmapItemCreate, store: EntityStore = Depends(db_store)):
    result = services.create_roadmap_item(store, body.model_dump())
    if isinstance(result, GatingFailure):
        return _gating_response(result)
    store.commit()
    return services.roadmap_item_summary(_get_or_404(store, "roadmap_item", result.id, "Roadmap item", with_links=True))


@app.get("/api/roadmap-items/{item_id}", response_model=RoadmapItemOut,
         tags=["Roadmap"], summary="Get a roadmap item with its problems and objectives")
async def get_roadmap_item(item_id: int, store: EntityStore = Depends(db_store)):
    return services.roadmap_item_summary(_get_or_404(store, "roadmap_item", item_id, "Roadmap item", with_links=True))


@app.put("/api/roadmap-items/{item_id}", response_model=RoadmapItemOut, responses=_GATED,
         tags=["Roadmap"], summary="Update a roadmap item; committing needs the links its type requires")
async def update_roadmap_item(item_id: int, body: RoadmapItemUpdate, store: EntityStore = Depends(db_store)):
    result = services.update_roadmap_item(store, item_id, body.model_dump(exclude_unset=True))
    if result is None:
        raise HTTPException(404, "Roadmap item not found")
    if isinstance(result, GatingFailure):
        return _gating_response(result)
    store.commit()
    return services.roadmap_item_summary(_get_or_404(store, "roadmap_item", item_id, "Roadmap item", with_links=True))


@app.delete("/api/roadmap-items/{item_id}", tags=["Roadmap"],
            summary="Delete a roadmap item and its links; children keep a dangling parent")
async def delete_roadmap_item(item_id: int, store: EntityStore = Depends(db_store)):
    if not services.delete_entity(store, "roadmap_item", item_id):
        raise HTTPException(404, "Roadmap item not found")
    store.commit()
    return {"ok": True}


@app.put("/api/roadmap-items/{item_id}/release", response_model=RoadmapItemOut,
         tags=["Roadmap", "Releases"], summary="Assign (or with null, unassign) a release")
async def assign_release(item_id: int, body: ReleaseAssign, store: EntityStore = Depends(db_store)):
    if body.release_id is not None:
        _get_or_404(store, "release", body.release_id, "Release")
    if services.assign_release(store, item_id, body.release_id) is None:
        raise HTTPException(404, "Roadmap item not found")
    store.commit()
    return services.roadmap_item_summary(_get_or_404(store, "roadmap_item", item_id, "Roadmap item", with_links=True))


@app.post("/api/roadmap-items/{item_id}/problems", response_model=LinkOut, status_code=201,
          tags=["Roadmap"], summary="Justify a roadmap item with a problem")
async def link_problem(item_id: int, body: ItemProblemLink, store: EntityStore = Depends(db_store)):
    _get_or_404(store, "roadmap_item", item_id, "Roadmap item")
    _get_or_404(store, "problem", body.problem_id, "Problem")
    return _insert_link(store, lambda: services.link_item_problem(store, item_id, body.problem_id))


@app.delete("/api/roadmap-problem-links/{link_id}", tags=["Roadmap"], summary="Remove a roadmap item/problem link")
async def unlink_problem(link_id: int, store: EntityStore = Depends(db_store)):
    if not services.unlink(store, "roadmap_item_problem", link_id):
        raise HTTPException(404, "Link not found")
    store.commit()
    return {"ok": True}


@app.post("/api/roadmap-items/{item_id}/objectives", response_model=LinkOut, status_code=201,
          tags=["Roadmap"], summary="Align a roadmap item to an objective")
async def link_objective(item_id: int, body: ItemObjectiveLink, store: EntityStore = Depends(db_store)):
    _get_or_404(store, "roadmap_item", item_id, "Roadmap item")
    _get_or_404(store, "objective", body.objective_id, "Objective")
    return _insert_link(store, lambda: services.link_item_objective(
        store, item_id, body.objective_id, body.impact_to_objective,
    ))


@app.delete("/api/roadmap-objective-links/{link_id}", tags=["Roadmap"],
            summary="Remove a roadmap item/objective link")
async def unlink_objective(link_id: int, store: EntityStore = Depends(db_store)):
    if not services.unlink(store, "roadmap_item_objective", link_id):
        raise HTTPException(404, "Link not found")
    store.commit()
    return {"ok": True}


# ---------------------------------------------------------------------------
# Routes: PRDs
# ---------------------------------------------------------------------------


@app.get("/api/prds", response_model=list[PrdOut], tags=["PRDs"], summary="List PRDs, newest first")
async def list_prds(store: EntityStore = Depends(db_store)):
    return [services.prd_detail(p) for p in store.find("prd", with_links=True)]


@app.post("/api/prds", response_model=PrdOut, status_code=201, tags=["PRDs"], summary="Create a draft PRD")
async def create_prd(body: PrdCreate, store: EntityStore = Depends(db_store)):
    if body.roadmap_item_id is not None:
        _get_or_404(store, "roadmap_item", body.roadmap_item_id, "Roadmap item")
    prd = services.create_entity(store, "prd", body.model_dump(mode="json"))
    store.commit()
    return services.prd_detail(_get_or_404(store, "prd", prd.id, "PRD", with_links=True))


@app.get("/api/prds/{prd_id}", response_model=PrdOut,
         tags=["PRDs"], summary="Get a PRD with readiness gaps and chat history")
async def get_prd(prd_id: int, store: EntityStore = Depends(db_store)):
    return services.prd_detail(_get_or_404(store, "prd", prd_id, "PRD", with_links=True))


@app.put("/api/prds/{prd_id}", response_model=PrdOut, tags=["PRDs"], summary="Update PRD sections or status")
async def update_prd(prd_id: int, body: PrdUpdate, store: EntityStore = Depends(db_store)):
    if services.update_entity(store, "prd", prd_id, body.model_dump(mode="json", exclude_unset=True)) is None:
        raise HTTPException(404, "PRD not found")
    store.commit()
    return services.prd_detail(_get_or_404(store, "prd", prd_id, "PRD", with_links=True))


@app.delete("/api/prds/{prd_id}", tags=["PRDs"], summary="Delete a PRD and its chat history")
async def delete_prd(prd_id: int, store: EntityStore = Depends(db_store)):
    if not services.delete_entity(store, "prd", prd_id):
        raise HTTPException(404, "PRD not found")
    store.commit()
    return {"ok": True}


@app.post("/api/prds/{prd_id}/chat", response_model=PrdChatOut,
          tags=["PRDs", "AI"], summary="Send a message to the PRD assistant")
async def chat_prd(prd_id: int, body: PrdChatIn, store: EntityStore = Depends(db_store)):
    prd = _get_or_404(store, "prd", prd_id, "PRD", with_links=True)
    try:
        reply = await services.chat_on_prd(store.session, prd, body.message)
    except LLMCallError as exc:
        raise _llm_error(exc) from exc
    store.commit()
    return {"reply": reply.content, "messages": [services.message_summary(m) for m in prd.messages]}


# ---------------------------------------------------------------------------
# Routes: AI (signals & scoring)
# ---------------------------------------------------------------------------


@app.post("/api/signals/{signal_id}/analyze", tags=["Signals", "AI"],
          summary="Extract quotes, draft problems and missing metadata from a signal")
async def analyze_signal(signal_id: int, store: EntityStore = Depends(db_store)):
    sig = _get_or_404(store, "signal", signal_id, "Signal")
    try:
        insights = await services.run_signal_analysis(sig)
    except LLMCallError as exc:
        raise _llm_error(exc) from exc
    return insights.as_dict()


@app.post("/api/signals/{signal_id}/accept-problems", response_model=AcceptProblemsOut, status_code=201,
          tags=["Signals", "AI"], summary="Create draft problems from accepted suggestions")
async def accept_problems(signal_id: int, body: AcceptProblemsIn, store: EntityStore = Depends(db_store)):
    _get_or_404(store, "signal", signal_id, "Signal")
    created = services.accept_suggested_problems(
        store, signal_id, [p.model_dump() for p in body.problems], body.quotes,
    )
    store.commit()
    return {"problem_ids": [p.id for p in created]}


@app.post("/api/roadmap-items/{item_id}/score-suggestion", tags=["Roadmap", "AI"],
          summary="Ask the LLM for RICE inputs (nothing is saved)")
async def score_suggestion(item_id: int, store: EntityStore = Depends(db_store)):
    item = _get_or_404(store, "roadmap_item", item_id, "Roadmap item", with_links=True)
    try:
        suggestion = await services.suggest_item_score(item)
    except LLMCallError as exc:
        raise _llm_error(exc) from exc
    return suggestion.as_dict()


@app.post("/api/roadmap-items/{item_id}/apply-score", response_model=RoadmapItemOut, responses=_GATED,
          tags=["Roadmap", "AI"], summary="Apply RICE inputs and recompute the score")
async def apply_score(item_id: int, body: ApplyScoreIn, store: EntityStore = Depends(db_store)):
    result = services.apply_score_suggestion(store, item_id, body.model_dump())
    if result is None:
        raise HTTPException(404, "Roadmap item not found")
    if isinstance(result, GatingFailure):
        return _gating_response(result)
    store.commit()
    return services.roadmap_item_summary(_get_or_404(store, "roadmap_item", item_id, "Roadmap item", with_links=True))


# ---------------------------------------------------------------------------
# Routes: Graph & Stats
# ---------------------------------------------------------------------------


@app.get("/api/graph", response_model=GraphOut, tags=["Graph"], summary="Strategy graph with orphan flags")
async def get_graph(
    types: str | None = Query(None, description="Comma-separated: objective, initiative, epic, feature, problem, signal"),
    statuses: str | None = Query(None, description="Comma-separated statuses to keep (nodes without status always pass)"),
    search: str | None = Query(None, description="Case-insensitive label search"),
    objective_ids: str | None = Query(None, description="Comma-separated objective ids; keeps their connected nodes"),
    orphans_only: bool = Query(False),
    store: EntityStore = Depends(db_store),
):
    try:
        objectives = [int(i) for i in _csv(objective_ids) or []]
    except ValueError as exc:
        raise HTTPException(400, "objective_ids must be integers") from exc
    try:
        graph = filter_graph(
            build_graph(store), types=_csv(types), statuses=_csv(statuses),
            search=search, objective_ids=objectives, orphans_only=orphans_only,
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    return graph.as_dict()


@app.get("/api/graph/orphans", response_model=OrphanCountsOut,
         tags=["Graph"], summary="Orphan counts per node type")
async def get_orphans(store: EntityStore = Depends(db_store)):
    return count_orphans(store)


@app.get("/api/stats", response_model=StatsOut, tags=["Stats"], summary="Get aggregate statistics")
async def get_stats(store: EntityStore = Depends(db_store)):
    return services.compute_stats(store)


# ---------------------------------------------------------------------------
# Routes: Import & Reset
# ---------------------------------------------------------------------------


@app.post("/api/import/signals", response_model=ImportResult,
          tags=["Admin"], summary="Import signals from an XLSX spreadsheet")
async def import_signals(file: UploadFile = File(...), store: EntityStore = Depends(db_store)):
    if not file.filename or not file.filename.endswith(".xlsx"):
        raise HTTPException(400, "Only .xlsx files are supported")
    content = await file.read()
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(suffix=".xlsx", delete=False) as f:
            tmp_path = Path(f.name)
            f.write(content)
        return import_signals_xlsx(tmp_path, store)
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    finally:
        if tmp_path:
            tmp_path.unlink(missing_ok=True)


@app.delete("/api/reset", tags=["Admin"], summary="Delete all data")
async def reset_db(session: Session = Depends(db_session)):
    services.reset_all(session)
    session.commit()
    return {"ok": True}


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    settings = get_settings()
    uvicorn.run("foundry.app:app", host=settings.host, port=settings.port, reload=True)


if __name__ == "__main__":
    main()
