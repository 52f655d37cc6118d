"""Entity store: the persistence collaborator used by services, gate and graph.

Wraps a SQLAlchemy ``Session`` behind a small ``find/get/insert/update/delete``
contract keyed by entity *kind* (``"signal"``, ``"roadmap_item"``, ...).
``with_links=True`` eager-loads the kind's link collections so callers never
trigger per-row lazy loads.  Deletes cascade through the ORM relationships:
signal/problem links, roadmap-item/problem links and roadmap-item/objective
links go with their owner; child roadmap items keep a dangling ``parent_id``.

Writes are flushed but not committed; the caller owns the transaction.
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from foundry.models import (
    Base,
    Objective,
    Prd,
    Problem,
    Release,
    RoadmapItem,
    RoadmapItemObjective,
    RoadmapItemProblem,
    Signal,
    SignalProblem,
)

log = logging.getLogger(__name__)

KIND_MODELS: dict[str, type[Base]] = {
    "signal": Signal,
    "problem": Problem,
    "objective": Objective,
    "release": Release,
    "roadmap_item": RoadmapItem,
    "prd": Prd,
    "signal_problem": SignalProblem,
    "roadmap_item_problem": RoadmapItemProblem,
    "roadmap_item_objective": RoadmapItemObjective,
}


def _link_options(kind: str) -> tuple:
    if kind == "signal":
        return (selectinload(Signal.problem_links).selectinload(SignalProblem.problem),)
    if kind == "problem":
        return (
            selectinload(Problem.signal_links).selectinload(SignalProblem.signal),
            selectinload(Problem.roadmap_links).selectinload(RoadmapItemProblem.roadmap_item),
        )
    if kind == "objective":
        return (selectinload(Objective.roadmap_links),)
    if kind == "release":
        return (selectinload(Release.roadmap_items),)
    if kind == "roadmap_item":
        return (
            selectinload(RoadmapItem.problem_links).selectinload(RoadmapItemProblem.problem),
            selectinload(RoadmapItem.objective_links).selectinload(RoadmapItemObjective.objective),
            selectinload(RoadmapItem.release),
        )
    if kind == "prd":
        return (selectinload(Prd.roadmap_item), selectinload(Prd.messages))
    if kind == "signal_problem":
        return (selectinload(SignalProblem.signal), selectinload(SignalProblem.problem))
    if kind == "roadmap_item_problem":
        return (selectinload(RoadmapItemProblem.problem), selectinload(RoadmapItemProblem.roadmap_item))
    if kind == "roadmap_item_objective":
        return (selectinload(RoadmapItemObjective.objective),)
    return ()


def _ordering(kind: str) -> tuple:
    if kind == "roadmap_item":
        return (RoadmapItem.score.desc().nulls_last(), RoadmapItem.id)
    if kind == "release":
        return (Release.target_date.desc().nulls_last(), Release.id.desc())
    model = KIND_MODELS[kind]
    if hasattr(model, "created_at"):
        return (model.created_at.desc(), model.id.desc())
    return (model.id,)


class EntityStore:
    """Kind-addressed CRUD over one session (one request / transaction)."""

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def model_for(kind: str) -> type[Base]:
        try:
            return KIND_MODELS[kind]
        except KeyError:
            raise ValueError(f"Unknown entity kind: {kind!r}") from None

    def find(
        self, kind: str, filters: dict[str, Any] | None = None, *, with_links: bool = False,
    ) -> list[Any]:
        model = self.model_for(kind)
        stmt = select(model)
        for field, value in (filters or {}).items():
            column = getattr(model, field, None)
            if column is None:
                raise ValueError(f"{kind} has no field {field!r}")
            stmt = stmt.where(column.is_(None) if value is None else column == value)
        stmt = self._with_links(stmt, kind) if with_links else stmt
        stmt = stmt.order_by(*_ordering(kind))
        return list(self.session.execute(stmt).scalars().all())

    def get(self, kind: str, entity_id: int | None, *, with_links: bool = False) -> Any | None:
        if entity_id is None:
            return None
        model = self.model_for(kind)
        stmt = select(model).where(model.id == entity_id)
        stmt = self._with_links(stmt, kind) if with_links else stmt
        return self.session.execute(stmt).scalars().first()

    @staticmethod
    def _with_links(stmt, kind: str):
        # populate_existing: collections already in the identity map may predate a cascade delete
        return stmt.options(*_link_options(kind)).execution_options(populate_existing=True)

    def insert(self, kind: str, record: dict[str, Any]) -> Any:
        obj = self.model_for(kind)(**record)
        self.session.add(obj)
        self.session.flush()
        return obj

    def update(self, kind: str, entity_id: int, patch: dict[str, Any]) -> Any | None:
        """Apply *patch* in place. Returns the updated entity, or None if it is gone."""
        obj = self.get(kind, entity_id)
        if obj is None:
            return None
        columns = self.model_for(kind).__table__.columns.keys()
        for field, value in patch.items():
            if field not in columns or field in ("id", "created_at"):
                raise ValueError(f"{kind} has no updatable field {field!r}")
            setattr(obj, field, value)
        self.session.flush()
        return obj

    def delete(self, kind: str, entity_id: int) -> bool:
        obj = self.get(kind, entity_id)
        if obj is None:
            return False
        self.session.delete(obj)
        self.session.flush()
        log.debug("Deleted %s %s", kind, entity_id)
        return True

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
