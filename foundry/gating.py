"""Status gate: may a problem or roadmap item move to the requested status?

The gate never writes.  It returns ``None`` when the transition is allowed and
a ``GatingFailure`` (a value, not an exception) when required links are
missing.  Callers persist the status change only on ``None``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from foundry.strategy import (
    REQ_ACCEPTED_PROBLEM,
    REQ_OBJECTIVE,
    REQ_PARENT_EPIC,
    REQ_PARENT_INITIATIVE,
    REQ_ROADMAP_ITEM,
    ItemRecord,
    StrategyIndex,
    missing_commit_requirements,
)

log = logging.getLogger(__name__)

REQUIREMENT_MESSAGES: dict[str, str] = {
    REQ_OBJECTIVE: "Link to at least 1 Objective",
    REQ_ACCEPTED_PROBLEM: "Link to at least 1 Accepted Problem",
    REQ_PARENT_INITIATIVE: "Set a parent Initiative",
    REQ_PARENT_EPIC: "Set a parent Epic",
}

PROBLEM_ACCEPT_MESSAGE = "Must link to at least one Initiative or Feature before accepting."


@dataclass(frozen=True)
class GatingFailure:
    """A blocked transition: requirement codes plus a user-facing message."""
    missing: list[str] = field(default_factory=list)
    message: str = ""
    error: str = "gating"

    def as_dict(self) -> dict[str, Any]:
        return {"error": self.error, "missing": list(self.missing), "message": self.message}


def commit_failure_message(missing: list[str]) -> str:
    return f"Before committing: {'; '.join(REQUIREMENT_MESSAGES[m] for m in missing)}."


def check_problem_transition(target_status: str | None, roadmap_links: int) -> GatingFailure | None:
    """Accepting a problem needs at least one roadmap item link (of any status)."""
    if target_status != "accepted" or roadmap_links > 0:
        return None
    return GatingFailure(missing=[REQ_ROADMAP_ITEM], message=PROBLEM_ACCEPT_MESSAGE)


def check_roadmap_item_transition(
    item: ItemRecord, target_status: str | None, index: StrategyIndex,
) -> GatingFailure | None:
    """Committing a roadmap item needs the links its type requires.

    *item* carries the stored status, with any pending type/parent change
    already applied.  Re-committing an already committed item is not re-checked.
    """
    if target_status != "committed" or item.status == "committed":
        return None
    missing = missing_commit_requirements(item, index)
    if not missing:
        return None
    return GatingFailure(missing=missing, message=commit_failure_message(missing))
