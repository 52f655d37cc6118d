"""Shared strategy predicates used by the status gate, graph builder and orphan counter.

The business invariant is the same everywhere:

- an *accepted* problem must be linked to at least one roadmap item;
- a *committed* (or later) roadmap item must be justified by an accepted
  problem and, depending on its type, aligned to an objective or placed under
  a parent.

The gate evaluates it prospectively for one item before a write; the graph
evaluates it retrospectively for every item in the dataset.  Both go through
``missing_commit_requirements`` so the two views cannot drift apart.

Everything here is pure and works on a ``StrategyIndex`` -- an in-memory
id -> record map built once per operation (``load_index`` for the whole
dataset, ``load_lineage`` for one item and its ancestors).  Ancestor walks are
bounded by ``INHERITANCE_DEPTH`` so a cyclic or self-referential ``parent_id``
cannot loop.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Literal

from foundry.store import EntityStore

log = logging.getLogger(__name__)

ItemType = Literal["initiative", "epic", "feature"]

ITEM_TYPES: tuple[str, ...] = ("initiative", "epic", "feature")
ITEM_STATUSES: tuple[str, ...] = ("proposed", "committed", "in-progress", "done")
PROBLEM_STATUSES: tuple[str, ...] = ("draft", "shaped", "proposed", "accepted", "rejected")
SIGNAL_STATUSES: tuple[str, ...] = ("new", "processed", "discarded")

# Statuses that claim the item has passed the commit gate
COMMITTED_STATUSES = frozenset({"committed", "in-progress", "done"})

# How many levels up an item may borrow an accepted problem: epic -> initiative,
# feature -> epic -> initiative
INHERITANCE_DEPTH: dict[str, int] = {"initiative": 0, "epic": 1, "feature": 2}

# Requirement codes in the order they are reported
REQ_OBJECTIVE = "objective"
REQ_ACCEPTED_PROBLEM = "acceptedProblem"
REQ_PARENT_INITIATIVE = "parentInitiative"
REQ_PARENT_EPIC = "parentEpic"
REQ_ROADMAP_ITEM = "roadmapItem"


@dataclass(frozen=True)
class ItemRecord:
    """The slice of a roadmap item the invariant looks at."""
    id: int
    type: str
    status: str
    parent_id: int | None = None
    objective_links: int = 0
    accepted_problem_links: int = 0

    @property
    def has_objective(self) -> bool:
        return self.objective_links > 0

    @property
    def has_accepted_problem(self) -> bool:
        return self.accepted_problem_links > 0


@dataclass
class StrategyIndex:
    """Pre-loaded roadmap items plus per-problem roadmap link counts."""
    items: dict[int, ItemRecord] = field(default_factory=dict)
    problem_link_counts: Counter[int] = field(default_factory=Counter)

    def parent_of(self, item: ItemRecord) -> ItemRecord | None:
        if item.parent_id is None:
            return None
        parent = self.items.get(item.parent_id)
        if parent is None:
            log.debug("Roadmap item %s has dangling parent_id %s", item.id, item.parent_id)
        return parent


# ---------------------------------------------------------------------------
# Building records
# ---------------------------------------------------------------------------


def item_record(item: Any, **overrides: Any) -> ItemRecord:
    """Build an ``ItemRecord`` from an ORM row loaded with links.

    *overrides* (``type``, ``status``, ``parent_id``) let the gate evaluate the
    item as it would look after a pending patch.
    """
    record = ItemRecord(
        id=item.id,
        type=item.type,
        status=item.status,
        parent_id=item.parent_id,
        objective_links=len(item.objective_links),
        accepted_problem_links=sum(
            1 for link in item.problem_links if link.problem is not None and link.problem.status == "accepted"
        ),
    )
    return replace(record, **overrides) if overrides else record


def build_index(items: Iterable[Any], objective_links: Iterable[Any], problem_links: Iterable[Any]) -> StrategyIndex:
    """Index rows already fetched from the store.

    *problem_links* must have their ``problem`` loaded.  Both link lists are
    the global ones: an item's own links are looked up by ``roadmap_item_id``
    in the same collection its ancestors' links come from.
    """
    objective_counts: Counter[int] = Counter(link.roadmap_item_id for link in objective_links)
    accepted_counts: Counter[int] = Counter()
    problem_link_counts: Counter[int] = Counter()
    for link in problem_links:
        problem_link_counts[link.problem_id] += 1
        if link.problem is not None and link.problem.status == "accepted":
            accepted_counts[link.roadmap_item_id] += 1

    records = {
        item.id: ItemRecord(
            id=item.id,
            type=item.type,
            status=item.status,
            parent_id=item.parent_id,
            objective_links=objective_counts[item.id],
            accepted_problem_links=accepted_counts[item.id],
        )
        for item in items
    }
    return StrategyIndex(items=records, problem_link_counts=problem_link_counts)


def load_index(store: EntityStore) -> StrategyIndex:
    """Load every roadmap item and link once into an in-memory index (no N+1)."""
    return build_index(
        store.find("roadmap_item"),
        store.find("roadmap_item_objective"),
        store.find("roadmap_item_problem", with_links=True),
    )


def load_lineage(store: EntityStore, record: ItemRecord) -> StrategyIndex:
    """Index holding *record* plus as many ancestors as its type can inherit from."""
    index = StrategyIndex(items={record.id: record})
    current = record
    for _ in range(INHERITANCE_DEPTH.get(record.type, INHERITANCE_DEPTH["feature"])):
        if current.parent_id is None or current.parent_id in index.items:
            break
        parent = store.get("roadmap_item", current.parent_id, with_links=True)
        if parent is None:
            break
        current = item_record(parent)
        index.items[current.id] = current
    return index


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def has_justification(item: ItemRecord, index: StrategyIndex) -> bool:
    """True if *item* or an ancestor within its inheritance depth links an accepted problem."""
    if item.has_accepted_problem:
        return True
    seen = {item.id}
    current = item
    for _ in range(INHERITANCE_DEPTH.get(item.type, INHERITANCE_DEPTH["feature"])):
        parent = index.parent_of(current)
        if parent is None or parent.id in seen:
            return False
        if parent.has_accepted_problem:
            return True
        seen.add(parent.id)
        current = parent
    return False


def missing_commit_requirements(item: ItemRecord, index: StrategyIndex) -> list[str]:
    """Every requirement *item* fails for being committed, in reporting order.

    Anything that is not an initiative or epic is held to the feature rules.
    """
    missing: list[str] = []
    if item.type == "initiative":
        if not item.has_objective:
            missing.append(REQ_OBJECTIVE)
        if not item.has_accepted_problem:
            missing.append(REQ_ACCEPTED_PROBLEM)
        return missing

    if item.parent_id is None:
        missing.append(REQ_PARENT_INITIATIVE if item.type == "epic" else REQ_PARENT_EPIC)
    if not has_justification(item, index):
        missing.append(REQ_ACCEPTED_PROBLEM)
    return missing


def is_orphan_item(item: ItemRecord, index: StrategyIndex) -> bool:
    if item.status not in COMMITTED_STATUSES:
        return False
    return bool(missing_commit_requirements(item, index))


def is_orphan_problem(status: str, roadmap_links: int) -> bool:
    return status == "accepted" and roadmap_links == 0


def node_type_for(item_type: str) -> str:
    return item_type if item_type in ("initiative", "epic") else "feature"
