"""Strategy graph: every entity as a typed node, every link as a typed edge.

Edges point from the dependent entity to what it depends on:

- ``aligns_to``     roadmap item -> objective
- ``contains``      child roadmap item -> parent roadmap item
- ``justified_by``  roadmap item -> problem
- ``derived_from``  problem -> signal

Each node carries ``is_orphan`` computed with the predicates in
``foundry.strategy`` against the whole dataset.  ``count_orphans`` runs the
same predicates without building labels or metadata.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable

from foundry.store import EntityStore
from foundry.strategy import build_index, is_orphan_item, is_orphan_problem, load_index, node_type_for

log = logging.getLogger(__name__)

NODE_TYPES: tuple[str, ...] = ("objective", "initiative", "epic", "feature", "problem", "signal")


@dataclass
class GraphNode:
    id: str
    type: str
    entity_id: int
    label: str
    status: str | None
    is_orphan: bool = False
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass
class GraphEdge:
    id: str
    source: str
    target: str
    type: str


@dataclass
class GraphData:
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {"nodes": [asdict(n) for n in self.nodes], "edges": [asdict(e) for e in self.edges]}


def node_id(node_type: str, entity_id: int) -> str:
    return f"{node_type}-{entity_id}"


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


def build_graph(store: EntityStore) -> GraphData:
    """Project the current store into a graph snapshot.

    Pass 1 creates nodes (orphan flags come from the pre-loaded strategy
    index); pass 2 resolves edges against the id -> type map.  A ``contains``
    edge is only emitted when the parent item exists.
    """
    objectives = store.find("objective")
    items = store.find("roadmap_item")
    problems = store.find("problem")
    signals = store.find("signal")
    objective_links = store.find("roadmap_item_objective")
    problem_links = store.find("roadmap_item_problem", with_links=True)
    signal_links = store.find("signal_problem")
    index = build_index(items, objective_links, problem_links)

    graph = GraphData()

    for obj in objectives:
        graph.nodes.append(GraphNode(
            id=node_id("objective", obj.id), type="objective", entity_id=obj.id,
            label=obj.name, status=None,
            meta={"weight": obj.weight, "timeframe": obj.timeframe, "metric": obj.metric},
        ))

    item_types: dict[int, str] = {}
    for item in items:
        ntype = node_type_for(item.type)
        item_types[item.id] = ntype
        graph.nodes.append(GraphNode(
            id=node_id(ntype, item.id), type=ntype, entity_id=item.id,
            label=item.title, status=item.status,
            is_orphan=is_orphan_item(index.items[item.id], index),
            meta={"score": item.score, "effort_size": item.effort_size, "target_month": item.target_month},
        ))

    for prob in problems:
        graph.nodes.append(GraphNode(
            id=node_id("problem", prob.id), type="problem", entity_id=prob.id,
            label=prob.title, status=prob.status,
            is_orphan=is_orphan_problem(prob.status, index.problem_link_counts[prob.id]),
            meta={"severity": prob.severity, "frequency": prob.frequency},
        ))

    for sig in signals:
        graph.nodes.append(GraphNode(
            id=node_id("signal", sig.id), type="signal", entity_id=sig.id,
            label=sig.customer or sig.source or "Signal", status=sig.status,
            meta={"source": sig.source, "customer": sig.customer, "arr": sig.arr},
        ))

    for link in objective_links:
        if link.roadmap_item_id not in item_types:
            continue
        graph.edges.append(GraphEdge(
            id=f"edge-alignsto-{link.id}",
            source=node_id(item_types[link.roadmap_item_id], link.roadmap_item_id),
            target=node_id("objective", link.objective_id),
            type="aligns_to",
        ))

    for item in items:
        if item.parent_id is None:
            continue
        parent_type = item_types.get(item.parent_id)
        if parent_type is None:
            continue
        graph.edges.append(GraphEdge(
            id=f"edge-contains-{item.id}",
            source=node_id(item_types[item.id], item.id),
            target=node_id(parent_type, item.parent_id),
            type="contains",
        ))

    for link in problem_links:
        if link.roadmap_item_id not in item_types:
            continue
        graph.edges.append(GraphEdge(
            id=f"edge-justifiedby-{link.id}",
            source=node_id(item_types[link.roadmap_item_id], link.roadmap_item_id),
            target=node_id("problem", link.problem_id),
            type="justified_by",
        ))

    for link in signal_links:
        graph.edges.append(GraphEdge(
            id=f"edge-derivedfrom-{link.id}",
            source=node_id("problem", link.problem_id),
            target=node_id("signal", link.signal_id),
            type="derived_from",
        ))

    log.debug("Built strategy graph: %d nodes, %d edges", len(graph.nodes), len(graph.edges))
    return graph


# ---------------------------------------------------------------------------
# Orphan counts
# ---------------------------------------------------------------------------


def count_orphans(store: EntityStore) -> dict[str, int]:
    """Orphan totals per type for dashboard banners."""
    index = load_index(store)
    by_type: Counter[str] = Counter()
    for record in index.items.values():
        if is_orphan_item(record, index):
            by_type[node_type_for(record.type)] += 1
    problems = sum(
        1 for prob in store.find("problem")
        if is_orphan_problem(prob.status, index.problem_link_counts[prob.id])
    )
    return {
        "problems": problems,
        "initiatives": by_type["initiative"],
        "epics": by_type["epic"],
        "features": by_type["feature"],
    }


def orphan_counts_from_graph(graph: GraphData) -> dict[str, int]:
    """Same totals as ``count_orphans``, grouped from an already built graph."""
    by_type = Counter(n.type for n in graph.nodes if n.is_orphan)
    return {
        "problems": by_type["problem"],
        "initiatives": by_type["initiative"],
        "epics": by_type["epic"],
        "features": by_type["feature"],
    }


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


def filter_graph(
    graph: GraphData,
    *,
    types: Iterable[str] | None = None,
    statuses: Iterable[str] | None = None,
    search: str | None = None,
    objective_ids: Iterable[int] | None = None,
    orphans_only: bool = False,
) -> GraphData:
    """Subgraph for the given filters; edges survive only if both ends do.

    With *objective_ids*, nodes must also be connected (ignoring edge
    direction) to one of those objectives. Raises ValueError for a type
    outside NODE_TYPES.
    """
    type_set = set(types) if types else None
    if type_set is not None and not type_set <= set(NODE_TYPES):
        unknown = ", ".join(sorted(type_set - set(NODE_TYPES)))
        raise ValueError(f"Unknown node type(s): {unknown}")
    status_set = set(statuses) if statuses else None
    q = (search or "").strip().lower()

    def keep(node: GraphNode) -> bool:
        if type_set is not None and node.type not in type_set:
            return False
        if status_set is not None and node.status and node.status not in status_set:
            return False
        if q and q not in node.label.lower():
            return False
        return not orphans_only or node.is_orphan

    nodes = [n for n in graph.nodes if keep(n)]

    objective_set = set(objective_ids) if objective_ids else None
    if objective_set is not None:
        connected = _connected_ids(
            graph, {n.id for n in graph.nodes if n.type == "objective" and n.entity_id in objective_set},
        )
        nodes = [n for n in nodes if n.id in connected]

    kept = {n.id for n in nodes}
    edges = [e for e in graph.edges if e.source in kept and e.target in kept]
    return GraphData(nodes=nodes, edges=edges)


def _connected_ids(graph: GraphData, seeds: set[str]) -> set[str]:
    adjacency: dict[str, set[str]] = {}
    for e in graph.edges:
        adjacency.setdefault(e.source, set()).add(e.target)
        adjacency.setdefault(e.target, set()).add(e.source)
    seen = set(seeds)
    stack = list(seeds)
    while stack:
        for neighbour in adjacency.get(stack.pop(), ()):
            if neighbour not in seen:
                seen.add(neighbour)
                stack.append(neighbour)
    return seen
