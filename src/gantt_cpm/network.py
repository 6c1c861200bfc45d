"""Dependency network and WBS outline built from the flat activity list."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import networkx as nx

from gantt_cpm.exceptions import CircularDependencyError, ValidationError
from gantt_cpm.logger import get_logger
from gantt_cpm.models import Activity

logger = get_logger()


def index_activities(activities: Sequence[Activity]) -> dict[str, int]:
    """Map activity id -> position. Raises ValidationError on duplicate ids."""
    index: dict[str, int] = {}
    for i, a in enumerate(activities):
        if a.id in index:
            raise ValidationError(f"Duplicate activity id {a.id!r}")
        index[a.id] = i
    return index


def build_dag(activities: Sequence[Activity], index: dict[str, int] | None = None) -> nx.DiGraph:
    """Scheduling network over non-summary activities.

    Nodes are activity indices. Links to unknown ids or involving summary
    rows are dropped. Raises CircularDependencyError on a cycle.
    """
    if index is None:
        index = index_activities(activities)
    G = nx.DiGraph()
    for i, a in enumerate(activities):
        if not a.is_summary:
            G.add_node(i, id=a.id)
    for i, a in enumerate(activities):
        if a.is_summary:
            continue
        for link in a.preds:
            p = index.get(link.id)
            if p is None:
                logger.debug(f"{a.id}: predecessor {link.id} not found, ignored")
                continue
            if activities[p].is_summary:
                logger.debug(f"{a.id}: summary predecessor {link.id} ignored")
                continue
            G.add_edge(p, i)
    if not nx.is_directed_acyclic_graph(G):
        cycle = [activities[u].id for u, _ in nx.find_cycle(G)]
        raise CircularDependencyError(cycle)
    return G


@dataclass
class Outline:
    """Explicit WBS tree.

    ``children`` maps each summary index to its direct child indices in
    outline order. The project row owns every row not nested under another
    summary.
    """

    parent: list[int | None]
    children: dict[int, list[int]] = field(default_factory=dict)
    project_row: int | None = None

    def summaries_bottom_up(self) -> list[int]:
        """Summary indices with every nested summary before its parent."""
        order = sorted((i for i in self.children if i != self.project_row), reverse=True)
        if self.project_row is not None:
            order.append(self.project_row)
        return order


def build_outline(activities: Sequence[Activity]) -> Outline:
    project_row = next((i for i, a in enumerate(activities) if a.is_project_row), None)
    outline = Outline(parent=[None] * len(activities), project_row=project_row)
    for i, a in enumerate(activities):
        if a.is_summary or i == project_row:
            outline.children[i] = []

    open_summaries: list[int] = []
    for i, a in enumerate(activities):
        if i == project_row:
            continue
        while open_summaries and activities[open_summaries[-1]].level >= a.level:
            open_summaries.pop()
        parent = open_summaries[-1] if open_summaries else project_row
        if parent is not None:
            outline.parent[i] = parent
            outline.children[parent].append(i)
        if a.is_summary:
            open_summaries.append(i)
    return outline


def trace_chain(activities: Sequence[Activity], start_id: str, direction: str = "both") -> set[str]:
    """Ids linked to *start_id* through predecessor chains.

    *direction* is ``"bwd"`` (predecessors), ``"fwd"`` (successors) or
    ``"both"``. The start id is included; an unknown id gives an empty set.
    """
    if direction not in ("fwd", "bwd", "both"):
        raise ValueError(f"Unknown trace direction {direction!r}")
    ids = {a.id for a in activities}
    if start_id not in ids:
        return set()
    G = nx.DiGraph()
    G.add_nodes_from(ids)
    for a in activities:
        for link in a.preds:
            if link.id in ids:
                G.add_edge(link.id, a.id)

    result = {start_id}
    if direction in ("bwd", "both"):
        result |= nx.ancestors(G, start_id)
    if direction in ("fwd", "both"):
        result |= nx.descendants(G, start_id)
    return result
