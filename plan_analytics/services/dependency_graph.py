"""
Dependency Graph Engine — graph analysis of activity prerequisites.

Activities become nodes keyed by activityId; every dependency that points
at an existing activity becomes an edge prerequisite → dependent. Unknown
targets are kept aside for reporting instead of being silently lost.

The traversals here (cycle search, Kahn ordering, longest path) are
written out rather than delegated to networkx helpers because their
tie-breaking is part of the contract: the same snapshot always yields the
same order and the same critical path, cyclic input included.
"""

import logging
import sys
from collections import deque
from collections.abc import Callable, Iterable, Sequence
from typing import Optional

import networkx as nx

from plan_analytics.models import (
    Activity,
    ActivityStatus,
    BlockedActivity,
    CriticalPathInfo,
    DependencyHealth,
    matches,
)
from plan_analytics.parsing import parse_dependencies, round_half_up
from plan_analytics.services.temporal import planned_duration_hours

logger = logging.getLogger(__name__)


class DependencyGraph:
    """
    Ephemeral prerequisite graph for one activity snapshot.

    Build it fresh per call with from_activities(); it holds no state that
    outlives the snapshot it was built from.
    """

    def __init__(self):
        self.graph: nx.DiGraph = nx.DiGraph()
        self.activities: dict[str, Activity] = {}
        self.missing: dict[str, list[str]] = {}

    @classmethod
    def from_activities(cls, activities: Sequence[Activity]) -> "DependencyGraph":
        engine = cls()
        engine.build_graph(activities)
        return engine

    def build_graph(self, activities: Sequence[Activity]) -> nx.DiGraph:
        """
        Convert activities into a directed graph.

        Each activity = a node. Each known dependency = an edge from the
        prerequisite to the activity that waits on it.
        """
        G = nx.DiGraph()

        # Later duplicates win, like a dict built from the rows
        self.activities = {a.activity_id: a for a in activities if a.activity_id}
        known_ids = {a.activity_id for a in activities if a.activity_id}

        for activity_id in self.activities:
            G.add_node(activity_id)

        self.missing = {}
        for activity_id, activity in self.activities.items():
            for dependency_id in parse_dependencies(activity.dependencies):
                if dependency_id in known_ids:
                    G.add_edge(dependency_id, activity_id)

        # Reported per row, even for rows the graph collapsed as duplicates
        for activity in activities:
            unknown = [
                dependency_id
                for dependency_id in parse_dependencies(activity.dependencies)
                if dependency_id not in known_ids
            ]
            if unknown:
                self.missing[activity.activity_id] = unknown

        self.graph = G
        logger.debug(
            f"Built dependency graph: {G.number_of_nodes()} nodes, "
            f"{G.number_of_edges()} edges"
        )
        return G

    def dependencies_of(self, activity_id: str) -> list[str]:
        """Known prerequisites, in the order the activity lists them."""
        if activity_id not in self.graph:
            return []
        return list(self.graph.predecessors(activity_id))

    def find_cycles(self) -> set[str]:
        """
        Every activity touched by a dependency loop.

        Depth-first search with gray (on the stack) and black (finished)
        marks. When an edge reaches a gray node, everything on the stack
        from that node onward is part of a loop.
        """
        visited: set[str] = set()
        visiting: set[str] = set()
        stack: list[str] = []
        cycle_ids: set[str] = set()

        for root in self.graph.nodes:
            if root in visited:
                continue
            visiting.add(root)
            stack.append(root)
            frames = [(root, iter(self.dependencies_of(root)))]

            while frames:
                node, pending = frames[-1]
                advanced = False
                for dependency_id in pending:
                    if dependency_id in visiting:
                        cycle_ids.update(stack[stack.index(dependency_id):])
                        continue
                    if dependency_id not in visited:
                        visiting.add(dependency_id)
                        stack.append(dependency_id)
                        frames.append(
                            (dependency_id, iter(self.dependencies_of(dependency_id)))
                        )
                        advanced = True
                        break
                if not advanced:
                    frames.pop()
                    stack.pop()
                    visiting.discard(node)
                    visited.add(node)

        if cycle_ids:
            logger.warning(f"Dependency cycle across {len(cycle_ids)} activities")
        return cycle_ids

    def missing_dependencies(self) -> dict[str, list[str]]:
        return {key: list(value) for key, value in self.missing.items()}

    def health(self) -> DependencyHealth:
        missing = self.missing_dependencies()
        cycle_ids = self.find_cycles()
        if missing:
            logger.warning(
                f"{len(missing)} activities reference unknown dependencies"
            )
        return DependencyHealth(
            missing_by_activity=missing,
            missing_dependency_links=sum(len(ids) for ids in missing.values()),
            activities_with_missing_dependencies=len(missing),
            cycle_activity_ids=[n for n in self.graph.nodes if n in cycle_ids],
            cycle_count=len(cycle_ids),
        )

    def topological_order(self) -> list[str]:
        """
        Kahn's algorithm over the known-dependency graph.

        Ties resolve in snapshot order. Activities stuck in a cycle are
        appended at the end, in snapshot order, so scheduling can still
        proceed on cyclic plans.
        """
        in_degree = {node: self.graph.in_degree(node) for node in self.graph.nodes}
        queue = deque(node for node, degree in in_degree.items() if degree == 0)
        ordered: list[str] = []

        while queue:
            node = queue.popleft()
            ordered.append(node)
            for dependent in self.graph.successors(node):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(ordered) < len(in_degree):
            placed = set(ordered)
            leftovers = [node for node in in_degree if node not in placed]
            logger.debug(f"Appending {len(leftovers)} cyclic activities unordered")
            ordered.extend(leftovers)
        return ordered

    def is_acyclic(self) -> bool:
        return nx.is_directed_acyclic_graph(self.graph)

    def critical_path(
        self,
        duration_of: Optional[Callable[[Activity], float]] = None,
    ) -> CriticalPathInfo:
        """
        Longest weighted chain through the plan.

        Each activity finishes at the latest finish among its prerequisites
        plus its own duration. Dependency type does not offset timing;
        every edge is finish-to-start.
        """
        duration_of = duration_of or planned_duration_hours
        finish_times: dict[str, float] = {}
        best_predecessor: dict[str, Optional[str]] = {}

        for activity_id in self.topological_order():
            activity = self.activities.get(activity_id)
            if activity is None:
                continue
            best_finish = 0.0
            best_dependency = None
            for dependency_id in self.dependencies_of(activity_id):
                dependency_finish = finish_times.get(dependency_id, 0.0)
                if dependency_finish > best_finish:
                    best_finish = dependency_finish
                    best_dependency = dependency_id
            finish_times[activity_id] = best_finish + duration_of(activity)
            best_predecessor[activity_id] = best_dependency

        terminal = None
        longest_finish = 0.0
        for activity_id, finish in finish_times.items():
            if finish > longest_finish:
                longest_finish = finish
                terminal = activity_id

        path: list[str] = []
        seen: set[str] = set()
        cursor = terminal
        while cursor and cursor not in seen:
            path.append(cursor)
            seen.add(cursor)
            cursor = best_predecessor.get(cursor)
        path.reverse()

        return CriticalPathInfo(
            path=path,
            duration_hours=round_half_up(min(longest_finish, sys.float_info.max)),
            has_cycles=not self.is_acyclic(),
        )

    def blocked_activities(
        self,
        activities: Optional[Iterable[Activity]] = None,
    ) -> list[BlockedActivity]:
        """
        Activities waiting on an existing prerequisite that is not Completed.

        Pass enriched activities so the inferred status is what counts.
        """
        rows = list(activities) if activities is not None else list(self.activities.values())
        by_id = {a.activity_id: a for a in rows}
        blocked = []
        for activity in rows:
            blocking = [
                dependency_id
                for dependency_id in parse_dependencies(activity.dependencies)
                if dependency_id in by_id
                and not matches(by_id[dependency_id].activity_status, ActivityStatus.COMPLETED)
            ]
            if blocking:
                blocked.append(
                    BlockedActivity(
                        **activity.model_dump(),
                        blocking_dependencies=blocking,
                    )
                )
        return blocked
