"""
Dependency Graph Tests — graph building, cycles, ordering, critical path
and blocked activities.
"""

import pytest

from plan_analytics.services.dependency_graph import DependencyGraph
from plan_analytics.services.normalizer import normalize_activities


def graph_of(*rows):
    return DependencyGraph.from_activities(normalize_activities(rows))


@pytest.fixture
def linear_plan():
    """A simple linear plan: A → B → C."""
    return graph_of(
        {"activityId": "A", "activityName": "Foundations", "plannedDurationHours": 20},
        {"activityId": "B", "activityName": "Frame", "plannedDurationHours": 40, "dependencies": "A"},
        {"activityId": "C", "activityName": "Fit-out", "plannedDurationHours": 30, "dependencies": "B"},
    )


def diamond(b_hours, c_hours):
    """
    A → B → D
    A → C → D
    """
    return graph_of(
        {"activityId": "A", "plannedDurationHours": 10},
        {"activityId": "B", "plannedDurationHours": b_hours, "dependencies": "A"},
        {"activityId": "C", "plannedDurationHours": c_hours, "dependencies": "A"},
        {"activityId": "D", "plannedDurationHours": 5, "dependencies": "B, C"},
    )


class TestGraphBuilding:

    def test_node_and_edge_count(self, linear_plan):
        assert linear_plan.graph.number_of_nodes() == 3
        assert linear_plan.graph.number_of_edges() == 2

    def test_dependencies_in_listed_order(self):
        engine = graph_of(
            {"activityId": "A"},
            {"activityId": "B"},
            {"activityId": "C", "dependencies": "B, A"},
        )
        assert engine.dependencies_of("C") == ["B", "A"]
        assert engine.dependencies_of("UNKNOWN") == []

    def test_activities_without_id_are_not_nodes(self):
        engine = graph_of({"activityId": ""}, {"activityId": "A"})
        assert list(engine.graph.nodes) == ["A"]

    def test_duplicate_ids_last_record_wins(self):
        engine = graph_of(
            {"activityId": "A"},
            {"activityId": "B", "dependencies": "A"},
            {"activityId": "B"},
        )
        assert engine.dependencies_of("B") == []


class TestMissingDependencies:

    def test_unknown_target_is_reported_not_traversed(self):
        engine = graph_of(
            {"activityId": "ACT-0001", "dependencies": "ACT-9999"},
        )
        assert engine.missing_dependencies() == {"ACT-0001": ["ACT-9999"]}
        assert engine.graph.number_of_edges() == 0

    def test_health_summary(self):
        engine = graph_of(
            {"activityId": "A", "dependencies": "X, Y"},
            {"activityId": "B", "dependencies": "A, Z"},
        )
        health = engine.health()
        assert health.missing_dependency_links == 3
        assert health.activities_with_missing_dependencies == 2
        assert health.cycle_count == 0


class TestCycleDetection:

    def test_three_node_loop(self):
        engine = graph_of(
            {"activityId": "A", "dependencies": "B"},
            {"activityId": "B", "dependencies": "C"},
            {"activityId": "C", "dependencies": "A"},
        )
        assert engine.find_cycles() == {"A", "B", "C"}
        assert not engine.is_acyclic()

    def test_chain_has_no_cycle(self):
        engine = graph_of(
            {"activityId": "A", "dependencies": "B"},
            {"activityId": "B", "dependencies": "C"},
            {"activityId": "C"},
        )
        assert engine.find_cycles() == set()

    def test_self_dependency(self):
        engine = graph_of({"activityId": "A", "dependencies": "A"})
        assert engine.find_cycles() == {"A"}

    def test_activity_feeding_a_loop_is_not_in_it(self):
        engine = graph_of(
            {"activityId": "A", "dependencies": "B"},
            {"activityId": "B", "dependencies": "A"},
            {"activityId": "D", "dependencies": "A"},
        )
        assert engine.find_cycles() == {"A", "B"}
        health = engine.health()
        assert health.cycle_activity_ids == ["A", "B"]
        assert health.cycle_count == 2


class TestTopologicalOrder:

    def test_prerequisites_first(self):
        engine = graph_of(
            {"activityId": "A", "dependencies": "B"},
            {"activityId": "B", "dependencies": "C"},
            {"activityId": "C"},
        )
        assert engine.topological_order() == ["C", "B", "A"]

    def test_ties_keep_snapshot_order(self):
        engine = graph_of(
            {"activityId": "X"},
            {"activityId": "Y"},
            {"activityId": "Z", "dependencies": "X"},
        )
        assert engine.topological_order() == ["X", "Y", "Z"]

    def test_cycle_members_appended(self):
        engine = graph_of(
            {"activityId": "A", "dependencies": "B"},
            {"activityId": "B", "dependencies": "A"},
            {"activityId": "C"},
        )
        assert engine.topological_order() == ["C", "A", "B"]


class TestCriticalPath:

    def test_linear_plan(self, linear_plan):
        """In a linear plan every activity is on the critical path."""
        cp = linear_plan.critical_path()
        assert cp.path == ["A", "B", "C"]
        assert cp.duration_hours == 90
        assert cp.has_cycles is False

    def test_diamond_takes_longer_branch(self):
        cp = diamond(b_hours=30, c_hours=20).critical_path()
        assert cp.path == ["A", "B", "D"]
        assert cp.duration_hours == 45

    def test_diamond_other_branch(self):
        cp = diamond(b_hours=20, c_hours=50).critical_path()
        assert cp.path == ["A", "C", "D"]
        assert cp.duration_hours == 65

    def test_single_activity(self):
        cp = graph_of({"activityId": "X", "plannedDurationHours": 100}).critical_path()
        assert cp.path == ["X"]
        assert cp.duration_hours == 100

    def test_empty_plan(self):
        cp = graph_of().critical_path()
        assert cp.path == []
        assert cp.duration_hours == 0

    def test_cyclic_plan_degrades(self):
        engine = graph_of(
            {"activityId": "A", "plannedDurationHours": 8, "dependencies": "B"},
            {"activityId": "B", "plannedDurationHours": 8, "dependencies": "A"},
        )
        cp = engine.critical_path()
        assert cp.has_cycles is True
        assert cp.duration_hours == 16
        assert cp.path == ["A", "B"]

    def test_duration_rounded(self):
        cp = graph_of({"activityId": "A", "plannedDurationHours": 10.5}).critical_path()
        assert cp.duration_hours == 11


class TestBlockedActivities:

    def test_unfinished_prerequisite_blocks(self):
        engine = graph_of(
            {"activityId": "A", "activityStatus": "In Progress"},
            {"activityId": "B", "dependencies": "A"},
            {"activityId": "C", "dependencies": "B, GHOST"},
        )
        blocked = engine.blocked_activities()
        assert [b.activity_id for b in blocked] == ["B", "C"]
        assert blocked[1].blocking_dependencies == ["B"]

    def test_completed_prerequisite_does_not_block(self):
        engine = graph_of(
            {"activityId": "A", "activityStatus": "Completed"},
            {"activityId": "B", "dependencies": "A"},
        )
        assert engine.blocked_activities() == []

    def test_missing_prerequisite_does_not_block(self):
        engine = graph_of({"activityId": "A", "dependencies": "GHOST"})
        assert engine.blocked_activities() == []
