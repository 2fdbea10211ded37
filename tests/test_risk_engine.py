"""
Risk Engine Tests — the fixed scoring heuristic and the enrichment pass.

The weights are a calibrated heuristic, so these tests pin exact values
rather than trends wherever the arithmetic is simple enough to check by
hand.
"""

from datetime import datetime

import pytest

from plan_analytics.services.normalizer import normalize_activity
from plan_analytics.services.risk_engine import (
    compute_risk_score,
    derive_risk_level,
    enrich_activities,
    enrich_activity,
    explain_risk,
    risk_level_counts,
)

REFERENCE = datetime(2026, 1, 10)


def score(**fields):
    return compute_risk_score(normalize_activity(fields), REFERENCE)


@pytest.fixture
def overdue_record():
    """Started on time, half done, planned end a week ago."""
    return {
        "activityId": "ACT-0001",
        "activityName": "Fixture frame welding",
        "plannedStartDate": "2026-01-01",
        "plannedEndDate": "2026-01-03",
        "baseEffortHours": 10,
        "actualStartDate": "2026-01-02",
        "completionPercentage": 50,
    }


class TestRiskScore:

    def test_material_and_priority_only(self):
        """18 priority + 14 material status + 14 criticality = 46."""
        activity = normalize_activity({
            "materialStatus": "Delayed",
            "materialCriticality": "Critical",
            "priority": "Critical",
        })
        breakdown = explain_risk(activity, REFERENCE)
        assert breakdown.risk_score == 46
        assert breakdown.risk_level == "Medium"
        assert breakdown.delay_score == 0
        assert breakdown.execution_score == 0
        assert breakdown.cost_score == 0

    def test_default_activity_scores_medium_priority(self):
        assert score() == 7

    def test_unknown_priority_uses_default_weight(self):
        assert score(priority="Urgent") == 5

    @pytest.mark.parametrize("dependencies, dependency_type, expected", [
        ("A, B, C", "SS", 7 + 12 + 2),
        ("A,B,C,D,E,F", "ff", 7 + 20 + 1),
        ("A", "FS", 7 + 4),
        ("", "SS", 7 + 2),
    ])
    def test_dependency_weight(self, dependencies, dependency_type, expected):
        assert score(dependencies=dependencies, dependencyType=dependency_type) == expected

    @pytest.mark.parametrize("estimated, actual, expected", [
        (1000, 1200, 7 + 3),
        (100, 1000, 7 + 10),
        (1000, 800, 7),
    ])
    def test_cost_overrun(self, estimated, actual, expected):
        assert score(estimatedCost=estimated, actualCost=actual) == expected

    def test_overdue_activity_caps_delay_and_execution(self):
        """Delay 40 (capped) + execution 20 (capped) + priority 7."""
        result = score(plannedStartDate="2026-01-01", plannedEndDate="2026-01-03")
        assert result == 67
        assert derive_risk_level(result) == "High"

    def test_score_is_clamped_to_100(self):
        result = score(
            plannedStartDate="2026-01-01",
            plannedEndDate="2026-01-03",
            priority="Critical",
            materialStatus="Delayed",
            materialCriticality="Critical",
            dependencies="A,B,C,D,E",
            dependencyType="SS",
            estimatedCost=100,
            actualCost=1000,
        )
        assert result == 100

    def test_monotonic_in_delay(self):
        """Later finishes never lower the score, everything else fixed."""
        scores = [
            score(
                plannedStartDate="2026-01-01",
                plannedEndDate="2026-01-11",
                actualEndDate=end,
            )
            for end in ("2026-01-11", "2026-01-12", "2026-01-15", "2026-01-30")
        ]
        assert scores == sorted(scores)
        assert scores[0] == 7
        assert scores[-1] == 47


class TestRiskLevel:

    @pytest.mark.parametrize("value, level", [
        (100, "Critical"),
        (75, "Critical"),
        (74, "High"),
        (55, "High"),
        (54.9, "Medium"),
        (30, "Medium"),
        (29, "Low"),
        (0, "Low"),
    ])
    def test_thresholds(self, value, level):
        assert derive_risk_level(value) == level

    def test_level_counts_include_every_level(self):
        activities = enrich_activities(
            [{"priority": "Low"}, {"materialStatus": "Delayed", "materialCriticality": "Critical"}],
            REFERENCE,
        )
        assert risk_level_counts(activities) == {
            "Critical": 0, "High": 0, "Medium": 1, "Low": 1,
        }


class TestEnrichment:

    def test_derived_fields(self, overdue_record):
        activity = enrich_activity(overdue_record, REFERENCE)
        assert activity.planned_duration_hours == 48
        assert activity.actual_duration_hours == 192
        assert activity.delay_hours == 168
        assert activity.activity_status == "Delayed"
        # 40 delay + 17.5 execution + 7 priority
        assert activity.risk_score == 65
        assert activity.risk_level == "High"

    def test_completed_status_forces_full_completion(self):
        activity = enrich_activity(
            {"activityStatus": "Completed", "completionPercentage": 40}, REFERENCE
        )
        assert activity.completion_percentage == 100
        assert activity.activity_status == "Completed"

    def test_breakdown_agrees_with_enrichment(self, overdue_record):
        enriched = enrich_activity(overdue_record, REFERENCE)
        breakdown = explain_risk(overdue_record, REFERENCE)
        assert breakdown.risk_score == enriched.risk_score
        assert breakdown.delay_score == 40
        assert breakdown.execution_score == pytest.approx(17.5)

    def test_stale_stored_risk_is_replaced(self):
        activity = enrich_activity({"riskScore": 99, "riskLevel": "Critical"}, REFERENCE)
        assert activity.risk_score == 7
        assert activity.risk_level == "Low"

    def test_enrichment_is_repeatable(self, overdue_record):
        once = enrich_activity(overdue_record, REFERENCE)
        twice = enrich_activity(once, REFERENCE)
        assert twice.risk_score == once.risk_score
        assert twice.activity_status == once.activity_status

    def test_malformed_rows_do_not_stop_the_batch(self):
        enriched = enrich_activities(
            [None, {"completionPercentage": "n/a", "plannedEndDate": "soon"}],
            REFERENCE,
        )
        assert len(enriched) == 2
        assert all(0 <= a.risk_score <= 100 for a in enriched)
