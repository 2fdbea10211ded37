"""
Anomaly Rule Tests — each rule fires on its own condition, findings come
back most severe first, and nothing is ever raised.
"""

from datetime import datetime

from plan_analytics.services.anomalies import detect_anomalies

REFERENCE = datetime(2026, 1, 10)


def rule_ids(rows):
    return [row.rule_id for row in rows]


class TestRules:

    def test_clean_activity_has_no_findings(self):
        assert detect_anomalies([{"activityId": "A", "activityName": "Clean"}], REFERENCE) == []

    def test_completed_below_full_completion(self):
        rows = detect_anomalies(
            [{"activityId": "A", "activityStatus": "Completed", "completionPercentage": 40}],
            REFERENCE,
        )
        assert rule_ids(rows) == ["completed_without_full_completion"]
        assert rows[0].severity == "High"
        assert rows[0].details == "Completion is 40%."

    def test_fractional_completion_is_printed_in_full(self):
        rows = detect_anomalies(
            [{"activityId": "A", "activityStatus": "Completed", "completionPercentage": 12.3456789}],
            REFERENCE,
        )
        assert rows[0].details == "Completion is 12.3456789%."

    def test_actual_end_before_start(self):
        rows = detect_anomalies(
            [{
                "activityId": "A",
                "actualStartDate": "2026-01-05",
                "actualEndDate": "2026-01-02",
            }],
            REFERENCE,
        )
        assert "actual_end_before_start" in rule_ids(rows)
        finding = next(r for r in rows if r.rule_id == "actual_end_before_start")
        assert finding.severity == "Critical"
        assert finding.details == "2026-01-02 is earlier than 2026-01-05."

    def test_delayed_without_root_cause(self):
        rows = detect_anomalies([{"activityId": "A", "activityStatus": "Delayed"}], REFERENCE)
        assert rule_ids(rows) == ["delayed_without_root_cause"]

    def test_delay_with_root_cause_is_fine(self):
        rows = detect_anomalies(
            [{"activityId": "A", "activityStatus": "Delayed", "delayReason": "Vendor queue"}],
            REFERENCE,
        )
        assert rows == []

    def test_missing_dependency_reference(self):
        rows = detect_anomalies(
            [{"activityId": "ACT-0001", "dependencies": "ACT-9999"}], REFERENCE
        )
        assert rule_ids(rows) == ["missing_dependency_reference"]
        assert rows[0].details == "Unknown dependency IDs: ACT-9999."

    def test_dependency_cycle(self):
        rows = detect_anomalies(
            [
                {"activityId": "A", "dependencies": "B"},
                {"activityId": "B", "dependencies": "A"},
            ],
            REFERENCE,
        )
        assert rule_ids(rows) == ["dependency_cycle_detected"] * 2
        assert [r.activity_id for r in rows] == ["A", "B"]

    def test_received_without_date(self):
        rows = detect_anomalies([{"activityId": "A", "materialStatus": "Received"}], REFERENCE)
        assert rule_ids(rows) == ["received_without_date"]
        assert rows[0].severity == "Medium"

    def test_placeholders_for_unnamed_rows(self):
        rows = detect_anomalies([{"materialStatus": "received"}], REFERENCE)
        assert rows[0].activity_id == "UNKNOWN"
        assert rows[0].activity_name == "-"


class TestOrdering:

    def test_most_severe_first_then_by_id(self):
        rows = detect_anomalies(
            [
                {"activityId": "C", "materialStatus": "Received"},
                {"activityId": "B", "activityStatus": "Delayed"},
                {"activityId": "A", "materialStatus": "Received"},
                {"activityId": "D", "dependencies": "GHOST"},
            ],
            REFERENCE,
        )
        assert [(r.severity.value, r.activity_id) for r in rows] == [
            ("Critical", "D"),
            ("High", "B"),
            ("Medium", "A"),
            ("Medium", "C"),
        ]

    def test_ids_compare_case_insensitively(self):
        rows = detect_anomalies(
            [
                {"activityId": "B-1", "materialStatus": "Received"},
                {"activityId": "a-2", "materialStatus": "Received"},
            ],
            REFERENCE,
        )
        assert [r.activity_id for r in rows] == ["a-2", "B-1"]

    def test_malformed_rows_are_tolerated(self):
        rows = detect_anomalies([None, "junk", {"completionPercentage": "??"}], REFERENCE)
        assert rows == []
