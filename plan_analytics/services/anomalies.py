"""
Anomaly Rules — data-quality findings over an activity snapshot.

Each finding carries a machine-stable rule id and a severity. Callers
decide whether a finding blocks anything; the engine only reports.
"""

import logging
from collections.abc import Iterable
from typing import Any

from plan_analytics.models import (
    Activity,
    ActivityStatus,
    AnomalyRow,
    MaterialStatus,
    Severity,
    matches,
)
from plan_analytics.parsing import format_number
from plan_analytics.services.dependency_graph import DependencyGraph
from plan_analytics.services.normalizer import normalize_activities
from plan_analytics.services.temporal import Reference, is_delayed

logger = logging.getLogger(__name__)

SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


def _finding(activity: Activity, rule_id: str, severity: Severity, issue: str,
             details: str, recommendation: str) -> AnomalyRow:
    return AnomalyRow(
        rule_id=rule_id,
        activity_id=activity.activity_id or "UNKNOWN",
        activity_name=activity.activity_name or "-",
        severity=severity,
        issue=issue,
        details=details,
        recommendation=recommendation,
    )


def detect_anomalies(records: Iterable[Any], reference: Reference) -> list[AnomalyRow]:
    """Run every rule over the snapshot, most severe findings first."""
    activities = normalize_activities(records)
    graph = DependencyGraph.from_activities(activities)
    missing = graph.missing_dependencies()
    cycle_ids = graph.find_cycles()

    rows: list[AnomalyRow] = []
    for activity in activities:
        completion = activity.completion_percentage

        if matches(activity.activity_status, ActivityStatus.COMPLETED) and completion < 100:
            rows.append(_finding(
                activity,
                "completed_without_full_completion",
                Severity.HIGH,
                "Completed status but completion is below 100%",
                f"Completion is {format_number(completion)}%.",
                "Set completion to 100% or correct the status.",
            ))

        start, end = activity.actual_start_date, activity.actual_end_date
        if start and end and end < start:
            rows.append(_finding(
                activity,
                "actual_end_before_start",
                Severity.CRITICAL,
                "Actual end date is before actual start date",
                f"{end.isoformat()} is earlier than {start.isoformat()}.",
                "Correct actual start/end dates before reporting progress.",
            ))

        if is_delayed(activity, reference) and not activity.delay_reason:
            rows.append(_finding(
                activity,
                "delayed_without_root_cause",
                Severity.HIGH,
                "Delayed activity has no root cause",
                "Delay reason field is blank.",
                "Capture root cause and mitigation action.",
            ))

        unknown = missing.get(activity.activity_id, [])
        if unknown:
            rows.append(_finding(
                activity,
                "missing_dependency_reference",
                Severity.CRITICAL,
                "Missing dependency references detected",
                f"Unknown dependency IDs: {', '.join(unknown)}.",
                "Correct dependency IDs or add missing predecessor activities.",
            ))

        if activity.activity_id in cycle_ids:
            rows.append(_finding(
                activity,
                "dependency_cycle_detected",
                Severity.CRITICAL,
                "Dependency cycle detected",
                "Activity participates in a circular dependency loop.",
                "Break the cycle by revising predecessor links.",
            ))

        if (matches(activity.material_status, MaterialStatus.RECEIVED)
                and activity.material_received_date is None):
            rows.append(_finding(
                activity,
                "received_without_date",
                Severity.MEDIUM,
                "Material marked received without received date",
                "Material status is Received but materialReceivedDate is empty.",
                "Enter the material received date for traceability.",
            ))

    if rows:
        logger.info(f"Detected {len(rows)} data-quality findings")
    return sorted(
        rows,
        key=lambda r: (-SEVERITY_RANK[r.severity], r.activity_id.casefold(), r.activity_id),
    )
