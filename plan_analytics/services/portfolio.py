"""
Portfolio Aggregator — roll-ups over an enriched activity collection.

Nothing here introduces new scheduling logic: every figure is a reduction
over fields the enrichment pass and the dependency graph already derived.
"""

import logging
from collections import Counter
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Optional

from plan_analytics.models import (
    Activity,
    ActivityStatus,
    BaselineComparison,
    MaterialHealth,
    MaterialStatus,
    PhaseProgress,
    PortfolioMetrics,
    TimelineBounds,
    VarianceRow,
    matches,
)
from plan_analytics.parsing import round_half_up
from plan_analytics.services.dependency_graph import DependencyGraph
from plan_analytics.services.normalizer import normalize_activities
from plan_analytics.services.risk_engine import (
    enrich_activities,
    is_high_risk,
    risk_level_counts,
)
from plan_analytics.services.temporal import (
    Reference,
    as_instant,
    at_midnight,
    diff_hours,
    is_delayed,
    planned_duration_hours,
    shift,
    to_iso_date,
)

logger = logging.getLogger(__name__)

PENDING_CRITICALITIES = {"critical", "high"}


def _average_completion(activities: list[Activity]) -> float:
    if not activities:
        return 0.0
    total = sum(a.completion_percentage for a in activities)
    return round_half_up(total / len(activities), 1)


def compute_portfolio_metrics(
    records: Iterable[Any],
    reference: Reference,
) -> PortfolioMetrics:
    """Counts, costs, critical path and blocked list for one snapshot."""
    enriched = enrich_activities(records, reference)
    graph = DependencyGraph.from_activities(enriched)

    estimated_cost = sum(a.estimated_cost for a in enriched)
    actual_cost = sum(a.actual_cost for a in enriched)

    metrics = PortfolioMetrics(
        total_activities=len(enriched),
        delayed=sum(1 for a in enriched if is_delayed(a, reference)),
        completed=sum(
            1 for a in enriched if matches(a.activity_status, ActivityStatus.COMPLETED)
        ),
        in_progress=sum(
            1 for a in enriched if matches(a.activity_status, ActivityStatus.IN_PROGRESS)
        ),
        blocked=sum(
            1 for a in enriched if matches(a.activity_status, ActivityStatus.BLOCKED)
        ),
        high_risk=sum(1 for a in enriched if is_high_risk(a)),
        risk_distribution=risk_level_counts(enriched),
        avg_completion=_average_completion(enriched),
        estimated_cost=estimated_cost,
        actual_cost=actual_cost,
        cost_variance=actual_cost - estimated_cost,
        critical_path=graph.critical_path(),
        blocked_activities=graph.blocked_activities(enriched),
        enriched=enriched,
    )
    logger.info(
        f"Portfolio: {metrics.total_activities} activities, "
        f"{metrics.delayed} delayed, {metrics.high_risk} high risk"
    )
    return metrics


def delay_and_risk_rows(records: Iterable[Any], reference: Reference) -> list[Activity]:
    """Delayed or high-risk activities, riskiest first."""
    rows = [
        activity
        for activity in enrich_activities(records, reference)
        if is_delayed(activity, reference) or is_high_risk(activity)
    ]
    return sorted(rows, key=lambda a: a.risk_score, reverse=True)


def _is_late_material(activity: Activity, reference: Reference) -> bool:
    required = activity.material_required_date
    if required is None:
        return False
    received = activity.material_received_date
    if received is not None:
        return received > required
    return at_midnight(required) < as_instant(reference)


def material_health(records: Iterable[Any], reference: Reference) -> MaterialHealth:
    enriched = enrich_activities(records, reference)
    return MaterialHealth(
        ownership_counts=dict(
            Counter(a.material_ownership or "Unspecified" for a in enriched)
        ),
        status_counts=dict(Counter(a.material_status or "Unspecified" for a in enriched)),
        department_counts=dict(
            Counter(a.resource_department or "Unassigned" for a in enriched)
        ),
        pending_critical=[
            a
            for a in enriched
            if a.material_criticality.lower() in PENDING_CRITICALITIES
            and not matches(a.material_status, MaterialStatus.RECEIVED)
        ],
        late_materials=[a for a in enriched if _is_late_material(a, reference)],
    )


def phase_progress(records: Iterable[Any], reference: Reference) -> list[PhaseProgress]:
    """Per-phase activity count, average completion and delayed count."""
    buckets: dict[str, list[Activity]] = {}
    for activity in enrich_activities(records, reference):
        buckets.setdefault(activity.phase or "Unassigned", []).append(activity)

    return [
        PhaseProgress(
            phase=phase,
            activity_count=len(members),
            avg_completion=_average_completion(members),
            delayed_activities=sum(1 for a in members if is_delayed(a, reference)),
        )
        for phase, members in buckets.items()
    ]


def timeline_bounds(records: Iterable[Any], reference: Reference) -> TimelineBounds:
    """
    Visible date range of the plan, padded by a day either side.

    Rows with only a start date are extended by their planned duration.
    An undated plan gets a window around the reference instant.
    """
    starts: list[datetime] = []
    ends: list[datetime] = []
    for activity in normalize_activities(records):
        start = at_midnight(activity.planned_start_date or activity.actual_start_date)
        end = at_midnight(activity.planned_end_date or activity.actual_end_date)
        if start:
            starts.append(start)
        if end:
            ends.append(end)
        if start and not end:
            ends.append(shift(start, planned_duration_hours(activity)))

    if not starts or not ends:
        now = as_instant(reference)
        return TimelineBounds(start=shift(now, -3 * 24), end=shift(now, 14 * 24))
    return TimelineBounds(
        start=shift(min(starts), -24),
        end=shift(max(ends), 24),
    )


def projected_finish(records: Iterable[Any], reference: Reference) -> Optional[datetime]:
    """End of the timeline for dated rows; None when nothing is dated."""
    dated = [
        activity
        for activity in normalize_activities(records)
        if activity.planned_start_date
        or activity.planned_end_date
        or activity.actual_start_date
        or activity.actual_end_date
    ]
    if not dated:
        return None
    return timeline_bounds(dated, reference).end


def compare_baseline(
    baseline_records: Iterable[Any],
    current_records: Iterable[Any],
    reference: Reference,
) -> BaselineComparison:
    """Variance of the current plan against a captured baseline."""
    baseline_records = list(baseline_records or [])
    current_records = list(current_records or [])
    baseline = compute_portfolio_metrics(baseline_records, reference)
    current = compute_portfolio_metrics(current_records, reference)

    def row(label: str, before: float, after: float, digits: Optional[int] = 1) -> VarianceRow:
        variance = after - before
        if digits is not None:
            variance = round_half_up(variance, digits)
        return VarianceRow(label=label, baseline=before, current=after, variance=variance)

    rows = [
        row("Activities", baseline.total_activities, current.total_activities),
        row("Average Completion", baseline.avg_completion, current.avg_completion),
        row("Delayed Activities", baseline.delayed, current.delayed),
        row("High-Risk Activities", baseline.high_risk, current.high_risk),
        row("Estimated Cost", baseline.estimated_cost, current.estimated_cost, None),
        row("Actual Cost", baseline.actual_cost, current.actual_cost, None),
    ]

    baseline_finish = projected_finish(baseline_records, reference)
    current_finish = projected_finish(current_records, reference)
    variance_hours = None
    if baseline_finish and current_finish:
        variance_hours = round_half_up(diff_hours(baseline_finish, current_finish), 1)

    return BaselineComparison(
        rows=rows,
        baseline_finish=to_iso_date(baseline_finish),
        current_finish=to_iso_date(current_finish),
        schedule_variance_hours=variance_hours,
    )
