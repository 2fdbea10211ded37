"""
Risk Engine — per-activity risk scoring and the enrichment pass.

The score is a fixed heuristic, not a fitted model. Weights and
thresholds are kept exactly as planners have been calibrated against:

    delay       up to 40   (delay / planned duration * 45)
    execution   up to 20   (expected - actual completion) * 0.35
    priority    3 / 7 / 12 / 18, 5 for anything unrecognised
    material    status 5 / 8 / 14 + criticality 4 / 8 / 14
    dependency  4 per dependency up to 20, +2 for SS, +1 for FF
    cost        up to 10   (overrun ratio * 15)

The total is clamped to 0..100 and rounded half-up.
"""

import logging
from collections.abc import Iterable
from typing import Any

from plan_analytics.models import (
    Activity,
    DependencyType,
    MaterialStatus,
    Priority,
    RiskBreakdown,
    RiskLevel,
    matches,
)
from plan_analytics.parsing import clamp, parse_dependencies, round_half_up
from plan_analytics.services.normalizer import normalize_activity
from plan_analytics.services.temporal import (
    Reference,
    actual_duration_hours,
    delay_hours,
    effective_completion,
    expected_completion,
    infer_status,
    planned_duration_hours,
)

logger = logging.getLogger(__name__)

HIGH_RISK_THRESHOLD = 55

PRIORITY_WEIGHTS = {
    Priority.CRITICAL.value.lower(): 18,
    Priority.HIGH.value.lower(): 12,
    Priority.MEDIUM.value.lower(): 7,
    Priority.LOW.value.lower(): 3,
}
DEFAULT_PRIORITY_WEIGHT = 5

MATERIAL_STATUS_WEIGHTS = {
    MaterialStatus.DELAYED.value.lower(): 14,
    MaterialStatus.IN_TRANSIT.value.lower(): 8,
    MaterialStatus.ORDERED.value.lower(): 5,
}

MATERIAL_CRITICALITY_WEIGHTS = {
    "critical": 14,
    "high": 8,
    "medium": 4,
}

DEPENDENCY_TYPE_BONUS = {
    DependencyType.START_TO_START.value: 2,
    DependencyType.FINISH_TO_FINISH.value: 1,
}

RISK_LEVEL_THRESHOLDS = (
    (75, RiskLevel.CRITICAL),
    (55, RiskLevel.HIGH),
    (30, RiskLevel.MEDIUM),
)


def priority_weight(priority: str) -> float:
    return PRIORITY_WEIGHTS.get(priority.strip().lower(), DEFAULT_PRIORITY_WEIGHT)


def material_risk_weight(activity: Activity) -> float:
    status = activity.material_status.strip().lower()
    criticality = activity.material_criticality.strip().lower()
    return (
        MATERIAL_STATUS_WEIGHTS.get(status, 0)
        + MATERIAL_CRITICALITY_WEIGHTS.get(criticality, 0)
    )


def dependency_risk_weight(activity: Activity) -> float:
    count = len(parse_dependencies(activity.dependencies))
    base = clamp(count * 4, 0, 20)
    bonus = DEPENDENCY_TYPE_BONUS.get(activity.dependency_type.strip().upper(), 0)
    return base + bonus


def derive_risk_level(risk_score: float) -> str:
    for threshold, level in RISK_LEVEL_THRESHOLDS:
        if risk_score >= threshold:
            return level.value
    return RiskLevel.LOW.value


def risk_breakdown(activity: Activity, reference: Reference) -> RiskBreakdown:
    """Score one normalized activity and keep every factor visible."""
    planned = max(1.0, planned_duration_hours(activity))
    delay_ratio = delay_hours(activity, reference) / planned
    delay_score = clamp(delay_ratio * 45, 0, 40)

    completion_gap = max(
        0.0,
        expected_completion(activity, reference) - effective_completion(activity),
    )
    execution_score = clamp(completion_gap * 0.35, 0, 20)

    cost_score = 0.0
    overrun = activity.actual_cost - activity.estimated_cost
    if overrun > 0:
        cost_score = clamp(
            overrun / max(1.0, activity.estimated_cost) * 15, 0, 10
        )

    priority = priority_weight(activity.priority)
    material = material_risk_weight(activity)
    dependency = dependency_risk_weight(activity)

    total = delay_score + execution_score + priority + material + dependency + cost_score
    score = round_half_up(clamp(total, 0, 100))

    return RiskBreakdown(
        activity_id=activity.activity_id,
        delay_score=delay_score,
        execution_score=execution_score,
        priority_weight=priority,
        material_weight=material,
        dependency_weight=dependency,
        cost_score=cost_score,
        risk_score=score,
        risk_level=RiskLevel(derive_risk_level(score)),
    )


def compute_risk_score(activity: Activity, reference: Reference) -> int:
    return risk_breakdown(activity, reference).risk_score


def _with_derived_timing(activity: Activity, reference: Reference) -> Activity:
    # Rounded before scoring, so the score uses the numbers the caller sees
    return activity.model_copy(
        update={
            "completion_percentage": effective_completion(activity),
            "planned_duration_hours": round_half_up(planned_duration_hours(activity), 2),
            "actual_duration_hours": round_half_up(
                actual_duration_hours(activity, reference), 2
            ),
            "delay_hours": round_half_up(delay_hours(activity, reference), 2),
        }
    )


def explain_risk(raw: Any, reference: Reference) -> RiskBreakdown:
    """Factor-by-factor breakdown of the score enrich_activity assigns."""
    return risk_breakdown(_with_derived_timing(normalize_activity(raw), reference), reference)


def enrich_activity(raw: Any, reference: Reference) -> Activity:
    """Normalize a record and fill in every derived field."""
    activity = normalize_activity(raw)
    derived = _with_derived_timing(activity, reference)
    score = compute_risk_score(derived, reference)
    return derived.model_copy(
        update={
            "risk_score": score,
            "risk_level": derive_risk_level(score),
            "activity_status": infer_status(activity, reference),
        }
    )


def enrich_activities(records: Iterable[Any], reference: Reference) -> list[Activity]:
    enriched = [enrich_activity(record, reference) for record in records or []]
    logger.debug(f"Enriched {len(enriched)} activities")
    return enriched


def is_high_risk(activity: Activity) -> bool:
    return activity.risk_score >= HIGH_RISK_THRESHOLD


def risk_level_counts(activities: Iterable[Activity]) -> dict[str, int]:
    """Count activities per risk level, every level present."""
    counts = {level.value: 0 for level in reversed(RiskLevel)}
    for activity in activities:
        counts[derive_risk_level(activity.risk_score)] += 1
    return counts
