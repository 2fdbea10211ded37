"""
Data Models — Pydantic schemas for activity, graph and scenario data.

Activity records arrive from storage and import collaborators as loose
camelCase dictionaries. The Activity model is the parse boundary: every
field is coerced instead of rejected, so a malformed row degrades to
defaults and never stops a batch.

Output models use the same camelCase aliases on the wire, so callers get
back records in exactly the shape they sent.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ValidationInfo,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)
from pydantic.alias_generators import to_camel

from plan_analytics.parsing import (
    clamp,
    parse_date,
    parse_number,
    parse_text,
    round_half_up,
)


# ──────────────────────────────────────────────────────────────
# Enums — canonical spellings used across the engine
# ──────────────────────────────────────────────────────────────

class ActivityStatus(str, Enum):
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    BLOCKED = "Blocked"
    DELAYED = "Delayed"
    COMPLETED = "Completed"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class MaterialStatus(str, Enum):
    NOT_ORDERED = "Not Ordered"
    ORDERED = "Ordered"
    IN_TRANSIT = "In Transit"
    RECEIVED = "Received"
    DELAYED = "Delayed"


class MaterialOwnership(str, Enum):
    CLIENT = "Client"
    INTERNAL_TEAM = "Internal Team"
    SUPPLIER = "Supplier"


class DependencyType(str, Enum):
    FINISH_TO_START = "FS"
    START_TO_START = "SS"
    FINISH_TO_FINISH = "FF"


class Severity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


def matches(value: Any, member: Enum) -> bool:
    """Case-insensitive comparison of a stored free-text value to an enum."""
    return parse_text(value).lower() == str(member.value).lower()


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ──────────────────────────────────────────────────────────────
# Activity — the central record
# ──────────────────────────────────────────────────────────────

NUMBER_FIELDS = (
    "base_effort_hours",
    "material_lead_time",
    "planned_duration_hours",
    "assigned_manpower",
    "actual_duration_hours",
    "manual_override_duration",
    "estimated_cost",
    "actual_cost",
    "delay_hours",
)

DATE_FIELDS = (
    "planned_start_date",
    "planned_end_date",
    "material_required_date",
    "material_received_date",
    "actual_start_date",
    "actual_end_date",
    "last_modified_date",
)

TEXT_FIELDS = (
    "activity_id",
    "phase",
    "activity_name",
    "sub_activity",
    "required_materials",
    "required_tools",
    "material_ownership",
    "priority",
    "milestone",
    "manpower_skill_level",
    "resource_name",
    "resource_department",
    "shift_type",
    "material_status",
    "material_criticality",
    "activity_status",
    "risk_level",
    "delay_reason",
    "dependency_type",
    "override_reason",
    "override_approved_by",
    "cost_center",
    "last_modified_by",
    "remarks",
)

TEXT_DEFAULTS = {
    "activity_status": ActivityStatus.NOT_STARTED.value,
    "priority": Priority.MEDIUM.value,
    "material_status": MaterialStatus.NOT_ORDERED.value,
    "risk_level": RiskLevel.LOW.value,
    "last_modified_by": "Planner",
}


def normalize_ownership(value: Any) -> str:
    """Fuzzy-map free-text material ownership onto the known owners."""
    raw = parse_text(value)
    if not raw:
        return ""
    lowered = raw.lower()
    if "internal" in lowered:
        return MaterialOwnership.INTERNAL_TEAM.value
    if any(token in lowered for token in ("third", "supplier", "vendor")):
        return MaterialOwnership.SUPPLIER.value
    if any(token in lowered for token in ("client", "customer", "joint")):
        return MaterialOwnership.CLIENT.value
    for owner in MaterialOwnership:
        if owner.value.lower() == lowered:
            return owner.value
    return raw


class Activity(CamelModel):
    """
    One row of planned work.

    Derived fields (durations, delay, risk, inferred status) are filled in
    by the enrichment pass and are never treated as source-of-truth.
    """

    # Identity
    activity_id: str = ""
    phase: str = ""
    activity_name: str = ""
    sub_activity: str = ""

    # Planning
    base_effort_hours: float = 0
    planned_start_date: Optional[date] = None
    planned_end_date: Optional[date] = None
    planned_duration_hours: float = 0
    assigned_manpower: float = 0
    priority: str = Priority.MEDIUM.value
    milestone: str = ""
    dependencies: str = ""
    dependency_type: str = ""

    # Resources
    manpower_skill_level: str = ""
    resource_name: str = ""
    resource_department: str = ""
    shift_type: str = ""

    # Material
    required_materials: str = ""
    required_tools: str = ""
    material_ownership: str = ""
    material_lead_time: float = 0
    material_status: str = MaterialStatus.NOT_ORDERED.value
    material_criticality: str = ""
    material_required_date: Optional[date] = None
    material_received_date: Optional[date] = None

    # Execution
    actual_start_date: Optional[date] = None
    actual_end_date: Optional[date] = None
    actual_duration_hours: float = 0
    activity_status: str = ActivityStatus.NOT_STARTED.value
    completion_percentage: float = Field(0, ge=0, le=100)
    delay_reason: str = ""
    manual_override_duration: float = 0
    override_reason: str = ""
    override_approved_by: str = ""

    # Risk (derived)
    risk_level: str = RiskLevel.LOW.value
    risk_score: int = 0
    delay_hours: float = 0

    # Cost
    estimated_cost: float = 0
    actual_cost: float = 0
    cost_center: str = ""

    # Audit
    last_modified_by: str = "Planner"
    last_modified_date: Optional[date] = None
    remarks: str = ""

    @field_validator(*NUMBER_FIELDS, mode="before")
    @classmethod
    def coerce_number(cls, v: Any) -> float:
        return parse_number(v)

    @field_validator(*DATE_FIELDS, mode="before")
    @classmethod
    def coerce_date(cls, v: Any) -> Optional[date]:
        return parse_date(v)

    @field_validator(*TEXT_FIELDS, mode="before")
    @classmethod
    def coerce_text(cls, v: Any, info: ValidationInfo) -> str:
        text = parse_text(v)
        return text or TEXT_DEFAULTS.get(info.field_name, "")

    @field_validator("dependencies", mode="before")
    @classmethod
    def coerce_dependencies(cls, v: Any) -> str:
        if isinstance(v, (list, tuple, set)):
            return ",".join(parse_text(item) for item in v)
        return parse_text(v)

    @field_validator("completion_percentage", mode="before")
    @classmethod
    def clamp_completion(cls, v: Any) -> float:
        return clamp(parse_number(v), 0, 100)

    @field_validator("risk_score", mode="before")
    @classmethod
    def coerce_risk_score(cls, v: Any) -> int:
        return round_half_up(parse_number(v))

    @field_validator("material_ownership", mode="after")
    @classmethod
    def canonical_ownership(cls, v: str) -> str:
        return normalize_ownership(v)

    @field_serializer(*DATE_FIELDS)
    def serialize_date(self, v: Optional[date]) -> str:
        return v.isoformat() if v else ""


class BlockedActivity(Activity):
    """An activity waiting on at least one unfinished prerequisite."""
    blocking_dependencies: list[str] = Field(default_factory=list)


# ──────────────────────────────────────────────────────────────
# Scenario — what-if parameters
# ──────────────────────────────────────────────────────────────

class Scenario(CamelModel):
    """Hypothetical resourcing change, each knob clamped to a sane range."""
    manpower_boost_pct: float = 0
    overtime_hours_per_day: float = 0
    lead_time_reduction_pct: float = 0

    @field_validator("manpower_boost_pct", "lead_time_reduction_pct", mode="before")
    @classmethod
    def clamp_percentage(cls, v: Any) -> float:
        return clamp(parse_number(v), 0, 100)

    @field_validator("overtime_hours_per_day", mode="before")
    @classmethod
    def clamp_overtime(cls, v: Any) -> float:
        return clamp(parse_number(v), 0, 12)


SCENARIO_PRESETS: dict[str, Scenario] = {
    "overtime": Scenario(overtime_hours_per_day=3),
    "manpower": Scenario(manpower_boost_pct=20),
    "leadtime": Scenario(lead_time_reduction_pct=25),
}


# ──────────────────────────────────────────────────────────────
# Analysis output models
# ──────────────────────────────────────────────────────────────

class RiskBreakdown(CamelModel):
    """The individual factors behind a risk score."""
    activity_id: str
    delay_score: float
    execution_score: float
    priority_weight: float
    material_weight: float
    dependency_weight: float
    cost_score: float
    risk_score: int
    risk_level: RiskLevel


class CriticalPathInfo(CamelModel):
    """Longest dependency chain through the plan."""
    path: list[str] = Field(default_factory=list)
    duration_hours: int = 0
    has_cycles: bool = False


class DependencyHealth(CamelModel):
    missing_by_activity: dict[str, list[str]] = Field(default_factory=dict)
    missing_dependency_links: int = 0
    activities_with_missing_dependencies: int = 0
    cycle_activity_ids: list[str] = Field(default_factory=list)
    cycle_count: int = 0


class DependencyReport(CamelModel):
    health: DependencyHealth
    topological_order: list[str]


class PortfolioMetrics(CamelModel):
    """Portfolio-level roll-up of an enriched activity collection."""
    total_activities: int = 0
    delayed: int = 0
    completed: int = 0
    in_progress: int = 0
    blocked: int = 0
    high_risk: int = 0
    risk_distribution: dict[str, int] = Field(default_factory=dict)
    avg_completion: float = 0
    estimated_cost: float = 0
    actual_cost: float = 0
    cost_variance: float = 0
    critical_path: CriticalPathInfo = Field(default_factory=CriticalPathInfo)
    blocked_activities: list[BlockedActivity] = Field(default_factory=list)
    enriched: list[Activity] = Field(default_factory=list)


class MaterialHealth(CamelModel):
    ownership_counts: dict[str, int] = Field(default_factory=dict)
    status_counts: dict[str, int] = Field(default_factory=dict)
    department_counts: dict[str, int] = Field(default_factory=dict)
    pending_critical: list[Activity] = Field(default_factory=list)
    late_materials: list[Activity] = Field(default_factory=list)


class PhaseProgress(CamelModel):
    phase: str
    activity_count: int
    avg_completion: float
    delayed_activities: int


class TimelineBounds(CamelModel):
    start: datetime
    end: datetime


class VarianceRow(CamelModel):
    label: str
    baseline: float
    current: float
    variance: float


class BaselineComparison(CamelModel):
    """Current plan measured against a previously captured snapshot."""
    rows: list[VarianceRow] = Field(default_factory=list)
    baseline_finish: str = ""
    current_finish: str = ""
    schedule_variance_hours: Optional[float] = None


class AnomalyRow(CamelModel):
    """A data-quality finding; never raised, always reported."""
    rule_id: str
    activity_id: str
    activity_name: str
    severity: Severity
    issue: str
    details: str
    recommendation: str


class ScheduleRow(CamelModel):
    activity_id: str
    activity_name: str
    start_date: str
    finish_date: str
    duration_hours: float


class ScenarioImpact(ScheduleRow):
    baseline_duration_hours: float
    saved_hours: float


class SimulationResult(CamelModel):
    scenario: Scenario
    baseline_finish_date: str = ""
    simulated_finish_date: str = ""
    improvement_hours: float = 0
    impacts: list[ScenarioImpact] = Field(default_factory=list)


# ──────────────────────────────────────────────────────────────
# Request envelopes
# ──────────────────────────────────────────────────────────────

class PlanInput(CamelModel):
    """
    A snapshot of raw activity records.

    Records are deliberately untyped here: the engine normalizes them
    itself, so a bad cell never turns into a 422 for the whole batch.
    """
    activities: list[dict[str, Any]] = Field(default_factory=list)
    reference_date: Optional[datetime] = None


class SimulationRequest(PlanInput):
    scenario: Scenario = Field(default_factory=Scenario)
    preset: Optional[str] = None


class BaselineRequest(PlanInput):
    baseline_activities: list[dict[str, Any]] = Field(default_factory=list)


# ──────────────────────────────────────────────────────────────
# Health / Status Models
# ──────────────────────────────────────────────────────────────

class HealthCheck(BaseModel):
    """Service health status."""
    status: str = "healthy"
    version: str
