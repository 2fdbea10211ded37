"""
Main FastAPI Application — Plan Analytics API.

A stateless HTTP front for the analytics engine. Every request carries a
full activity snapshot; nothing is stored between calls.

To run:
    uvicorn plan_analytics.main:app --reload --port 8000

Then visit:
    http://localhost:8000/docs     — Interactive Swagger UI
"""

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TypeVar

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from plan_analytics.config import configure_logging, get_settings
from plan_analytics.models import (
    SCENARIO_PRESETS,
    Activity,
    AnomalyRow,
    BaselineComparison,
    BaselineRequest,
    CriticalPathInfo,
    DependencyReport,
    HealthCheck,
    MaterialHealth,
    PhaseProgress,
    PlanInput,
    PortfolioMetrics,
    RiskBreakdown,
    Scenario,
    SimulationRequest,
    SimulationResult,
)
from plan_analytics.services.anomalies import detect_anomalies
from plan_analytics.services.dependency_graph import DependencyGraph
from plan_analytics.services.normalizer import normalize_activities
from plan_analytics.services.portfolio import (
    compare_baseline,
    compute_portfolio_metrics,
    material_health,
    phase_progress,
)
from plan_analytics.services.risk_engine import enrich_activities, explain_risk
from plan_analytics.services.simulator import ScenarioSimulator, resolve_scenario

logger = logging.getLogger(__name__)

T = TypeVar("T")


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings)
    logger.info(f"Starting {settings.app_name} {settings.app_version}")
    yield
    logger.info("Shutting down.")


settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "Risk scoring, dependency analysis, critical path and what-if "
        "scenario simulation for industrial project plans."
    ),
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


def reference_of(payload: PlanInput) -> datetime:
    """The caller's reference instant, or the current UTC time."""
    if payload.reference_date is not None:
        return payload.reference_date
    return datetime.now(timezone.utc)


def run_analysis(name: str, payload: PlanInput, analysis: Callable[[], T]) -> T:
    """
    Guard the snapshot size, run one analysis and map unexpected failures
    to a 500. Data problems never land here; they come back as report rows.
    """
    limit = get_settings().max_activities
    if len(payload.activities) > limit:
        raise HTTPException(
            status_code=413,
            detail=f"Snapshot has {len(payload.activities)} activities; limit is {limit}",
        )
    try:
        return analysis()
    except Exception as e:
        logger.error(f"{name} failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"{name} failed: {str(e)}")


# ──────────────────────────────────────────────────────────────
# API Routes
# ──────────────────────────────────────────────────────────────

@app.get("/health", response_model=HealthCheck)
async def health_check():
    return HealthCheck(status="healthy", version=settings.app_version)


@app.post("/api/v1/enrich", response_model=list[Activity])
async def enrich(payload: PlanInput):
    """Normalize every record and fill in durations, delay, risk and status."""
    reference = reference_of(payload)
    return run_analysis(
        "Enrichment", payload,
        lambda: enrich_activities(payload.activities, reference),
    )


@app.post("/api/v1/risk/breakdown", response_model=list[RiskBreakdown])
async def risk_breakdown(payload: PlanInput):
    reference = reference_of(payload)
    return run_analysis(
        "Risk breakdown", payload,
        lambda: [explain_risk(record, reference) for record in payload.activities],
    )


@app.post("/api/v1/metrics", response_model=PortfolioMetrics)
async def portfolio_metrics(payload: PlanInput):
    reference = reference_of(payload)
    return run_analysis(
        "Portfolio metrics", payload,
        lambda: compute_portfolio_metrics(payload.activities, reference),
    )


@app.post("/api/v1/dependencies", response_model=DependencyReport)
async def dependency_report(payload: PlanInput):
    """Missing references, cycle participants and a best-effort order."""
    def analyse() -> DependencyReport:
        graph = DependencyGraph.from_activities(normalize_activities(payload.activities))
        return DependencyReport(
            health=graph.health(),
            topological_order=graph.topological_order(),
        )

    return run_analysis("Dependency analysis", payload, analyse)


@app.post("/api/v1/critical-path", response_model=CriticalPathInfo)
async def critical_path(payload: PlanInput):
    reference = reference_of(payload)

    def analyse() -> CriticalPathInfo:
        enriched = enrich_activities(payload.activities, reference)
        return DependencyGraph.from_activities(enriched).critical_path()

    return run_analysis("Critical path", payload, analyse)


@app.post("/api/v1/anomalies", response_model=list[AnomalyRow])
async def anomalies(payload: PlanInput):
    reference = reference_of(payload)
    return run_analysis(
        "Anomaly detection", payload,
        lambda: detect_anomalies(payload.activities, reference),
    )


@app.post("/api/v1/materials", response_model=MaterialHealth)
async def materials(payload: PlanInput):
    reference = reference_of(payload)
    return run_analysis(
        "Material health", payload,
        lambda: material_health(payload.activities, reference),
    )


@app.post("/api/v1/phases", response_model=list[PhaseProgress])
async def phases(payload: PlanInput):
    reference = reference_of(payload)
    return run_analysis(
        "Phase progress", payload,
        lambda: phase_progress(payload.activities, reference),
    )


@app.post("/api/v1/simulate", response_model=SimulationResult)
async def simulate(payload: SimulationRequest):
    """What-if schedule under a scenario or a named preset."""
    reference = reference_of(payload)
    scenario = resolve_scenario(payload.scenario, payload.preset)
    return run_analysis(
        "Simulation", payload,
        lambda: ScenarioSimulator(payload.activities, reference).run(scenario),
    )


@app.get("/api/v1/scenarios/presets", response_model=dict[str, Scenario])
async def scenario_presets():
    return SCENARIO_PRESETS


@app.post("/api/v1/baseline/compare", response_model=BaselineComparison)
async def baseline_compare(payload: BaselineRequest):
    reference = reference_of(payload)
    return run_analysis(
        "Baseline comparison", payload,
        lambda: compare_baseline(payload.baseline_activities, payload.activities, reference),
    )
