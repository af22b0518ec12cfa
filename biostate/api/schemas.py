import math
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from biostate.engine import types
from biostate.engine.aggregator import SafetyActionBuckets
from biostate.engine.ratios import build_gap_message


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Requests
# ============================================================================

class DosageRequest(CamelModel):
    supplement_id: str
    dosage: Optional[float] = None
    unit: str = "mg"


class AnalyzeRequest(CamelModel):
    supplement_ids: List[str]
    dosages: Optional[List[DosageRequest]] = None


class LogEventRequest(CamelModel):
    supplement_id: str
    dosage: float = Field(gt=0)
    unit: str = "mg"
    logged_at: Optional[datetime] = None


# ============================================================================
# Responses
# ============================================================================

class SupplementInfoResponse(CamelModel):
    id: str
    name: str
    form: Optional[str] = None


class InteractionResponse(CamelModel):
    id: str
    type: str
    severity: str
    source: SupplementInfoResponse
    target: SupplementInfoResponse
    mechanism: Optional[str] = None
    research_url: Optional[str] = None
    suggestion: Optional[str] = None


class RatioWarningResponse(CamelModel):
    id: str
    severity: str
    current_ratio: Optional[float] = None  # null when the target is missing entirely
    warning_message: str
    source: SupplementInfoResponse
    target: SupplementInfoResponse
    min_ratio: Optional[float] = None
    max_ratio: Optional[float] = None
    optimal_ratio: Optional[float] = None
    research_url: Optional[str] = None
    missing_target: bool = False


class RatioGapResponse(CamelModel):
    rule_id: str
    source_supplement_id: str
    target_supplement_id: str
    reason: str
    message: str


class TimingWarningResponse(CamelModel):
    id: str
    severity: str
    reason: str
    min_hours_apart: float
    actual_hours_apart: float
    source: SupplementInfoResponse
    target: SupplementInfoResponse
    source_logged_at: Optional[datetime] = None
    target_logged_at: Optional[datetime] = None


class AnalysisResponse(CamelModel):
    status: str
    warnings: List[InteractionResponse]
    synergies: List[InteractionResponse]
    ratio_warnings: List[RatioWarningResponse]
    ratio_evaluation_gaps: List[RatioGapResponse]
    provenance: str
    fallback_reason: Optional[str] = None


class SafetyActionsResponse(CamelModel):
    do_now: List[str]
    avoid_now: List[str]
    optimize_later: List[str]


class LogEventResponse(CamelModel):
    log_id: str
    interactions: List[InteractionResponse]
    ratio_warnings: List[RatioWarningResponse]
    timing_warnings: List[TimingWarningResponse]
    ratio_evaluation_gaps: List[RatioGapResponse]
    status: str
    actions: SafetyActionsResponse
    provenance: str


class ActiveCompoundResponse(CamelModel):
    log_id: str
    supplement_id: str
    name: str
    dosage: float
    unit: str
    logged_at: datetime
    peak_minutes: float
    half_life_minutes: float
    bioavailability_percent: float
    phase: str
    concentration_percent: float
    category: Optional[str] = None


class ExclusionZoneResponse(CamelModel):
    rule_id: str
    source_supplement_id: str
    source_supplement_name: str
    target_supplement_id: str
    target_supplement_name: str
    ends_at: datetime
    minutes_remaining: int
    reason: str
    severity: str
    research_url: Optional[str] = None


class OptimizationResponse(CamelModel):
    type: str
    category: str
    supplement_ids: List[str]
    title: str
    description: str
    priority: int
    suggestion_key: str
    safety_warning: Optional[str] = None
    suggested_supplement: Optional[str] = None


class TimelinePointResponse(CamelModel):
    minutes_from_start: int
    timestamp: datetime
    concentrations: Dict[str, float]


class BiologicalStateResponse(CamelModel):
    active_compounds: List[ActiveCompoundResponse]
    exclusion_zones: List[ExclusionZoneResponse]
    hero_zone: Optional[ExclusionZoneResponse] = None
    optimizations: List[OptimizationResponse]
    bio_score: int
    timeline_data: List[TimelinePointResponse]
    calculated_at: datetime


class TimingSafetyResponse(CamelModel):
    supplement_id: str
    safe: bool
    blocking_zone: Optional[ExclusionZoneResponse] = None


# ============================================================================
# Domain -> response
# ============================================================================

def _info(info: types.SupplementInfo) -> SupplementInfoResponse:
    return SupplementInfoResponse(id=info.id, name=info.name, form=info.form)


def interaction_response(w: types.InteractionWarning) -> InteractionResponse:
    return InteractionResponse(
        id=w.id,
        type=w.type,
        severity=w.severity,
        source=_info(w.source),
        target=_info(w.target),
        mechanism=w.mechanism,
        research_url=w.research_url,
        suggestion=w.suggestion,
    )


def ratio_warning_response(w: types.RatioWarning) -> RatioWarningResponse:
    return RatioWarningResponse(
        id=w.id,
        severity=w.severity,
        current_ratio=w.current_ratio if math.isfinite(w.current_ratio) else None,
        warning_message=w.warning_message,
        source=_info(w.source),
        target=_info(w.target),
        min_ratio=w.min_ratio,
        max_ratio=w.max_ratio,
        optimal_ratio=w.optimal_ratio,
        research_url=w.research_url,
        missing_target=w.missing_target,
    )


def ratio_gap_response(g: types.RatioEvaluationGap) -> RatioGapResponse:
    return RatioGapResponse(
        rule_id=g.rule_id,
        source_supplement_id=g.source_supplement_id,
        target_supplement_id=g.target_supplement_id,
        reason=g.reason,
        message=build_gap_message(g),
    )


def timing_warning_response(w: types.TimingWarning) -> TimingWarningResponse:
    return TimingWarningResponse(
        id=w.id,
        severity=w.severity,
        reason=w.reason,
        min_hours_apart=w.min_hours_apart,
        actual_hours_apart=w.actual_hours_apart,
        source=_info(w.source),
        target=_info(w.target),
        source_logged_at=w.source_logged_at,
        target_logged_at=w.target_logged_at,
    )


def analysis_response(result: types.AnalysisResult) -> AnalysisResponse:
    return AnalysisResponse(
        status=result.status,
        warnings=[interaction_response(w) for w in result.warnings],
        synergies=[interaction_response(w) for w in result.synergies],
        ratio_warnings=[ratio_warning_response(w) for w in result.ratio_warnings],
        ratio_evaluation_gaps=[ratio_gap_response(g) for g in result.ratio_evaluation_gaps],
        provenance=result.provenance,
        fallback_reason=result.fallback_reason,
    )


def log_event_response(log_id: str, result: types.LogEventWarnings, actions: SafetyActionBuckets) -> LogEventResponse:
    return LogEventResponse(
        log_id=log_id,
        interactions=[interaction_response(w) for w in result.interactions],
        ratio_warnings=[ratio_warning_response(w) for w in result.ratio_warnings],
        timing_warnings=[timing_warning_response(w) for w in result.timing_warnings],
        ratio_evaluation_gaps=[ratio_gap_response(g) for g in result.ratio_evaluation_gaps],
        status=result.status,
        actions=SafetyActionsResponse(
            do_now=actions.do_now,
            avoid_now=actions.avoid_now,
            optimize_later=actions.optimize_later,
        ),
        provenance=result.provenance,
    )


def zone_response(z: types.ExclusionZone) -> ExclusionZoneResponse:
    return ExclusionZoneResponse(
        rule_id=z.rule_id,
        source_supplement_id=z.source_supplement_id,
        source_supplement_name=z.source_supplement_name,
        target_supplement_id=z.target_supplement_id,
        target_supplement_name=z.target_supplement_name,
        ends_at=z.ends_at,
        minutes_remaining=z.minutes_remaining,
        reason=z.reason,
        severity=z.severity,
        research_url=z.research_url,
    )


def timeline_response(points: List[types.TimelineDataPoint]) -> List[TimelinePointResponse]:
    return [
        TimelinePointResponse(
            minutes_from_start=p.minutes_from_start,
            timestamp=p.timestamp,
            concentrations=p.concentrations,
        )
        for p in points
    ]


def biological_state_response(state: types.BiologicalState) -> BiologicalStateResponse:
    return BiologicalStateResponse(
        active_compounds=[
            ActiveCompoundResponse(
                log_id=c.log_id,
                supplement_id=c.supplement_id,
                name=c.name,
                dosage=c.dosage,
                unit=c.unit,
                logged_at=c.logged_at,
                peak_minutes=c.peak_minutes,
                half_life_minutes=c.half_life_minutes,
                bioavailability_percent=c.bioavailability_percent,
                phase=c.phase,
                concentration_percent=c.concentration_percent,
                category=c.category,
            )
            for c in state.active_compounds
        ],
        exclusion_zones=[zone_response(z) for z in state.exclusion_zones],
        hero_zone=zone_response(state.hero_zone) if state.hero_zone else None,
        optimizations=[
            OptimizationResponse(
                type=o.type,
                category=o.category,
                supplement_ids=o.supplement_ids,
                title=o.title,
                description=o.description,
                priority=o.priority,
                suggestion_key=o.suggestion_key,
                safety_warning=o.safety_warning,
                suggested_supplement=o.suggested_supplement,
            )
            for o in state.optimizations
        ],
        bio_score=state.bio_score,
        timeline_data=timeline_response(state.timeline_data),
        calculated_at=state.calculated_at,
    )
