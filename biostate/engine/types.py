"""
Domain types shared by the evaluators, the simulator and the engine client.

Rules and log entries come from the persistence collaborator; everything else
is derived per request and never stored.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how log rows are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class EvaluationContext:
    """Caller identity for one evaluation; user_id None means no session."""
    user_id: Optional[str] = None
    session_token: Optional[str] = None


@dataclass
class SupplementInfo:
    """Display identity of a supplement inside a warning."""
    id: str
    name: str
    form: Optional[str] = None


@dataclass
class Supplement:
    id: str
    name: str
    form: Optional[str] = None
    category: Optional[str] = None
    safety_category: Optional[str] = None


@dataclass
class LogEntry:
    id: str
    user_id: str
    supplement_id: str
    dosage: float
    unit: str
    logged_at: datetime
    supplement_name: str = ""
    category: Optional[str] = None


@dataclass
class InteractionRule:
    id: str
    source_supplement_id: str
    target_supplement_id: str
    type: str  # inhibition, synergy, competition
    severity: str  # low, medium, critical
    mechanism: Optional[str] = None
    research_url: Optional[str] = None
    suggestion: Optional[str] = None
    source_name: str = ""
    target_name: str = ""

    def touches(self, supplement_id: str) -> bool:
        return supplement_id in (self.source_supplement_id, self.target_supplement_id)


@dataclass
class RatioRule:
    id: str
    source_supplement_id: str
    target_supplement_id: str
    severity: str
    warning_message: str
    min_ratio: Optional[float] = None
    max_ratio: Optional[float] = None
    optimal_ratio: Optional[float] = None
    research_url: Optional[str] = None
    warn_when_target_missing: bool = False
    source_name: str = ""
    target_name: str = ""


@dataclass
class TimingRule:
    id: str
    source_supplement_id: str
    target_supplement_id: str
    min_hours_apart: float
    severity: str
    reason: str
    research_url: Optional[str] = None
    source_name: str = ""
    target_name: str = ""

    def other_side(self, supplement_id: str) -> str:
        if self.source_supplement_id == supplement_id:
            return self.target_supplement_id
        return self.source_supplement_id


@dataclass
class DosageInput:
    """A dosage as the caller knows it; dosage may be unknown."""
    supplement_id: str
    dosage: Optional[float]
    unit: str = "mg"


# ============================================================================
# Evaluator outputs
# ============================================================================

@dataclass
class InteractionWarning:
    id: str
    type: str
    severity: str
    source: SupplementInfo
    target: SupplementInfo
    mechanism: Optional[str] = None
    research_url: Optional[str] = None
    suggestion: Optional[str] = None

    @property
    def is_synergy(self) -> bool:
        return self.type == "synergy"

    def touches(self, supplement_id: str) -> bool:
        return supplement_id in (self.source.id, self.target.id)


@dataclass
class RatioWarning:
    id: str
    severity: str
    current_ratio: float  # math.inf when the target is missing entirely
    warning_message: str
    source: SupplementInfo
    target: SupplementInfo
    min_ratio: Optional[float] = None
    max_ratio: Optional[float] = None
    optimal_ratio: Optional[float] = None
    research_url: Optional[str] = None
    missing_target: bool = False


@dataclass
class RatioEvaluationGap:
    rule_id: str
    source_supplement_id: str
    target_supplement_id: str
    reason: str  # missing_dosage, missing_supplement_data, normalization_failed


@dataclass
class TimingWarning:
    id: str
    severity: str
    reason: str
    min_hours_apart: float
    actual_hours_apart: float
    source: SupplementInfo
    target: SupplementInfo
    source_logged_at: Optional[datetime] = None
    target_logged_at: Optional[datetime] = None


@dataclass
class AnalysisResult:
    """Interaction + ratio evaluation for one supplement set."""
    status: str
    warnings: List[InteractionWarning] = field(default_factory=list)
    synergies: List[InteractionWarning] = field(default_factory=list)
    ratio_warnings: List[RatioWarning] = field(default_factory=list)
    ratio_evaluation_gaps: List[RatioEvaluationGap] = field(default_factory=list)
    provenance: str = "local"  # "engine" or "local"; telemetry only
    fallback_reason: Optional[str] = None

    @property
    def interactions(self) -> List[InteractionWarning]:
        return self.warnings + self.synergies


@dataclass
class TimingResult:
    warnings: List[TimingWarning] = field(default_factory=list)
    provenance: str = "local"
    fallback_reason: Optional[str] = None


@dataclass
class LogEventWarnings:
    """Everything new about a single logging action."""
    interactions: List[InteractionWarning]
    ratio_warnings: List[RatioWarning]
    timing_warnings: List[TimingWarning]
    ratio_evaluation_gaps: List[RatioEvaluationGap]
    status: str
    provenance: str = "local"


# ============================================================================
# Simulator outputs
# ============================================================================

@dataclass
class ActiveCompound:
    log_id: str
    supplement_id: str
    name: str
    dosage: float
    unit: str
    logged_at: datetime
    peak_minutes: float
    half_life_minutes: float
    bioavailability_percent: float
    phase: str  # absorbing, peak, eliminating, cleared
    concentration_percent: float
    category: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.phase != "cleared"


@dataclass
class ExclusionZone:
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


@dataclass
class OptimizationOpportunity:
    type: str  # timing, synergy, balance
    category: str
    supplement_ids: List[str]
    title: str
    description: str
    priority: int
    suggestion_key: str
    safety_warning: Optional[str] = None
    suggested_supplement: Optional[str] = None


@dataclass
class TimelineDataPoint:
    minutes_from_start: int
    timestamp: datetime
    concentrations: Dict[str, float]


@dataclass
class BiologicalState:
    active_compounds: List[ActiveCompound]
    exclusion_zones: List[ExclusionZone]
    optimizations: List[OptimizationOpportunity]
    bio_score: int
    timeline_data: List[TimelineDataPoint]
    calculated_at: datetime

    @property
    def hero_zone(self) -> Optional[ExclusionZone]:
        """The zone that opens soonest."""
        return self.exclusion_zones[0] if self.exclusion_zones else None
