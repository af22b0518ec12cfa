"""Shadow comparison of local and engine results."""

import math
from typing import List, Optional

from biostate.engine.types import AnalysisResult, TimingWarning


def _number(value: float) -> str:
    return repr(round(value, 3)) if math.isfinite(value) else repr(value)


def interaction_keys(result: AnalysisResult) -> List[str]:
    return sorted(
        "|".join([w.id, w.type, w.severity, w.source.id, w.target.id])
        for w in result.warnings + result.synergies
    )


def ratio_keys(result: AnalysisResult) -> List[str]:
    return sorted(
        "|".join([w.id, w.severity, _number(w.current_ratio), w.source.id, w.target.id])
        for w in result.ratio_warnings
    )


def timing_keys(warnings: List[TimingWarning]) -> List[str]:
    return sorted(
        "|".join([w.id, w.severity, _number(w.min_hours_apart), w.source.id, w.target.id])
        for w in warnings
    )


def are_safety_contracts_equivalent(
    local: AnalysisResult,
    engine: AnalysisResult,
    local_timing: Optional[List[TimingWarning]] = None,
    engine_timing: Optional[List[TimingWarning]] = None
) -> bool:
    """True when both paths found the same interactions, ratios and timing conflicts."""
    if interaction_keys(local) != interaction_keys(engine):
        return False
    if ratio_keys(local) != ratio_keys(engine):
        return False
    return timing_keys(local_timing or []) == timing_keys(engine_timing or [])
