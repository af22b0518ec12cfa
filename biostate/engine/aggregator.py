"""
Warning aggregation for a single logging action.

Combines interaction, ratio and timing findings for the day the new log falls
on, narrowing interactions to the ones touching the supplement just logged.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional
import logging
import math

from biostate.engine.interactions import unique_ids
from biostate.engine.ratios import format_gap_reason
from biostate.engine.status import calculate_status, escalate_status
from biostate.engine.strategies import InteractionEvaluationPort, gather_or_cancel
from biostate.engine.types import (
    DosageInput,
    EvaluationContext,
    InteractionWarning,
    LogEntry,
    LogEventWarnings,
    RatioEvaluationGap,
    RatioWarning,
    TimingWarning,
)
from biostate.repositories.base import LogRepository

logger = logging.getLogger(__name__)


@dataclass
class SafetyActionBuckets:
    do_now: List[str] = field(default_factory=list)
    avoid_now: List[str] = field(default_factory=list)
    optimize_later: List[str] = field(default_factory=list)


def _push_unique(items: List[str], value: str):
    if value not in items:
        items.append(value)


def _format_ratio(ratio: float) -> str:
    if math.isinf(ratio):
        return "undefined"
    return f"{ratio:g}:1"


def build_safety_action_buckets(
    interactions: List[InteractionWarning],
    ratio_warnings: List[RatioWarning],
    timing_warnings: List[TimingWarning],
    ratio_evaluation_gaps: Optional[List[RatioEvaluationGap]] = None
) -> SafetyActionBuckets:
    """Sort findings into do now / avoid now / optimize later, without repeats."""
    buckets = SafetyActionBuckets()

    for interaction in interactions:
        pair = f"{interaction.source.name} + {interaction.target.name}"
        if interaction.is_synergy:
            _push_unique(buckets.do_now, f"Consider pairing {pair} together today.")
        elif interaction.severity == "critical":
            _push_unique(buckets.avoid_now, f"Avoid combining {pair} right now due to a critical interaction.")
        else:
            _push_unique(buckets.optimize_later, f"Separate {pair} to reduce {interaction.type} effects.")

    for warning in ratio_warnings:
        pair = f"{warning.source.name}:{warning.target.name}"
        if warning.severity == "critical":
            _push_unique(buckets.avoid_now, f"Avoid current {pair} ratio until corrected.")
        else:
            _push_unique(
                buckets.optimize_later,
                f"Adjust {pair} ratio (currently {_format_ratio(warning.current_ratio)})."
            )

    for warning in timing_warnings:
        action = f"Separate {warning.source.name} and {warning.target.name} by {warning.min_hours_apart:g}h."
        if warning.severity == "critical":
            _push_unique(buckets.avoid_now, f"Avoid taking them together: {action}")
        else:
            _push_unique(buckets.optimize_later, action)

    for gap in ratio_evaluation_gaps or []:
        _push_unique(buckets.optimize_later, f"Add missing ratio inputs ({format_gap_reason(gap.reason)}).")

    return buckets


class WarningAggregator:

    def __init__(self, port: InteractionEvaluationPort, log_repository: LogRepository):
        self.port = port
        self.log_repository = log_repository

    async def collect(self, context: EvaluationContext, entry: LogEntry) -> LogEventWarnings:
        """
        Everything new about one logging action.

        The new entry is assumed committed already; it is added to the day's
        snapshot if the repository read does not include it yet.
        """
        day_start = entry.logged_at.replace(hour=0, minute=0, second=0, microsecond=0)
        day_logs = await self.log_repository.find_logs(
            entry.user_id,
            start=day_start,
            end=day_start + timedelta(days=1) - timedelta(microseconds=1),
        )
        if all(log.id != entry.id for log in day_logs):
            day_logs.append(entry)

        supplement_ids = unique_ids(log.supplement_id for log in day_logs)
        dosages = [DosageInput(log.supplement_id, log.dosage, log.unit) for log in day_logs]

        analysis, timing = await gather_or_cancel(
            self.port.analyze(context, supplement_ids, dosages),
            self.port.check_timing(context, entry.supplement_id, entry.logged_at),
        )

        interactions = [i for i in analysis.interactions if i.touches(entry.supplement_id)]
        status = escalate_status(calculate_status(interactions), analysis.ratio_warnings)
        provenance = "engine" if analysis.provenance == "engine" and timing.provenance == "engine" else "local"

        logger.debug(
            f"Log {entry.id} ({entry.supplement_id}): {len(interactions)} interaction(s), "
            f"{len(analysis.ratio_warnings)} ratio, {len(timing.warnings)} timing, via {provenance}"
        )

        return LogEventWarnings(
            interactions=interactions,
            ratio_warnings=analysis.ratio_warnings,
            timing_warnings=timing.warnings,
            ratio_evaluation_gaps=analysis.ratio_evaluation_gaps,
            status=status,
            provenance=provenance,
        )
