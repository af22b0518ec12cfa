"""
Biological State Simulator

Turns a user's last 24h of intake into a dashboard snapshot:
- active compounds with their current concentration and phase
- exclusion zones ("don't take X until HH:MM")
- optimization opportunities (active synergies, missing co-factors, spacing)
- a 0-100 bio-score and a concentration timeline

Everything here is recomputed from (logs, rules, now) on every call.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional
import logging
import math

from biostate.config import Settings, get_settings
from biostate.engine.kinetics import (
    DETECTION_FLOOR_PERCENT,
    KineticsTable,
    calculate_concentration,
    concentration_curve,
    determine_phase,
    get_kinetics_table,
    sample_curve,
)
from biostate.engine.types import (
    ActiveCompound,
    BiologicalState,
    ExclusionZone,
    InteractionRule,
    LogEntry,
    OptimizationOpportunity,
    Supplement,
    TimelineDataPoint,
    TimingRule,
    utcnow,
)
from biostate.repositories.base import LogRepository, RuleStore

logger = logging.getLogger(__name__)


ZONE_PENALTIES = {"critical": 50, "medium": 25, "low": 15}
SYNERGY_BONUS = 5
SYNERGY_BONUS_CAP = 20
NEUTRAL_SCORE = 50
TIMELINE_CAP_PERCENT = 150.0


def _minutes_between(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() / 60


def _display_name(supplement_id: str) -> str:
    return supplement_id.replace("_", " ").title()


def calculate_bio_score(
    active_compounds: List[ActiveCompound],
    exclusion_zones: List[ExclusionZone],
    optimizations: List[OptimizationOpportunity]
) -> int:
    """
    Start at 100, subtract 50/25/15 per critical/medium/low open zone, add 5
    per active synergy (bonus capped at 20). An empty state scores 50.
    """
    if not any(c.is_active for c in active_compounds):
        return NEUTRAL_SCORE

    score = 100
    for zone in exclusion_zones:
        score -= ZONE_PENALTIES.get(zone.severity, ZONE_PENALTIES["low"])

    active_synergies = [o for o in optimizations if o.type == "synergy"]
    score += min(len(active_synergies) * SYNERGY_BONUS, SYNERGY_BONUS_CAP)

    return max(0, min(100, score))


class BiologicalStateSimulator:

    def __init__(
        self,
        rule_store: RuleStore,
        log_repository: LogRepository,
        kinetics: Optional[KineticsTable] = None,
        settings: Optional[Settings] = None
    ):
        self.rule_store = rule_store
        self.log_repository = log_repository
        self.kinetics = kinetics or get_kinetics_table()
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Pure derivations
    # ------------------------------------------------------------------

    def compute_active_compounds(self, logs: Iterable[LogEntry], now: datetime) -> List[ActiveCompound]:
        """One entry per log inside the window, newest first."""
        compounds = []
        for entry in sorted(logs, key=lambda e: e.logged_at, reverse=True):
            minutes = _minutes_between(now, entry.logged_at)
            if minutes < 0:
                continue

            profile = self.kinetics.profile_for(entry.supplement_id, entry.category)
            concentration = calculate_concentration(minutes, profile, entry.dosage)
            phase = determine_phase(minutes, profile.peak_minutes, concentration)

            compounds.append(ActiveCompound(
                log_id=entry.id,
                supplement_id=entry.supplement_id,
                name=entry.supplement_name or _display_name(entry.supplement_id),
                dosage=entry.dosage,
                unit=entry.unit,
                logged_at=entry.logged_at,
                peak_minutes=profile.peak_minutes,
                half_life_minutes=profile.half_life_minutes,
                bioavailability_percent=profile.bioavailability_percent,
                phase=phase,
                concentration_percent=0.0 if phase == "cleared" else round(concentration, 1),
                category=entry.category,
            ))
        return compounds

    def calculate_exclusion_zones(
        self,
        compounds: List[ActiveCompound],
        timing_rules: List[TimingRule],
        now: datetime
    ) -> List[ExclusionZone]:
        """Open a zone against a rule's target while its source compound is still active."""
        latest_active: Dict[str, ActiveCompound] = {}
        for compound in compounds:
            if not compound.is_active:
                continue
            current = latest_active.get(compound.supplement_id)
            if current is None or compound.logged_at > current.logged_at:
                latest_active[compound.supplement_id] = compound

        zones = []
        seen = set()
        for rule in timing_rules:
            if rule.id in seen:
                continue
            seen.add(rule.id)

            source = latest_active.get(rule.source_supplement_id)
            if source is None:
                continue

            ends_at = source.logged_at + timedelta(hours=rule.min_hours_apart)
            # Expired zones count as cleared
            if ends_at <= now:
                continue

            zones.append(ExclusionZone(
                rule_id=rule.id,
                source_supplement_id=rule.source_supplement_id,
                source_supplement_name=rule.source_name or source.name,
                target_supplement_id=rule.target_supplement_id,
                target_supplement_name=rule.target_name or _display_name(rule.target_supplement_id),
                ends_at=ends_at,
                minutes_remaining=round(_minutes_between(ends_at, now)),
                reason=rule.reason,
                severity=rule.severity,
                research_url=rule.research_url,
            ))

        return sorted(zones, key=lambda z: z.minutes_remaining)

    def calculate_optimizations(
        self,
        compounds: List[ActiveCompound],
        logged_ids: Iterable[str],
        synergy_rules: List[InteractionRule],
        timing_rules: List[TimingRule],
        catalog: Dict[str, Supplement],
        dismissed_keys: Optional[Iterable[str]] = None
    ) -> List[OptimizationOpportunity]:
        active = [c for c in compounds if c.is_active]
        if not active:
            return []

        latest: Dict[str, ActiveCompound] = {}
        for compound in active:
            current = latest.get(compound.supplement_id)
            if current is None or compound.logged_at > current.logged_at:
                latest[compound.supplement_id] = compound

        logged = set(logged_ids)
        optimizations: Dict[str, OptimizationOpportunity] = {}

        # (a) Synergies where both compounds are in the blood right now
        for rule in synergy_rules:
            if rule.type != "synergy":
                continue
            if rule.source_supplement_id not in latest or rule.target_supplement_id not in latest:
                continue
            source_name = rule.source_name or latest[rule.source_supplement_id].name
            target_name = rule.target_name or latest[rule.target_supplement_id].name
            key = "synergy:" + ":".join(sorted([rule.source_supplement_id, rule.target_supplement_id]))
            optimizations.setdefault(key, OptimizationOpportunity(
                type="synergy",
                category="synergy",
                supplement_ids=[rule.source_supplement_id, rule.target_supplement_id],
                title=f"Active synergy: {source_name} + {target_name}",
                description=rule.suggestion or "You're getting the benefit of this synergy!",
                priority=1,
                suggestion_key=key,
            ))

        # (b) Co-factors missing from the recent history
        for supplement_id, compound in latest.items():
            for cofactor_id in self.kinetics.cofactors_for(supplement_id):
                if cofactor_id in logged:
                    continue
                key = f"cofactor:{supplement_id}:{cofactor_id}"
                if key in optimizations:
                    continue
                cofactor = catalog.get(cofactor_id)
                cofactor_name = cofactor.name if cofactor else _display_name(cofactor_id)
                optimizations[key] = OptimizationOpportunity(
                    type="balance",
                    category="cofactor",
                    supplement_ids=[supplement_id, cofactor_id],
                    title=f"Pair {compound.name} with {cofactor_name}",
                    description=f"{cofactor_name} is a co-factor for {compound.name} and hasn't been logged in the last 24 hours.",
                    priority=2,
                    suggestion_key=key,
                    safety_warning=self.kinetics.safety_warning_for(
                        cofactor.safety_category if cofactor else None, cofactor_name
                    ),
                    suggested_supplement=cofactor_id,
                )

        # (c) Competing compounds taken too close together
        for rule in timing_rules:
            a = latest.get(rule.source_supplement_id)
            b = latest.get(rule.target_supplement_id)
            if a is None or b is None or a.supplement_id == b.supplement_id:
                continue
            gap_hours = abs(_minutes_between(a.logged_at, b.logged_at)) / 60
            if gap_hours >= rule.min_hours_apart:
                continue
            key = f"spacing:{rule.source_supplement_id}:{rule.target_supplement_id}"
            optimizations.setdefault(key, OptimizationOpportunity(
                type="timing",
                category="spacing",
                supplement_ids=[rule.source_supplement_id, rule.target_supplement_id],
                title=f"Space out {a.name} and {b.name}",
                description=f"{rule.reason} Take them at least {rule.min_hours_apart:g} hours apart.",
                priority=3 if rule.severity == "critical" else 2,
                suggestion_key=key,
            ))

        dismissed = set(dismissed_keys or [])
        kept = [o for k, o in optimizations.items() if k not in dismissed]
        return sorted(kept, key=lambda o: o.priority, reverse=True)

    def build_timeline(
        self,
        logs: Iterable[LogEntry],
        now: datetime,
        interval_minutes: Optional[int] = None,
        window_hours: Optional[int] = None
    ) -> List[TimelineDataPoint]:
        """Summed concentration per supplement from now - window to now + projection."""
        logs = list(logs)
        if not logs:
            return []

        interval = interval_minutes or self.settings.timeline_interval_minutes
        window = window_hours or self.settings.visualization_window_hours
        start = now - timedelta(hours=window)
        end = now + timedelta(hours=self.settings.timeline_projection_hours)
        total_minutes = int(_minutes_between(end, start))

        # One curve per dose at the chart cadence, re-sampled at each chart point
        curves = [
            concentration_curve(
                self.kinetics.profile_for(e.supplement_id, e.category),
                e.dosage,
                interval_minutes=interval,
                duration_minutes=math.ceil(_minutes_between(end, e.logged_at)) + interval,
            )
            for e in logs
        ]

        points = []
        for minutes in range(0, total_minutes + 1, interval):
            timestamp = start + timedelta(minutes=minutes)
            concentrations: Dict[str, float] = {}

            for entry, curve in zip(logs, curves):
                since = _minutes_between(timestamp, entry.logged_at)
                if since < 0:
                    continue
                value = sample_curve(curve, interval, since)
                if value < DETECTION_FLOOR_PERCENT:
                    value = 0.0
                current = concentrations.get(entry.supplement_id, 0.0)
                concentrations[entry.supplement_id] = min(current + value, TIMELINE_CAP_PERCENT)

            points.append(TimelineDataPoint(
                minutes_from_start=minutes,
                timestamp=timestamp,
                concentrations={k: round(v, 1) for k, v in concentrations.items()},
            ))

        return points

    # ------------------------------------------------------------------
    # Repository-backed entry points
    # ------------------------------------------------------------------

    async def _recent_logs(self, user_id: str, now: datetime) -> List[LogEntry]:
        start = now - timedelta(hours=self.settings.visualization_window_hours)
        return await self.log_repository.find_logs(user_id, start=start, end=now)

    async def _timing_rules(self, supplement_ids: Iterable[str]) -> List[TimingRule]:
        batches = await asyncio.gather(*[self.rule_store.find_timing_rules(sid) for sid in supplement_ids])
        rules: Dict[str, TimingRule] = {}
        for batch in batches:
            for rule in batch:
                rules.setdefault(rule.id, rule)
        return list(rules.values())

    async def get_biological_state(
        self,
        user_id: str,
        now: Optional[datetime] = None,
        dismissed_keys: Optional[Iterable[str]] = None
    ) -> BiologicalState:
        now = now or utcnow()
        logs = await self._recent_logs(user_id, now)
        compounds = self.compute_active_compounds(logs, now)

        active_ids = sorted({c.supplement_id for c in compounds if c.is_active})
        logged_ids = {e.supplement_id for e in logs}
        cofactor_ids = {cf for sid in active_ids for cf in self.kinetics.cofactors_for(sid)} - logged_ids

        timing_rules: List[TimingRule] = []
        synergy_rules: List[InteractionRule] = []
        catalog: Dict[str, Supplement] = {}
        if active_ids:
            timing_rules, interaction_rules, catalog = await asyncio.gather(
                self._timing_rules(active_ids),
                self.rule_store.find_interaction_rules(active_ids),
                self.rule_store.find_supplements(sorted(cofactor_ids)),
            )
            synergy_rules = [r for r in interaction_rules if r.type == "synergy"]

        zones = self.calculate_exclusion_zones(compounds, timing_rules, now)
        optimizations = self.calculate_optimizations(
            compounds, logged_ids, synergy_rules, timing_rules, catalog, dismissed_keys
        )
        bio_score = calculate_bio_score(compounds, zones, optimizations)
        logger.debug(
            f"Biological state for {user_id}: {len(active_ids)} active, "
            f"{len(zones)} zone(s), score {bio_score}"
        )

        return BiologicalState(
            active_compounds=compounds,
            exclusion_zones=zones,
            optimizations=optimizations,
            bio_score=bio_score,
            timeline_data=self.build_timeline(logs, now),
            calculated_at=now,
        )

    async def get_timeline(
        self,
        user_id: str,
        now: Optional[datetime] = None,
        interval_minutes: Optional[int] = None,
        window_hours: Optional[int] = None
    ) -> List[TimelineDataPoint]:
        now = now or utcnow()
        window = window_hours or self.settings.visualization_window_hours
        logs = await self.log_repository.find_logs(user_id, start=now - timedelta(hours=window), end=now)
        return self.build_timeline(logs, now, interval_minutes, window)

    async def check_timing_safety(
        self,
        user_id: str,
        supplement_id: str,
        now: Optional[datetime] = None
    ) -> Optional[ExclusionZone]:
        """The open zone blocking this supplement, or None when it is safe to take."""
        state = await self.get_biological_state(user_id, now)
        for zone in state.exclusion_zones:
            if zone.target_supplement_id == supplement_id:
                return zone
        return None

    async def get_active_supplements(self, user_id: str, now: Optional[datetime] = None) -> List[ActiveCompound]:
        """Compounds still absorbing or at peak."""
        state = await self.get_biological_state(user_id, now)
        return [c for c in state.active_compounds if c.phase in ("absorbing", "peak")]
