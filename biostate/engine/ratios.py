"""
Stoichiometric ratio evaluation (e.g. Zinc:Copper).

Dosages are compared as raw magnitudes in whatever unit they were logged in;
no mg/mcg/IU normalisation happens here.
"""

import asyncio
import math
from typing import Dict, Iterable, List, Optional, Tuple

from biostate.engine.types import (
    DosageInput,
    RatioEvaluationGap,
    RatioRule,
    RatioWarning,
    Supplement,
    SupplementInfo,
)
from biostate.repositories.base import RuleStore


# Ratios within 15% of a declared bound are practically acceptable
TOLERANCE_FACTOR = 0.15


def aggregate_dosages(dosages: Iterable[DosageInput]) -> Dict[str, DosageInput]:
    """
    Total the dosages per supplement, keeping first-seen order.

    An entry with an unknown dosage does not erase a known one; a supplement
    only ends up with dosage None when no entry for it had a value.
    """
    totals: Dict[str, DosageInput] = {}
    for d in dosages:
        current = totals.get(d.supplement_id)
        if current is None:
            totals[d.supplement_id] = DosageInput(d.supplement_id, d.dosage, d.unit)
            continue
        if d.dosage is None:
            continue
        if current.dosage is None:
            current.dosage = d.dosage
            current.unit = d.unit
        else:
            current.dosage += d.dosage
    return totals


def has_dosage(dosage: Optional[DosageInput]) -> bool:
    return dosage is not None and dosage.dosage is not None and dosage.dosage > 0


def tolerance_bounds(
    min_ratio: Optional[float],
    max_ratio: Optional[float],
    tolerance: float = TOLERANCE_FACTOR
) -> Tuple[Optional[float], Optional[float]]:
    effective_min = min_ratio * (1 - tolerance) if min_ratio is not None else None
    effective_max = max_ratio * (1 + tolerance) if max_ratio is not None else None
    return effective_min, effective_max


def is_out_of_band(ratio: float, rule: RatioRule) -> bool:
    effective_min, effective_max = tolerance_bounds(rule.min_ratio, rule.max_ratio)
    if effective_min is not None and ratio < effective_min:
        return True
    if effective_max is not None and ratio > effective_max:
        return True
    return False


def _info(supplement_id: str, catalog: Dict[str, Supplement], fallback_name: str) -> SupplementInfo:
    supplement = catalog.get(supplement_id)
    if supplement is None:
        return SupplementInfo(id=supplement_id, name=fallback_name or supplement_id)
    return SupplementInfo(id=supplement.id, name=supplement.name, form=supplement.form)


def evaluate_ratio_rules(
    rules: List[RatioRule],
    totals: Dict[str, DosageInput],
    catalog: Dict[str, Supplement]
) -> Tuple[List[RatioWarning], List[RatioEvaluationGap]]:
    """Pure evaluation of ratio rules against per-supplement dosage totals."""
    warnings: List[RatioWarning] = []
    gaps: List[RatioEvaluationGap] = []
    seen = set()

    for rule in rules:
        if rule.id in seen:
            continue
        seen.add(rule.id)

        source = totals.get(rule.source_supplement_id)
        target = totals.get(rule.target_supplement_id)
        if source is None:
            continue

        if target is None:
            # Source alone is only a finding for rules that say so
            if rule.warn_when_target_missing and has_dosage(source):
                source_info = _info(rule.source_supplement_id, catalog, rule.source_name)
                target_info = _info(rule.target_supplement_id, catalog, rule.target_name)
                warnings.append(RatioWarning(
                    id=rule.id,
                    severity="critical",
                    current_ratio=math.inf,
                    warning_message=f"No {target_info.name} logged alongside {source_info.name}. {rule.warning_message}",
                    source=source_info,
                    target=target_info,
                    min_ratio=rule.min_ratio,
                    max_ratio=rule.max_ratio,
                    optimal_ratio=rule.optimal_ratio,
                    research_url=rule.research_url,
                    missing_target=True,
                ))
            continue

        if rule.source_supplement_id not in catalog or rule.target_supplement_id not in catalog:
            gaps.append(RatioEvaluationGap(
                rule_id=rule.id,
                source_supplement_id=rule.source_supplement_id,
                target_supplement_id=rule.target_supplement_id,
                reason="missing_supplement_data",
            ))
            continue

        if not has_dosage(source) or not has_dosage(target):
            gaps.append(RatioEvaluationGap(
                rule_id=rule.id,
                source_supplement_id=rule.source_supplement_id,
                target_supplement_id=rule.target_supplement_id,
                reason="missing_dosage",
            ))
            continue

        ratio = source.dosage / target.dosage
        if not is_out_of_band(ratio, rule):
            continue

        warnings.append(RatioWarning(
            id=rule.id,
            severity=rule.severity,
            current_ratio=round(ratio, 1),
            warning_message=rule.warning_message,
            source=_info(rule.source_supplement_id, catalog, rule.source_name),
            target=_info(rule.target_supplement_id, catalog, rule.target_name),
            min_ratio=rule.min_ratio,
            max_ratio=rule.max_ratio,
            optimal_ratio=rule.optimal_ratio,
            research_url=rule.research_url,
        ))

    return warnings, gaps


def format_gap_reason(reason: str) -> str:
    if reason == "missing_dosage":
        return "missing dosage"
    if reason == "missing_supplement_data":
        return "missing supplement data"
    if reason == "normalization_failed":
        return "unit normalization failed"
    return "unknown reason"


def build_gap_message(gap: RatioEvaluationGap) -> str:
    return f"Ratio check could not evaluate one supplement pair: {format_gap_reason(gap.reason)}."


class RatioEvaluator:
    """Flags dosage ratios that fall outside a rule's tolerance-expanded band."""

    def __init__(self, rule_store: RuleStore):
        self.rule_store = rule_store

    async def evaluate(
        self,
        dosages: Iterable[DosageInput]
    ) -> Tuple[List[RatioWarning], List[RatioEvaluationGap]]:
        totals = aggregate_dosages(dosages)
        if not totals:
            return [], []
        if len(totals) == 1:
            return await self._evaluate_alone(next(iter(totals.values())))

        rules, catalog = await asyncio.gather(
            self.rule_store.find_ratio_rules(list(totals)),
            self.rule_store.find_supplements(list(totals)),
        )
        return evaluate_ratio_rules(rules, totals, catalog)

    async def _evaluate_alone(
        self,
        dosage: DosageInput
    ) -> Tuple[List[RatioWarning], List[RatioEvaluationGap]]:
        """
        A lone supplement has no pair to compare; only rules that flag a
        missing counterpart (zinc without copper) can fire.
        """
        if not has_dosage(dosage):
            return [], []

        rules = await self.rule_store.find_ratio_rules([dosage.supplement_id])
        one_sided = [
            r for r in rules
            if r.warn_when_target_missing and r.source_supplement_id == dosage.supplement_id
        ]
        # Rules carry the display names, so no catalog read is needed
        warnings, _ = evaluate_ratio_rules(one_sided, {dosage.supplement_id: dosage}, {})
        return warnings, []
