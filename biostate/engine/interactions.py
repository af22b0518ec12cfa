"""
Pairwise supplement interactions.

Rules are stored directionally (source -> target) but are matched in either
direction: a rule applies when both of its endpoints are in the evaluated set.
"""

from typing import Iterable, List, Tuple
import logging

from biostate.engine.types import InteractionRule, InteractionWarning, SupplementInfo
from biostate.repositories.base import RuleStore

logger = logging.getLogger(__name__)


def unique_ids(supplement_ids: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for sid in supplement_ids:
        if sid not in seen:
            seen.add(sid)
            ordered.append(sid)
    return ordered


def match_interaction_rules(
    rules: List[InteractionRule],
    supplement_ids: Iterable[str]
) -> List[InteractionWarning]:
    """Rules whose endpoints are both present, one warning per rule."""
    present = set(supplement_ids)
    found = []
    seen_rules = set()

    for rule in rules:
        if rule.id in seen_rules:
            continue
        if rule.source_supplement_id not in present or rule.target_supplement_id not in present:
            continue
        seen_rules.add(rule.id)
        found.append(InteractionWarning(
            id=rule.id,
            type=rule.type,
            severity=rule.severity,
            source=SupplementInfo(id=rule.source_supplement_id, name=rule.source_name or rule.source_supplement_id),
            target=SupplementInfo(id=rule.target_supplement_id, name=rule.target_name or rule.target_supplement_id),
            mechanism=rule.mechanism,
            research_url=rule.research_url,
            suggestion=rule.suggestion,
        ))

    return found


def split_interactions(
    interactions: List[InteractionWarning]
) -> Tuple[List[InteractionWarning], List[InteractionWarning]]:
    """Separate (warnings, synergies)."""
    warnings = [i for i in interactions if not i.is_synergy]
    synergies = [i for i in interactions if i.is_synergy]
    return warnings, synergies


class InteractionEvaluator:
    """Check a supplement set for known pairwise interactions."""

    def __init__(self, rule_store: RuleStore):
        self.rule_store = rule_store

    async def evaluate(self, supplement_ids: Iterable[str]) -> List[InteractionWarning]:
        """
        Find every interaction between members of the set.

        Args:
            supplement_ids: Supplement IDs being considered; duplicates collapse

        Returns:
            One InteractionWarning per matching rule, synergies included
        """
        ids = unique_ids(supplement_ids)
        if len(ids) < 2:
            return []

        rules = await self.rule_store.find_interaction_rules(ids)
        found = match_interaction_rules(rules, ids)
        if found:
            logger.debug(f"{len(found)} interaction(s) among {len(ids)} supplements")
        return found
