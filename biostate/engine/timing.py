"""
Minimum-spacing checks for a newly logged supplement.

A timing rule says two supplements should be taken at least N hours apart.
When a user logs one side, every log of the other side within N hours (past
or future) produces a warning.
"""

from datetime import datetime, timedelta
from typing import List
import math

from biostate.engine.types import LogEntry, SupplementInfo, TimingRule, TimingWarning
from biostate.repositories.base import LogRepository, RuleStore


def hours_apart(a: datetime, b: datetime) -> float:
    """Absolute gap in hours, truncated to one decimal place."""
    raw = abs((a - b).total_seconds()) / 3600
    return math.floor(raw * 10) / 10


def build_timing_warnings(
    supplement_id: str,
    logged_at: datetime,
    rules: List[TimingRule],
    logs: List[LogEntry]
) -> List[TimingWarning]:
    warnings = []
    seen_rules = set()

    for rule in rules:
        if rule.id in seen_rules or rule.source_supplement_id == rule.target_supplement_id:
            continue
        seen_rules.add(rule.id)

        other_id = rule.other_side(supplement_id)
        new_is_source = rule.source_supplement_id == supplement_id

        for log in logs:
            if log.supplement_id != other_id:
                continue
            gap_seconds = abs((logged_at - log.logged_at).total_seconds())
            if gap_seconds >= rule.min_hours_apart * 3600:
                continue

            source_logged_at = logged_at if new_is_source else log.logged_at
            target_logged_at = log.logged_at if new_is_source else logged_at
            warnings.append(TimingWarning(
                id=rule.id,
                severity=rule.severity,
                reason=rule.reason,
                min_hours_apart=rule.min_hours_apart,
                actual_hours_apart=hours_apart(logged_at, log.logged_at),
                source=SupplementInfo(id=rule.source_supplement_id, name=rule.source_name or rule.source_supplement_id),
                target=SupplementInfo(id=rule.target_supplement_id, name=rule.target_name or rule.target_supplement_id),
                source_logged_at=source_logged_at,
                target_logged_at=target_logged_at,
            ))

    return warnings


class TimingWindowEvaluator:

    def __init__(self, rule_store: RuleStore, log_repository: LogRepository):
        self.rule_store = rule_store
        self.log_repository = log_repository

    async def evaluate(self, user_id: str, supplement_id: str, logged_at: datetime) -> List[TimingWarning]:
        rules = await self.rule_store.find_timing_rules(supplement_id)
        if not rules:
            return []

        # One query covering the widest window any rule needs
        window = timedelta(hours=max(r.min_hours_apart for r in rules))
        other_ids = {r.other_side(supplement_id) for r in rules}
        logs = await self.log_repository.find_logs(
            user_id,
            supplement_ids=other_ids,
            start=logged_at - window,
            end=logged_at + window,
        )
        return build_timing_warnings(supplement_id, logged_at, rules, logs)
