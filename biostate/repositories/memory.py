from datetime import datetime
from typing import Dict, Iterable, List, Optional

from biostate.engine.types import (
    InteractionRule,
    LogEntry,
    RatioRule,
    Supplement,
    TimingRule,
)
from .base import RuleStore, LogRepository


class InMemoryRuleStore(RuleStore):
    """Fixture-backed rule catalog. Counts queries so callers can assert on them."""

    def __init__(
        self,
        interaction_rules: Optional[List[InteractionRule]] = None,
        ratio_rules: Optional[List[RatioRule]] = None,
        timing_rules: Optional[List[TimingRule]] = None,
        supplements: Optional[List[Supplement]] = None
    ):
        self.interaction_rules = list(interaction_rules or [])
        self.ratio_rules = list(ratio_rules or [])
        self.timing_rules = list(timing_rules or [])
        self.supplements = {s.id: s for s in supplements or []}
        self.query_count = 0

    async def find_interaction_rules(self, supplement_ids: Iterable[str]) -> List[InteractionRule]:
        self.query_count += 1
        ids = set(supplement_ids)
        return [
            r for r in self.interaction_rules
            if r.source_supplement_id in ids or r.target_supplement_id in ids
        ]

    async def find_ratio_rules(self, supplement_ids: Iterable[str]) -> List[RatioRule]:
        self.query_count += 1
        ids = set(supplement_ids)
        return [
            r for r in self.ratio_rules
            if r.source_supplement_id in ids or r.target_supplement_id in ids
        ]

    async def find_timing_rules(self, supplement_id: str) -> List[TimingRule]:
        self.query_count += 1
        return [
            r for r in self.timing_rules
            if supplement_id in (r.source_supplement_id, r.target_supplement_id)
        ]

    async def find_supplements(self, supplement_ids: Iterable[str]) -> Dict[str, Supplement]:
        self.query_count += 1
        return {sid: self.supplements[sid] for sid in supplement_ids if sid in self.supplements}


class InMemoryLogRepository(LogRepository):

    def __init__(self, logs: Optional[List[LogEntry]] = None):
        self.logs = list(logs or [])
        self.query_count = 0

    def add(self, entry: LogEntry):
        self.logs.append(entry)

    async def find_logs(
        self,
        user_id: str,
        supplement_ids: Optional[Iterable[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[LogEntry]:
        self.query_count += 1
        ids = set(supplement_ids) if supplement_ids is not None else None

        found = []
        for entry in self.logs:
            if entry.user_id != user_id:
                continue
            if ids is not None and entry.supplement_id not in ids:
                continue
            if start is not None and entry.logged_at < start:
                continue
            if end is not None and entry.logged_at > end:
                continue
            found.append(entry)

        return sorted(found, key=lambda e: e.logged_at)
