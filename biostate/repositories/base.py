from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from biostate.engine.types import (
    InteractionRule,
    LogEntry,
    RatioRule,
    Supplement,
    TimingRule,
)


class RuleStore(ABC):
    """Read-only catalog of interaction, ratio and timing rules."""

    @abstractmethod
    async def find_interaction_rules(self, supplement_ids: Iterable[str]) -> List[InteractionRule]:
        """Rules where either endpoint is in the given set."""
        pass

    @abstractmethod
    async def find_ratio_rules(self, supplement_ids: Iterable[str]) -> List[RatioRule]:
        """Rules where either endpoint is in the given set."""
        pass

    @abstractmethod
    async def find_timing_rules(self, supplement_id: str) -> List[TimingRule]:
        """Rules naming the supplement as source or target."""
        pass

    @abstractmethod
    async def find_supplements(self, supplement_ids: Iterable[str]) -> Dict[str, Supplement]:
        pass


class LogRepository(ABC):
    """Read access to a user's intake history."""

    @abstractmethod
    async def find_logs(
        self,
        user_id: str,
        supplement_ids: Optional[Iterable[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[LogEntry]:
        """Logs within [start, end], oldest first."""
        pass
