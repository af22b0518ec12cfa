"""
SQLAlchemy-backed repositories.

Queries run on the request's Session. Any SQLAlchemy failure is re-raised as
RepositoryError so the local evaluation path surfaces a typed failure instead
of an empty result.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional
import logging

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from biostate.engine.errors import RepositoryError
from biostate.engine.types import (
    InteractionRule,
    LogEntry,
    RatioRule,
    Supplement,
    TimingRule,
)
from biostate.models import (
    Supplement as SupplementRecord,
    SupplementLog,
    InteractionRuleRecord,
    RatioRuleRecord,
    TimingRuleRecord,
)
from .base import RuleStore, LogRepository

logger = logging.getLogger(__name__)


def _name(supplement: Optional[SupplementRecord], fallback: str) -> str:
    return supplement.name if supplement is not None else fallback


class SqlAlchemyRuleStore(RuleStore):

    def __init__(self, db: Session):
        self.db = db

    async def find_interaction_rules(self, supplement_ids: Iterable[str]) -> List[InteractionRule]:
        ids = list(supplement_ids)
        try:
            records = (
                self.db.query(InteractionRuleRecord)
                .options(joinedload(InteractionRuleRecord.source), joinedload(InteractionRuleRecord.target))
                .filter(or_(
                    InteractionRuleRecord.source_supplement_id.in_(ids),
                    InteractionRuleRecord.target_supplement_id.in_(ids)
                ))
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Interaction rule lookup failed: {e}")
            raise RepositoryError("interaction rules unavailable", stage="interactions") from e

        return [
            InteractionRule(
                id=r.id,
                source_supplement_id=r.source_supplement_id,
                target_supplement_id=r.target_supplement_id,
                type=r.type,
                severity=r.severity,
                mechanism=r.mechanism,
                research_url=r.research_url,
                suggestion=r.suggestion,
                source_name=_name(r.source, r.source_supplement_id),
                target_name=_name(r.target, r.target_supplement_id),
            )
            for r in records
        ]

    async def find_ratio_rules(self, supplement_ids: Iterable[str]) -> List[RatioRule]:
        ids = list(supplement_ids)
        try:
            records = (
                self.db.query(RatioRuleRecord)
                .options(joinedload(RatioRuleRecord.source), joinedload(RatioRuleRecord.target))
                .filter(or_(
                    RatioRuleRecord.source_supplement_id.in_(ids),
                    RatioRuleRecord.target_supplement_id.in_(ids)
                ))
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Ratio rule lookup failed: {e}")
            raise RepositoryError("ratio rules unavailable", stage="ratios") from e

        return [
            RatioRule(
                id=r.id,
                source_supplement_id=r.source_supplement_id,
                target_supplement_id=r.target_supplement_id,
                severity=r.severity,
                warning_message=r.warning_message,
                min_ratio=r.min_ratio,
                max_ratio=r.max_ratio,
                optimal_ratio=r.optimal_ratio,
                research_url=r.research_url,
                warn_when_target_missing=bool(r.warn_when_target_missing),
                source_name=_name(r.source, r.source_supplement_id),
                target_name=_name(r.target, r.target_supplement_id),
            )
            for r in records
        ]

    async def find_timing_rules(self, supplement_id: str) -> List[TimingRule]:
        try:
            records = (
                self.db.query(TimingRuleRecord)
                .options(joinedload(TimingRuleRecord.source), joinedload(TimingRuleRecord.target))
                .filter(or_(
                    TimingRuleRecord.source_supplement_id == supplement_id,
                    TimingRuleRecord.target_supplement_id == supplement_id
                ))
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Timing rule lookup failed for {supplement_id}: {e}")
            raise RepositoryError("timing rules unavailable", stage="timing") from e

        return [
            TimingRule(
                id=r.id,
                source_supplement_id=r.source_supplement_id,
                target_supplement_id=r.target_supplement_id,
                min_hours_apart=r.min_hours_apart,
                severity=r.severity,
                reason=r.reason,
                research_url=r.research_url,
                source_name=_name(r.source, r.source_supplement_id),
                target_name=_name(r.target, r.target_supplement_id),
            )
            for r in records
        ]

    async def find_supplements(self, supplement_ids: Iterable[str]) -> Dict[str, Supplement]:
        ids = list(supplement_ids)
        try:
            records = self.db.query(SupplementRecord).filter(SupplementRecord.id.in_(ids)).all()
        except SQLAlchemyError as e:
            logger.error(f"Supplement lookup failed: {e}")
            raise RepositoryError("supplement catalog unavailable", stage="supplements") from e

        return {
            r.id: Supplement(
                id=r.id,
                name=r.name,
                form=r.form,
                category=r.category,
                safety_category=r.safety_category,
            )
            for r in records
        }


class SqlAlchemyLogRepository(LogRepository):

    def __init__(self, db: Session):
        self.db = db

    async def find_logs(
        self,
        user_id: str,
        supplement_ids: Optional[Iterable[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[LogEntry]:
        try:
            query = (
                self.db.query(SupplementLog)
                .options(joinedload(SupplementLog.supplement))
                .filter(SupplementLog.user_id == user_id)
            )
            if supplement_ids is not None:
                query = query.filter(SupplementLog.supplement_id.in_(list(supplement_ids)))
            if start is not None:
                query = query.filter(SupplementLog.logged_at >= start)
            if end is not None:
                query = query.filter(SupplementLog.logged_at <= end)
            records = query.order_by(SupplementLog.logged_at).all()
        except SQLAlchemyError as e:
            logger.error(f"Log lookup failed for user {user_id}: {e}")
            raise RepositoryError("intake history unavailable", stage="logs") from e

        return [
            LogEntry(
                id=r.id,
                user_id=r.user_id,
                supplement_id=r.supplement_id,
                dosage=r.dosage,
                unit=r.unit,
                logged_at=r.logged_at,
                supplement_name=_name(r.supplement, r.supplement_id),
                category=r.supplement.category if r.supplement is not None else None,
            )
            for r in records
        ]
