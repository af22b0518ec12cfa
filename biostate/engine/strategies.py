"""
Evaluation strategies.

One port, two implementations:
- LocalStrategy runs the in-process evaluators against the repositories
- RemoteEngineStrategy asks the remote engine
FallbackStrategy composes them: remote first, local when the engine can't
answer. Callers only see the provenance tag.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Awaitable, List, Optional
import logging

from biostate.config import Settings
from biostate.engine.contract import are_safety_contracts_equivalent, interaction_keys, ratio_keys
from biostate.engine.engine_client import EngineClient
from biostate.engine.errors import EngineUnavailable, EvaluationError
from biostate.engine.interactions import InteractionEvaluator, split_interactions, unique_ids
from biostate.engine.ratios import RatioEvaluator
from biostate.engine.status import calculate_status, escalate_status
from biostate.engine.timing import TimingWindowEvaluator
from biostate.engine.types import (
    AnalysisResult,
    DosageInput,
    EvaluationContext,
    TimingResult,
)
from biostate.repositories.base import LogRepository, RuleStore

logger = logging.getLogger(__name__)


async def gather_or_cancel(*aws: Awaitable) -> list:
    """Like asyncio.gather, but a failure cancels the siblings still running."""
    tasks = [asyncio.ensure_future(a) for a in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise


class InteractionEvaluationPort(ABC):

    @abstractmethod
    async def analyze(
        self,
        context: EvaluationContext,
        supplement_ids: List[str],
        dosages: Optional[List[DosageInput]] = None
    ) -> AnalysisResult:
        ...

    @abstractmethod
    async def check_timing(
        self,
        context: EvaluationContext,
        supplement_id: str,
        logged_at: datetime
    ) -> TimingResult:
        ...


class LocalStrategy(InteractionEvaluationPort):

    def __init__(self, rule_store: RuleStore, log_repository: LogRepository):
        self.interactions = InteractionEvaluator(rule_store)
        self.ratios = RatioEvaluator(rule_store)
        self.timing = TimingWindowEvaluator(rule_store, log_repository)

    async def analyze(
        self,
        context: EvaluationContext,
        supplement_ids: List[str],
        dosages: Optional[List[DosageInput]] = None
    ) -> AnalysisResult:
        interactions, (ratio_warnings, gaps) = await gather_or_cancel(
            self.interactions.evaluate(unique_ids(supplement_ids)),
            self.ratios.evaluate(dosages or []),
        )
        warnings, synergies = split_interactions(interactions)
        return AnalysisResult(
            status=escalate_status(calculate_status(warnings), ratio_warnings),
            warnings=warnings,
            synergies=synergies,
            ratio_warnings=ratio_warnings,
            ratio_evaluation_gaps=gaps,
            provenance="local",
        )

    async def check_timing(
        self,
        context: EvaluationContext,
        supplement_id: str,
        logged_at: datetime
    ) -> TimingResult:
        if not context.user_id:
            return TimingResult(provenance="local")
        warnings = await self.timing.evaluate(context.user_id, supplement_id, logged_at)
        return TimingResult(warnings=warnings, provenance="local")


class RemoteEngineStrategy(InteractionEvaluationPort):
    """Raises EngineUnavailable whenever the engine gives no usable answer."""

    def __init__(self, client: EngineClient):
        self.client = client

    async def analyze(
        self,
        context: EvaluationContext,
        supplement_ids: List[str],
        dosages: Optional[List[DosageInput]] = None
    ) -> AnalysisResult:
        result = await self.client.analyze(context, unique_ids(supplement_ids), dosages)
        if not result.ok:
            raise EngineUnavailable(result.failure_reason.value, result.status_code)
        return result.data

    async def check_timing(
        self,
        context: EvaluationContext,
        supplement_id: str,
        logged_at: datetime
    ) -> TimingResult:
        result = await self.client.check_timing(context, supplement_id, logged_at)
        if not result.ok:
            raise EngineUnavailable(result.failure_reason.value, result.status_code)
        return TimingResult(warnings=result.data, provenance="engine")


class FallbackStrategy(InteractionEvaluationPort):
    """
    Remote first, local on EngineUnavailable. With shadow_compare on, a
    successful engine analysis is also evaluated locally and any contract
    mismatch is logged; the engine answer is still the one returned.
    """

    def __init__(
        self,
        remote: InteractionEvaluationPort,
        local: InteractionEvaluationPort,
        shadow_compare: bool = False
    ):
        self.remote = remote
        self.local = local
        self.shadow_compare = shadow_compare

    async def analyze(
        self,
        context: EvaluationContext,
        supplement_ids: List[str],
        dosages: Optional[List[DosageInput]] = None
    ) -> AnalysisResult:
        try:
            result = await self.remote.analyze(context, supplement_ids, dosages)
        except EngineUnavailable as e:
            logger.info(f"Analyze falling back to local evaluation: {e.reason}")
            result = await self.local.analyze(context, supplement_ids, dosages)
            result.fallback_reason = e.reason
            return result

        if self.shadow_compare:
            await self._shadow_analyze(context, supplement_ids, dosages, result)
        return result

    async def _shadow_analyze(
        self,
        context: EvaluationContext,
        supplement_ids: List[str],
        dosages: Optional[List[DosageInput]],
        engine_result: AnalysisResult
    ) -> bool:
        try:
            local_result = await self.local.analyze(context, supplement_ids, dosages)
        except EvaluationError as e:
            logger.warning(f"Shadow comparison skipped, local evaluation failed at {e.stage}: {e}")
            return False

        equivalent = are_safety_contracts_equivalent(local_result, engine_result)
        if not equivalent:
            logger.warning(
                f"Engine and local analysis disagree for {sorted(set(supplement_ids))}: "
                f"local={interaction_keys(local_result) + ratio_keys(local_result)} "
                f"engine={interaction_keys(engine_result) + ratio_keys(engine_result)}"
            )
        return equivalent

    async def check_timing(
        self,
        context: EvaluationContext,
        supplement_id: str,
        logged_at: datetime
    ) -> TimingResult:
        try:
            return await self.remote.check_timing(context, supplement_id, logged_at)
        except EngineUnavailable as e:
            logger.info(f"Timing check falling back to local evaluation: {e.reason}")
            result = await self.local.check_timing(context, supplement_id, logged_at)
            result.fallback_reason = e.reason
            return result


def build_evaluation_port(
    rule_store: RuleStore,
    log_repository: LogRepository,
    client: Optional[EngineClient] = None,
    settings: Optional[Settings] = None
) -> InteractionEvaluationPort:
    client = client or EngineClient(settings)
    return FallbackStrategy(
        RemoteEngineStrategy(client),
        LocalStrategy(rule_store, log_repository),
        shadow_compare=(settings or client.settings).engine_shadow_compare,
    )
