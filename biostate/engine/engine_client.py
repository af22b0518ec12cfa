"""
Remote evaluation engine client.

The engine is the authoritative implementation of the interaction, ratio and
timing rules. Every call returns an EngineCallResult: either a translated
payload, or no payload plus the reason it could not be used. Nothing here
raises for a remote failure; deciding what to do next is the caller's job.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Generic, List, Optional, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from biostate.config import Settings, get_settings
from biostate.engine.ratios import aggregate_dosages
from biostate.engine.status import calculate_status
from biostate.engine.types import (
    AnalysisResult,
    DosageInput,
    EvaluationContext,
    InteractionWarning,
    RatioEvaluationGap,
    RatioWarning,
    SupplementInfo,
    TimingWarning,
    as_naive_utc,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EngineFailureReason(str, Enum):
    NOT_CONFIGURED = "not_configured"
    NO_SESSION = "no_session"
    TIMEOUT = "timeout"
    NON_OK_RESPONSE = "non_ok_response"
    NETWORK_ERROR = "network_error"
    INVALID_RESPONSE = "invalid_response"
    UNKNOWN = "unknown"


def classify_engine_error(error: BaseException) -> EngineFailureReason:
    # httpx timeouts are transport errors too, so check them first
    if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)):
        return EngineFailureReason.TIMEOUT
    if isinstance(error, httpx.TransportError):
        return EngineFailureReason.NETWORK_ERROR
    if isinstance(error, (ValidationError, ValueError)):
        return EngineFailureReason.INVALID_RESPONSE
    return EngineFailureReason.UNKNOWN


def resolve_fallback_reason(
    engine_configured: bool,
    has_session: bool,
    status_code: Optional[int] = None,
    error: Optional[BaseException] = None
) -> EngineFailureReason:
    if not engine_configured:
        return EngineFailureReason.NOT_CONFIGURED
    if not has_session:
        return EngineFailureReason.NO_SESSION
    if status_code is not None and not 200 <= status_code < 300:
        return EngineFailureReason.NON_OK_RESPONSE
    if error is not None:
        return classify_engine_error(error)
    return EngineFailureReason.UNKNOWN


# ============================================================================
# Wire models
# ============================================================================

class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _none_to_empty(value: Any) -> Any:
    return [] if value is None else value


class WireSupplement(WireModel):
    id: str
    name: str = ""
    form: Optional[str] = None

    def to_info(self) -> SupplementInfo:
        return SupplementInfo(id=self.id, name=self.name or self.id, form=self.form)


class WireInteraction(WireModel):
    id: str
    type: str
    severity: str
    source: WireSupplement
    target: WireSupplement
    mechanism: Optional[str] = None
    research_url: Optional[str] = None
    suggestion: Optional[str] = None


class WireRatioWarning(WireModel):
    id: str
    severity: str
    current_ratio: Optional[float] = None
    warning_message: str = ""
    source: WireSupplement
    target: WireSupplement
    min_ratio: Optional[float] = None
    max_ratio: Optional[float] = None
    optimal_ratio: Optional[float] = None
    research_url: Optional[str] = None
    missing_target: bool = False


class WireRatioGap(WireModel):
    rule_id: str
    source_supplement_id: str
    target_supplement_id: str
    reason: str


class WireTimingWarning(WireModel):
    id: str
    severity: str
    reason: str = ""
    min_hours_apart: float
    actual_hours_apart: float
    source: WireSupplement
    target: WireSupplement
    source_logged_at: Optional[datetime] = None
    target_logged_at: Optional[datetime] = None

    @field_validator("source_logged_at", "target_logged_at", mode="before")
    @classmethod
    def lenient_timestamp(cls, value):
        # Unparseable timestamps are dropped, not fatal
        if value is None or isinstance(value, datetime):
            return value
        try:
            return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None


class AnalyzeResponseBody(WireModel):
    status: str = "green"
    warnings: List[WireInteraction] = Field(default_factory=list)
    synergies: List[WireInteraction] = Field(default_factory=list)
    ratio_warnings: List[WireRatioWarning] = Field(default_factory=list)
    ratio_evaluation_gaps: List[WireRatioGap] = Field(default_factory=list)

    @field_validator("warnings", "synergies", "ratio_warnings", "ratio_evaluation_gaps", mode="before")
    @classmethod
    def null_means_empty(cls, value):
        return _none_to_empty(value)


class TimingResponseBody(WireModel):
    warnings: List[WireTimingWarning] = Field(default_factory=list)

    @field_validator("warnings", mode="before")
    @classmethod
    def null_means_empty(cls, value):
        return _none_to_empty(value)


# ============================================================================
# Translation to domain types
# ============================================================================

def _to_interaction(w: WireInteraction) -> InteractionWarning:
    return InteractionWarning(
        id=w.id,
        type=w.type,
        severity=w.severity,
        source=w.source.to_info(),
        target=w.target.to_info(),
        mechanism=w.mechanism,
        research_url=w.research_url,
        suggestion=w.suggestion,
    )


def to_analysis_result(body: AnalyzeResponseBody) -> AnalysisResult:
    warnings = [_to_interaction(w) for w in body.warnings]
    return AnalysisResult(
        status=body.status or calculate_status(warnings),
        warnings=warnings,
        synergies=[_to_interaction(w) for w in body.synergies],
        ratio_warnings=[
            RatioWarning(
                id=r.id,
                severity=r.severity,
                current_ratio=r.current_ratio if r.current_ratio is not None else math.inf,
                warning_message=r.warning_message,
                source=r.source.to_info(),
                target=r.target.to_info(),
                min_ratio=r.min_ratio,
                max_ratio=r.max_ratio,
                optimal_ratio=r.optimal_ratio,
                research_url=r.research_url,
                missing_target=r.missing_target,
            )
            for r in body.ratio_warnings
        ],
        ratio_evaluation_gaps=[
            RatioEvaluationGap(
                rule_id=g.rule_id,
                source_supplement_id=g.source_supplement_id,
                target_supplement_id=g.target_supplement_id,
                reason=g.reason,
            )
            for g in body.ratio_evaluation_gaps
        ],
        provenance="engine",
    )


def to_timing_warnings(body: TimingResponseBody, logged_at: datetime) -> List[TimingWarning]:
    """The engine may omit the conflicting log's timestamp; the new log's stands in."""
    return [
        TimingWarning(
            id=w.id,
            severity=w.severity,
            reason=w.reason,
            min_hours_apart=w.min_hours_apart,
            actual_hours_apart=w.actual_hours_apart,
            source=w.source.to_info(),
            target=w.target.to_info(),
            source_logged_at=as_naive_utc(w.source_logged_at) if w.source_logged_at else logged_at,
            target_logged_at=as_naive_utc(w.target_logged_at) if w.target_logged_at else logged_at,
        )
        for w in body.warnings
    ]


# ============================================================================
# Client
# ============================================================================

@dataclass
class EngineCallResult(Generic[T]):
    data: Optional[T] = None
    failure_reason: Optional[EngineFailureReason] = None
    status_code: Optional[int] = None
    duration_ms: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.data is not None


class EngineClient:
    """HTTP client for the remote engine."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self.transport = transport

    def is_configured(self) -> bool:
        return bool(self.settings.engine_url)

    def _headers(self, context: EvaluationContext) -> dict:
        headers = {
            "X-Internal-Key": self.settings.engine_internal_key,
            "X-User-ID": context.user_id or "",
        }
        if context.session_token:
            headers["Authorization"] = f"Bearer {context.session_token}"
        return headers

    async def _send(self, method: str, path: str, headers: dict, body: Optional[dict] = None) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.settings.engine_url.rstrip("/"),
            timeout=self.settings.engine_timeout_seconds,
            transport=self.transport,
        ) as client:
            return await client.request(method, path, json=body, headers=headers)

    async def _call(
        self,
        context: EvaluationContext,
        path: str,
        body: dict,
        parse: Callable[[Any], T]
    ) -> EngineCallResult[T]:
        if not self.is_configured():
            logger.debug(f"Engine not configured, skipping {path}")
            return EngineCallResult(failure_reason=EngineFailureReason.NOT_CONFIGURED)
        if not context.user_id:
            logger.debug(f"No caller identity, skipping {path}")
            return EngineCallResult(failure_reason=EngineFailureReason.NO_SESSION)

        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._send("POST", path, self._headers(context), body),
                timeout=self.settings.engine_timeout_seconds,
            )
        except Exception as e:
            duration_ms = (time.monotonic() - started) * 1000
            reason = classify_engine_error(e)
            logger.error(f"Engine {path} failed: {reason.value} after {duration_ms:.0f}ms ({e!r})")
            return EngineCallResult(failure_reason=reason, duration_ms=duration_ms)

        duration_ms = (time.monotonic() - started) * 1000
        if not response.is_success:
            logger.error(f"Engine {path} returned {response.status_code} after {duration_ms:.0f}ms")
            return EngineCallResult(
                failure_reason=EngineFailureReason.NON_OK_RESPONSE,
                status_code=response.status_code,
                duration_ms=duration_ms,
            )

        try:
            data = parse(response.json())
        except ValueError as e:
            logger.error(f"Engine {path} sent an invalid response after {duration_ms:.0f}ms: {e}")
            return EngineCallResult(
                failure_reason=EngineFailureReason.INVALID_RESPONSE,
                status_code=response.status_code,
                duration_ms=duration_ms,
            )

        logger.debug(f"Engine {path} answered in {duration_ms:.0f}ms")
        return EngineCallResult(data=data, status_code=response.status_code, duration_ms=duration_ms)

    async def analyze(
        self,
        context: EvaluationContext,
        supplement_ids: List[str],
        dosages: Optional[List[DosageInput]] = None
    ) -> EngineCallResult[AnalysisResult]:
        body: dict = {"supplementIds": list(supplement_ids)}
        if dosages:
            # Unknown amounts go as null so the engine can report missing_dosage gaps
            body["dosages"] = [
                {"supplementId": d.supplement_id, "amount": d.dosage, "unit": d.unit}
                for d in aggregate_dosages(dosages).values()
            ]
        return await self._call(
            context,
            "/api/analyze",
            body,
            lambda payload: to_analysis_result(AnalyzeResponseBody.model_validate(payload)),
        )

    async def check_timing(
        self,
        context: EvaluationContext,
        supplement_id: str,
        logged_at: datetime
    ) -> EngineCallResult[List[TimingWarning]]:
        body = {
            "userId": context.user_id,
            "supplementId": supplement_id,
            "loggedAt": logged_at.isoformat(),
        }
        return await self._call(
            context,
            "/api/timing",
            body,
            lambda payload: to_timing_warnings(TimingResponseBody.model_validate(payload), logged_at),
        )

    async def check_health(self) -> bool:
        """True only when the engine reports itself healthy."""
        if not self.is_configured():
            return False
        try:
            response = await asyncio.wait_for(
                self._send("GET", "/health", {"X-Internal-Key": self.settings.engine_internal_key}),
                timeout=self.settings.engine_timeout_seconds,
            )
            if not response.is_success:
                return False
            return response.json().get("status") == "healthy"
        except Exception as e:
            logger.warning(f"Engine health check failed: {classify_engine_error(e).value}")
            return False
