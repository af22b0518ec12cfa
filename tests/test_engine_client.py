"""
Engine client tests. The remote engine is replaced by httpx.MockTransport.
"""

import asyncio
import json
import math
from datetime import datetime

import httpx
import pytest

from biostate.engine.engine_client import (
    EngineClient,
    EngineFailureReason,
    classify_engine_error,
    resolve_fallback_reason,
)
from biostate.engine.types import DosageInput, EvaluationContext


CONTEXT = EvaluationContext(user_id="user-1", session_token="tok")
LOGGED_AT = datetime(2026, 3, 10, 12, 0)


def engine_interaction(id, type="competition", severity="medium"):
    return {
        "id": id,
        "type": type,
        "severity": severity,
        "mechanism": "Shared transporter",
        "researchUrl": "https://example.org/paper",
        "source": {"id": "zinc", "name": "Zinc", "form": "picolinate"},
        "target": {"id": "copper", "name": "Copper"},
    }


def make_client(settings, handler):
    return EngineClient(settings, transport=httpx.MockTransport(handler))


# ============================================================
# SUCCESS
# ============================================================

@pytest.mark.asyncio
async def test_analyze_translates_engine_payload(engine_settings):
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "status": "yellow",
            "warnings": [engine_interaction("zinc-copper")],
            "synergies": None,
            "ratioWarnings": [{
                "id": "zinc-copper-ratio",
                "severity": "medium",
                "currentRatio": 20.0,
                "warningMessage": "Too much zinc",
                "minRatio": 8,
                "maxRatio": 15,
                "source": {"id": "zinc", "name": "Zinc"},
                "target": {"id": "copper", "name": "Copper"},
            }],
            "ratioEvaluationGaps": None,
        })

    client = make_client(engine_settings, handler)
    result = await client.analyze(
        CONTEXT,
        ["zinc", "copper"],
        [DosageInput("zinc", 20), DosageInput("zinc", 20), DosageInput("copper", 2)],
    )

    assert result.ok
    assert result.status_code == 200
    analysis = result.data
    assert analysis.provenance == "engine"
    assert analysis.status == "yellow"
    assert [w.id for w in analysis.warnings] == ["zinc-copper"]
    assert analysis.warnings[0].research_url == "https://example.org/paper"
    assert analysis.warnings[0].source.form == "picolinate"
    assert analysis.synergies == []
    assert analysis.ratio_evaluation_gaps == []
    assert analysis.ratio_warnings[0].current_ratio == 20.0

    assert seen["path"] == "/api/analyze"
    assert seen["headers"]["X-Internal-Key"] == "secret"
    assert seen["headers"]["X-User-ID"] == "user-1"
    assert seen["body"]["supplementIds"] == ["zinc", "copper"]
    assert seen["body"]["dosages"] == [
        {"supplementId": "zinc", "amount": 40, "unit": "mg"},
        {"supplementId": "copper", "amount": 2, "unit": "mg"},
    ]


@pytest.mark.asyncio
async def test_missing_ratio_from_engine_is_infinite(engine_settings):
    def handler(request):
        return httpx.Response(200, json={
            "status": "red",
            "warnings": [],
            "synergies": [],
            "ratioWarnings": [{
                "id": "zinc-copper-ratio",
                "severity": "critical",
                "currentRatio": None,
                "missingTarget": True,
                "source": {"id": "zinc", "name": "Zinc"},
                "target": {"id": "copper", "name": "Copper"},
            }],
        })

    result = await make_client(engine_settings, handler).analyze(CONTEXT, ["zinc", "vitamin_d3"])
    warning = result.data.ratio_warnings[0]
    assert math.isinf(warning.current_ratio)
    assert warning.missing_target is True


@pytest.mark.asyncio
async def test_timing_falls_back_to_new_log_timestamp(engine_settings):
    def handler(request):
        body = json.loads(request.content)
        assert body == {"userId": "user-1", "supplementId": "5_htp", "loggedAt": "2026-03-10T12:00:00"}
        return httpx.Response(200, json={"warnings": [{
            "id": "tyrosine-5htp",
            "severity": "medium",
            "reason": "Same transporter",
            "minHoursApart": 4,
            "actualHoursApart": 1.0,
            "source": {"id": "tyrosine", "name": "L-Tyrosine"},
            "target": {"id": "5_htp", "name": "5-HTP"},
            "sourceLoggedAt": "2026-03-10T11:00:00Z",
            "targetLoggedAt": "not-a-date",
        }]})

    result = await make_client(engine_settings, handler).check_timing(CONTEXT, "5_htp", LOGGED_AT)

    warning = result.data[0]
    assert warning.source_logged_at == datetime(2026, 3, 10, 11, 0)
    assert warning.target_logged_at == LOGGED_AT
    assert warning.actual_hours_apart == 1.0


@pytest.mark.asyncio
async def test_unknown_dosage_is_sent_as_null(engine_settings):
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "status": "green",
            "warnings": [],
            "synergies": [],
            "ratioEvaluationGaps": [{
                "ruleId": "zinc-copper-ratio",
                "sourceSupplementId": "zinc",
                "targetSupplementId": "copper",
                "reason": "missing_dosage",
            }],
        })

    result = await make_client(engine_settings, handler).analyze(
        CONTEXT,
        ["zinc", "copper"],
        [DosageInput("zinc", 30), DosageInput("copper", None)],
    )

    assert seen["body"]["dosages"] == [
        {"supplementId": "zinc", "amount": 30, "unit": "mg"},
        {"supplementId": "copper", "amount": None, "unit": "mg"},
    ]
    assert [g.reason for g in result.data.ratio_evaluation_gaps] == ["missing_dosage"]


@pytest.mark.asyncio
async def test_null_timing_warnings_mean_none(engine_settings):
    def handler(request):
        return httpx.Response(200, json={"warnings": None})

    result = await make_client(engine_settings, handler).check_timing(CONTEXT, "zinc", LOGGED_AT)
    assert result.ok
    assert result.data == []


# ============================================================
# FAILURES
# ============================================================

@pytest.mark.asyncio
async def test_not_configured_skips_call(settings):
    def handler(request):
        raise AssertionError("engine should not be called")

    result = await make_client(settings, handler).analyze(CONTEXT, ["zinc", "copper"])
    assert not result.ok
    assert result.failure_reason == EngineFailureReason.NOT_CONFIGURED


@pytest.mark.asyncio
async def test_missing_identity_skips_call(engine_settings):
    def handler(request):
        raise AssertionError("engine should not be called")

    result = await make_client(engine_settings, handler).analyze(EvaluationContext(), ["zinc", "copper"])
    assert result.failure_reason == EngineFailureReason.NO_SESSION


@pytest.mark.asyncio
async def test_non_ok_response_returns_no_result(engine_settings):
    def handler(request):
        return httpx.Response(503, text="cold start")

    result = await make_client(engine_settings, handler).analyze(CONTEXT, ["zinc", "copper"])
    assert result.data is None
    assert result.failure_reason == EngineFailureReason.NON_OK_RESPONSE
    assert result.status_code == 503
    assert result.duration_ms is not None


@pytest.mark.asyncio
async def test_timeout_is_classified(engine_settings):
    async def handler(request):
        await asyncio.sleep(2)
        return httpx.Response(200, json={})

    result = await make_client(engine_settings, handler).analyze(CONTEXT, ["zinc", "copper"])
    assert result.failure_reason == EngineFailureReason.TIMEOUT


@pytest.mark.asyncio
async def test_network_error_is_classified(engine_settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    result = await make_client(engine_settings, handler).analyze(CONTEXT, ["zinc", "copper"])
    assert result.failure_reason == EngineFailureReason.NETWORK_ERROR


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(200, text="<html>gateway</html>"),
    httpx.Response(200, json={"warnings": "oops"}),
    httpx.Response(200, json={"warnings": [{"id": "x"}]}),
])
async def test_malformed_response_is_invalid(engine_settings, response):
    result = await make_client(engine_settings, lambda request: response).analyze(CONTEXT, ["zinc", "copper"])
    assert result.failure_reason == EngineFailureReason.INVALID_RESPONSE


# ============================================================
# CLASSIFICATION
# ============================================================

def test_classify_engine_error():
    request = httpx.Request("POST", "http://engine.test/api/analyze")
    assert classify_engine_error(asyncio.TimeoutError()) == EngineFailureReason.TIMEOUT
    assert classify_engine_error(httpx.ReadTimeout("slow", request=request)) == EngineFailureReason.TIMEOUT
    assert classify_engine_error(httpx.ConnectError("down", request=request)) == EngineFailureReason.NETWORK_ERROR
    assert classify_engine_error(json.JSONDecodeError("bad", "", 0)) == EngineFailureReason.INVALID_RESPONSE
    assert classify_engine_error(RuntimeError("?")) == EngineFailureReason.UNKNOWN


def test_resolve_fallback_reason_precedence():
    assert resolve_fallback_reason(False, False) == EngineFailureReason.NOT_CONFIGURED
    assert resolve_fallback_reason(True, False) == EngineFailureReason.NO_SESSION
    assert resolve_fallback_reason(True, True, status_code=500) == EngineFailureReason.NON_OK_RESPONSE
    assert resolve_fallback_reason(True, True, error=asyncio.TimeoutError()) == EngineFailureReason.TIMEOUT
    assert resolve_fallback_reason(True, True) == EngineFailureReason.UNKNOWN


# ============================================================
# HEALTH
# ============================================================

@pytest.mark.asyncio
async def test_health_reports_engine_status(engine_settings, settings):
    healthy = make_client(engine_settings, lambda r: httpx.Response(200, json={"status": "healthy"}))
    broken = make_client(engine_settings, lambda r: httpx.Response(500))

    assert await healthy.check_health() is True
    assert await broken.check_health() is False
    assert await make_client(settings, lambda r: httpx.Response(200)).check_health() is False
