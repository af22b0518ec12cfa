import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from biostate.api.deps import get_context, get_evaluation_port, get_log_repository
from biostate.api.schemas import (
    AnalysisResponse,
    AnalyzeRequest,
    LogEventRequest,
    LogEventResponse,
    analysis_response,
    log_event_response,
)
from biostate.db import get_db
from biostate.engine.aggregator import WarningAggregator, build_safety_action_buckets
from biostate.engine.errors import RepositoryError
from biostate.engine.strategies import InteractionEvaluationPort
from biostate.engine.types import DosageInput, EvaluationContext, LogEntry, as_naive_utc, utcnow
from biostate.models import Supplement, SupplementLog
from biostate.repositories.base import LogRepository

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze(
    request: AnalyzeRequest,
    context: EvaluationContext = Depends(get_context),
    port: InteractionEvaluationPort = Depends(get_evaluation_port)
):
    """
    Interactions and ratio findings for a supplement set.

    Dosages are optional; without them no ratio rule can be evaluated.
    """
    dosages = None
    if request.dosages:
        dosages = [DosageInput(d.supplement_id, d.dosage, d.unit) for d in request.dosages]

    result = await port.analyze(context, request.supplement_ids, dosages)
    return analysis_response(result)


@router.post("/log-event", response_model=LogEventResponse)
async def log_event(
    request: LogEventRequest,
    context: EvaluationContext = Depends(get_context),
    db: Session = Depends(get_db),
    port: InteractionEvaluationPort = Depends(get_evaluation_port),
    log_repository: LogRepository = Depends(get_log_repository)
):
    """Record a dose and return everything new it triggers."""
    if not context.user_id:
        raise HTTPException(status_code=401, detail="X-User-ID header required")

    supplement = db.query(Supplement).filter(Supplement.id == request.supplement_id).first()
    if not supplement:
        raise HTTPException(status_code=404, detail="Supplement not found")

    logged_at = as_naive_utc(request.logged_at) if request.logged_at else utcnow()
    record = SupplementLog(
        id=str(uuid.uuid4()),
        user_id=context.user_id,
        supplement_id=supplement.id,
        dosage=request.dosage,
        unit=request.unit,
        logged_at=logged_at,
    )
    try:
        db.add(record)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to store log for {context.user_id}: {e}")
        raise RepositoryError("could not store log entry", stage="logs") from e

    entry = LogEntry(
        id=record.id,
        user_id=record.user_id,
        supplement_id=record.supplement_id,
        dosage=record.dosage,
        unit=record.unit,
        logged_at=record.logged_at,
        supplement_name=supplement.name,
        category=supplement.category,
    )

    aggregator = WarningAggregator(port, log_repository)
    result = await aggregator.collect(context, entry)
    actions = build_safety_action_buckets(
        result.interactions,
        result.ratio_warnings,
        result.timing_warnings,
        result.ratio_evaluation_gaps,
    )
    return log_event_response(record.id, result, actions)
