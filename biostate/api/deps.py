from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from biostate.db import get_db
from biostate.engine.biological_state import BiologicalStateSimulator
from biostate.engine.engine_client import EngineClient
from biostate.engine.strategies import InteractionEvaluationPort, build_evaluation_port
from biostate.engine.types import EvaluationContext
from biostate.repositories import SqlAlchemyLogRepository, SqlAlchemyRuleStore


def get_rule_store(db: Session = Depends(get_db)) -> SqlAlchemyRuleStore:
    return SqlAlchemyRuleStore(db)


def get_log_repository(db: Session = Depends(get_db)) -> SqlAlchemyLogRepository:
    return SqlAlchemyLogRepository(db)


def get_engine_client() -> EngineClient:
    return EngineClient()


def get_evaluation_port(
    rule_store: SqlAlchemyRuleStore = Depends(get_rule_store),
    log_repository: SqlAlchemyLogRepository = Depends(get_log_repository),
    client: EngineClient = Depends(get_engine_client)
) -> InteractionEvaluationPort:
    return build_evaluation_port(rule_store, log_repository, client=client)


def get_simulator(
    rule_store: SqlAlchemyRuleStore = Depends(get_rule_store),
    log_repository: SqlAlchemyLogRepository = Depends(get_log_repository)
) -> BiologicalStateSimulator:
    return BiologicalStateSimulator(rule_store, log_repository)


def get_context(
    x_user_id: Optional[str] = Header(default=None),
    authorization: Optional[str] = Header(default=None)
) -> EvaluationContext:
    """Caller identity from request headers; absent headers mean no session."""
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:]
    return EvaluationContext(user_id=x_user_id or None, session_token=token)
