import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from biostate.api import biological_state, interactions
from biostate.api.deps import get_engine_client
from biostate.config import get_settings
from biostate.db.database import engine, Base
from biostate.engine.engine_client import EngineClient
from biostate.engine.errors import EvaluationError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(
    title="Biostate API",
    description="Supplement interaction, timing and pharmacokinetic engine",
    version="0.1.0",
    lifespan=lifespan
)

app.include_router(interactions.router, prefix="/interactions", tags=["interactions"])
app.include_router(biological_state.router, prefix="/biological-state", tags=["biological-state"])


@app.exception_handler(EvaluationError)
async def evaluation_error_handler(request: Request, exc: EvaluationError):
    logger.error(f"Evaluation failed at {exc.stage or 'unknown stage'}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "Safety evaluation is temporarily unavailable", "stage": exc.stage},
    )


@app.get("/health")
async def health_check(client: EngineClient = Depends(get_engine_client)):
    return {
        "status": "healthy",
        "engine": {
            "configured": client.is_configured(),
            "healthy": await client.check_health(),
        },
    }
