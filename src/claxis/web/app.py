"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request

from claxis import __version__
from claxis.config import load_engine_config
from claxis.engine import DecisionEngine, OperationResult

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "VALIDATION_ERROR": 400,
    "UNSUPPORTED_OPERATION": 400,
    "SALON_NOT_FOUND": 404,
}


def get_engine(request: Request) -> DecisionEngine:
    return request.app.state.engine


def unwrap(result: OperationResult) -> dict[str, Any]:
    """Return the payload, or raise HTTPException carrying the error payload."""
    if not result.ok:
        status = ERROR_STATUS.get(result.payload.get("error_code"), 500)
        raise HTTPException(status_code=status, detail=result.payload)
    return {"channel": result.channel.value, "execution_id": result.execution_id, **result.payload}


def create_app(engine: DecisionEngine | None = None) -> FastAPI:
    """Build the API around an engine (or one wired from config.yaml)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "engine", None) is None:
            app.state.engine = DecisionEngine.from_config(load_engine_config())
        yield
        await app.state.engine.close()

    app = FastAPI(title="Claxis Decision Engine", version=__version__, lifespan=lifespan)
    app.state.engine = engine

    from claxis.web.routes import decisions, settings, usage

    app.include_router(decisions.router, prefix="/api")
    app.include_router(settings.router, prefix="/api")
    app.include_router(usage.router, prefix="/api")

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "version": __version__}

    return app
