"""
quorum.api.main — FastAPI application entry point
==================================================

Run with::

    uvicorn quorum.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from quorum.api.deps import (  # noqa: E402
    get_dispatcher,
    get_engine,
    get_notifier,
    get_registry,
)
from quorum.api.routes.answers import router as answers_router  # noqa: E402
from quorum.api.routes.notifications import router as notifications_router  # noqa: E402
from quorum.api.routes.questions import router as questions_router  # noqa: E402
from quorum.api.routes.users import router as users_router  # noqa: E402
from quorum.api.routes.votes import router as votes_router  # noqa: E402
from quorum.errors import QuorumError  # noqa: E402
from quorum.services.push_hub import ConnectionRegistry  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the engine, run the keep-alive."""
    engine = get_engine()
    registry = get_registry()
    registry.start()
    logger.info("Quorum API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Quorum API shutting down")
    registry.stop()
    registry.close_all()
    await get_dispatcher().drain()
    await get_notifier().gateway.aclose()


app = FastAPI(
    title="Quorum API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(QuorumError)
async def quorum_error_handler(request: Request, exc: QuorumError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Mount routers
app.include_router(notifications_router, prefix="/api")
app.include_router(votes_router, prefix="/api")
app.include_router(answers_router, prefix="/api")
app.include_router(questions_router, prefix="/api")
app.include_router(users_router, prefix="/api")


@app.get("/api/health")
def health(registry: ConnectionRegistry = Depends(get_registry)):
    return {"status": "ok", "connections": registry.total_connections()}
