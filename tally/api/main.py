"""
tally.api.main — FastAPI application entry point
=================================================

Run with::

    uvicorn tally.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from tally import __version__  # noqa: E402
from tally.api.deps import get_config, get_engine  # noqa: E402
from tally.api.routes.attendance import router as attendance_router  # noqa: E402
from tally.api.routes.events import router as events_router  # noqa: E402
from tally.api.routes.groups import router as groups_router  # noqa: E402
from tally.api.routes.points import router as points_router  # noqa: E402

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
    """Startup/shutdown lifecycle — load config and warm the DB engine."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )
    cfg = get_config()
    engine = get_engine()
    logger.info(
        "Tally API started for %s — policy=%s, engine ready (%s)",
        cfg.community_name,
        cfg.award_policy,
        engine.url.database,
    )
    yield
    logger.info("Tally API shutting down")
    engine.dispose()


app = FastAPI(
    title="Tally Volunteer Points API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(events_router, prefix="/api")
app.include_router(attendance_router, prefix="/api")
app.include_router(points_router, prefix="/api")
app.include_router(groups_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
