import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from boosterbattle.api import (
    battles_router,
    cards_router,
    events_router,
    health_router,
    timers_router,
)
from boosterbattle.config import settings
from boosterbattle.db.database import close_db, init_db
from boosterbattle.models.errors import KnownError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
    await init_db()
    yield
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("boosterbattle"),
    lifespan=lifespan,
)


@app.exception_handler(KnownError)
async def known_error_handler(_request: Request, exc: KnownError) -> JSONResponse:
    """Render every known failure with the same envelope."""
    if exc.status_code >= 500:
        logger.error("REQUEST_FAILED", extra={"kind": exc.kind.value, "detail": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(mode="json"),
    )


app.include_router(battles_router)
app.include_router(cards_router)
app.include_router(events_router)
app.include_router(health_router)
app.include_router(timers_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
