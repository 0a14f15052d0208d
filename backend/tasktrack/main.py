from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tasktrack.api import cards, events, overtime, projects, time_logs
from tasktrack.core.config import settings
from tasktrack.core.errors import DomainError
from tasktrack.core.logging import configure_logging, get_logger
from tasktrack.db.session import init_db

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    configure_logging(settings.log_level)
    if settings.environment == "dev":
        init_db()
    logger.info("app.started environment=%s", settings.environment)
    yield


app = FastAPI(title="tasktrack", version="0.1.0", lifespan=lifespan)

origins = settings.cors_origins()
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(cards.router)
app.include_router(time_logs.router)
app.include_router(overtime.router)
app.include_router(projects.router)
app.include_router(events.router)
