"""FastAPI application for the will registry jobs API.

Provides the main application instance with routers and domain exception
handlers configured. Jobs are created and run by the CLI; the API serves
the polling side (listing, detail, cancel, failed-records export).
"""

import logging
import os
import time as _time
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _pkg_version

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from willregistry.api.routes import jobs
from willregistry.cli.config import configure_logging, resolve_config
from willregistry.db.connection import configure, get_db, init_db
from willregistry.errors import ConflictError, DomainError, NotFoundError, get_error
from willregistry.services.job_service import JobService

logger = logging.getLogger(__name__)

_startup_time: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: load config, bind the database and create tables."""
    global _startup_time
    _startup_time = _time.time()

    cfg = resolve_config(os.environ.get("WILLREG_CONFIG_PATH"))
    configure_logging(cfg.logging)
    configure(cfg.database.url)
    init_db()
    logger.info("Jobs API started")
    yield
    logger.info("Jobs API stopped")


app = FastAPI(
    title="Will Registry API",
    description="Bulk will upload job monitoring",
    version="0.1.0",
    lifespan=lifespan,
)


def _status_for(exc: DomainError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ConflictError):
        return 409
    return 400


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Map domain errors to 404 / 409 / 400 with a consistent body."""
    code = getattr(exc, "code", None)
    definition = get_error(code) if code else None
    return JSONResponse(
        status_code=_status_for(exc),
        content={
            "error_code": code,
            "message": str(exc),
            "remediation": definition.remediation if definition else None,
        },
    )


app.include_router(jobs.router)


@app.get("/health")
def health_check(db: Session = Depends(get_db)) -> dict:
    """Health check endpoint with active job count."""
    uptime = int(_time.time() - _startup_time) if _startup_time else 0
    try:
        version = _pkg_version("willregistry")
    except PackageNotFoundError:
        version = "unknown"
    return {
        "status": "healthy",
        "version": version,
        "uptime_seconds": uptime,
        "active_jobs": JobService(db).get_active_jobs_count(),
    }
