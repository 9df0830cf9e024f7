"""
FastAPI application for inbox sync and the application dashboard.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from jobtrack import __version__
from jobtrack.config import settings
from jobtrack.core.database import Database
from jobtrack.core.errors import InvalidSyncRequestError, MailboxError, SyncConflictError
from jobtrack.core.logging import configure_logging, get_logger
from jobtrack.core.models import display_status
from jobtrack.processors.sync import SyncProcessor, validate_sync_request
from jobtrack.scheduler import start_scheduler, stop_scheduler

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    configure_logging()
    log.info("application_starting")

    db = Database()
    db.init_schema()

    if settings.scheduler_enabled:
        start_scheduler()
    else:
        log.info("scheduler_disabled", reason="sync runs on request only")

    yield

    if settings.scheduler_enabled:
        stop_scheduler()
    log.info("application_stopped")


app = FastAPI(
    title="JobTrack",
    description="Turns a job seeker's inbox into tracked job applications",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed input is a 400 like any other invalid request."""
    return JSONResponse(status_code=400, content={"detail": "Invalid request"})


# Request Models

class SyncRequest(BaseModel):
    user_id: str = ""
    days: int | None = None


# Endpoints

@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


@app.post("/sync")
def trigger_sync(request: SyncRequest):
    """
    Sync the user's recent inbox and return the run summary.

    Runs in the request thread; a second request while a sync is running
    gets a 409 immediately.
    """
    try:
        validate_sync_request(request.user_id, request.days)
        processor = SyncProcessor()
        try:
            summary = processor.sync(request.user_id, request.days)
        finally:
            processor.close()
    except InvalidSyncRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SyncConflictError:
        raise HTTPException(status_code=409, detail="Sync already in progress")
    except MailboxError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        log.error("sync_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Sync failed")

    return summary.to_dict()


@app.get("/applications")
def list_applications(user_id: str = Query(..., min_length=1, description="Owner of the applications")):
    """List the user's applications, most recently updated first, with email history."""
    db = Database()
    applications = db.list_applications(user_id)
    return [
        application.to_dict(status=display_status(application, settings.ghosted_after_days))
        for application in applications
    ]


# Run with: uvicorn jobtrack.main:app --host 0.0.0.0 --port 8000
