"""Sync trigger, stream and status routes."""
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from sqlmodel import Session, select

from admirror.config import get_settings
from admirror.db.engine import get_session
from admirror.models.sync import SyncLog, SyncRun
from admirror.sync.progress import QueueProgressReporter, format_sse
from admirror.sync.service import MirrorSyncService, SyncAbortedError
from admirror.sync.session import SyncAlreadyRunningError

logger = logging.getLogger(__name__)

router = APIRouter()

# Streaming runs outlive their HTTP connection; hold a reference until done.
_background_runs: set = set()


class SyncRunResponse(BaseModel):
    id: int
    status: str
    trigger: str
    started_at: datetime
    finished_at: Optional[datetime]
    overall_success: Optional[bool]
    error_message: Optional[str]


class SyncStatusResponse(BaseModel):
    session: Dict[str, Any]
    last_run: Optional[SyncRunResponse]


class SyncHistoryEntry(SyncRunResponse):
    phases: List[Dict[str, Any]]


def get_sync_service(request: Request) -> MirrorSyncService:
    return request.app.state.sync_service


def _claim(service: MirrorSyncService) -> None:
    try:
        service.begin()
    except SyncAlreadyRunningError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


def _on_run_done(task: asyncio.Task) -> None:
    _background_runs.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    # SyncAbortedError was already delivered to the stream as an `error` event.
    if exc is not None and not isinstance(exc, SyncAbortedError):
        logger.error("Streaming sync run crashed: %s", exc)


@router.post("/all")
async def sync_all(service: MirrorSyncService = Depends(get_sync_service)):
    """
    Run the full pipeline and return the aggregate result once it finishes.

    409 if a sync is already running; 503 if the run could not start.
    """
    _claim(service)
    try:
        outcome = await service.execute(trigger="api")
    except SyncAbortedError as exc:
        return JSONResponse(
            status_code=503,
            content={"success": False, "overallSuccess": False, "error": str(exc)},
        )
    return outcome.to_response()


@router.get("/stream")
async def sync_stream(service: MirrorSyncService = Depends(get_sync_service)):
    """
    Run the full pipeline, streaming progress as Server-Sent Events.

    Events: status, step-start, step-progress, step-complete, step-error,
    and one terminal complete or error. Closing the connection does not
    stop the run.
    """
    _claim(service)

    queue: asyncio.Queue = asyncio.Queue()
    reporter = QueueProgressReporter(queue)
    task = asyncio.create_task(service.execute(reporter, trigger="stream"))
    _background_runs.add(task)
    task.add_done_callback(_on_run_done)

    keepalive = get_settings().stream_keepalive_seconds

    async def generate_events():
        """SSE event generator."""
        while True:
            try:
                item = await asyncio.wait_for(queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            if item is None:
                break
            yield format_sse(item["event"], item["data"])

    return StreamingResponse(
        generate_events(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(
    service: MirrorSyncService = Depends(get_sync_service),
    session: Session = Depends(get_session),
):
    """Return the live session state and the most recent run."""
    run = session.exec(select(SyncRun).order_by(SyncRun.id.desc())).first()
    return SyncStatusResponse(
        session=service.session.snapshot(),
        last_run=SyncRunResponse(**run.model_dump()) if run else None,
    )


@router.get("/history", response_model=List[SyncHistoryEntry])
def sync_history(limit: int = 10, session: Session = Depends(get_session)):
    """Recent runs, newest first, each with its per-phase log."""
    runs = session.exec(select(SyncRun).order_by(SyncRun.id.desc()).limit(limit)).all()
    history = []
    for run in runs:
        logs = session.exec(
            select(SyncLog).where(SyncLog.run_id == run.id).order_by(SyncLog.id)
        ).all()
        history.append(SyncHistoryEntry(
            **run.model_dump(),
            phases=[
                {
                    "entity": log.entity,
                    "status": log.status,
                    "record_count": log.record_count,
                    "rejected_count": log.rejected_count,
                    "error_message": log.error_message,
                }
                for log in logs
            ],
        ))
    return history


@router.post("/reset")
def reset_sync(service: MirrorSyncService = Depends(get_sync_service)):
    """Return the session to idle. Refused while a run is active."""
    if service.session.is_active:
        raise HTTPException(status_code=409, detail="Cannot reset while a sync is running")
    service.session.reset_sync()
    return service.session.snapshot()
