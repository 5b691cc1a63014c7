from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from manifest.database import get_db
from manifest.dependencies import get_current_user
from manifest.models.user import User
from manifest.schemas.timer import (
    ActiveSessionResponse,
    PauseEnvelope,
    PauseRecord,
    SessionEnvelope,
    SessionFieldsEnvelope,
    SessionListResponse,
    StopEnvelope,
    TimerPauseRequest,
    TimerRecordRequest,
    TimerResumeRequest,
    TimerStartRequest,
    TimerStopRequest,
    TimerUpdateRequest,
)
from manifest.services import timer_service
from manifest.services.timer_service import SessionClosedError

router = APIRouter(prefix="/timer", tags=["timer"])


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")


def _closed(exc: SessionClosedError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    mode: str | None = Query(default=None, pattern="^(focus|break)$"),
    created_from: date | None = Query(default=None, alias="createdFrom"),
    created_to: date | None = Query(default=None, alias="createdTo"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    sessions, total = await timer_service.list_sessions(
        db, user.id, mode=mode,
        created_from=created_from, created_to=created_to,
        page=page, limit=limit,
    )
    return {"sessions": sessions, "page": page, "limit": limit, "total": total}


@router.post("", response_model=SessionEnvelope)
async def record_session(
    data: TimerRecordRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Save a finished session without going through start/stop."""
    session = await timer_service.record_session(db, user.id, **data.model_dump())
    return {"session": session}


@router.get("/active", response_model=ActiveSessionResponse)
async def get_active(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    session, remaining_ms = await timer_service.get_active_session(db, user.id)
    return {"session": session, "remaining_ms": remaining_ms}


@router.post("/start", response_model=SessionEnvelope)
async def start(
    data: TimerStartRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    session = await timer_service.start_session(db, user.id, **data.model_dump())
    return {"session": session}


@router.post("/pause", response_model=PauseEnvelope)
async def pause(
    data: TimerPauseRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        pause = await timer_service.pause_session(
            db, user.id, data.session_id, started_at=data.started_at
        )
    except SessionClosedError as e:
        raise _closed(e)
    if pause is None:
        raise _not_found()
    return {
        "pause": PauseRecord(
            id=pause.id,
            session_id=pause.session_id,
            start_at=pause.started_at,
            end_at=pause.ended_at,
        )
    }


@router.post("/resume", response_model=SessionEnvelope)
async def resume(
    data: TimerResumeRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        session = await timer_service.resume_session(
            db, user.id, data.session_id,
            ended_at=data.ended_at, target_end=data.target_end,
        )
    except SessionClosedError as e:
        raise _closed(e)
    if session is None:
        raise _not_found()
    return {"session": session}


@router.post("/stop", response_model=StopEnvelope)
async def stop(
    data: TimerStopRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await timer_service.stop_session(
        db, user.id, data.session_id, stopped_at=data.stopped_at
    )
    if result is None:
        raise _not_found()
    session, stop_event = result
    return {"session": session, "stop": stop_event}


@router.post("/update", response_model=SessionFieldsEnvelope)
async def update(
    data: TimerUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Edit the note or planned minutes; the running countdown is not touched."""
    try:
        session = await timer_service.update_session_fields(
            db, user.id, data.session_id,
            data.model_dump(include={"note", "planned_minutes"}, exclude_unset=True),
        )
    except SessionClosedError as e:
        raise _closed(e)
    if session is None:
        raise _not_found()
    return {"session": session}
