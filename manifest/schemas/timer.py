import uuid
from typing import Literal

from pydantic import Field

from manifest.schemas.base import CamelModel, UtcDatetime

Mode = Literal["focus", "break"]


class TimerStartRequest(CamelModel):
    start_at: UtcDatetime | None = None
    note: str | None = None
    planned_minutes: int | None = Field(default=None, ge=1)
    target_end: UtcDatetime | None = None
    mode: Mode = "focus"


class TimerPauseRequest(CamelModel):
    session_id: str = Field(min_length=1)
    started_at: UtcDatetime | None = None


class TimerResumeRequest(CamelModel):
    session_id: str = Field(min_length=1)
    ended_at: UtcDatetime | None = None
    target_end: UtcDatetime | None = None


class TimerStopRequest(CamelModel):
    session_id: str = Field(min_length=1)
    stopped_at: UtcDatetime | None = None


class TimerUpdateRequest(CamelModel):
    session_id: str = Field(min_length=1)
    note: str | None = None
    planned_minutes: int | None = Field(default=None, ge=1)


class TimerRecordRequest(CamelModel):
    start_at: UtcDatetime | None = None
    end_at: UtcDatetime | None = None
    duration_minutes: int | None = Field(default=None, ge=1)
    note: str | None = None


class FocusSessionResponse(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    mode: Mode
    start_at: UtcDatetime
    end_at: UtcDatetime | None
    planned_minutes: int | None
    duration_minutes: int | None
    target_end: UtcDatetime | None
    note: str | None
    created_at: UtcDatetime
    updated_at: UtcDatetime


class SessionEnvelope(CamelModel):
    session: FocusSessionResponse


class PauseRecord(CamelModel):
    id: uuid.UUID
    session_id: uuid.UUID
    start_at: UtcDatetime
    end_at: UtcDatetime | None = None


class PauseEnvelope(CamelModel):
    pause: PauseRecord


class StopRecord(CamelModel):
    id: uuid.UUID
    session_id: uuid.UUID
    stopped_at: UtcDatetime


class StopEnvelope(CamelModel):
    session: FocusSessionResponse
    stop: StopRecord


class SessionFields(CamelModel):
    id: uuid.UUID
    note: str | None
    planned_minutes: int | None


class SessionFieldsEnvelope(CamelModel):
    session: SessionFields


class ActiveSessionResponse(CamelModel):
    session: FocusSessionResponse | None = None
    remaining_ms: int | None = None  # null when it could not be computed


class PauseEntry(CamelModel):
    id: uuid.UUID
    start_at: UtcDatetime
    end_at: UtcDatetime | None


class StopEntry(CamelModel):
    id: uuid.UUID
    stop_at: UtcDatetime


class TimelineEventResponse(CamelModel):
    id: str
    type: Literal["Paused", "Resumed", "Stopped"]
    at: UtcDatetime


class FocusSessionHistory(FocusSessionResponse):
    pauses: list[PauseEntry] = []
    stops: list[StopEntry] = []
    events: list[TimelineEventResponse] = []


class SessionListResponse(CamelModel):
    sessions: list[FocusSessionHistory]
    page: int
    limit: int
    total: int
