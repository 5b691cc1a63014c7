from datetime import date, datetime
from typing import Any

import httpx

from manifest.schemas.timer import (
    ActiveSessionResponse,
    FocusSessionResponse,
    PauseEnvelope,
    PauseRecord,
    SessionEnvelope,
    SessionFields,
    SessionFieldsEnvelope,
    SessionListResponse,
    StopEnvelope,
    TimerPauseRequest,
    TimerResumeRequest,
    TimerStartRequest,
    TimerStopRequest,
    TimerUpdateRequest,
)


class TimerApiError(Exception):
    """The timer API answered with an error status or an unreadable body."""

    def __init__(self, status_code: int, detail: Any = None):
        super().__init__(f"Timer API returned {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class TimerClient:
    """Thin async wrapper over the ``/timer`` endpoints."""

    def __init__(self, http: httpx.AsyncClient):
        self._http = http

    @classmethod
    def connect(
        cls, base_url: str, token: str | None = None, timeout: float = 10.0
    ) -> "TimerClient":
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        return cls(httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout))

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self, method: str, path: str, json: dict | None = None, params: dict | None = None
    ) -> dict:
        response = await self._http.request(method, path, json=json, params=params)
        if response.status_code >= 400:
            try:
                detail = response.json().get("detail")
            except (ValueError, AttributeError):
                detail = response.text
            raise TimerApiError(response.status_code, detail)
        try:
            return response.json()
        except ValueError:
            raise TimerApiError(response.status_code, "invalid response body")

    async def active(self) -> ActiveSessionResponse:
        data = await self._request("GET", "/timer/active")
        return ActiveSessionResponse.model_validate(data)

    async def start(
        self,
        planned_minutes: int | None = None,
        mode: str = "focus",
        note: str | None = None,
        start_at: datetime | None = None,
        target_end: datetime | None = None,
    ) -> FocusSessionResponse:
        body = TimerStartRequest(
            planned_minutes=planned_minutes,
            mode=mode,
            note=note,
            start_at=start_at,
            target_end=target_end,
        )
        data = await self._request(
            "POST", "/timer/start", json=body.model_dump(mode="json", by_alias=True, exclude_none=True)
        )
        return SessionEnvelope.model_validate(data).session

    async def pause(self, session_id: str, started_at: datetime | None = None) -> PauseRecord:
        body = TimerPauseRequest(session_id=session_id, started_at=started_at)
        data = await self._request(
            "POST", "/timer/pause", json=body.model_dump(mode="json", by_alias=True, exclude_none=True)
        )
        return PauseEnvelope.model_validate(data).pause

    async def resume(
        self,
        session_id: str,
        ended_at: datetime | None = None,
        target_end: datetime | None = None,
    ) -> FocusSessionResponse:
        body = TimerResumeRequest(session_id=session_id, ended_at=ended_at, target_end=target_end)
        data = await self._request(
            "POST", "/timer/resume", json=body.model_dump(mode="json", by_alias=True, exclude_none=True)
        )
        return SessionEnvelope.model_validate(data).session

    async def stop(self, session_id: str, stopped_at: datetime | None = None) -> StopEnvelope:
        body = TimerStopRequest(session_id=session_id, stopped_at=stopped_at)
        data = await self._request(
            "POST", "/timer/stop", json=body.model_dump(mode="json", by_alias=True, exclude_none=True)
        )
        return StopEnvelope.model_validate(data)

    async def update(self, session_id: str, **fields) -> SessionFields:
        """Send only the fields given; ``note=None`` clears the note."""
        body = TimerUpdateRequest(session_id=session_id, **fields)
        data = await self._request(
            "POST", "/timer/update", json=body.model_dump(mode="json", by_alias=True, exclude_unset=True)
        )
        return SessionFieldsEnvelope.model_validate(data).session

    async def list_sessions(
        self,
        mode: str | None = None,
        created_from: date | None = None,
        created_to: date | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> SessionListResponse:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if mode:
            params["mode"] = mode
        if created_from:
            params["createdFrom"] = created_from.isoformat()
        if created_to:
            params["createdTo"] = created_to.isoformat()
        data = await self._request("GET", "/timer", params=params)
        return SessionListResponse.model_validate(data)
