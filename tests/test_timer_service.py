import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from manifest.config import settings
from manifest.models.user import User
from manifest.services import timer_service
from manifest.services.timer_math import as_utc
from manifest.services.timer_service import SessionClosedError

T0 = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


def at(minutes: float) -> datetime:
    return T0 + timedelta(minutes=minutes)


def db_down() -> AsyncMock:
    return AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("connection lost")))


@pytest.mark.asyncio
async def test_other_owner_cannot_touch_session(db_session: AsyncSession, test_user: User, second_user: User):
    session = await timer_service.start_session(db_session, test_user.id, start_at=T0)

    assert await timer_service.pause_session(db_session, second_user.id, session.id) is None
    assert await timer_service.resume_session(db_session, second_user.id, session.id) is None
    assert await timer_service.stop_session(db_session, second_user.id, session.id) is None
    assert await timer_service.update_session_fields(
        db_session, second_user.id, session.id, {"note": "mine now"}
    ) is None

    active, _ = await timer_service.get_active_session(db_session, test_user.id, now=at(1))
    assert active.id == session.id
    assert active.note is None


@pytest.mark.asyncio
async def test_malformed_id_is_a_miss(db_session: AsyncSession, test_user: User):
    assert await timer_service.pause_session(db_session, test_user.id, "nope") is None
    assert await timer_service.stop_session(db_session, test_user.id, str(uuid.uuid4())) is None


@pytest.mark.asyncio
async def test_update_with_nothing_to_change(db_session: AsyncSession, test_user: User):
    session = await timer_service.start_session(db_session, test_user.id, start_at=T0)

    with pytest.raises(ValueError):
        await timer_service.update_session_fields(db_session, test_user.id, session.id, {})


@pytest.mark.asyncio
async def test_stopped_session_is_closed(db_session: AsyncSession, test_user: User):
    session = await timer_service.start_session(db_session, test_user.id, start_at=T0)
    await timer_service.stop_session(db_session, test_user.id, session.id, stopped_at=at(3))

    with pytest.raises(SessionClosedError):
        await timer_service.pause_session(db_session, test_user.id, session.id)
    with pytest.raises(SessionClosedError):
        await timer_service.resume_session(db_session, test_user.id, session.id)


@pytest.mark.asyncio
async def test_paused_remaining_unknown_when_history_unreadable(db_session: AsyncSession, test_user: User):
    session = await timer_service.start_session(db_session, test_user.id, start_at=T0)
    await timer_service.pause_session(db_session, test_user.id, session.id, started_at=at(5))

    with patch("manifest.services.timer_service.get_pauses", db_down()):
        active, remaining = await timer_service.get_active_session(db_session, test_user.id, now=at(9))

    assert active.id == session.id
    assert remaining is None


@pytest.mark.asyncio
async def test_list_degrades_without_pause_history(db_session: AsyncSession, test_user: User):
    session = await timer_service.start_session(db_session, test_user.id, start_at=T0)
    await timer_service.pause_session(db_session, test_user.id, session.id, started_at=at(5))
    await timer_service.stop_session(db_session, test_user.id, session.id, stopped_at=at(9))

    with patch("manifest.services.timer_service.get_pauses", db_down()):
        items, total = await timer_service.list_sessions(db_session, test_user.id)

    assert total == 1
    assert items[0]["pauses"] == []
    assert len(items[0]["stops"]) == 1
    assert [e["type"] for e in items[0]["events"]] == ["Stopped"]


@pytest.mark.asyncio
async def test_running_session_past_target_reports_zero(db_session: AsyncSession, test_user: User):
    session = await timer_service.start_session(db_session, test_user.id, start_at=T0)

    active, remaining = await timer_service.get_active_session(db_session, test_user.id, now=at(40))

    assert active.id == session.id
    assert remaining == 0
    assert active.end_at is None


@pytest.mark.asyncio
async def test_expired_session_auto_stops(db_session: AsyncSession, test_user: User, monkeypatch):
    monkeypatch.setattr(settings, "TIMER_AUTO_STOP_EXPIRED", True)
    session = await timer_service.start_session(db_session, test_user.id, start_at=T0)

    active, remaining = await timer_service.get_active_session(db_session, test_user.id, now=at(40))

    assert active is None
    assert remaining is None
    assert as_utc(session.end_at) == at(25)
    assert session.duration_minutes == 25


@pytest.mark.asyncio
async def test_auto_stop_leaves_paused_sessions(db_session: AsyncSession, test_user: User, monkeypatch):
    monkeypatch.setattr(settings, "TIMER_AUTO_STOP_EXPIRED", True)
    session = await timer_service.start_session(db_session, test_user.id, start_at=T0)
    await timer_service.pause_session(db_session, test_user.id, session.id, started_at=at(5))

    active, remaining = await timer_service.get_active_session(db_session, test_user.id, now=at(90))

    assert active.id == session.id
    assert remaining == 20 * 60_000


@pytest.mark.asyncio
async def test_record_session_keeps_given_duration(db_session: AsyncSession, test_user: User):
    session = await timer_service.record_session(
        db_session, test_user.id, start_at=T0, end_at=at(50), duration_minutes=45
    )

    assert session.duration_minutes == 45
    assert as_utc(session.end_at) == at(50)
    active, _ = await timer_service.get_active_session(db_session, test_user.id, now=at(60))
    assert active is None
