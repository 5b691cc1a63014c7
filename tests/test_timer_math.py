from datetime import datetime, timedelta, timezone

from manifest.services.timer_math import (
    as_utc,
    elapsed_minutes,
    planned_ms,
    remaining_at_pause,
    remaining_until,
    target_end_for,
)

T0 = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


def at(minutes: float) -> datetime:
    return T0 + timedelta(minutes=minutes)


def test_as_utc_treats_naive_as_utc():
    naive = datetime(2026, 10, 19, 9, 0)
    assert as_utc(naive) == T0
    assert as_utc(naive).tzinfo is timezone.utc


def test_as_utc_converts_other_offsets():
    local = datetime(2026, 10, 19, 11, 0, tzinfo=timezone(timedelta(hours=2)))
    assert as_utc(local) == T0


def test_planned_ms_defaults_by_mode():
    assert planned_ms(None, "focus") == 25 * 60_000
    assert planned_ms(None, "break") == 5 * 60_000
    assert planned_ms(40, "break") == 40 * 60_000


def test_target_end_for_uses_default_duration():
    assert target_end_for(T0, None, "focus") == at(25)
    assert target_end_for(T0, 50, "focus") == at(50)


def test_remaining_until_never_negative():
    assert remaining_until(at(25), at(5)) == 20 * 60_000
    assert remaining_until(at(25), at(30)) == 0


def test_remaining_frozen_at_pause_start():
    # Paused 5 minutes in; how long the pause lasts does not matter
    pauses = [(at(5), None)]
    assert remaining_at_pause(T0, 25, "focus", pauses) == 20 * 60_000


def test_remaining_subtracts_only_active_time():
    pauses = [
        (at(5), at(8)),    # 3 minutes paused
        (at(10), at(20)),  # 10 minutes paused
        (at(30), None),    # open
    ]
    # Active: 0-5, 8-10, 20-30 = 17 minutes
    assert remaining_at_pause(T0, 25, "focus", pauses) == 8 * 60_000


def test_remaining_without_open_pause_is_full_plan():
    assert remaining_at_pause(T0, None, "break", []) == 5 * 60_000


def test_remaining_clamped_at_zero():
    assert remaining_at_pause(T0, 10, "focus", [(at(45), None)]) == 0


def test_remaining_handles_naive_timestamps():
    naive_start = T0.replace(tzinfo=None)
    pauses = [(at(5).replace(tzinfo=None), None)]
    assert remaining_at_pause(naive_start, 25, "focus", pauses) == 20 * 60_000


def test_elapsed_minutes_is_wall_clock():
    assert elapsed_minutes(T0, at(25)) == 25
    assert elapsed_minutes(T0, T0 + timedelta(seconds=90)) == 2
    assert elapsed_minutes(T0, T0 + timedelta(seconds=89)) == 1


def test_elapsed_minutes_at_least_one():
    assert elapsed_minutes(T0, T0) == 1
    assert elapsed_minutes(T0, T0 + timedelta(seconds=10)) == 1
