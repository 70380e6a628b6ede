from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import col

from models.telemetry import TelemetrySession

UTC = timezone.utc


def at(*args):
    return datetime(*args, tzinfo=UTC)


async def test_insert_and_get(database):
    record = TelemetrySession(start_date=at(2026, 3, 1, 23, 0))
    record.add_sample(at(2026, 3, 1, 23, 1), 64.0)
    assert await database.insert_telemetry_session(record)

    stored = await database.get_telemetry_session(record.id)
    assert stored.start_date == record.start_date
    assert stored.start_date.tzinfo is not None
    assert stored.bpm_samples[0].bpm == 64.0
    assert stored.is_open


async def test_other_offsets_stored_as_utc(database):
    plus_two = timezone(timedelta(hours=2))
    record = TelemetrySession(start_date=datetime(2026, 3, 2, 1, 0, tzinfo=plus_two))
    await database.insert_telemetry_session(record)

    stored = await database.get_telemetry_session(record.id)
    assert stored.start_date == at(2026, 3, 1, 23, 0)
    assert stored.start_date.utcoffset() == timedelta(0)


async def test_naive_datetime_rejected(database):
    record = TelemetrySession(start_date=datetime(2026, 3, 1))
    assert await database.insert_telemetry_session(record) is False
    assert await database.query_telemetry_sessions() == []


async def test_get_missing_session(database):
    assert await database.get_telemetry_session("missing") is None


async def test_duplicate_insert_reports_failure(database):
    record = TelemetrySession(start_date=at(2026, 3, 1))
    assert await database.insert_telemetry_session(record)
    duplicate = TelemetrySession(id=record.id, start_date=at(2026, 3, 2))
    assert await database.insert_telemetry_session(duplicate) is False


async def test_save_updates_samples(database):
    record = TelemetrySession(start_date=at(2026, 3, 1, 22, 0))
    await database.insert_telemetry_session(record)

    record.add_sample(at(2026, 3, 1, 22, 5), 58.0)
    record.end_date = at(2026, 3, 1, 23, 0)
    assert await database.save_telemetry_session(record)

    stored = await database.get_telemetry_session(record.id)
    assert len(stored.samples) == 1
    assert stored.end_date == at(2026, 3, 1, 23, 0)


async def test_delete_requires_predicate(database):
    with pytest.raises(ValueError):
        await database.delete_telemetry_sessions()


async def test_delete_by_predicate(database):
    old = TelemetrySession(start_date=at(2026, 2, 1))
    new = TelemetrySession(start_date=at(2026, 3, 1))
    await database.insert_telemetry_session(old)
    await database.insert_telemetry_session(new)

    removed = await database.delete_telemetry_sessions(col(TelemetrySession.start_date) >= at(2026, 2, 15))
    assert removed == 1
    assert [s.id for s in await database.query_telemetry_sessions()] == [old.id]


async def test_close_dangling_without_samples_uses_start(database):
    record = TelemetrySession(start_date=at(2026, 3, 1, 22, 0))
    await database.insert_telemetry_session(record)

    assert await database.close_dangling_sessions(before=at(2026, 3, 2)) == 1
    stored = await database.get_telemetry_session(record.id)
    assert stored.end_date == stored.start_date
    assert await database.close_dangling_sessions(before=at(2026, 3, 2)) == 0
