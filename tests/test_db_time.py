# tests/test_db_time.py
from datetime import UTC, datetime, timedelta, timezone

from chatroom_stage.db.time import as_utc, utcnow


def test_utcnow_is_timezone_aware() -> None:
    assert utcnow().tzinfo is UTC


def test_as_utc_attaches_utc_to_naive_values() -> None:
    naive = datetime(2024, 1, 1, 12, 30)

    assert as_utc(naive) == datetime(2024, 1, 1, 12, 30, tzinfo=UTC)


def test_as_utc_converts_other_offsets() -> None:
    local = datetime(2024, 1, 1, 14, 30, tzinfo=timezone(timedelta(hours=2)))

    converted = as_utc(local)

    assert converted.tzinfo is UTC
    assert converted.hour == 12


def test_as_utc_passes_none_through() -> None:
    assert as_utc(None) is None
