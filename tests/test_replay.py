from datetime import UTC, datetime, timedelta, timezone

import pytest

from payment_webhooks.replay import DEFAULT_MAX_AGE, is_fresh, parse_timestamp

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=UTC)


def test_default_window_is_five_minutes() -> None:
    assert DEFAULT_MAX_AGE == timedelta(minutes=5)


def test_timestamp_equal_to_now_is_fresh() -> None:
    assert is_fresh(NOW.isoformat(), NOW) is True


@pytest.mark.parametrize("offset", [timedelta(minutes=-6), timedelta(minutes=6)])
def test_six_minutes_either_way_is_not_fresh(offset: timedelta) -> None:
    assert is_fresh((NOW + offset).isoformat(), NOW) is False


def test_within_window_is_fresh() -> None:
    assert is_fresh((NOW - timedelta(minutes=4, seconds=59)).isoformat(), NOW) is True
    assert is_fresh((NOW + timedelta(minutes=4)).isoformat(), NOW) is True


def test_exact_window_boundary_is_not_fresh() -> None:
    assert is_fresh((NOW - DEFAULT_MAX_AGE).isoformat(), NOW) is False


@pytest.mark.parametrize("timestamp", ["", "not a date", "2026-13-45T00:00:00Z", "18/10/2026 12:00"])
def test_unparsable_timestamp_is_not_fresh(timestamp: str) -> None:
    assert is_fresh(timestamp, NOW) is False


def test_zulu_suffix_is_accepted() -> None:
    assert is_fresh("2026-10-18T12:00:00Z", NOW) is True


def test_offset_timestamps_compare_in_utc() -> None:
    local = NOW.astimezone(timezone(timedelta(hours=-5)))
    assert is_fresh(local.isoformat(), NOW) is True


def test_naive_timestamp_read_as_utc() -> None:
    assert parse_timestamp("2026-10-18T12:00:00") == NOW


def test_custom_max_age() -> None:
    old = (NOW - timedelta(minutes=8)).isoformat()
    assert is_fresh(old, NOW, timedelta(minutes=10)) is True
