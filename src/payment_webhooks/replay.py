from datetime import UTC, datetime, timedelta

DEFAULT_MAX_AGE = timedelta(minutes=5)


def parse_timestamp(timestamp: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(timestamp.strip())
    except (AttributeError, TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def is_fresh(timestamp: str, now: datetime, max_age: timedelta = DEFAULT_MAX_AGE) -> bool:
    """True when ``timestamp`` lies within ``max_age`` of ``now`` in either direction.

    Unparsable timestamps are never fresh.
    """
    parsed = parse_timestamp(timestamp)
    if parsed is None:
        return False
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return abs(now - parsed) < max_age
