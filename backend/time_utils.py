from datetime import UTC, datetime


def utcnow_naive():
    """Return current UTC timestamp as naive datetime for DB timestamp columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def isoformat_or_none(value):
    return value.isoformat() if value else None


def minutes_since(value, now=None):
    """Whole minutes elapsed since ``value``; 0 for missing or future values."""
    if value is None:
        return 0
    now = now or utcnow_naive()
    return max(0, int((now - value).total_seconds() // 60))
