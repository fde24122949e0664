from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_date(now: datetime) -> str:
    return now.astimezone(timezone.utc).isoformat()[:10]


def format_timestamp(now: datetime) -> str:
    # Same shape as JavaScript's Date.toISOString(), e.g. 2024-04-01T12:00:00.000Z
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
