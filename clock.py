from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from config import get_settings


class TimezoneResolutionError(ValueError):
    pass


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_timezone(name: Optional[str]) -> ZoneInfo:
    """Return the zone for ``name``, falling back to the server timezone when unset."""
    tz_name = name or get_settings().timezone
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise TimezoneResolutionError(f"Unknown timezone {tz_name!r}") from exc


def local_time(tz_name: Optional[str], now: datetime) -> datetime:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(resolve_timezone(tz_name))


def local_hour(tz_name: Optional[str], now: datetime) -> int:
    return local_time(tz_name, now).hour


def is_delivery_time(
    tz_name: Optional[str],
    now: datetime,
    hour: int,
    minute: Optional[int] = None,
) -> bool:
    local = local_time(tz_name, now)
    if local.hour != hour:
        return False
    return minute is None or local.minute == minute
