from datetime import datetime, timezone
from functools import cache
from zoneinfo import ZoneInfo, available_timezones

TIMEZONES_REFERENCE_URL = "https://en.wikipedia.org/wiki/List_of_tz_database_time_zones"


class InvalidTimezone(ValueError):
    """Raised when a timezone identifier is not a canonical IANA zone."""

    def __init__(self, timezone_id: str):
        super().__init__(f"Invalid timezone: {timezone_id!r}")
        self.timezone_id = timezone_id


@cache
def _canonical_timezones() -> frozenset[str]:
    return frozenset(available_timezones())


def is_valid_timezone(timezone_id: str) -> bool:
    return timezone_id in _canonical_timezones()


def get_zone(timezone_id: str) -> ZoneInfo:
    if not is_valid_timezone(timezone_id):
        raise InvalidTimezone(timezone_id)

    return ZoneInfo(timezone_id)


def to_utc(instant: datetime) -> datetime:
    # naive instants are UTC by convention
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)

    return instant.astimezone(timezone.utc)


def convert(instant_utc: datetime, timezone_id: str) -> datetime:
    return to_utc(instant_utc).astimezone(get_zone(timezone_id))


def hours_until(instant_utc: datetime, now_utc: datetime) -> float:
    delta = to_utc(instant_utc) - to_utc(now_utc)
    return delta.total_seconds() / 3600
