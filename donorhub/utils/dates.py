# donorhub/utils/dates.py
from datetime import date, datetime, time
from typing import Optional, Union
import pytz

from donorhub.config import settings
from donorhub.services.errors import InvalidInputError

DateLike = Union[date, datetime, str]


def to_local(value: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(pytz.timezone(settings.TIMEZONE)).replace(tzinfo=None)


def parse_datetime(value: DateLike, field: str = "datetime") -> datetime:
    if isinstance(value, datetime):
        return to_local(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        try:
            return to_local(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
        except ValueError:
            pass
    raise InvalidInputError(
        f"Invalid {field}: {value!r}",
        {"field": field, "value": str(value)},
    )


def parse_date(value: Optional[DateLike], field: str = "date") -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_local(value).date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise InvalidInputError(
        f"Invalid {field}: {value!r}",
        {"field": field, "value": str(value)},
    )


def parse_hour(value, field: str = "hour") -> time:
    """Parse an operating-hours boundary given as ``"HH:MM"`` or an int hour."""
    if isinstance(value, time):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        if 0 <= value <= 24:
            return time.max if value == 24 else time(value)
    elif isinstance(value, str):
        try:
            if value.strip() == "24:00":
                return time.max
            return time.fromisoformat(value.strip())
        except ValueError:
            pass
    raise InvalidInputError(
        f"Invalid {field}: {value!r}",
        {"field": field, "value": str(value)},
    )
