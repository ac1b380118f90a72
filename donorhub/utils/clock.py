# donorhub/utils/clock.py
from datetime import datetime
import pytz

from donorhub.config import settings


def local_now():
    """Current wall-clock time in the configured timezone, without tzinfo."""
    return datetime.now(pytz.timezone(settings.TIMEZONE)).replace(tzinfo=None)


class Clock:
    """Source of "now" for the scheduling and inventory rules.

    All stored datetimes are naive local times, so ``now()`` returns the same.
    """

    def __init__(self, timezone: str = None):
        self.tz = pytz.timezone(timezone or settings.TIMEZONE)

    def now(self) -> datetime:
        return datetime.now(self.tz).replace(tzinfo=None)


def get_clock() -> Clock:
    return Clock()
