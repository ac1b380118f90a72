# donorhub/services/slots.py
"""Hourly appointment slots for a blood bank.

Operating hours are stored per weekday as ``{"open": "09:00", "close": "17:00",
"closed": false}``. A bank takes ``max(1, capacity // 5)`` donors per hour.
"""
from collections import Counter
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator, Optional, Tuple

from pydantic import BaseModel

from donorhub.config import settings
from donorhub.models.all_models import AppointmentStatus
from donorhub.utils.dates import DateLike, parse_date, parse_datetime, parse_hour

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


class TimeSlot(BaseModel):
    date: date
    hour: int
    start: datetime
    booked: int
    max_bookings: int
    available: bool


def max_appointments_per_hour(capacity: Optional[int]) -> int:
    """Donors a bank can take per hour; never less than one."""
    return max(1, (capacity or 0) // settings.DONORS_PER_HOUR_DIVISOR)


def operating_window(blood_bank, day: date) -> Optional[Tuple[time, time]]:
    """Return ``(open, close)`` for ``day`` or None when the bank is closed."""
    hours = (blood_bank.operating_hours or {}).get(WEEKDAYS[day.weekday()])
    if not hours or hours.get("closed"):
        return None
    opens = parse_hour(hours.get("open"), f"{WEEKDAYS[day.weekday()]}.open")
    closes = parse_hour(hours.get("close"), f"{WEEKDAYS[day.weekday()]}.close")
    if closes <= opens:
        return None
    return opens, closes


def slot_hours(blood_bank, day: date) -> range:
    """Whole hours whose start falls inside the day's ``[open, close)`` window."""
    window = operating_window(blood_bank, day)
    if window is None:
        return range(0)
    opens, closes = window
    first = opens.hour if opens == time(opens.hour) else opens.hour + 1
    last = closes.hour if closes == time(closes.hour) else closes.hour + 1
    return range(first, min(last, 24))


def _hour_key(value: datetime) -> datetime:
    return value.replace(minute=0, second=0, microsecond=0)


def count_bookings(appointments: Iterable, exclude_id=None) -> Counter:
    """Count non-cancelled appointments per starting hour."""
    counts = Counter()
    for appointment in appointments:
        if appointment.status == AppointmentStatus.CANCELLED:
            continue
        if exclude_id is not None and appointment.id == exclude_id:
            continue
        counts[_hour_key(parse_datetime(appointment.appointment_datetime))] += 1
    return counts


class SlotSchedule:
    """Finite, restartable sequence of slots, ordered by date then hour.

    Bookings are counted once at construction; iterating never touches the
    inputs, so two passes over the same schedule yield the same slots.
    """

    def __init__(self, blood_bank, start_date: DateLike, end_date: DateLike, appointments: Iterable,
                 now: DateLike, exclude_id=None):
        self.blood_bank = blood_bank
        self.start_date = parse_date(start_date, "start_date")
        self.end_date = parse_date(end_date, "end_date")
        self.now = parse_datetime(now, "now")
        self.max_bookings = max_appointments_per_hour(blood_bank.capacity)
        self._bookings = count_bookings(appointments, exclude_id)

    def __iter__(self) -> Iterator[TimeSlot]:
        day = self.start_date
        while day <= self.end_date:
            for hour in slot_hours(self.blood_bank, day):
                start = datetime.combine(day, time(hour))
                booked = self._bookings.get(start, 0)
                yield TimeSlot(
                    date=day,
                    hour=hour,
                    start=start,
                    booked=booked,
                    max_bookings=self.max_bookings,
                    available=booked < self.max_bookings and start > self.now,
                )
            day += timedelta(days=1)

    def available(self) -> Iterator[TimeSlot]:
        return (slot for slot in self if slot.available)


def compute_slots(blood_bank, start_date: DateLike, end_date: DateLike, appointments: Iterable,
                  now: DateLike) -> SlotSchedule:
    return SlotSchedule(blood_bank, start_date, end_date, appointments, now)


def find_slot(blood_bank, when: DateLike, appointments: Iterable, now: DateLike,
              exclude_id=None) -> Optional[TimeSlot]:
    """The slot containing ``when``, or None if it is outside operating hours."""
    when = parse_datetime(when, "appointment_datetime")
    schedule = SlotSchedule(blood_bank, when.date(), when.date(), appointments, now, exclude_id)
    for slot in schedule:
        if slot.hour == when.hour:
            return slot
    return None


def is_slot_available(blood_bank, when: DateLike, appointments: Iterable, now: DateLike,
                      exclude_id=None) -> bool:
    slot = find_slot(blood_bank, when, appointments, now, exclude_id)
    return slot is not None and slot.available
