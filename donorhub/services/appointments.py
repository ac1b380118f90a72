# donorhub/services/appointments.py
"""Booking, rescheduling, cancelling and completing donation appointments.

Appointments move ``scheduled -> completed`` or ``scheduled -> cancelled``
and are never deleted. Every operation checks its preconditions in order
and raises on the first failure before anything is written.
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from donorhub.config import settings
from donorhub.models.all_models import Appointment, AppointmentStatus, BloodBank, DonorProfile, User
from donorhub.services.eligibility import evaluate_eligibility
from donorhub.services.errors import (
    CancellationWindowError, ForbiddenError, IneligibleDonorError, InvalidInputError,
    InvalidStateError, InvalidStateTransitionError, NotFoundError, SlotUnavailableError,
)
from donorhub.services.slots import find_slot
from donorhub.utils.auth import can_manage, operates_bank
from donorhub.utils.clock import Clock
from donorhub.utils.dates import DateLike, parse_date, parse_datetime

logger = logging.getLogger(__name__)


class AppointmentManager:
    def __init__(self, db: Session, clock: Clock = None):
        self.db = db
        self.clock = clock or Clock()

    # ---------------------------------------------------------------- lookups

    def get(self, appointment_id) -> Appointment:
        appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if appointment is None:
            raise NotFoundError("Appointment not found", {"appointment_id": str(appointment_id)})
        return appointment

    def _lock_bank(self, blood_bank_id) -> BloodBank:
        # serialises bookings against the same bank
        bank = self.db.query(BloodBank).filter(BloodBank.id == blood_bank_id).with_for_update().first()
        if bank is None:
            raise NotFoundError("Blood bank not found", {"blood_bank_id": str(blood_bank_id)})
        return bank

    def _appointments_on(self, blood_bank_id, day: date) -> List[Appointment]:
        start = datetime.combine(day, time.min)
        return self.db.query(Appointment).filter(
            and_(
                Appointment.blood_bank_id == blood_bank_id,
                Appointment.appointment_datetime >= start,
                Appointment.appointment_datetime < start + timedelta(days=1),
                Appointment.status != AppointmentStatus.CANCELLED,
            )
        ).all()

    def _check_slot(self, bank: BloodBank, when: datetime, now: datetime, exclude_id=None):
        if not bank.is_active:
            raise SlotUnavailableError(
                "Blood bank is not accepting appointments",
                {"reason": "inactive_blood_bank", "blood_bank_id": str(bank.id)},
            )
        slot = find_slot(bank, when, self._appointments_on(bank.id, when.date()), now, exclude_id)
        if slot is None:
            raise SlotUnavailableError(
                "Requested time is outside the blood bank's operating hours",
                {"reason": "outside_operating_hours", "requested": when.isoformat()},
            )
        if not slot.available:
            full = slot.booked >= slot.max_bookings
            raise SlotUnavailableError(
                "Selected time slot is fully booked" if full else "Selected time slot has already started",
                {
                    "reason": "fully_booked" if full else "slot_in_past",
                    "requested": when.isoformat(),
                    "booked": slot.booked,
                    "max_bookings": slot.max_bookings,
                },
            )

    # ------------------------------------------------------------- operations

    def book(self, donor: DonorProfile, blood_bank: BloodBank, when: DateLike, notes: str = None) -> Appointment:
        """Book ``donor`` into ``blood_bank`` at ``when``.

        Raises IneligibleDonorError, SlotUnavailableError or InvalidInputError.
        """
        when = parse_datetime(when, "appointment_datetime")
        now = self.clock.now()

        eligibility = evaluate_eligibility(donor, as_of=when, deferral_as_of=now)
        if not eligibility.eligible:
            logger.warning("Booking rejected for donor %s: %s", donor.id, eligibility.reasons[0])
            raise IneligibleDonorError(
                eligibility.reasons[0],
                {
                    "reasons": eligibility.reasons,
                    "next_eligible_date": eligibility.next_eligible_date.isoformat()
                    if eligibility.next_eligible_date else None,
                    "requested": when.isoformat(),
                },
            )

        bank = self._lock_bank(blood_bank.id)
        self._check_slot(bank, when, now)

        if when <= now:
            raise InvalidInputError(
                "Cannot schedule appointments in the past",
                {"field": "appointment_datetime", "requested": when.isoformat(), "now": now.isoformat()},
            )

        appointment = Appointment(
            donor_id=donor.id,
            blood_bank_id=bank.id,
            appointment_datetime=when,
            status=AppointmentStatus.SCHEDULED,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        self.db.add(appointment)
        self.db.commit()
        self.db.refresh(appointment)

        logger.info("Booked appointment %s for donor %s at %s", appointment.id, donor.id, when.isoformat())
        return appointment

    def reschedule(self, appointment_id, principal: User, when: DateLike, notes: str = None) -> Appointment:
        appointment = self.get(appointment_id)
        if not can_manage(principal, appointment):
            raise ForbiddenError(
                "Not allowed to modify this appointment",
                {"appointment_id": str(appointment.id)},
            )
        if appointment.status != AppointmentStatus.SCHEDULED:
            raise InvalidStateError(
                "Only scheduled appointments can be rescheduled",
                {"current": appointment.status.value, "required": AppointmentStatus.SCHEDULED.value},
            )

        when = parse_datetime(when, "appointment_datetime")
        now = self.clock.now()
        bank = self._lock_bank(appointment.blood_bank_id)
        self._check_slot(bank, when, now, exclude_id=appointment.id)
        if when <= now:
            raise InvalidInputError(
                "Cannot schedule appointments in the past",
                {"field": "appointment_datetime", "requested": when.isoformat(), "now": now.isoformat()},
            )

        previous = appointment.appointment_datetime
        appointment.appointment_datetime = when
        if notes is not None:
            appointment.notes = notes
        appointment.reminder_sent = False
        appointment.updated_at = now
        self.db.commit()
        self.db.refresh(appointment)

        logger.info("Rescheduled appointment %s from %s to %s", appointment.id, previous.isoformat(), when.isoformat())
        return appointment

    def cancel(self, appointment_id, principal: User, reason: str = None) -> Appointment:
        appointment = self.get(appointment_id)
        if not can_manage(principal, appointment):
            raise ForbiddenError(
                "Not allowed to modify this appointment",
                {"appointment_id": str(appointment.id)},
            )
        if appointment.status != AppointmentStatus.SCHEDULED:
            raise InvalidStateTransitionError(
                f"Cannot cancel a {appointment.status.value} appointment",
                {"current": appointment.status.value, "requested": AppointmentStatus.CANCELLED.value},
            )

        now = self.clock.now()
        window = timedelta(hours=settings.CANCELLATION_WINDOW_HOURS)
        remaining = appointment.appointment_datetime - now
        if remaining <= window:
            raise CancellationWindowError(
                f"Appointments can only be cancelled more than {settings.CANCELLATION_WINDOW_HOURS} hours in advance",
                {
                    "hours_remaining": round(remaining.total_seconds() / 3600, 2),
                    "required_hours": settings.CANCELLATION_WINDOW_HOURS,
                },
            )

        appointment.status = AppointmentStatus.CANCELLED
        appointment.cancelled_at = now
        appointment.cancellation_reason = reason
        appointment.updated_at = now
        self.db.commit()
        self.db.refresh(appointment)

        logger.info("Cancelled appointment %s", appointment.id)
        return appointment

    def complete(self, appointment_id, principal: User) -> Appointment:
        """Check-in: mark a scheduled appointment completed.

        Recording the donation itself is left to the caller.
        """
        appointment = self.get(appointment_id)
        if not operates_bank(principal, appointment.blood_bank):
            raise ForbiddenError(
                "Only the blood bank or an administrator can complete appointments",
                {"appointment_id": str(appointment.id)},
            )
        if appointment.status != AppointmentStatus.SCHEDULED:
            raise InvalidStateTransitionError(
                f"Cannot complete a {appointment.status.value} appointment",
                {"current": appointment.status.value, "requested": AppointmentStatus.COMPLETED.value},
            )

        now = self.clock.now()
        appointment.status = AppointmentStatus.COMPLETED
        appointment.completed_at = now
        appointment.updated_at = now
        self.db.commit()
        self.db.refresh(appointment)

        logger.info("Completed appointment %s", appointment.id)
        return appointment

    # ---------------------------------------------------------------- queries

    def _filtered(self, query, status=None, start_date=None, end_date=None):
        if status:
            query = query.filter(Appointment.status == status)
        start = parse_date(start_date, "start_date")
        end = parse_date(end_date, "end_date")
        if start:
            query = query.filter(Appointment.appointment_datetime >= datetime.combine(start, time.min))
        if end:
            query = query.filter(Appointment.appointment_datetime < datetime.combine(end + timedelta(days=1), time.min))
        return query

    def list_for_donor(self, donor_id, status: Optional[AppointmentStatus] = None, start_date=None,
                       end_date=None, skip: int = 0, limit: int = 100) -> List[Appointment]:
        query = self._filtered(
            self.db.query(Appointment).filter(Appointment.donor_id == donor_id), status, start_date, end_date
        )
        return query.order_by(Appointment.appointment_datetime.desc()).offset(skip).limit(limit).all()

    def list_for_blood_bank(self, blood_bank_id, status: Optional[AppointmentStatus] = None, start_date=None,
                            end_date=None, skip: int = 0, limit: int = 100) -> List[Appointment]:
        query = self._filtered(
            self.db.query(Appointment).filter(Appointment.blood_bank_id == blood_bank_id), status, start_date, end_date
        )
        return query.order_by(Appointment.appointment_datetime.asc()).offset(skip).limit(limit).all()

    def appointments_needing_reminders(self) -> List[Appointment]:
        """Scheduled appointments falling tomorrow that have not been reminded."""
        tomorrow = datetime.combine(self.clock.now().date() + timedelta(days=1), time.min)
        return self.db.query(Appointment).filter(
            and_(
                Appointment.status == AppointmentStatus.SCHEDULED,
                Appointment.reminder_sent == False,
                Appointment.appointment_datetime >= tomorrow,
                Appointment.appointment_datetime < tomorrow + timedelta(days=1),
            )
        ).order_by(Appointment.appointment_datetime).all()

    def mark_reminder_sent(self, appointment_id) -> Appointment:
        appointment = self.get(appointment_id)
        appointment.reminder_sent = True
        self.db.commit()
        return appointment
