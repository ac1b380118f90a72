# donorhub/services/donations.py
import logging
import math
from typing import List

from sqlalchemy.orm import Session

from donorhub.models.all_models import (
    Appointment, AppointmentStatus, BloodBank, DonationRecord, DonorProfile,
)
from donorhub.services.errors import InvalidInputError, InvalidStateError, NotFoundError
from donorhub.services.inventory import InventoryService
from donorhub.utils.clock import Clock
from donorhub.utils.dates import parse_datetime

logger = logging.getLogger(__name__)

MIN_UNITS = 0.1
MAX_UNITS = 2.0


def validate_units(units) -> float:
    """Collected volume in units: 0.1 to 2.0 in steps of 0.1."""
    if isinstance(units, bool) or not isinstance(units, (int, float)) or math.isnan(units):
        raise InvalidInputError("units_collected must be a number", {"field": "units_collected", "value": units})
    tenths = units * 10
    if units < MIN_UNITS or units > MAX_UNITS or abs(tenths - round(tenths)) > 1e-9:
        raise InvalidInputError(
            "units_collected must be between 0.1 and 2.0 in steps of 0.1",
            {"field": "units_collected", "value": units, "min": MIN_UNITS, "max": MAX_UNITS},
        )
    return round(tenths) / 10


class DonationService:
    def __init__(self, db: Session, clock: Clock = None):
        self.db = db
        self.clock = clock or Clock()

    def get(self, donation_id) -> DonationRecord:
        record = self.db.query(DonationRecord).filter(DonationRecord.id == donation_id).first()
        if record is None:
            raise NotFoundError("Donation record not found", {"donation_id": str(donation_id)})
        return record

    def _linked_appointment(self, appointment_id, donor: DonorProfile, bank: BloodBank) -> Appointment:
        appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if appointment is None:
            raise NotFoundError("Appointment not found", {"appointment_id": str(appointment_id)})
        if appointment.donor_id != donor.id or appointment.blood_bank_id != bank.id:
            raise InvalidInputError(
                "Appointment does not belong to this donor and blood bank",
                {"appointment_id": str(appointment.id)},
            )
        if appointment.status != AppointmentStatus.COMPLETED:
            raise InvalidStateError(
                "Donations can only be recorded against completed appointments",
                {"current": appointment.status.value, "required": AppointmentStatus.COMPLETED.value},
            )
        if appointment.donation is not None:
            raise InvalidStateError(
                "A donation has already been recorded for this appointment",
                {"appointment_id": str(appointment.id), "donation_id": str(appointment.donation.id)},
            )
        return appointment

    def record(self, donor: DonorProfile, blood_bank: BloodBank, units_collected: float = 1.0,
               donation_date=None, appointment_id=None, health_metrics: dict = None,
               notes: str = None) -> DonationRecord:
        """Record a donation, update the donor's history and stock the bank."""
        units = validate_units(units_collected)
        now = self.clock.now()
        donated_at = parse_datetime(donation_date, "donation_date") if donation_date is not None else now
        if donated_at > now:
            raise InvalidInputError(
                "Donation date cannot be in the future",
                {"field": "donation_date", "requested": donated_at.isoformat(), "now": now.isoformat()},
            )
        if appointment_id is not None:
            self._linked_appointment(appointment_id, donor, blood_bank)

        try:
            record = DonationRecord(
                donor_id=donor.id,
                blood_bank_id=blood_bank.id,
                appointment_id=appointment_id,
                donation_date=donated_at,
                blood_type=donor.blood_type,
                units_collected=units,
                health_metrics=health_metrics,
                notes=notes,
                created_at=now,
            )
            self.db.add(record)

            if donor.last_donation_date is None or donor.last_donation_date < donated_at.date():
                donor.last_donation_date = donated_at.date()
            donor.total_donations = (donor.total_donations or 0) + 1
            donor.updated_at = now

            whole_units = int(units)
            if whole_units:
                InventoryService(self.db, self.clock).add_units(
                    blood_bank.id, donor.blood_type, whole_units, commit=False
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(record)
        logger.info("Recorded %.1f units from donor %s at bank %s", units, donor.id, blood_bank.id)
        return record

    def update_notes(self, donation_id, notes: str) -> DonationRecord:
        record = self.get(donation_id)
        record.notes = notes
        self.db.commit()
        self.db.refresh(record)
        return record

    def list_for_donor(self, donor_id, skip: int = 0, limit: int = 100) -> List[DonationRecord]:
        return self.db.query(DonationRecord).filter(
            DonationRecord.donor_id == donor_id
        ).order_by(DonationRecord.donation_date.desc()).offset(skip).limit(limit).all()

    def list_for_blood_bank(self, blood_bank_id, skip: int = 0, limit: int = 100) -> List[DonationRecord]:
        return self.db.query(DonationRecord).filter(
            DonationRecord.blood_bank_id == blood_bank_id
        ).order_by(DonationRecord.donation_date.desc()).offset(skip).limit(limit).all()
