from datetime import date, datetime

import pytest

from donorhub.models.all_models import BloodInventory, BloodType
from donorhub.services.appointments import AppointmentManager
from donorhub.services.donations import DonationService, validate_units
from donorhub.services.errors import InvalidInputError, InvalidStateError


@pytest.fixture
def service(db, clock):
    return DonationService(db, clock)


@pytest.mark.parametrize("units", [0.1, 0.5, 1, 1.0, 2.0])
def test_valid_units(units):
    assert validate_units(units) == pytest.approx(units)


@pytest.mark.parametrize("units", [0, 0.05, 0.25, 2.1, -1, "1", True])
def test_invalid_units(units):
    with pytest.raises(InvalidInputError):
        validate_units(units)


def test_record_updates_donor_and_inventory(service, db, make_donor, make_bank):
    donor = make_donor(blood_type=BloodType.AB_NEG, total_donations=2, last_donation_date=date(2024, 1, 5))
    bank = make_bank()

    record = service.record(donor, bank, units_collected=1.0, donation_date=datetime(2024, 5, 31, 11, 0),
                            health_metrics={"hemoglobin": 13.5, "pulse": 72})

    db.refresh(donor)
    inventory = db.query(BloodInventory).filter_by(blood_bank_id=bank.id, blood_type=BloodType.AB_NEG).one()
    assert record.blood_type == BloodType.AB_NEG
    assert donor.last_donation_date == date(2024, 5, 31)
    assert donor.total_donations == 3
    assert inventory.units_available == 1


def test_partial_units_are_not_stocked(service, db, make_donor, make_bank):
    donor = make_donor()
    bank = make_bank()

    service.record(donor, bank, units_collected=0.5)

    assert db.query(BloodInventory).filter_by(blood_bank_id=bank.id).count() == 0


def test_future_donation_date_is_rejected(service, make_donor, make_bank):
    with pytest.raises(InvalidInputError):
        service.record(make_donor(), make_bank(), donation_date=datetime(2024, 6, 2, 9, 0))


def test_linked_appointment_must_be_completed(service, db, clock, make_donor, make_bank):
    donor = make_donor()
    bank = make_bank()
    manager = AppointmentManager(db, clock)
    appointment = manager.book(donor, bank, datetime(2024, 6, 10, 10, 0))

    with pytest.raises(InvalidStateError):
        service.record(donor, bank, appointment_id=appointment.id)

    manager.complete(appointment.id, bank.user)
    clock.advance_to(datetime(2024, 6, 10, 10, 40))
    record = service.record(donor, bank, appointment_id=appointment.id)

    assert record.appointment_id == appointment.id
    with pytest.raises(InvalidStateError):
        service.record(donor, bank, appointment_id=appointment.id)


def test_only_notes_change(service, make_donor, make_bank):
    record = service.record(make_donor(), make_bank(), notes="Mild dizziness")

    updated = service.update_notes(record.id, "Recovered after 10 minutes")

    assert updated.notes == "Recovered after 10 minutes"
    assert service.list_for_donor(record.donor_id)[0].id == record.id
