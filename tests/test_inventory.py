import uuid
from datetime import date, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from donorhub.models.all_models import BloodInventory, BloodRequest, BloodType, RequestStatus, UrgencyLevel
from donorhub.services.errors import (
    InsufficientInventoryError, InvalidInputError, InvalidStateError, NotFoundError,
)
from donorhub.services.inventory import (
    COMPATIBILITY, InventoryService, compatible_blood_types, haversine_km,
)
from tests.conftest import NOW


@pytest.fixture
def service(db, clock):
    return InventoryService(db, clock)


@pytest.fixture
def pending_request(db, make_facility):
    def factory(blood_type=BloodType.A_POS, units=5):
        request = BloodRequest(
            facility_id=make_facility().id,
            blood_type=blood_type,
            units_requested=units,
            urgency_level=UrgencyLevel.URGENT,
            request_date=NOW,
            required_by=NOW + timedelta(days=1),
            status=RequestStatus.PENDING,
        )
        db.add(request)
        db.commit()
        db.refresh(request)
        return request

    return factory


def totals(db, inventory_id):
    row = db.query(BloodInventory).filter(BloodInventory.id == inventory_id).one()
    db.refresh(row)
    return row.units_available, row.units_reserved


def test_compatibility_table():
    assert set(compatible_blood_types("AB+")) == set(BloodType)
    assert compatible_blood_types(BloodType.O_NEG) == (BloodType.O_NEG,)
    assert set(compatible_blood_types("a-")) == {BloodType.A_NEG, BloodType.O_NEG}
    # O- donates to everyone
    assert all(BloodType.O_NEG in donors for donors in COMPATIBILITY.values())


def test_unsupported_blood_type():
    with pytest.raises(InvalidInputError) as exc:
        compatible_blood_types("C+")

    assert exc.value.details["field"] == "blood_type"


def test_haversine():
    assert haversine_km(0, 0, 0, 0) == 0
    # Blantyre to Lilongwe, roughly 240 km as the crow flies
    assert 200 < haversine_km(-15.7861, 35.0058, -13.9626, 33.7741) < 280


def test_o_negative_request_only_matches_o_negative(service, make_bank, make_inventory):
    bank = make_bank()
    make_inventory(bank, BloodType.O_POS, 50)
    make_inventory(bank, BloodType.A_NEG, 50)

    assert service.find_matches(BloodType.O_NEG, 1) == []

    make_inventory(bank, BloodType.O_NEG, 3)
    matches = service.find_matches(BloodType.O_NEG, 1)
    assert [m.blood_type for m in matches] == [BloodType.O_NEG]


def test_o_negative_stock_matches_other_requests(service, make_bank, make_inventory):
    bank = make_bank()
    make_inventory(bank, BloodType.O_NEG, 8)

    matches = service.find_matches(BloodType.AB_POS, 5)

    assert len(matches) == 1
    assert matches[0].blood_type == BloodType.O_NEG
    assert not matches[0].exact_match


def test_ranking_exact_first_then_units(service, make_bank, make_inventory):
    first = make_bank(name="Mzuzu")
    second = make_bank(name="Zomba")
    third = make_bank(name="Lilongwe")
    make_inventory(first, BloodType.O_NEG, 40)
    make_inventory(second, BloodType.A_POS, 6)
    make_inventory(third, BloodType.A_POS, 12)
    make_inventory(third, BloodType.A_NEG, 2)

    matches = service.find_matches("A+", 5)

    assert [(m.blood_bank_name, m.blood_type) for m in matches] == [
        ("Lilongwe", BloodType.A_POS),
        ("Zomba", BloodType.A_POS),
        ("Mzuzu", BloodType.O_NEG),
    ]


def test_inactive_banks_are_excluded(service, make_bank, make_inventory):
    make_inventory(make_bank(is_active=False), BloodType.A_POS, 40)

    assert service.find_matches("A+", 1) == []


def test_distance_resort(service, make_bank, make_inventory):
    near = make_bank(name="Near", latitude=-15.78, longitude=35.00)
    far = make_bank(name="Far", latitude=-11.46, longitude=34.02)
    unknown = make_bank(name="Unknown")
    make_inventory(far, BloodType.B_POS, 30)
    make_inventory(near, BloodType.O_NEG, 5)
    make_inventory(unknown, BloodType.B_POS, 50)

    matches = service.find_matches("B+", 2, coordinates=(-15.79, 35.01))

    assert [m.blood_bank_name for m in matches] == ["Near", "Far", "Unknown"]
    assert matches[0].distance_km < matches[1].distance_km
    assert matches[2].distance_km is None


def test_reserve_and_release_conserve_units(service, db, make_bank, make_inventory):
    bank = make_bank()
    row = make_inventory(bank, BloodType.B_NEG, 10)

    assert service.reserve(bank.id, BloodType.B_NEG, 4)
    assert totals(db, row.id) == (6, 4)

    assert service.release(bank.id, BloodType.B_NEG, 10) == 4
    assert totals(db, row.id) == (10, 0)


def test_reserve_is_all_or_nothing(service, db, make_bank, make_inventory):
    bank = make_bank()
    row = make_inventory(bank, BloodType.B_NEG, 3)

    assert service.reserve(bank.id, BloodType.B_NEG, 4) is False
    assert totals(db, row.id) == (3, 0)
    assert service.reserve(bank.id, BloodType.AB_NEG, 1) is False


def test_refused_reserve_keeps_pending_changes(service, db, make_bank, make_inventory):
    bank = make_bank()
    row = make_inventory(bank, BloodType.B_NEG, 3)
    row.minimum_threshold = 4

    assert service.reserve(bank.id, BloodType.B_NEG, 4) is False
    db.commit()

    db.refresh(row)
    assert row.minimum_threshold == 4


def test_release_unknown_row(service, make_bank):
    with pytest.raises(NotFoundError):
        service.release(make_bank().id, BloodType.B_NEG, 1)


def test_consume_reduces_total(service, db, make_bank, make_inventory):
    bank = make_bank()
    row = make_inventory(bank, BloodType.O_POS, 10, units_reserved=3)

    service.consume(bank.id, BloodType.O_POS, 2)

    assert totals(db, row.id) == (10, 1)
    with pytest.raises(InsufficientInventoryError):
        service.consume(bank.id, BloodType.O_POS, 2)


@pytest.mark.parametrize("units", [0, -1, 1.5])
def test_units_must_be_positive_integers(service, make_bank, units):
    with pytest.raises(InvalidInputError):
        service.reserve(make_bank().id, BloodType.O_POS, units)


def test_fulfill_moves_units_and_marks_request(service, db, make_bank, make_inventory, pending_request):
    bank = make_bank()
    row = make_inventory(bank, BloodType.A_POS, 10)
    request = pending_request(BloodType.A_POS, 5)

    fulfilled = service.fulfill(request.id, bank.id, 5, notes="Dispatched by courier")

    assert fulfilled.status == RequestStatus.FULFILLED
    assert fulfilled.fulfilled_by == bank.id
    assert fulfilled.fulfilled_at == NOW
    assert fulfilled.notes == "Dispatched by courier"
    assert totals(db, row.id) == (5, 5)


def test_fulfill_insufficient_leaves_state_unchanged(service, db, make_bank, make_inventory, pending_request):
    bank = make_bank()
    row = make_inventory(bank, BloodType.A_POS, 3)
    request = pending_request(BloodType.A_POS, 5)

    with pytest.raises(InsufficientInventoryError) as exc:
        service.fulfill(request.id, bank.id, 5)

    assert exc.value.details == {"blood_type": "A+", "available": 3, "required": 5}
    assert totals(db, row.id) == (3, 0)
    db.refresh(request)
    assert request.status == RequestStatus.PENDING
    assert request.fulfilled_by is None


def test_fulfill_uses_exact_type_only(service, make_bank, make_inventory, pending_request):
    bank = make_bank()
    make_inventory(bank, BloodType.O_NEG, 50)
    request = pending_request(BloodType.A_POS, 2)

    with pytest.raises(InsufficientInventoryError):
        service.fulfill(request.id, bank.id, 2)


def test_second_fulfill_fails(service, db, make_bank, make_inventory, pending_request):
    bank = make_bank()
    row = make_inventory(bank, BloodType.A_POS, 20)
    request = pending_request(BloodType.A_POS, 5)
    service.fulfill(request.id, bank.id, 5)

    with pytest.raises(InvalidStateError):
        service.fulfill(request.id, bank.id, 5)

    assert totals(db, row.id) == (15, 5)


def test_fulfill_with_stale_read_fails(engine, db, clock, make_bank, make_inventory, pending_request):
    bank = make_bank()
    row = make_inventory(bank, BloodType.A_POS, 20)
    request = pending_request(BloodType.A_POS, 5)
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    first, second = session_factory(), session_factory()

    try:
        # both sessions see the request as pending before either fulfils
        assert first.get(BloodRequest, request.id).status == RequestStatus.PENDING
        assert second.get(BloodRequest, request.id).status == RequestStatus.PENDING
        second.get(BloodInventory, row.id)

        InventoryService(first, clock).fulfill(request.id, bank.id, 5)
        with pytest.raises(InvalidStateError):
            InventoryService(second, clock).fulfill(request.id, bank.id, 5)
    finally:
        first.close()
        second.close()

    assert totals(db, row.id) == (15, 5)
    db.refresh(request)
    assert request.status == RequestStatus.FULFILLED


def test_fulfill_unknown_request(service, make_bank):
    with pytest.raises(NotFoundError):
        service.fulfill(uuid.uuid4(), make_bank().id, 1)


def test_add_units_creates_row(service, make_bank):
    bank = make_bank()

    row = service.add_units(bank.id, "AB-", 2)
    row = service.add_units(bank.id, BloodType.AB_NEG, 3)

    assert row.units_available == 5
    assert row.minimum_threshold == 10


def test_alerts_and_summary(service, make_bank, make_inventory):
    bank = make_bank()
    make_inventory(bank, BloodType.A_POS, 0)
    make_inventory(bank, BloodType.B_POS, 4, units_reserved=2)
    make_inventory(bank, BloodType.O_POS, 30, expiration_date=date(2024, 6, 5))
    make_inventory(bank, BloodType.O_NEG, 30, expiration_date=date(2024, 7, 30))

    alerts = {(a.blood_type, a.alert_type) for a in service.alerts(bank.id)}
    summary = service.summary(bank.id)

    assert alerts == {
        (BloodType.A_POS, "critical_stock"),
        (BloodType.B_POS, "low_stock"),
        (BloodType.O_POS, "expiring_soon"),
    }
    assert summary["total_units"] == 66
    assert summary["total_reserved"] == 2
    assert summary["critical_stock_count"] == 1
    assert summary["low_stock_count"] == 1
    assert summary["by_blood_type"]["O-"]["status"] == "normal"


def test_set_stock(service, make_bank):
    bank = make_bank()

    row = service.set_stock(bank.id, "O+", units_available=12, minimum_threshold=4, expiration_date="2024-08-01")

    assert (row.units_available, row.minimum_threshold, row.expiration_date) == (12, 4, date(2024, 8, 1))
    with pytest.raises(InvalidInputError):
        service.set_stock(bank.id, "O+", units_available=-1)
