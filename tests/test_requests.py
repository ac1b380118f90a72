from datetime import timedelta

import pytest

from donorhub.models.all_models import BloodType, RequestStatus, UrgencyLevel, UserRole
from donorhub.services.errors import ForbiddenError, InvalidInputError, InvalidStateError
from donorhub.services.requests import BloodRequestService
from tests.conftest import NOW


@pytest.fixture
def service(db, clock):
    return BloodRequestService(db, clock)


def test_create_pending_request(service, make_facility):
    facility = make_facility()

    request = service.create(facility, "B+", 3, NOW + timedelta(days=2), urgency_level=UrgencyLevel.URGENT,
                             patient_info={"ward": "Maternity"})

    assert request.status == RequestStatus.PENDING
    assert request.blood_type == BloodType.B_POS
    assert request.urgency_level == UrgencyLevel.URGENT
    assert request.request_date == NOW
    assert request.patient_info == {"ward": "Maternity"}


@pytest.mark.parametrize("hours, expected", [
    (1, UrgencyLevel.EMERGENCY),
    (2, UrgencyLevel.EMERGENCY),
    (3, UrgencyLevel.ROUTINE),
])
def test_escalation_to_emergency(service, make_facility, hours, expected):
    request = service.create(make_facility(), "O+", 2, NOW + timedelta(hours=hours))

    assert request.urgency_level == expected


def test_required_by_must_be_in_future(service, make_facility):
    with pytest.raises(InvalidInputError):
        service.create(make_facility(), "O+", 2, NOW)


@pytest.mark.parametrize("units", [0, -3])
def test_units_must_be_positive(service, make_facility, units):
    with pytest.raises(InvalidInputError):
        service.create(make_facility(), "O+", units, NOW + timedelta(days=1))


def test_list_orders_by_urgency_then_newest(service, make_facility, clock):
    facility = make_facility()
    routine = service.create(facility, "A+", 1, NOW + timedelta(days=3))
    clock.advance_to(NOW + timedelta(minutes=5))
    urgent = service.create(facility, "A+", 1, NOW + timedelta(days=3), urgency_level=UrgencyLevel.URGENT)
    clock.advance_to(NOW + timedelta(minutes=10))
    emergency = service.create(facility, "A+", 1, NOW + timedelta(hours=1))
    clock.advance_to(NOW + timedelta(minutes=15))
    newer_routine = service.create(facility, "A+", 1, NOW + timedelta(days=3))

    ids = [r.id for r in service.list(facility_id=facility.id)]

    assert ids == [emergency.id, urgent.id, newer_routine.id, routine.id]


def test_urgent_lists_pending_urgent_and_emergency(service, make_facility):
    facility = make_facility()
    later = service.create(facility, "A+", 1, NOW + timedelta(days=2), urgency_level=UrgencyLevel.URGENT)
    sooner = service.create(facility, "A+", 1, NOW + timedelta(hours=1))
    service.create(facility, "A+", 1, NOW + timedelta(days=2))

    assert [r.id for r in service.urgent()] == [sooner.id, later.id]


def test_cancel_pending_request(service, make_facility):
    facility = make_facility()
    request = service.create(facility, "A+", 1, NOW + timedelta(days=1))

    cancelled = service.cancel(request.id, facility.user, reason="Patient transferred")

    assert cancelled.status == RequestStatus.CANCELLED
    with pytest.raises(InvalidStateError):
        service.cancel(request.id, facility.user)


def test_cancel_requires_owner(service, make_facility, make_user):
    request = service.create(make_facility(), "A+", 1, NOW + timedelta(days=1))
    other = make_facility(name="Zomba Central Hospital")

    with pytest.raises(ForbiddenError):
        service.cancel(request.id, other.user)

    assert service.cancel(request.id, make_user(UserRole.ADMIN)).status == RequestStatus.CANCELLED
