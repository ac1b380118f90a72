# donorhub/routes/blood_banks/router.py

from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from typing import List, Optional
from uuid import UUID
from datetime import date, datetime, time, timedelta

from donorhub.database import get_db
from donorhub.models.all_models import (
    User, UserRole, BloodBank, Appointment, AppointmentStatus, BloodType
)
from donorhub.schemas.blood_bank import (
    BloodBankCreate, BloodBankUpdate, BloodBankResponse,
    InventoryUpdate, InventoryUnitsRequest, InventoryResponse, ReservationResponse
)
from donorhub.schemas.appointment import AppointmentResponse
from donorhub.schemas.donation import DonationResponse
from donorhub.services.appointments import AppointmentManager
from donorhub.services.donations import DonationService
from donorhub.services.errors import DonorHubError
from donorhub.services.inventory import InventoryService, InventoryAlert
from donorhub.services.slots import TimeSlot, compute_slots
from donorhub.routes.utils.errors import service_error, database_error
from donorhub.utils.auth import get_current_user, require_admin, operates_bank
from donorhub.utils.clock import Clock, get_clock

router = APIRouter(prefix="/blood-banks", tags=["blood-banks"])


def _get_bank(db: Session, blood_bank_id: UUID) -> BloodBank:
    bank = db.query(BloodBank).filter(BloodBank.id == blood_bank_id).first()
    if not bank:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Blood bank not found"
        )
    return bank


def _operated_bank(db: Session, blood_bank_id: UUID, current_user: User) -> BloodBank:
    bank = _get_bank(db, blood_bank_id)
    if not operates_bank(current_user, bank):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions for this blood bank"
        )
    return bank

# ================================
# BLOOD BANK MANAGEMENT
# ================================

@router.post("", response_model=BloodBankResponse, status_code=status.HTTP_201_CREATED)
async def create_blood_bank(
    bank_data: BloodBankCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    if bank_data.user_id is not None:
        operator = db.query(User).filter(User.id == bank_data.user_id).first()
        if not operator or operator.role != UserRole.BLOOD_BANK:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Operator must be an existing blood bank account"
            )

    try:
        bank = BloodBank(**bank_data.model_dump(), is_active=True)
        db.add(bank)
        db.commit()
        db.refresh(bank)
        return bank
    except SQLAlchemyError as e:
        raise database_error(db, e, "creating blood bank")


@router.get("", response_model=List[BloodBankResponse])
async def list_blood_banks(
    include_inactive: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = db.query(BloodBank)
    if not (include_inactive and current_user.role == UserRole.ADMIN):
        query = query.filter(BloodBank.is_active == True)
    return query.order_by(BloodBank.name).offset(skip).limit(limit).all()


@router.get("/{blood_bank_id}", response_model=BloodBankResponse)
async def get_blood_bank(
    blood_bank_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return _get_bank(db, blood_bank_id)


@router.put("/{blood_bank_id}", response_model=BloodBankResponse)
async def update_blood_bank(
    blood_bank_id: UUID,
    bank_update: BloodBankUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    Update a blood bank. Deactivation is soft: the row and its history stay.
    """
    bank = _operated_bank(db, blood_bank_id, current_user)

    update_data = bank_update.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if value is not None:
            setattr(bank, field, value)

    bank.updated_at = clock.now()
    db.commit()
    db.refresh(bank)
    return bank

# ================================
# SLOTS & APPOINTMENTS
# ================================

@router.get("/{blood_bank_id}/slots", response_model=List[TimeSlot])
async def get_available_slots(
    blood_bank_id: UUID,
    start_date: date = Query(...),
    end_date: Optional[date] = Query(None),
    available_only: bool = Query(True),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    Hourly booking slots between start_date and end_date inclusive.
    """
    bank = _get_bank(db, blood_bank_id)
    end_date = end_date or start_date
    if not bank.is_active or end_date < start_date:
        return []

    range_start = datetime.combine(start_date, time.min)
    range_end = datetime.combine(end_date + timedelta(days=1), time.min)
    appointments = db.query(Appointment).filter(
        Appointment.blood_bank_id == bank.id,
        Appointment.appointment_datetime >= range_start,
        Appointment.appointment_datetime < range_end,
        Appointment.status != AppointmentStatus.CANCELLED
    ).all()

    try:
        schedule = compute_slots(bank, start_date, end_date, appointments, clock.now())
        return list(schedule.available() if available_only else schedule)
    except DonorHubError as e:
        raise service_error(db, e)


@router.get("/{blood_bank_id}/appointments", response_model=List[AppointmentResponse])
async def get_blood_bank_appointments(
    blood_bank_id: UUID,
    status: Optional[AppointmentStatus] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    bank = _operated_bank(db, blood_bank_id, current_user)
    return AppointmentManager(db, clock).list_for_blood_bank(
        bank.id, status=status, start_date=start_date, end_date=end_date, skip=skip, limit=limit
    )


@router.get("/{blood_bank_id}/donations", response_model=List[DonationResponse])
async def get_blood_bank_donations(
    blood_bank_id: UUID,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    bank = _operated_bank(db, blood_bank_id, current_user)
    return DonationService(db, clock).list_for_blood_bank(bank.id, skip=skip, limit=limit)

# ================================
# INVENTORY
# ================================

@router.get("/{blood_bank_id}/inventory", response_model=List[InventoryResponse])
async def get_inventory(
    blood_bank_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    bank = _operated_bank(db, blood_bank_id, current_user)
    return InventoryService(db, clock).list_for_bank(bank.id)


@router.get("/{blood_bank_id}/inventory/alerts", response_model=List[InventoryAlert])
async def get_inventory_alerts(
    blood_bank_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    bank = _operated_bank(db, blood_bank_id, current_user)
    return InventoryService(db, clock).alerts(bank.id)


@router.get("/{blood_bank_id}/inventory/summary", response_model=dict)
async def get_inventory_summary(
    blood_bank_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    bank = _operated_bank(db, blood_bank_id, current_user)
    return InventoryService(db, clock).summary(bank.id)


@router.put("/{blood_bank_id}/inventory/{blood_type}", response_model=InventoryResponse)
async def update_inventory(
    blood_bank_id: UUID,
    blood_type: BloodType,
    inventory_update: InventoryUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    bank = _operated_bank(db, blood_bank_id, current_user)
    try:
        return InventoryService(db, clock).set_stock(
            bank.id, blood_type, **inventory_update.model_dump(exclude_unset=True)
        )
    except DonorHubError as e:
        raise service_error(db, e)


@router.post("/{blood_bank_id}/inventory/reserve", response_model=ReservationResponse)
async def reserve_units(
    blood_bank_id: UUID,
    reservation: InventoryUnitsRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    bank = _operated_bank(db, blood_bank_id, current_user)
    try:
        reserved = InventoryService(db, clock).reserve(bank.id, reservation.blood_type, reservation.units)
    except DonorHubError as e:
        raise service_error(db, e)

    if not reserved:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Insufficient inventory available"
        )
    return ReservationResponse(
        success=True,
        blood_type=reservation.blood_type,
        units=reservation.units,
        message=f"Reserved {reservation.units} units of {reservation.blood_type.value}"
    )


@router.post("/{blood_bank_id}/inventory/release", response_model=ReservationResponse)
async def release_units(
    blood_bank_id: UUID,
    release: InventoryUnitsRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    bank = _operated_bank(db, blood_bank_id, current_user)
    try:
        released = InventoryService(db, clock).release(bank.id, release.blood_type, release.units)
    except DonorHubError as e:
        raise service_error(db, e)

    return ReservationResponse(
        success=True,
        blood_type=release.blood_type,
        units=released,
        message=f"Released {released} units of {release.blood_type.value}"
    )


@router.post("/{blood_bank_id}/inventory/consume", response_model=InventoryResponse)
async def consume_units(
    blood_bank_id: UUID,
    issue: InventoryUnitsRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    Issue reserved units; they leave the bank's stock.
    """
    bank = _operated_bank(db, blood_bank_id, current_user)
    try:
        return InventoryService(db, clock).consume(bank.id, issue.blood_type, issue.units)
    except DonorHubError as e:
        raise service_error(db, e)
