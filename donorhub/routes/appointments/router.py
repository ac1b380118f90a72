# donorhub/routes/appointments/router.py

from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from datetime import date

from donorhub.database import get_db
from donorhub.models.all_models import User, UserRole, DonorProfile, BloodBank, AppointmentStatus
from donorhub.schemas.appointment import (
    AppointmentCreate, AppointmentReschedule, AppointmentCancel, AppointmentResponse
)
from donorhub.services.appointments import AppointmentManager
from donorhub.services.errors import DonorHubError, ForbiddenError
from donorhub.routes.utils.errors import service_error
from donorhub.utils.auth import get_current_user, get_current_donor, require_admin, can_manage, operates_bank
from donorhub.utils.clock import Clock, get_clock

router = APIRouter(prefix="/appointments", tags=["appointments"])


def _booking_donor(db: Session, current_user: User, donor_id: Optional[UUID]) -> DonorProfile:
    if current_user.role == UserRole.ADMIN and donor_id is not None:
        donor = db.query(DonorProfile).filter(DonorProfile.id == donor_id).first()
    elif current_user.role == UserRole.DONOR:
        donor = current_user.donor_profile
    else:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only donors can book appointments"
        )
    if not donor:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Donor not found"
        )
    return donor


@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    appointment_data: AppointmentCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    Book a donation appointment in an hourly slot.
    """
    donor = _booking_donor(db, current_user, appointment_data.donor_id)
    bank = db.query(BloodBank).filter(BloodBank.id == appointment_data.blood_bank_id).first()
    if not bank:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Blood bank not found"
        )

    try:
        return AppointmentManager(db, clock).book(
            donor, bank, appointment_data.appointment_datetime, notes=appointment_data.notes
        )
    except DonorHubError as e:
        raise service_error(db, e)


@router.get("/me", response_model=List[AppointmentResponse])
async def get_my_appointments(
    status: Optional[AppointmentStatus] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    donor: DonorProfile = Depends(get_current_donor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return AppointmentManager(db, clock).list_for_donor(
        donor.id, status=status, start_date=start_date, end_date=end_date, skip=skip, limit=limit
    )


@router.get("/reminders", response_model=List[AppointmentResponse])
async def get_pending_reminders(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    Tomorrow's scheduled appointments that have not been reminded yet.
    """
    return AppointmentManager(db, clock).appointments_needing_reminders()


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    try:
        appointment = AppointmentManager(db, clock).get(appointment_id)
        if not (can_manage(current_user, appointment) or operates_bank(current_user, appointment.blood_bank)):
            raise ForbiddenError("Not allowed to view this appointment", {"appointment_id": str(appointment_id)})
        return appointment
    except DonorHubError as e:
        raise service_error(db, e)


@router.put("/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: UUID,
    reschedule_data: AppointmentReschedule,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    try:
        return AppointmentManager(db, clock).reschedule(
            appointment_id, current_user, reschedule_data.appointment_datetime, notes=reschedule_data.notes
        )
    except DonorHubError as e:
        raise service_error(db, e)


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: UUID,
    cancel_data: Optional[AppointmentCancel] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    try:
        return AppointmentManager(db, clock).cancel(
            appointment_id, current_user, reason=cancel_data.reason if cancel_data else None
        )
    except DonorHubError as e:
        raise service_error(db, e)


@router.post("/{appointment_id}/complete", response_model=AppointmentResponse)
async def complete_appointment(
    appointment_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    Check the donor in. Record the donation separately via /donations.
    """
    try:
        return AppointmentManager(db, clock).complete(appointment_id, current_user)
    except DonorHubError as e:
        raise service_error(db, e)


@router.post("/{appointment_id}/reminder-sent", response_model=AppointmentResponse)
async def mark_reminder_sent(
    appointment_id: UUID,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    try:
        return AppointmentManager(db, clock).mark_reminder_sent(appointment_id)
    except DonorHubError as e:
        raise service_error(db, e)
