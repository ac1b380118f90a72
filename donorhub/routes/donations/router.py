# donorhub/routes/donations/router.py

from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID

from donorhub.database import get_db
from donorhub.models.all_models import User, DonorProfile, BloodBank
from donorhub.schemas.donation import DonationCreate, DonationNotesUpdate, DonationResponse
from donorhub.services.donations import DonationService
from donorhub.services.errors import DonorHubError
from donorhub.routes.utils.errors import service_error
from donorhub.utils.auth import get_current_user, get_current_donor, operates_bank
from donorhub.utils.clock import Clock, get_clock

router = APIRouter(prefix="/donations", tags=["donations"])


@router.post("", response_model=DonationResponse, status_code=status.HTTP_201_CREATED)
async def record_donation(
    donation_data: DonationCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    Record blood collected from a donor. Whole units go into the bank's inventory.
    """
    bank = db.query(BloodBank).filter(BloodBank.id == donation_data.blood_bank_id).first()
    if not bank:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Blood bank not found"
        )
    if not operates_bank(current_user, bank):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the blood bank or an administrator can record donations"
        )

    donor = db.query(DonorProfile).filter(DonorProfile.id == donation_data.donor_id).first()
    if not donor:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Donor not found"
        )

    try:
        return DonationService(db, clock).record(
            donor,
            bank,
            units_collected=donation_data.units_collected,
            donation_date=donation_data.donation_date,
            appointment_id=donation_data.appointment_id,
            health_metrics=donation_data.health_metrics,
            notes=donation_data.notes
        )
    except DonorHubError as e:
        raise service_error(db, e)


@router.get("/me", response_model=List[DonationResponse])
async def get_my_donations(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    donor: DonorProfile = Depends(get_current_donor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return DonationService(db, clock).list_for_donor(donor.id, skip=skip, limit=limit)


@router.put("/{donation_id}/notes", response_model=DonationResponse)
async def update_donation_notes(
    donation_id: UUID,
    notes_update: DonationNotesUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    Notes are the only part of a donation record that can change.
    """
    service = DonationService(db, clock)
    try:
        record = service.get(donation_id)
        if not operates_bank(current_user, record.blood_bank):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions for this donation record"
            )
        return service.update_notes(donation_id, notes_update.notes)
    except DonorHubError as e:
        raise service_error(db, e)
