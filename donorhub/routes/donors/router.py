# donorhub/routes/donors/router.py

from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from datetime import date

from donorhub.database import get_db
from donorhub.models.all_models import User, DonorProfile
from donorhub.schemas.donor import (
    DonorProfileUpdate, DonorDeferralUpdate, DonorProfileResponse, EligibilityResponse
)
from donorhub.services.eligibility import evaluate_eligibility, eligibility_summary
from donorhub.services.errors import DonorHubError
from donorhub.routes.utils.errors import service_error
from donorhub.utils.auth import get_current_donor, require_admin
from donorhub.utils.clock import Clock, get_clock

router = APIRouter(prefix="/donors", tags=["donors"])


def _eligibility_response(donor: DonorProfile, as_of) -> EligibilityResponse:
    result = evaluate_eligibility(donor, as_of=as_of)
    summary = eligibility_summary(result)
    return EligibilityResponse(
        eligible=result.eligible,
        status=summary.status,
        message=summary.message,
        reasons=result.reasons,
        next_eligible_date=result.next_eligible_date,
        temporary_deferrals=result.temporary_deferrals,
        permanent_deferrals=result.permanent_deferrals
    )


@router.get("/me", response_model=DonorProfileResponse)
async def get_donor_profile(
    donor: DonorProfile = Depends(get_current_donor)
):
    return donor


@router.put("/me", response_model=DonorProfileResponse)
async def update_donor_profile(
    profile_update: DonorProfileUpdate,
    donor: DonorProfile = Depends(get_current_donor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    update_data = profile_update.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if value is not None:
            setattr(donor, field, value)

    donor.updated_at = clock.now()
    db.commit()
    db.refresh(donor)
    return donor


@router.get("/me/eligibility", response_model=EligibilityResponse)
async def get_my_eligibility(
    as_of: Optional[date] = Query(None, description="Date to evaluate; defaults to today"),
    donor: DonorProfile = Depends(get_current_donor),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    Check whether the current donor may give blood.
    """
    try:
        return _eligibility_response(donor, as_of or clock.now())
    except DonorHubError as e:
        raise service_error(db, e)


# ================================
# ADMIN ENDPOINTS
# ================================

def _get_donor(db: Session, donor_id: UUID) -> DonorProfile:
    donor = db.query(DonorProfile).filter(DonorProfile.id == donor_id).first()
    if not donor:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Donor not found"
        )
    return donor


@router.get("/{donor_id}/eligibility", response_model=EligibilityResponse)
async def get_donor_eligibility(
    donor_id: UUID,
    as_of: Optional[date] = Query(None),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    donor = _get_donor(db, donor_id)
    try:
        return _eligibility_response(donor, as_of or clock.now())
    except DonorHubError as e:
        raise service_error(db, e)


@router.put("/{donor_id}/deferral", response_model=DonorProfileResponse)
async def update_donor_deferral(
    donor_id: UUID,
    deferral: DonorDeferralUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    Record the outcome of donor screening.
    """
    donor = _get_donor(db, donor_id)
    update_data = deferral.model_dump(exclude_unset=True)

    if update_data.get("is_deferred_temporary") and not (
        update_data.get("deferral_end_date") or donor.deferral_end_date
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A temporary deferral needs an end date"
        )

    for field, value in update_data.items():
        setattr(donor, field, value)

    donor.updated_at = clock.now()
    db.commit()
    db.refresh(donor)
    return donor
