# donorhub/routes/requests/router.py

from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from donorhub.database import get_db
from donorhub.models.all_models import (
    User, UserRole, BloodBank, BloodType, UrgencyLevel, RequestStatus, HealthcareFacility
)
from donorhub.schemas.request import (
    BloodRequestCreate, BloodRequestFulfill, BloodRequestCancel, BloodRequestResponse
)
from donorhub.services.errors import DonorHubError
from donorhub.services.inventory import InventoryService, InventoryMatch
from donorhub.services.requests import BloodRequestService
from donorhub.routes.utils.errors import service_error
from donorhub.utils.auth import (
    get_current_user, get_current_facility, require_roles, can_manage, operates_bank
)
from donorhub.utils.clock import Clock, get_clock

router = APIRouter(prefix="/requests", tags=["blood-requests"])

require_supplier = require_roles([UserRole.ADMIN, UserRole.BLOOD_BANK])


def _coordinates(latitude: Optional[float], longitude: Optional[float]):
    if latitude is None or longitude is None:
        return None
    return latitude, longitude


@router.post("", response_model=BloodRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_blood_request(
    request_data: BloodRequestCreate,
    facility: HealthcareFacility = Depends(get_current_facility),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    Raise a blood request. Requests due within two hours are stored as emergencies.
    """
    try:
        return BloodRequestService(db, clock).create(
            facility,
            request_data.blood_type,
            request_data.units_requested,
            request_data.required_by,
            urgency_level=request_data.urgency_level,
            patient_info=request_data.patient_info,
            notes=request_data.notes
        )
    except DonorHubError as e:
        raise service_error(db, e)


@router.get("", response_model=List[BloodRequestResponse])
async def list_blood_requests(
    status: Optional[RequestStatus] = Query(None),
    urgency_level: Optional[UrgencyLevel] = Query(None),
    blood_type: Optional[BloodType] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    Facilities see their own requests; blood banks and admins see all of them.
    """
    facility_id = None
    if current_user.role == UserRole.FACILITY:
        if current_user.facility is None:
            return []
        facility_id = current_user.facility.id
    elif current_user.role == UserRole.DONOR:
        raise HTTPException(
            status_code=403,
            detail="Insufficient permissions"
        )

    return BloodRequestService(db, clock).list(
        facility_id=facility_id, status=status, urgency_level=urgency_level,
        blood_type=blood_type, skip=skip, limit=limit
    )


@router.get("/urgent", response_model=List[BloodRequestResponse])
async def get_urgent_requests(
    limit: int = Query(50, ge=1, le=500),
    current_user: User = Depends(require_supplier),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    return BloodRequestService(db, clock).urgent(limit=limit)


@router.get("/matches", response_model=List[InventoryMatch])
async def search_inventory(
    blood_type: BloodType = Query(...),
    units_needed: int = Query(..., gt=0),
    latitude: Optional[float] = Query(None, ge=-90, le=90),
    longitude: Optional[float] = Query(None, ge=-180, le=180),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    Blood banks able to supply units compatible with blood_type.
    """
    try:
        return InventoryService(db, clock).find_matches(
            blood_type, units_needed, _coordinates(latitude, longitude)
        )
    except DonorHubError as e:
        raise service_error(db, e)


def _visible_request(db: Session, clock: Clock, request_id: UUID, current_user: User):
    request = BloodRequestService(db, clock).get(request_id)
    if current_user.role not in [UserRole.ADMIN, UserRole.BLOOD_BANK] and not can_manage(current_user, request):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to view this request"
        )
    return request


@router.get("/{request_id}", response_model=BloodRequestResponse)
async def get_blood_request(
    request_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    try:
        return _visible_request(db, clock, request_id, current_user)
    except DonorHubError as e:
        raise service_error(db, e)


@router.get("/{request_id}/matches", response_model=List[InventoryMatch])
async def get_request_matches(
    request_id: UUID,
    latitude: Optional[float] = Query(None, ge=-90, le=90),
    longitude: Optional[float] = Query(None, ge=-180, le=180),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    Candidate banks for a request, nearest first when a location is known.
    Defaults to the requesting facility's coordinates.
    """
    try:
        request = _visible_request(db, clock, request_id, current_user)
        coordinates = _coordinates(latitude, longitude)
        if coordinates is None and request.facility is not None:
            coordinates = _coordinates(request.facility.latitude, request.facility.longitude)
        return InventoryService(db, clock).find_matches(request.blood_type, request.units_requested, coordinates)
    except DonorHubError as e:
        raise service_error(db, e)


@router.post("/{request_id}/fulfill", response_model=BloodRequestResponse)
async def fulfill_blood_request(
    request_id: UUID,
    fulfill_data: BloodRequestFulfill,
    current_user: User = Depends(require_supplier),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    Fulfil a pending request from one blood bank's stock of the exact type.
    """
    bank = db.query(BloodBank).filter(BloodBank.id == fulfill_data.blood_bank_id).first()
    if not bank:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Blood bank not found"
        )
    if not operates_bank(current_user, bank):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions for this blood bank"
        )

    try:
        return InventoryService(db, clock).fulfill(
            request_id, bank.id, fulfill_data.units_provided, notes=fulfill_data.notes
        )
    except DonorHubError as e:
        raise service_error(db, e)


@router.post("/{request_id}/cancel", response_model=BloodRequestResponse)
async def cancel_blood_request(
    request_id: UUID,
    cancel_data: Optional[BloodRequestCancel] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    try:
        return BloodRequestService(db, clock).cancel(
            request_id, current_user, reason=cancel_data.reason if cancel_data else None
        )
    except DonorHubError as e:
        raise service_error(db, e)
