# donorhub/services/requests.py
"""Blood requests raised by healthcare facilities."""
import logging
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import case
from sqlalchemy.orm import Session

from donorhub.config import settings
from donorhub.models.all_models import (
    BloodRequest, HealthcareFacility, RequestStatus, UrgencyLevel, User,
)
from donorhub.services.errors import ForbiddenError, InvalidInputError, InvalidStateError, NotFoundError
from donorhub.services.inventory import to_blood_type
from donorhub.utils.auth import can_manage
from donorhub.utils.clock import Clock
from donorhub.utils.dates import DateLike, parse_datetime

logger = logging.getLogger(__name__)

URGENCY_RANK = {UrgencyLevel.EMERGENCY: 0, UrgencyLevel.URGENT: 1, UrgencyLevel.ROUTINE: 2}


def escalated_urgency(urgency: UrgencyLevel, required_by, now) -> UrgencyLevel:
    """Requests due within the escalation window are always emergencies."""
    if required_by - now <= timedelta(hours=settings.EMERGENCY_ESCALATION_HOURS):
        return UrgencyLevel.EMERGENCY
    return urgency


class BloodRequestService:
    def __init__(self, db: Session, clock: Clock = None):
        self.db = db
        self.clock = clock or Clock()

    def get(self, request_id) -> BloodRequest:
        request = self.db.query(BloodRequest).filter(BloodRequest.id == request_id).first()
        if request is None:
            raise NotFoundError("Blood request not found", {"request_id": str(request_id)})
        return request

    def create(self, facility: HealthcareFacility, blood_type, units_requested: int, required_by: DateLike,
               urgency_level: UrgencyLevel = UrgencyLevel.ROUTINE, patient_info: dict = None,
               notes: str = None) -> BloodRequest:
        if facility is None or not facility.is_active:
            raise ForbiddenError("Facility is not allowed to raise requests")
        blood_type = to_blood_type(blood_type)
        if isinstance(units_requested, bool) or not isinstance(units_requested, int) or units_requested <= 0:
            raise InvalidInputError(
                "units_requested must be a positive whole number",
                {"field": "units_requested", "value": units_requested},
            )

        now = self.clock.now()
        required_by = parse_datetime(required_by, "required_by")
        if required_by <= now:
            raise InvalidInputError(
                "Required by date must be in the future",
                {"field": "required_by", "requested": required_by.isoformat(), "now": now.isoformat()},
            )

        urgency = escalated_urgency(UrgencyLevel(urgency_level), required_by, now)
        if urgency != urgency_level:
            logger.info("Request for %s %s escalated to %s", units_requested, blood_type.value, urgency.value)

        request = BloodRequest(
            facility_id=facility.id,
            blood_type=blood_type,
            units_requested=units_requested,
            urgency_level=urgency,
            patient_info=patient_info,
            request_date=now,
            required_by=required_by,
            status=RequestStatus.PENDING,
            notes=notes,
            created_at=now,
        )
        self.db.add(request)
        self.db.commit()
        self.db.refresh(request)

        logger.info("Facility %s requested %s units of %s (%s)", facility.id, units_requested,
                    blood_type.value, urgency.value)
        return request

    def cancel(self, request_id, principal: User, reason: str = None) -> BloodRequest:
        request = self.get(request_id)
        if not can_manage(principal, request):
            raise ForbiddenError("Not allowed to modify this request", {"request_id": str(request.id)})
        if request.status != RequestStatus.PENDING:
            raise InvalidStateError(
                "Only pending requests can be cancelled",
                {"current": request.status.value, "required": RequestStatus.PENDING.value},
            )

        changed = self.db.query(BloodRequest).filter(
            BloodRequest.id == request.id,
            BloodRequest.status == RequestStatus.PENDING,
        ).update(
            {
                BloodRequest.status: RequestStatus.CANCELLED,
                BloodRequest.notes: reason if reason is not None else request.notes,
            },
            synchronize_session=False,
        )
        if not changed:
            self.db.rollback()
            raise InvalidStateError("Request not found or already processed", {"required": RequestStatus.PENDING.value})
        self.db.commit()
        self.db.refresh(request)

        logger.info("Cancelled blood request %s", request.id)
        return request

    def list(self, facility_id=None, status: Optional[RequestStatus] = None,
             urgency_level: Optional[UrgencyLevel] = None, blood_type=None,
             skip: int = 0, limit: int = 100) -> List[BloodRequest]:
        """Most urgent first, newest first within a level."""
        query = self.db.query(BloodRequest)
        if facility_id is not None:
            query = query.filter(BloodRequest.facility_id == facility_id)
        if status:
            query = query.filter(BloodRequest.status == status)
        if urgency_level:
            query = query.filter(BloodRequest.urgency_level == urgency_level)
        if blood_type:
            query = query.filter(BloodRequest.blood_type == to_blood_type(blood_type))

        urgency_order = case(
            *[(BloodRequest.urgency_level == level, rank) for level, rank in URGENCY_RANK.items()],
            else_=len(URGENCY_RANK),
        )
        return query.order_by(urgency_order, BloodRequest.request_date.desc()).offset(skip).limit(limit).all()

    def urgent(self, limit: int = 50) -> List[BloodRequest]:
        return self.db.query(BloodRequest).filter(
            BloodRequest.status == RequestStatus.PENDING,
            BloodRequest.urgency_level.in_([UrgencyLevel.URGENT, UrgencyLevel.EMERGENCY]),
        ).order_by(BloodRequest.required_by.asc()).limit(limit).all()
