# donorhub/schemas/request.py

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime
from uuid import UUID

from donorhub.models.all_models import BloodType, UrgencyLevel, RequestStatus

class BloodRequestCreate(BaseModel):
    blood_type: BloodType
    units_requested: int = Field(..., gt=0)
    urgency_level: UrgencyLevel = UrgencyLevel.ROUTINE
    required_by: datetime
    patient_info: Optional[Dict[str, Any]] = None
    notes: Optional[str] = Field(None, max_length=1000)

class BloodRequestFulfill(BaseModel):
    blood_bank_id: UUID
    units_provided: int = Field(..., gt=0)
    notes: Optional[str] = Field(None, max_length=1000)

class BloodRequestCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)

class BloodRequestResponse(BaseModel):
    id: UUID
    facility_id: UUID
    blood_type: BloodType
    units_requested: int
    urgency_level: UrgencyLevel
    patient_info: Optional[Dict[str, Any]] = None
    request_date: datetime
    required_by: datetime
    status: RequestStatus
    fulfilled_by: Optional[UUID] = None
    fulfilled_at: Optional[datetime] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True
