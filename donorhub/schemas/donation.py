# donorhub/schemas/donation.py

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime
from uuid import UUID

from donorhub.models.all_models import BloodType

class DonationCreate(BaseModel):
    donor_id: UUID
    blood_bank_id: UUID
    appointment_id: Optional[UUID] = None
    donation_date: Optional[datetime] = None
    # 0.1 to 2.0 in steps of 0.1, checked by the service
    units_collected: float = 1.0
    health_metrics: Optional[Dict[str, Any]] = None
    notes: Optional[str] = Field(None, max_length=1000)

class DonationNotesUpdate(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)

class DonationResponse(BaseModel):
    id: UUID
    donor_id: UUID
    blood_bank_id: UUID
    appointment_id: Optional[UUID] = None
    donation_date: datetime
    blood_type: BloodType
    units_collected: float
    health_metrics: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
