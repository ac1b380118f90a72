# donorhub/schemas/appointment.py

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from uuid import UUID

from donorhub.models.all_models import AppointmentStatus

class AppointmentCreate(BaseModel):
    blood_bank_id: UUID
    appointment_datetime: datetime
    notes: Optional[str] = Field(None, max_length=1000)
    # Admins booking on behalf of a donor
    donor_id: Optional[UUID] = None

class AppointmentReschedule(BaseModel):
    appointment_datetime: datetime
    notes: Optional[str] = Field(None, max_length=1000)

class AppointmentCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)

class AppointmentResponse(BaseModel):
    id: UUID
    donor_id: UUID
    blood_bank_id: UUID
    appointment_datetime: datetime
    status: AppointmentStatus
    notes: Optional[str] = None
    reminder_sent: bool = False
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
