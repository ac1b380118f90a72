# donorhub/schemas/donor.py

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from datetime import date, datetime
from uuid import UUID

from donorhub.models.all_models import BloodType
from donorhub.services.eligibility import DeferralInfo

class DonorProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    date_of_birth: Optional[date] = None
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[Dict[str, Any]] = None
    medical_history: Optional[Dict[str, Any]] = None
    emergency_contact: Optional[Dict[str, Any]] = None
    preferences: Optional[Dict[str, Any]] = None

class DonorDeferralUpdate(BaseModel):
    """Set by administrators after screening."""
    is_deferred_temporary: Optional[bool] = None
    deferral_end_date: Optional[date] = None
    deferral_reason: Optional[str] = None
    is_deferred_permanent: Optional[bool] = None

class DonorProfileResponse(BaseModel):
    id: UUID
    user_id: UUID
    first_name: str
    last_name: str
    date_of_birth: Optional[date] = None
    blood_type: BloodType
    phone: Optional[str] = None
    address: Optional[Dict[str, Any]] = None
    emergency_contact: Optional[Dict[str, Any]] = None
    preferences: Optional[Dict[str, Any]] = None
    last_donation_date: Optional[date] = None
    total_donations: int = 0
    is_deferred_temporary: bool = False
    deferral_end_date: Optional[date] = None
    deferral_reason: Optional[str] = None
    is_deferred_permanent: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class EligibilityResponse(BaseModel):
    eligible: bool
    status: str
    message: str
    reasons: List[str] = []
    next_eligible_date: Optional[date] = None
    temporary_deferrals: List[DeferralInfo] = []
    permanent_deferrals: List[DeferralInfo] = []
