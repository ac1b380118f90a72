# donorhub/routes/auth/schemas.py

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from datetime import date, datetime
from typing import Optional, Dict, Any
from uuid import UUID
import re

from donorhub.models.all_models import UserRole, BloodType

# ================================
# REQUEST SCHEMAS
# ================================

class UserRegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: UserRole = UserRole.DONOR

    # Donor fields
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    blood_type: Optional[BloodType] = None
    date_of_birth: Optional[date] = None
    phone: Optional[str] = Field(None, max_length=20)

    # Facility fields
    facility_name: Optional[str] = Field(None, max_length=200)
    facility_type: Optional[str] = "hospital"
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    @field_validator('password')
    def validate_password(cls, v):
        if not re.search(r'[A-Z]', v):
            raise ValueError('Password must contain at least one uppercase letter')
        if not re.search(r'[a-z]', v):
            raise ValueError('Password must contain at least one lowercase letter')
        if not re.search(r'\d', v):
            raise ValueError('Password must contain at least one digit')
        return v

    @field_validator('role')
    def validate_role(cls, v):
        if v == UserRole.ADMIN:
            raise ValueError('Administrator accounts cannot be self-registered')
        return v

    @model_validator(mode='after')
    def validate_role_fields(self):
        if self.role == UserRole.DONOR and not (self.first_name and self.last_name and self.blood_type):
            raise ValueError('first_name, last_name and blood_type are required for donors')
        if self.role == UserRole.FACILITY and not self.facility_name:
            raise ValueError('facility_name is required for healthcare facilities')
        return self

class UserLoginRequest(BaseModel):
    email: EmailStr
    password: str

class RefreshTokenRequest(BaseModel):
    refresh_token: str

# ================================
# RESPONSE SCHEMAS
# ================================

class UserProfileResponse(BaseModel):
    id: UUID
    email: str
    role: UserRole
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    donor_profile_id: Optional[UUID] = None
    blood_bank_id: Optional[UUID] = None
    facility_id: Optional[UUID] = None

    @classmethod
    def from_user(cls, user) -> "UserProfileResponse":
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            is_active=user.is_active,
            last_login_at=user.last_login_at,
            created_at=user.created_at,
            donor_profile_id=user.donor_profile.id if user.donor_profile else None,
            blood_bank_id=user.blood_bank.id if user.blood_bank else None,
            facility_id=user.facility.id if user.facility else None,
        )

class UserLoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserProfileResponse

class TokenRefreshResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int

class MessageResponse(BaseModel):
    message: str
    details: Optional[Dict[str, Any]] = None
