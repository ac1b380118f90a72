# donorhub/schemas/blood_bank.py

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import Optional, Dict, Any, Union
from datetime import date, datetime
from uuid import UUID

from donorhub.models.all_models import BloodType
from donorhub.services.errors import InvalidInputError
from donorhub.services.slots import WEEKDAYS
from donorhub.utils.dates import parse_hour

def _normalise_weekdays(hours):
    if hours is None:
        return hours
    unknown = [day for day in hours if day.lower() not in WEEKDAYS]
    if unknown:
        raise ValueError(f"Unknown weekday(s): {', '.join(unknown)}")
    return {day.lower(): value for day, value in hours.items()}

class DayHours(BaseModel):
    open: Optional[Union[str, int]] = None
    close: Optional[Union[str, int]] = None
    closed: bool = False

    @model_validator(mode='after')
    def validate_bounds(self):
        if self.closed:
            return self
        try:
            opens = parse_hour(self.open, "open")
            closes = parse_hour(self.close, "close")
        except InvalidInputError as e:
            raise ValueError(e.message)
        if opens >= closes:
            raise ValueError("open must be earlier than close")
        return self

class BloodBankBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=200)
    address: Optional[Dict[str, Any]] = None
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    operating_hours: Optional[Dict[str, DayHours]] = None
    capacity: int = Field(5, ge=0)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    @field_validator('operating_hours')
    def validate_weekdays(cls, v):
        return _normalise_weekdays(v)

class BloodBankCreate(BloodBankBase):
    user_id: Optional[UUID] = None

class BloodBankUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    address: Optional[Dict[str, Any]] = None
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    operating_hours: Optional[Dict[str, DayHours]] = None
    capacity: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    @field_validator('operating_hours')
    def validate_weekdays(cls, v):
        return _normalise_weekdays(v)

class BloodBankResponse(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    name: str
    address: Optional[Dict[str, Any]] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    operating_hours: Optional[Dict[str, Any]] = None
    capacity: int
    is_active: bool
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# ================================
# INVENTORY
# ================================

class InventoryUpdate(BaseModel):
    units_available: Optional[int] = Field(None, ge=0)
    minimum_threshold: Optional[int] = Field(None, ge=0)
    expiration_date: Optional[date] = None

class InventoryUnitsRequest(BaseModel):
    blood_type: BloodType
    units: int = Field(..., gt=0)

class InventoryResponse(BaseModel):
    id: UUID
    blood_bank_id: UUID
    blood_type: BloodType
    units_available: int
    units_reserved: int
    minimum_threshold: int
    expiration_date: Optional[date] = None
    last_updated: Optional[datetime] = None

    class Config:
        from_attributes = True

class ReservationResponse(BaseModel):
    success: bool
    blood_type: BloodType
    units: int
    message: str
