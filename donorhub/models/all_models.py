# donorhub/models/all_models.py
from sqlalchemy import (
    Column, String, Boolean, DateTime, ForeignKey, Text, Integer, Float, JSON, Enum, Date,
    Uuid, text, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
import enum
import uuid

from donorhub.utils.clock import local_now

Base = declarative_base()

# Enums
class UserRole(str, enum.Enum):
    DONOR = "donor"
    FACILITY = "facility"
    BLOOD_BANK = "blood_bank"
    ADMIN = "admin"

class BloodType(str, enum.Enum):
    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"
    O_POS = "O+"
    O_NEG = "O-"

class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class UrgencyLevel(str, enum.Enum):
    ROUTINE = "routine"
    URGENT = "urgent"
    EMERGENCY = "emergency"

class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"


def _enum(enum_cls, name):
    # store the enum values ("A+", "scheduled") rather than member names
    return Enum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])

# ================================
# CORE USER MANAGEMENT MODELS
# ================================

class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)
    password = Column(String(255), nullable=False)
    role = Column(_enum(UserRole, "user_role"), nullable=False, default=UserRole.DONOR)
    is_active = Column(Boolean, default=True)
    last_login_at = Column(DateTime)
    created_at = Column(DateTime, default=local_now, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime, default=local_now, onupdate=local_now, server_default=text("CURRENT_TIMESTAMP"))

    # Relationships
    donor_profile = relationship("DonorProfile", back_populates="user", uselist=False, cascade="all, delete-orphan")
    blood_bank = relationship("BloodBank", back_populates="user", uselist=False)
    facility = relationship("HealthcareFacility", back_populates="user", uselist=False)

class DonorProfile(Base):
    __tablename__ = "donor_profiles"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    date_of_birth = Column(Date)
    blood_type = Column(_enum(BloodType, "blood_type"), nullable=False)
    phone = Column(String(20))
    address = Column(JSON)
    medical_history = Column(JSON)
    emergency_contact = Column(JSON)
    preferences = Column(JSON)
    last_donation_date = Column(Date)
    total_donations = Column(Integer, default=0, nullable=False)
    # ignored whenever is_deferred_permanent is set
    is_deferred_temporary = Column(Boolean, default=False, nullable=False)
    deferral_end_date = Column(Date)
    deferral_reason = Column(Text)
    is_deferred_permanent = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=local_now, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime, default=local_now, onupdate=local_now, server_default=text("CURRENT_TIMESTAMP"))

    # Relationships
    user = relationship("User", back_populates="donor_profile")
    appointments = relationship("Appointment", back_populates="donor")
    donations = relationship("DonationRecord", back_populates="donor")

# ================================
# ORGANIZATIONAL STRUCTURE
# ================================

class BloodBank(Base):
    __tablename__ = "blood_banks"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"))
    name = Column(String(200), nullable=False)
    address = Column(JSON)
    phone = Column(String(20))
    email = Column(String(255))
    # {"monday": {"open": "09:00", "close": "17:00", "closed": false}, ...}
    operating_hours = Column(JSON)
    capacity = Column(Integer, nullable=False, default=5)
    is_active = Column(Boolean, default=True, nullable=False)
    latitude = Column(Float)
    longitude = Column(Float)
    created_at = Column(DateTime, default=local_now, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime, default=local_now, onupdate=local_now, server_default=text("CURRENT_TIMESTAMP"))

    # Relationships
    user = relationship("User", back_populates="blood_bank")
    inventory = relationship("BloodInventory", back_populates="blood_bank")
    appointments = relationship("Appointment", back_populates="blood_bank")

class HealthcareFacility(Base):
    __tablename__ = "healthcare_facilities"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"))
    name = Column(String(200), nullable=False)
    facility_type = Column(String(50), default="hospital")
    address = Column(JSON)
    phone = Column(String(20))
    latitude = Column(Float)
    longitude = Column(Float)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=local_now, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime, default=local_now, onupdate=local_now, server_default=text("CURRENT_TIMESTAMP"))

    # Relationships
    user = relationship("User", back_populates="facility")
    requests = relationship("BloodRequest", back_populates="facility")

# ================================
# APPOINTMENT & BOOKING SYSTEM
# ================================

class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    donor_id = Column(Uuid(as_uuid=True), ForeignKey("donor_profiles.id"), nullable=False)
    blood_bank_id = Column(Uuid(as_uuid=True), ForeignKey("blood_banks.id"), nullable=False)
    appointment_datetime = Column(DateTime, nullable=False, index=True)
    status = Column(_enum(AppointmentStatus, "appointment_status"), nullable=False, default=AppointmentStatus.SCHEDULED)
    notes = Column(Text)
    reminder_sent = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    cancellation_reason = Column(Text)
    created_at = Column(DateTime, default=local_now, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime, default=local_now, onupdate=local_now, server_default=text("CURRENT_TIMESTAMP"))

    # Relationships
    donor = relationship("DonorProfile", back_populates="appointments")
    blood_bank = relationship("BloodBank", back_populates="appointments")
    donation = relationship("DonationRecord", back_populates="appointment", uselist=False)

# ================================
# INVENTORY & REQUESTS
# ================================

class BloodInventory(Base):
    __tablename__ = "blood_inventory"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    blood_bank_id = Column(Uuid(as_uuid=True), ForeignKey("blood_banks.id"), nullable=False)
    blood_type = Column(_enum(BloodType, "inventory_blood_type"), nullable=False)
    units_available = Column(Integer, default=0, nullable=False)
    units_reserved = Column(Integer, default=0, nullable=False)
    minimum_threshold = Column(Integer, default=10, nullable=False)
    expiration_date = Column(Date)
    last_updated = Column(DateTime, default=local_now, onupdate=local_now)

    # Relationships
    blood_bank = relationship("BloodBank", back_populates="inventory")

    __table_args__ = (
        UniqueConstraint('blood_bank_id', 'blood_type', name='uq_inventory_bank_type'),
        CheckConstraint('units_available >= 0', name='ck_inventory_available_non_negative'),
        CheckConstraint('units_reserved >= 0', name='ck_inventory_reserved_non_negative'),
    )

class BloodRequest(Base):
    __tablename__ = "blood_requests"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    facility_id = Column(Uuid(as_uuid=True), ForeignKey("healthcare_facilities.id"), nullable=False)
    blood_type = Column(_enum(BloodType, "request_blood_type"), nullable=False)
    units_requested = Column(Integer, nullable=False)
    urgency_level = Column(_enum(UrgencyLevel, "urgency_level"), nullable=False, default=UrgencyLevel.ROUTINE)
    patient_info = Column(JSON)
    request_date = Column(DateTime, default=local_now, nullable=False)
    required_by = Column(DateTime, nullable=False)
    status = Column(_enum(RequestStatus, "request_status"), nullable=False, default=RequestStatus.PENDING)
    fulfilled_by = Column(Uuid(as_uuid=True), ForeignKey("blood_banks.id"))
    fulfilled_at = Column(DateTime)
    notes = Column(Text)
    created_at = Column(DateTime, default=local_now, server_default=text("CURRENT_TIMESTAMP"))

    # Relationships
    facility = relationship("HealthcareFacility", back_populates="requests")
    fulfilling_bank = relationship("BloodBank", foreign_keys=[fulfilled_by])

# ================================
# DONATION RECORDS
# ================================

class DonationRecord(Base):
    __tablename__ = "donation_records"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    donor_id = Column(Uuid(as_uuid=True), ForeignKey("donor_profiles.id"), nullable=False)
    blood_bank_id = Column(Uuid(as_uuid=True), ForeignKey("blood_banks.id"), nullable=False)
    appointment_id = Column(Uuid(as_uuid=True), ForeignKey("appointments.id"), unique=True)
    donation_date = Column(DateTime, nullable=False)
    blood_type = Column(_enum(BloodType, "donation_blood_type"), nullable=False)
    units_collected = Column(Float, nullable=False, default=1.0)
    health_metrics = Column(JSON)  # {blood_pressure: '120/80', hemoglobin: 13.5, pulse: 72}
    notes = Column(Text)
    created_at = Column(DateTime, default=local_now, server_default=text("CURRENT_TIMESTAMP"))

    # Relationships
    donor = relationship("DonorProfile", back_populates="donations")
    blood_bank = relationship("BloodBank")
    appointment = relationship("Appointment", back_populates="donation")
