# donorhub/utils/auth.py
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional
import jwt
import bcrypt
import uuid

# Local imports
from donorhub.database import get_db
from donorhub.config import settings
from donorhub.models.all_models import (
    User, UserRole, Appointment, BloodBank, BloodRequest, DonorProfile, HealthcareFacility,
)

security = HTTPBearer()

def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))

def create_access_token(data: Dict[str, str], expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def create_refresh_token(data: Dict[str, str], expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT refresh token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))
    to_encode.update({"exp": expire, "type": "refresh"})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def verify_token(token: str, token_type: str = "access") -> Dict:
    """Verify a JWT token and return its payload."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired"
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )
    if payload.get("type") != token_type:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token type, expected {token_type}"
        )
    return payload

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Retrieve the current authenticated user from the JWT token."""
    payload = verify_token(credentials.credentials, token_type="access")
    user_id = payload.get("sub")

    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials"
        )

    user = db.query(User).filter(User.id == parse_user_id(user_id)).first()
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive"
        )

    return user

async def require_admin(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Dependency to require admin role for accessing protected routes.

    Usage:
    @router.get("/admin-only")
    async def admin_only_route(user: User = Depends(require_admin)):
        return {"message": "Welcome admin!"}
    """
    if current_user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions. Admin role required."
        )

    return current_user

def require_roles(allowed_roles: list[UserRole]):
    """
    Dependency factory restricting a route to the given roles.

    Usage:
    @router.post("/requests")
    async def create(user: User = Depends(require_roles([UserRole.FACILITY]))):
        ...
    """
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions. Required roles: " + ", ".join([role.value for role in allowed_roles])
            )
        return current_user
    return role_checker

# ================================
# OWNERSHIP
# ================================

def can_manage(principal: User, entity) -> bool:
    """Whether ``principal`` owns ``entity`` or has elevated rights over it.

    Admins manage everything. Donors manage their own profile and
    appointments; operators and facilities manage their own records.
    """
    if principal is None or not principal.is_active:
        return False
    if principal.role == UserRole.ADMIN:
        return True
    if isinstance(entity, Appointment):
        return entity.donor is not None and entity.donor.user_id == principal.id
    if isinstance(entity, (DonorProfile, BloodBank, HealthcareFacility)):
        return entity.user_id == principal.id
    if isinstance(entity, BloodRequest):
        return entity.facility is not None and entity.facility.user_id == principal.id
    return False

def operates_bank(principal: User, blood_bank: BloodBank) -> bool:
    """Admin, or the operator account of ``blood_bank``."""
    if principal is None or not principal.is_active:
        return False
    return principal.role == UserRole.ADMIN or (
        blood_bank is not None and blood_bank.user_id == principal.id
    )

def parse_user_id(value):
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials"
        )

async def get_current_donor(
    current_user: User = Depends(get_current_user)
) -> DonorProfile:
    """Donor profile of the authenticated user."""
    if current_user.role != UserRole.DONOR or current_user.donor_profile is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Donor profile required"
        )
    return current_user.donor_profile

async def get_current_facility(
    current_user: User = Depends(get_current_user)
) -> HealthcareFacility:
    """Healthcare facility operated by the authenticated user."""
    if current_user.role != UserRole.FACILITY or current_user.facility is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Healthcare facility account required"
        )
    return current_user.facility
