# donorhub/routes/auth/router.py

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from email_validator import validate_email, EmailNotValidError
import logging

from donorhub.database import get_db
from donorhub.models.all_models import User, DonorProfile, HealthcareFacility, UserRole
from donorhub.config import settings
from donorhub.routes.auth.schemas import (
    UserRegisterRequest,
    UserLoginRequest,
    UserLoginResponse,
    RefreshTokenRequest,
    TokenRefreshResponse,
    UserProfileResponse
)
from donorhub.utils.auth import (
    create_access_token,
    create_refresh_token,
    verify_token,
    hash_password,
    verify_password,
    get_current_user,
    parse_user_id
)
from donorhub.utils.clock import Clock, get_clock

router = APIRouter(prefix="/auth", tags=["Authentication"])
logger = logging.getLogger(__name__)


def _issue_tokens(user: User) -> UserLoginResponse:
    access_token = create_access_token({
        "sub": str(user.id),
        "role": user.role.value,
        "email": user.email
    })
    refresh_token = create_refresh_token({"sub": str(user.id)})
    return UserLoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        token_type="bearer",
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserProfileResponse.from_user(user)
    )

# ================================
# REGISTRATION
# ================================

@router.post("/register", response_model=UserLoginResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserRegisterRequest,
    db: Session = Depends(get_db)
):
    """
    Register a donor, healthcare facility or blood bank operator account.
    """
    try:
        valid = validate_email(user_data.email, check_deliverability=False)
        email = valid.normalized
    except EmailNotValidError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Invalid email format"
        )

    if db.query(User).filter(User.email == email).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered"
        )

    new_user = User(
        email=email,
        password=hash_password(user_data.password),
        role=user_data.role,
        is_active=True
    )
    db.add(new_user)
    db.flush()

    # Create role-specific profile
    if user_data.role == UserRole.DONOR:
        db.add(DonorProfile(
            user_id=new_user.id,
            first_name=user_data.first_name,
            last_name=user_data.last_name,
            blood_type=user_data.blood_type,
            date_of_birth=user_data.date_of_birth,
            phone=user_data.phone
        ))
    elif user_data.role == UserRole.FACILITY:
        db.add(HealthcareFacility(
            user_id=new_user.id,
            name=user_data.facility_name,
            facility_type=user_data.facility_type,
            phone=user_data.phone,
            latitude=user_data.latitude,
            longitude=user_data.longitude
        ))

    db.commit()
    db.refresh(new_user)
    logger.info("Registered %s account %s", new_user.role.value, new_user.id)

    return _issue_tokens(new_user)

# ================================
# LOGIN & TOKENS
# ================================

@router.post("/login", response_model=UserLoginResponse)
async def login(
    login_data: UserLoginRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    Authenticate user and return access tokens.
    """
    try:
        email = validate_email(login_data.email, check_deliverability=False).normalized
    except EmailNotValidError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )

    user = db.query(User).filter(User.email == email).first()

    if not user or not verify_password(login_data.password, user.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated. Please contact support."
        )

    user.last_login_at = clock.now()
    db.commit()
    db.refresh(user)

    return _issue_tokens(user)

@router.post("/refresh-token", response_model=TokenRefreshResponse)
async def refresh_token(
    token_data: RefreshTokenRequest,
    db: Session = Depends(get_db)
):
    """
    Refresh access token using refresh token.
    """
    payload = verify_token(token_data.refresh_token, token_type="refresh")
    user_id = payload.get("sub")

    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid refresh token"
        )

    user = db.query(User).filter(User.id == parse_user_id(user_id)).first()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive"
        )

    new_access_token = create_access_token({
        "sub": str(user.id),
        "role": user.role.value,
        "email": user.email
    })

    return TokenRefreshResponse(
        access_token=new_access_token,
        token_type="bearer",
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    )

@router.get("/me", response_model=UserProfileResponse)
async def get_current_user_profile(
    current_user: User = Depends(get_current_user)
):
    """
    Get current user profile information.
    """
    return UserProfileResponse.from_user(current_user)
