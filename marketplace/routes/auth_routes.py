"""Authentication routes and endpoints."""
from datetime import timedelta
import logging
from starlette.requests import Request
from fastapi import APIRouter, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from marketplace.auth import (
    get_user_by_email, get_user_by_id, hash_password, issue_token_pair, refresh_tokens,
    verify_password,
)
from marketplace.config import settings
from marketplace.crud import profile_counts
from marketplace.dependencies import CurrentUserDep, DBSessionDep
from marketplace.email_utils import send_verification_email
from marketplace.errors import EmailAlreadyRegistered, Unauthenticated, UserNotFound
from marketplace.models import User, utcnow
from marketplace.schemas import (
    AuthResponse, LoginRequest, MessageResponse, RefreshTokenRequest, RegisterRequest,
    TokenPairResponse, UserProfileResponse, UserResponse,
)
from marketplace.utils import generate_secure_token, hash_token

logger = logging.getLogger(__name__)

# Rate limiting
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)
router = APIRouter(prefix="/auth", tags=["authentication"])


async def profile_response(db, user: User) -> UserProfileResponse:
    enrollment_count, course_count = await profile_counts(db, user.id)
    return UserProfileResponse(
        **UserResponse.model_validate(user).model_dump(),
        enrollment_count=enrollment_count,
        course_count=course_count,
    )


def auth_response(user: User) -> AuthResponse:
    tokens = issue_token_pair(user)
    return AuthResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        user=UserResponse.model_validate(user),
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(f"{settings.rate_limit_requests}/minute")
async def register(register_request: RegisterRequest, request: Request, db: DBSessionDep):
    """Email registration endpoint."""
    existing_user = await get_user_by_email(db, register_request.email)
    if existing_user:
        raise EmailAlreadyRegistered()

    raw_token = generate_secure_token()
    user = User(
        email=register_request.email.lower(),
        password_hash=hash_password(register_request.password),
        first_name=register_request.first_name,
        last_name=register_request.last_name,
        role=register_request.role,
        email_verification_token=hash_token(raw_token),
        email_verification_expires=utcnow() + timedelta(hours=settings.email_verification_expire_hours),
    )
    db.add(user)
    await db.commit()

    send_verification_email(user.email, user.first_name, raw_token)

    logger.info(f"User registration successful for: {user.email}")
    return auth_response(user)


@router.post("/login", response_model=AuthResponse)
@limiter.limit(f"{settings.rate_limit_requests}/minute")
async def login(login_request: LoginRequest, request: Request, db: DBSessionDep):
    """Email login endpoint."""
    user = await get_user_by_email(db, login_request.email)
    # One message for every failure so the response does not reveal which check failed
    if not user or not user.is_active or not verify_password(login_request.password, user.password_hash):
        logger.warning(f"Failed login attempt for: {login_request.email}")
        raise Unauthenticated("Invalid email or password")

    logger.info(f"Email login successful for user: {user.email}")
    return auth_response(user)


@router.post("/refresh", response_model=TokenPairResponse)
@limiter.limit(f"{settings.rate_limit_requests}/minute")
async def refresh(refresh_request: RefreshTokenRequest, request: Request, db: DBSessionDep):
    """Exchange a refresh token for a new access/refresh pair."""
    tokens = await refresh_tokens(db, refresh_request.refresh_token)
    return TokenPairResponse(access_token=tokens.access_token, refresh_token=tokens.refresh_token)


@router.post("/logout", response_model=MessageResponse)
async def logout(current_user: CurrentUserDep):
    # Tokens are stateless; the client discards them and they lapse at expiry
    logger.info(f"User logged out: {current_user.email}")
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserProfileResponse)
async def me(current_user: CurrentUserDep, db: DBSessionDep):
    """Get current user information."""
    user = await get_user_by_id(db, current_user.id)
    if user is None:
        raise UserNotFound()
    return await profile_response(db, user)
