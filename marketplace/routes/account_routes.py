"""Email verification and password management routes."""

import logging
from datetime import timedelta

from fastapi import APIRouter
from starlette.requests import Request
from sqlalchemy import select

from marketplace.auth import get_user_by_email, get_user_by_id, hash_password, verify_password
from marketplace.config import settings
from marketplace.dependencies import CurrentUserDep, DBSessionDep
from marketplace.email_utils import send_reset_password_email, send_verification_email
from marketplace.errors import Conflict, InvalidActionToken, UserNotFound
from marketplace.models import User, utcnow
from marketplace.schemas import ChangePasswordRequest, EmailRequest, MessageResponse, ResetPasswordRequest
from marketplace.utils import generate_secure_token, hash_token
from marketplace.routes.auth_routes import limiter

logger = logging.getLogger(__name__)

account_router = APIRouter(prefix="/auth", tags=["account"])

RESET_SENT = "If an account exists for this email, a reset link has been sent."
VERIFICATION_SENT = "If an account exists for this email, a verification link has been sent."


@account_router.post("/verify-email/{token}", response_model=MessageResponse)
@limiter.limit(f"{settings.rate_limit_requests}/minute")
async def verify_email(token: str, request: Request, db: DBSessionDep):
    result = await db.execute(
        select(User).where(
            User.email_verification_token == hash_token(token),
            User.email_verification_expires > utcnow(),
        )
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise InvalidActionToken("Invalid or expired verification token")

    user.is_email_verified = True
    user.email_verified_at = utcnow()
    user.email_verification_token = None
    user.email_verification_expires = None
    await db.commit()

    logger.info(f"Email verified for user: {user.email}")
    return MessageResponse(message="Email verified successfully")


@account_router.post("/resend-verification", response_model=MessageResponse)
@limiter.limit(f"{settings.rate_limit_requests}/minute")
async def resend_verification(payload: EmailRequest, request: Request, db: DBSessionDep):
    user = await get_user_by_email(db, payload.email)
    if user is None or not user.is_active:
        return MessageResponse(message=VERIFICATION_SENT)
    if user.is_email_verified:
        raise Conflict("Email is already verified")

    raw_token = generate_secure_token()
    user.email_verification_token = hash_token(raw_token)
    user.email_verification_expires = utcnow() + timedelta(hours=settings.email_verification_expire_hours)
    await db.commit()

    send_verification_email(user.email, user.first_name, raw_token)
    logger.info(f"Verification email re-sent to {user.email}")
    return MessageResponse(message=VERIFICATION_SENT)


@account_router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit(f"{settings.rate_limit_requests}/minute")
async def forgot_password(payload: EmailRequest, request: Request, db: DBSessionDep):
    """
    Start forgot-password flow.

    - Always returns 200 with a generic message to avoid user enumeration.
    - If the user exists, stores the hash of a one-time reset token and emails
      a reset link carrying the raw token.
    """
    user = await get_user_by_email(db, payload.email)
    if user is None or not user.is_active:
        # Do not reveal whether the email exists
        return MessageResponse(message=RESET_SENT)

    raw_token = generate_secure_token(48)
    user.password_reset_token = hash_token(raw_token)
    user.password_reset_expires = utcnow() + timedelta(hours=settings.password_reset_expire_hours)
    await db.commit()

    send_reset_password_email(user.email, user.first_name, raw_token)

    logger.info(f"Password reset email initiated for {user.email}")
    return MessageResponse(message=RESET_SENT)


@account_router.post("/reset-password", response_model=MessageResponse)
@limiter.limit(f"{settings.rate_limit_requests}/minute")
async def reset_password(payload: ResetPasswordRequest, request: Request, db: DBSessionDep):
    """Complete the reset with the emailed token. The token is single use."""
    result = await db.execute(
        select(User).where(
            User.password_reset_token == hash_token(payload.token),
            User.password_reset_expires > utcnow(),
        )
    )
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise InvalidActionToken("Invalid or expired reset token")

    user.password_hash = hash_password(payload.new_password)
    user.password_reset_token = None
    user.password_reset_expires = None
    await db.commit()

    logger.info(f"Password reset successful for user: {user.email}")
    return MessageResponse(message="Password has been reset successfully")


@account_router.post("/change-password", response_model=MessageResponse)
@limiter.limit(f"{settings.rate_limit_requests}/minute")
async def change_password(
    payload: ChangePasswordRequest,
    request: Request,
    current_user: CurrentUserDep,
    db: DBSessionDep,
):
    user = await get_user_by_id(db, current_user.id)
    if user is None:
        raise UserNotFound()
    if not verify_password(payload.current_password, user.password_hash):
        raise Conflict("Current password is incorrect")

    user.password_hash = hash_password(payload.new_password)
    await db.commit()

    logger.info(f"Password changed for user: {user.email}")
    return MessageResponse(message="Password changed successfully")
