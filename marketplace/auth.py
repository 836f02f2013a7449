"""Core authentication utilities and JWT handling."""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from uuid import UUID
import logging

from jose import JWTError, jwt
from passlib.context import CryptContext
from google.oauth2 import id_token
from google.auth.transport import requests as google_requests
from google.auth import exceptions as google_exceptions
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings
from marketplace.errors import InvalidToken, UpstreamFailure, UserNotFound, WrongTokenType
from marketplace.models import User

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against its hash. Accounts without a password never match."""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str


def _signing_key(token_type: str) -> str:
    if token_type == REFRESH_TOKEN_TYPE:
        return settings.jwt_refresh_secret_key
    return settings.jwt_secret_key


def _encode(user: User, token_type: str, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    role = user.role.value if hasattr(user.role, "value") else str(user.role)
    payload = {
        "userId": str(user.id),
        "email": user.email,
        "role": role,
        "type": token_type,
        "exp": now + expires_delta,
        "iat": now,
    }
    return jwt.encode(payload, _signing_key(token_type), algorithm=settings.jwt_algorithm)


def create_access_token(user: User) -> str:
    """Create a short-lived access token."""
    return _encode(
        user, ACCESS_TOKEN_TYPE, timedelta(minutes=settings.access_token_expire_minutes)
    )


def create_refresh_token(user: User) -> str:
    """Create a refresh token. Refresh tokens are stateless and not revocable."""
    return _encode(
        user, REFRESH_TOKEN_TYPE, timedelta(days=settings.refresh_token_expire_days)
    )


def issue_token_pair(user: User) -> TokenPair:
    """Issue an access/refresh pair bound to the user's id, email and role."""
    return TokenPair(
        access_token=create_access_token(user),
        refresh_token=create_refresh_token(user),
    )


def _verify(token: str, expected_type: str) -> Dict[str, Any]:
    # The type check runs on the unverified claims first so that a token of the
    # other kind is reported as such even though it fails this key's signature.
    try:
        unverified = jwt.get_unverified_claims(token)
    except JWTError:
        logger.warning("Rejected malformed token")
        raise InvalidToken()

    if unverified.get("type") != expected_type:
        logger.warning(f"Rejected token of type {unverified.get('type')!r}, expected {expected_type!r}")
        raise WrongTokenType()

    try:
        payload = jwt.decode(
            token,
            _signing_key(expected_type),
            algorithms=[settings.jwt_algorithm]
        )
    except JWTError as e:
        logger.warning(f"JWT decode error: {str(e)}")
        raise InvalidToken()

    if payload.get("type") != expected_type:
        raise WrongTokenType()
    if not payload.get("userId"):
        raise InvalidToken()
    return payload


def verify_access_token(token: str) -> Dict[str, Any]:
    """Decode and verify an access token."""
    return _verify(token, ACCESS_TOKEN_TYPE)


def verify_refresh_token(token: str) -> Dict[str, Any]:
    """Decode and verify a refresh token."""
    return _verify(token, REFRESH_TOKEN_TYPE)


def subject_id(claims: Dict[str, Any]) -> UUID:
    try:
        return UUID(str(claims["userId"]))
    except (KeyError, ValueError):
        raise InvalidToken()


async def get_user_by_id(db: AsyncSession, user_id: UUID) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    """Get user by email address."""
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def refresh_tokens(db: AsyncSession, refresh_token: str) -> TokenPair:
    """Exchange a valid refresh token for a fresh pair carrying the live role."""
    claims = verify_refresh_token(refresh_token)
    user = await get_user_by_id(db, subject_id(claims))
    if user is None or not user.is_active:
        raise UserNotFound()
    logger.info(f"Token refresh successful for user: {user.email}")
    return issue_token_pair(user)


def verify_google_token(token: str) -> Optional[Dict[str, Any]]:
    """Verify a Google ID token and return the identity it asserts.

    Returns ``None`` when the token is not valid for this client; raises
    ``UpstreamFailure`` when Google's certificates cannot be fetched.
    """
    if not settings.google_client_id:
        logger.warning("Google sign-in attempted but GOOGLE_CLIENT_ID is not configured")
        return None

    try:
        idinfo = id_token.verify_oauth2_token(
            token,
            google_requests.Request(),
            settings.google_client_id
        )
    except google_exceptions.TransportError as e:
        raise UpstreamFailure("Identity provider unavailable") from e
    except ValueError as e:
        logger.warning(f"Google token verification failed: {str(e)}")
        return None

    if idinfo.get("iss") not in ("accounts.google.com", "https://accounts.google.com"):
        logger.warning("Google token rejected: wrong issuer")
        return None
    if not idinfo.get("email") or not idinfo.get("email_verified", False):
        logger.warning("Google token rejected: email missing or unverified")
        return None

    return {
        "google_id": idinfo["sub"],
        "email": idinfo["email"].lower(),
        "given_name": idinfo.get("given_name") or idinfo.get("name") or "",
        "family_name": idinfo.get("family_name") or "",
        "picture": idinfo.get("picture"),
    }
