"""Cookie session identity.

A second, independent way to be signed in: the browser holds a signed session
cookie (Starlette ``SessionMiddleware``) instead of bearer tokens. Sign-in goes
through email/password or a Google ID token; both produce the same
``SessionClaims`` shape. Failed sign-in yields ``None`` rather than an error so
callers cannot tell a wrong email from a wrong password.
"""
import logging
from typing import Optional
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from marketplace.auth import (
    TokenPair, get_user_by_email, get_user_by_id, issue_token_pair, verify_google_token,
    verify_password,
)
from marketplace.errors import Unauthenticated
from marketplace.models import User, UserRole, utcnow

logger = logging.getLogger(__name__)

SESSION_KEY = "user"


class SessionClaims(BaseModel):
    id: UUID
    email: str
    name: str
    image: Optional[str] = None
    role: UserRole
    is_email_verified: bool

    @classmethod
    def from_user(cls, user: User) -> "SessionClaims":
        return cls(
            id=user.id,
            email=user.email,
            name=user.full_name,
            image=user.avatar,
            role=user.role,
            is_email_verified=user.is_email_verified,
        )


async def authorize_credentials(db: AsyncSession, email: str, password: str) -> Optional[SessionClaims]:
    """Check email/password against the stored hash."""
    user = await get_user_by_email(db, email)
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return SessionClaims.from_user(user)


async def authorize_google(db: AsyncSession, token: str) -> Optional[SessionClaims]:
    """Sign in with a Google ID token, creating the account on first login."""
    user_info = verify_google_token(token)
    if user_info is None:
        return None

    result = await db.execute(select(User).where(User.google_id == user_info["google_id"]))
    user = result.scalar_one_or_none()
    if user is None:
        user = await get_user_by_email(db, user_info["email"])

    if user is None:
        user = User(
            email=user_info["email"],
            google_id=user_info["google_id"],
            first_name=user_info["given_name"] or user_info["email"].split("@")[0],
            last_name=user_info["family_name"],
            avatar=user_info["picture"],
            role=UserRole.STUDENT,
            is_email_verified=True,
            email_verified_at=utcnow(),
        )
        db.add(user)
        logger.info(f"Created account from Google sign-in: {user.email}")
    else:
        if not user.is_active:
            return None
        user.google_id = user.google_id or user_info["google_id"]
        if not user.is_email_verified:
            # Google has verified ownership of this address
            user.is_email_verified = True
            user.email_verified_at = utcnow()
        if not user.avatar and user_info["picture"]:
            user.avatar = user_info["picture"]

    await db.commit()
    return SessionClaims.from_user(user)


def start_session(request: Request, claims: SessionClaims) -> None:
    request.session[SESSION_KEY] = claims.model_dump(mode="json")


def end_session(request: Request) -> None:
    request.session.clear()


def get_session_claims(request: Request) -> Optional[SessionClaims]:
    """Claims stored in the cookie, or ``None`` when there is no session."""
    if "session" not in request.scope:
        return None
    data = request.session.get(SESSION_KEY)
    if not data:
        return None
    try:
        return SessionClaims.model_validate(data)
    except ValueError:
        logger.warning("Discarding malformed session payload")
        end_session(request)
        return None


async def issue_tokens_for_session(db: AsyncSession, request: Request) -> TokenPair:
    """Mint bearer tokens for the subject of the current session."""
    claims = get_session_claims(request)
    if claims is None:
        raise Unauthenticated("Not authenticated")

    user = await get_user_by_id(db, claims.id)
    if user is None or not user.is_active:
        end_session(request)
        raise Unauthenticated("User not found or inactive")

    logger.info(f"Issued bearer tokens from session for user: {user.email}")
    return issue_token_pair(user)
