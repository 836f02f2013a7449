"""Request authentication and authorization.

``require_user`` is the only way handlers obtain the caller's identity. It
accepts either a session cookie or a bearer access token, re-reads the user
row so that role, verification and active state are current, and applies the
route's role/verification policy.
"""
import logging
from typing import Annotated, Callable, Iterable, Optional, Tuple
from uuid import UUID

from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from marketplace.auth import get_user_by_id, subject_id, verify_access_token
from marketplace.db import get_db
from marketplace.errors import InsufficientRole, Unauthenticated, VerificationRequired
from marketplace.models import UserRole
from marketplace.session import get_session_claims

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class AuthenticatedUser(BaseModel):
    id: UUID
    email: str
    role: UserRole
    is_email_verified: bool
    first_name: str
    last_name: str


async def resolve_subject(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
) -> Optional[UUID]:
    """Subject id from the session cookie, falling back to the bearer token."""
    claims = get_session_claims(request)
    if claims is not None:
        return claims.id

    if credentials is None or not credentials.credentials:
        return None
    payload = verify_access_token(credentials.credentials)
    return subject_id(payload)


def require_user(
    roles: Optional[Iterable[UserRole]] = None,
    require_verification: bool = False,
) -> Callable:
    """Build a dependency enforcing authentication plus an optional policy."""
    allowed_roles = frozenset(roles) if roles else None

    async def dependency(
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        db: AsyncSession = Depends(get_db),
    ) -> AuthenticatedUser:
        user_id = await resolve_subject(request, credentials)
        if user_id is None:
            raise Unauthenticated("Authentication required")

        user = await get_user_by_id(db, user_id)
        if user is None or not user.is_active:
            raise Unauthenticated("User not found or inactive")

        if require_verification and not user.is_email_verified:
            raise VerificationRequired()

        if allowed_roles is not None and user.role not in allowed_roles:
            logger.warning(f"User {user.id} with role {user.role.value} denied; requires {sorted(r.value for r in allowed_roles)}")
            raise InsufficientRole()

        return AuthenticatedUser(
            id=user.id,
            email=user.email,
            role=user.role,
            is_email_verified=user.is_email_verified,
            first_name=user.first_name,
            last_name=user.last_name,
        )

    return dependency


MAX_PAGE_LIMIT = 100
PAGE_DEFAULT_LIMIT = 10


def pagination_params(
    page: int = Query(1, ge=1),
    limit: int = Query(PAGE_DEFAULT_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
) -> Tuple[int, int]:
    return page, limit


DBSessionDep = Annotated[AsyncSession, Depends(get_db)]
CurrentUserDep = Annotated[AuthenticatedUser, Depends(require_user())]
VerifiedUserDep = Annotated[AuthenticatedUser, Depends(require_user(require_verification=True))]
InstructorDep = Annotated[
    AuthenticatedUser, Depends(require_user(roles=[UserRole.INSTRUCTOR, UserRole.ADMIN]))
]
VerifiedInstructorDep = Annotated[
    AuthenticatedUser,
    Depends(require_user(roles=[UserRole.INSTRUCTOR, UserRole.ADMIN], require_verification=True)),
]
AdminDep = Annotated[AuthenticatedUser, Depends(require_user(roles=[UserRole.ADMIN]))]
PageDep = Annotated[Tuple[int, int], Depends(pagination_params)]
