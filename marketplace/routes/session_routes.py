"""Cookie-session sign-in and the session-to-token bridge."""
import logging

from fastapi import APIRouter
from starlette.requests import Request

from marketplace.config import settings
from marketplace.dependencies import DBSessionDep
from marketplace.errors import Unauthenticated
from marketplace.routes.auth_routes import limiter
from marketplace.schemas import (
    GoogleSignInRequest, LoginRequest, MessageResponse, SessionResponse, TokenPairResponse,
)
from marketplace.session import (
    authorize_credentials, authorize_google, end_session, get_session_claims,
    issue_tokens_for_session, start_session,
)

logger = logging.getLogger(__name__)

session_router = APIRouter(prefix="/auth", tags=["session"])


@session_router.post("/session/login", response_model=SessionResponse)
@limiter.limit(f"{settings.rate_limit_requests}/minute")
async def session_login(login_request: LoginRequest, request: Request, db: DBSessionDep):
    """Sign in with email/password and set the session cookie."""
    claims = await authorize_credentials(db, login_request.email, login_request.password)
    if claims is None:
        raise Unauthenticated("Invalid email or password")

    start_session(request, claims)
    logger.info(f"Session started for user: {claims.email}")
    return SessionResponse(**claims.model_dump())


@session_router.post("/session/google", response_model=SessionResponse)
@limiter.limit(f"{settings.rate_limit_requests}/minute")
async def session_google(google_request: GoogleSignInRequest, request: Request, db: DBSessionDep):
    """Google Sign-In; creates the account on first login."""
    claims = await authorize_google(db, google_request.token)
    if claims is None:
        raise Unauthenticated("Google sign-in failed")

    start_session(request, claims)
    logger.info(f"Google session started for user: {claims.email}")
    return SessionResponse(**claims.model_dump())


@session_router.get("/session", response_model=SessionResponse)
async def current_session(request: Request):
    claims = get_session_claims(request)
    if claims is None:
        raise Unauthenticated("No active session")
    return SessionResponse(**claims.model_dump())


@session_router.post("/session/logout", response_model=MessageResponse)
async def session_logout(request: Request):
    end_session(request)
    return MessageResponse(message="Signed out")


@session_router.post("/token", response_model=TokenPairResponse)
async def session_token(request: Request, db: DBSessionDep):
    """Exchange the current session for a bearer token pair."""
    tokens = await issue_tokens_for_session(db, request)
    return TokenPairResponse(access_token=tokens.access_token, refresh_token=tokens.refresh_token)
