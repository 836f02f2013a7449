"""FastAPI application main module."""
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.sessions import SessionMiddleware

from marketplace.config import settings
from marketplace.db import init_db
from marketplace.errors import register_error_handlers
from marketplace.routes.account_routes import account_router
from marketplace.routes.auth_routes import limiter, router as auth_router
from marketplace.routes.category_routes import router as category_router
from marketplace.routes.course_routes import router as course_router
from marketplace.routes.enrollment_routes import router as enrollment_router
from marketplace.routes.health_routes import router as health_router
from marketplace.routes.instructor_routes import router as instructor_router
from marketplace.routes.payment_routes import router as payment_router
from marketplace.routes.review_routes import router as review_router
from marketplace.routes.session_routes import session_router
from marketplace.routes.user_routes import router as user_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting up Course Marketplace API...")
    await init_db()
    yield
    # Shutdown
    logger.info("Shutting down Course Marketplace API...")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Course marketplace: accounts, courses, enrollments and Stripe payments",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
register_error_handlers(app)

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret_key,
    session_cookie=settings.session_cookie_name,
    max_age=settings.session_max_age_seconds,
    same_site="lax",
    https_only=settings.session_https_only,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)")
    return response


# Include routers
app.include_router(auth_router)
app.include_router(account_router)
app.include_router(session_router)
app.include_router(user_router)
app.include_router(category_router)
app.include_router(course_router)
app.include_router(enrollment_router)
app.include_router(review_router)
app.include_router(payment_router)
app.include_router(instructor_router)
app.include_router(health_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Course Marketplace API is running",
        "version": "1.0.0",
    }
