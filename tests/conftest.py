import hashlib
import hmac
import json
import os
import time
from decimal import Decimal
from types import SimpleNamespace

import pytest

# Settings are read at import time, so the environment must be in place first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-access-secret-do-not-use-in-production"
os.environ["JWT_REFRESH_SECRET_KEY"] = "test-refresh-secret-do-not-use-in-production"
os.environ["SESSION_SECRET_KEY"] = "test-session-secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.pop("SMTP_HOST", None)
os.environ.pop("GOOGLE_CLIENT_ID", None)

from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from marketplace.auth import create_access_token, hash_password  # noqa: E402
from marketplace.db import Base, get_db  # noqa: E402
from marketplace.main import app  # noqa: E402
from marketplace.models import Category, Course, CourseStatus, User, UserRole, utcnow  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]
DEFAULT_PASSWORD = "Password123"


# --- In-memory test database ---
@pytest.fixture
async def test_engine():
    """Create test database engine with in-memory SQLite"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_session(session_factory):
    """Create test database session"""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    """HTTP client bound to the app with ``get_db`` pointed at the test engine."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()


# --- Factories ---
@pytest.fixture
def make_user(session_factory):
    counter = {"n": 0}

    async def _make(
        email=None,
        password=DEFAULT_PASSWORD,
        role=UserRole.STUDENT,
        verified=True,
        **fields,
    ) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            password_hash=hash_password(password) if password else None,
            first_name=fields.pop("first_name", "Test"),
            last_name=fields.pop("last_name", f"User{counter['n']}"),
            role=role,
            is_email_verified=verified,
            email_verified_at=utcnow() if verified else None,
            **fields,
        )
        async with session_factory() as session:
            session.add(user)
            await session.commit()
        return user

    return _make


@pytest.fixture
def make_category(session_factory):
    counter = {"n": 0}

    async def _make(name=None) -> Category:
        counter["n"] += 1
        name = name or f"Category {counter['n']}"
        category = Category(name=name, slug=name.lower().replace(" ", "-"))
        async with session_factory() as session:
            session.add(category)
            await session.commit()
        return category

    return _make


@pytest.fixture
def make_course(session_factory, make_category):
    counter = {"n": 0}

    async def _make(
        instructor,
        price="50.00",
        discount_price=None,
        status=CourseStatus.PUBLISHED,
        category=None,
        **fields,
    ) -> Course:
        counter["n"] += 1
        category = category or await make_category()
        course = Course(
            title=fields.pop("title", f"Course {counter['n']}"),
            slug=fields.pop("slug", f"course-{counter['n']}"),
            description=fields.pop("description", "Learn something useful"),
            price=Decimal(price),
            discount_price=Decimal(discount_price) if discount_price is not None else None,
            status=status,
            published_at=utcnow() if status == CourseStatus.PUBLISHED else None,
            instructor_id=instructor.id,
            category_id=category.id,
            **fields,
        )
        async with session_factory() as session:
            session.add(course)
            await session.commit()
        return course

    return _make


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


# --- Stripe helpers ---
def stripe_signature(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a ``Stripe-Signature`` header the way Stripe signs webhook deliveries."""
    timestamp = timestamp or int(time.time())
    signed_payload = f"{timestamp}.{payload.decode('utf-8')}"
    signature = hmac.new(secret.encode("utf-8"), signed_payload.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def payment_intent_event(event_type: str, intent_id: str, course_id=None, student_id=None) -> bytes:
    metadata = {}
    if course_id is not None:
        metadata["courseId"] = str(course_id)
    if student_id is not None:
        metadata["studentId"] = str(student_id)
    event = {
        "id": f"evt_{intent_id}",
        "object": "event",
        "type": event_type,
        "data": {"object": {"id": intent_id, "object": "payment_intent", "metadata": metadata}},
    }
    return json.dumps(event).encode("utf-8")


def fake_intent(intent_id: str = "pi_test_123") -> SimpleNamespace:
    return SimpleNamespace(id=intent_id, client_secret=f"{intent_id}_secret_abc")
