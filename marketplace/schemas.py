"""Pydantic request/response schemas.

JSON crosses the wire in camelCase; bodies are also accepted in snake_case.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl, field_validator, model_validator
from pydantic.alias_generators import to_camel

from marketplace.models import CourseStatus, EnrollmentStatus, LessonType, PaymentStatus, UserRole


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _validate_password_strength(v: str) -> str:
    if len(v) < 8:
        raise ValueError('Password must be at least 8 characters long')
    if not any(c.isupper() for c in v):
        raise ValueError('Password must contain at least one uppercase letter')
    if not any(c.islower() for c in v):
        raise ValueError('Password must contain at least one lowercase letter')
    if not any(c.isdigit() for c in v):
        raise ValueError('Password must contain at least one digit')
    return v


# ========== USER SCHEMAS ==========
class UserResponse(CamelModel):
    """Public view of a user account."""
    id: UUID
    email: EmailStr
    first_name: str
    last_name: str
    role: UserRole
    is_email_verified: bool
    avatar: Optional[str] = None
    bio: Optional[str] = None
    created_at: datetime


class UserProfileResponse(UserResponse):
    enrollment_count: int = 0
    course_count: int = 0


class UserSummary(CamelModel):
    id: UUID
    first_name: str
    last_name: str
    avatar: Optional[str] = None


class UpdateProfileRequest(CamelModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    bio: Optional[str] = None
    avatar: Optional[HttpUrl] = None


# ========== AUTH SCHEMAS ==========
class RegisterRequest(CamelModel):
    """Schema for email registration."""
    email: EmailStr
    password: str = Field(..., min_length=8, description="Password must be at least 8 characters")
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: UserRole = UserRole.STUDENT

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        """Validate password strength."""
        return _validate_password_strength(v)

    @field_validator('role')
    @classmethod
    def validate_role(cls, v):
        """Admins are never self-registered."""
        if v == UserRole.ADMIN:
            raise ValueError('Role must be STUDENT or INSTRUCTOR')
        return v


class LoginRequest(CamelModel):
    """Schema for email login."""
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshTokenRequest(CamelModel):
    """Schema for refresh token request."""
    refresh_token: str = Field(..., min_length=1)


class TokenPairResponse(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AuthResponse(TokenPairResponse):
    """Schema for login and registration responses."""
    user: UserResponse


class GoogleSignInRequest(CamelModel):
    """Schema for Google Sign-In request."""
    token: str = Field(..., description="Google ID token from frontend")


class SessionResponse(CamelModel):
    id: UUID
    email: EmailStr
    name: str
    image: Optional[str] = None
    role: UserRole
    is_email_verified: bool


class EmailRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1)
    new_password: str

    @field_validator('new_password')
    @classmethod
    def validate_password(cls, v):
        return _validate_password_strength(v)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str

    @field_validator('new_password')
    @classmethod
    def validate_password(cls, v):
        return _validate_password_strength(v)


class MessageResponse(BaseModel):
    message: str


# ========== CATEGORY SCHEMAS ==========
class CategoryCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class CategoryOut(CamelModel):
    id: UUID
    name: str
    slug: str
    description: Optional[str] = None


class CategoryWithCount(CategoryOut):
    course_count: int = 0


# ========== COURSE SCHEMAS ==========
class CourseCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    short_description: Optional[str] = Field(None, max_length=500)
    category_id: UUID
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    discount_price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    level: Optional[str] = None
    language: Optional[str] = None
    thumbnail: Optional[str] = None

    @model_validator(mode="after")
    def check_discount(self):
        if self.discount_price is not None and self.discount_price > self.price:
            raise ValueError("Discount price cannot exceed price")
        return self


class CourseUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    short_description: Optional[str] = Field(None, max_length=500)
    category_id: Optional[UUID] = None
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    discount_price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    level: Optional[str] = None
    language: Optional[str] = None
    thumbnail: Optional[str] = None
    status: Optional[CourseStatus] = None


class CourseOut(CamelModel):
    id: UUID
    title: str
    slug: str
    description: str
    short_description: Optional[str] = None
    thumbnail: Optional[str] = None
    price: float
    discount_price: Optional[float] = None
    level: Optional[str] = None
    language: Optional[str] = None
    status: CourseStatus
    enrollment_count: int
    instructor_id: UUID
    category_id: UUID
    average_rating: float = 0
    review_count: int = 0
    published_at: Optional[datetime] = None
    created_at: datetime
    instructor: Optional[UserSummary] = None
    category: Optional[CategoryOut] = None


class InstructorCourseOut(CourseOut):
    total_revenue: float = 0


class CourseSummary(CamelModel):
    id: UUID
    title: str
    thumbnail: Optional[str] = None


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_items: int
    has_next_page: bool
    has_prev_page: bool


class PaginatedCourses(CamelModel):
    courses: List[CourseOut]
    pagination: Pagination


class PaginatedInstructorCourses(CamelModel):
    courses: List[InstructorCourseOut]
    pagination: Pagination


# ========== CURRICULUM SCHEMAS ==========
class ModuleCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None


class LessonCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    type: LessonType
    content: Optional[str] = None
    video_url: Optional[str] = None
    video_duration: Optional[int] = Field(None, ge=0, description="Seconds")
    is_free: bool = False


class LessonOutline(CamelModel):
    """What anyone browsing the course may see of a lesson."""
    id: UUID
    title: str
    type: LessonType
    video_duration: Optional[int] = None
    is_free: bool
    position: int


class LessonOut(LessonOutline):
    module_id: UUID
    description: Optional[str] = None
    content: Optional[str] = None
    video_url: Optional[str] = None


class ModuleOut(CamelModel):
    id: UUID
    title: str
    description: Optional[str] = None
    position: int
    lessons: List[LessonOutline] = []


# ========== REVIEW SCHEMAS ==========
class ReviewCreate(CamelModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=2000)


class ReviewUpdate(CamelModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=2000)


class ReviewOut(CamelModel):
    id: UUID
    user_id: UUID
    course_id: UUID
    rating: int
    comment: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    user: Optional[UserSummary] = None
    course: Optional[CourseSummary] = None


class RatingCount(CamelModel):
    rating: int
    count: int


class ReviewStats(CamelModel):
    total: int
    average_rating: float
    distribution: List[RatingCount]


class PaginatedReviews(CamelModel):
    reviews: List[ReviewOut]
    pagination: Pagination


class CourseReviews(PaginatedReviews):
    stats: ReviewStats


class CourseDetailOut(CourseOut):
    modules: List[ModuleOut] = []
    recent_reviews: List[ReviewOut] = []


# ========== ENROLLMENT SCHEMAS ==========
class EnrollmentCreate(CamelModel):
    course_id: UUID


class EnrollmentUpdate(CamelModel):
    progress: Optional[int] = Field(None, ge=0, le=100)
    status: Optional[EnrollmentStatus] = None


class EnrollmentOut(CamelModel):
    id: UUID
    user_id: UUID
    course_id: UUID
    status: EnrollmentStatus
    progress: int
    enrolled_at: datetime
    completed_at: Optional[datetime] = None
    course: Optional[CourseOut] = None


class PaginatedEnrollments(CamelModel):
    enrollments: List[EnrollmentOut]
    pagination: Pagination


# ========== PAYMENT SCHEMAS ==========
class CreatePaymentIntentRequest(CamelModel):
    course_id: UUID


class PaymentIntentResponse(CamelModel):
    client_secret: str
    payment_id: UUID
    amount: float


class PaymentOut(CamelModel):
    id: UUID
    user_id: UUID
    course_id: UUID
    amount: float
    platform_fee: float
    instructor_amount: float
    currency: str
    status: PaymentStatus
    stripe_payment_intent_id: str
    created_at: datetime
    completed_at: Optional[datetime] = None


class PaginatedPayments(CamelModel):
    payments: List[PaymentOut]
    pagination: Pagination


class InstructorEarnings(CamelModel):
    total_earnings: float
    total_sales: int
    recent_payments: List[PaymentOut]


class WebhookAck(BaseModel):
    received: bool = True


# ========== INSTRUCTOR ANALYTICS ==========
class MonthlyRevenue(CamelModel):
    month: str  # YYYY-MM
    revenue: float


class TopCourse(CamelModel):
    course_id: UUID
    title: str
    students: int
    revenue: float


class RecentEnrollment(CamelModel):
    student_name: str
    course_title: str
    enrolled_at: datetime


class InstructorAnalytics(CamelModel):
    total_students: int
    total_revenue: float
    total_courses: int
    avg_rating: float
    monthly_revenue: List[MonthlyRevenue]
    top_courses: List[TopCourse]
    recent_enrollments: List[RecentEnrollment]
