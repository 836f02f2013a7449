from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import select, func, or_, and_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from typing import Iterable, Optional
from uuid import UUID

from marketplace.dependencies import AuthenticatedUser
from marketplace.errors import (
    AlreadyEnrolled, AlreadyReviewed, CategoryNotFound, Conflict, CourseNotFound, EnrollmentNotFound,
    Forbidden, ModuleNotFound, PaymentRequired, ReviewNotFound, SelfEnrollmentForbidden,
)
from marketplace.models import (
    Category, Course, CourseModule, CourseStatus, Enrollment, EnrollmentStatus, Lesson, Payment,
    PaymentStatus, Review, User, UserRole, utcnow,
)
from marketplace.schemas import (
    CourseCreate, CourseUpdate, EnrollmentUpdate, LessonCreate, ModuleCreate, ReviewCreate, ReviewUpdate,
    UpdateProfileRequest,
)
from marketplace.utils import generate_slug

SORT_COLUMNS = {
    "created_at": Course.created_at,
    "price": Course.price,
    "title": Course.title,
    "students": Course.enrollment_count,
    "rating": Course.average_rating,
}

COURSE_DETAIL = (selectinload(Course.instructor), selectinload(Course.category))
COURSE_CURRICULUM = (selectinload(Course.modules).selectinload(CourseModule.lessons),)
REVIEW_DETAIL = (selectinload(Review.user), selectinload(Review.course))
ENROLLMENT_DETAIL = (
    selectinload(Enrollment.course).selectinload(Course.instructor),
    selectinload(Enrollment.course).selectinload(Course.category),
)


# ========== COURSES ==========
async def get_course(session: AsyncSession, course_id: UUID, detail: bool = False, curriculum: bool = False):
    query = select(Course).where(Course.id == course_id)
    if detail:
        query = query.options(*COURSE_DETAIL).execution_options(populate_existing=True)
    if curriculum:
        query = query.options(*COURSE_CURRICULUM)
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def increment_enrollment_count(session: AsyncSession, course_id: UUID):
    await session.execute(
        update(Course)
        .where(Course.id == course_id)
        .values(enrollment_count=Course.enrollment_count + 1)
        .execution_options(synchronize_session=False)
    )


async def decrement_enrollment_count(session: AsyncSession, course_id: UUID):
    await session.execute(
        update(Course)
        .where(Course.id == course_id, Course.enrollment_count > 0)
        .values(enrollment_count=Course.enrollment_count - 1)
        .execution_options(synchronize_session=False)
    )


async def list_courses(
    session: AsyncSession,
    q: Optional[str],
    page: int,
    limit: int,
    category_id: Optional[UUID] = None,
    level: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    sort_by: str = "created_at",
    order: str = "desc",
):
    filters = [Course.status == CourseStatus.PUBLISHED]
    if q:
        filters.append(or_(
            Course.title.ilike(f"%{q}%"),
            Course.description.ilike(f"%{q}%"),
        ))
    if category_id:
        filters.append(Course.category_id == category_id)
    if level:
        filters.append(Course.level == level)
    if min_price is not None:
        filters.append(Course.price >= min_price)
    if max_price is not None:
        filters.append(Course.price <= max_price)

    # Count
    total = await session.scalar(select(func.count()).select_from(Course).where(and_(*filters)))

    sort_column = SORT_COLUMNS.get(sort_by, Course.created_at)
    ordering = sort_column.asc() if order == "asc" else sort_column.desc()

    # Pagination
    offset = (page - 1) * limit
    query = (
        select(Course)
        .where(and_(*filters))
        .options(*COURSE_DETAIL)
        .order_by(ordering, Course.id)
        .offset(offset)
        .limit(limit)
    )
    result = await session.execute(query)
    return total, result.scalars().all()


async def unique_course_slug(session: AsyncSession, title: str) -> str:
    base = generate_slug(title)
    taken = set(
        (await session.execute(
            select(Course.slug).where(or_(Course.slug == base, Course.slug.like(f"{base}-%")))
        )).scalars().all()
    )
    if base not in taken:
        return base
    suffix = 2
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"


async def create_course(session: AsyncSession, instructor_id: UUID, data: CourseCreate) -> Course:
    if await get_category(session, data.category_id) is None:
        raise CategoryNotFound()

    course = Course(
        **data.model_dump(),
        slug=await unique_course_slug(session, data.title),
        instructor_id=instructor_id,
        status=CourseStatus.DRAFT,
    )
    session.add(course)
    await session.commit()
    return await get_course(session, course.id, detail=True)


async def update_course(session: AsyncSession, user: AuthenticatedUser, course_id: UUID, data: CourseUpdate) -> Course:
    course = await get_course(session, course_id)
    if course is None:
        raise CourseNotFound()
    if course.instructor_id != user.id and user.role != UserRole.ADMIN:
        raise Forbidden("Only the course instructor can edit this course")

    changes = data.model_dump(exclude_unset=True)
    if changes.get("category_id") and await get_category(session, changes["category_id"]) is None:
        raise CategoryNotFound()

    price = changes.get("price", course.price)
    discount_price = changes.get("discount_price", course.discount_price)
    if price is None:
        raise Conflict("Price is required")
    if discount_price is not None and discount_price > price:
        raise Conflict("Discount price cannot exceed price")

    for field, value in changes.items():
        setattr(course, field, value)
    if changes.get("status") == CourseStatus.PUBLISHED and course.published_at is None:
        course.published_at = utcnow()

    await session.commit()
    return await get_course(session, course.id, detail=True)


async def list_instructor_courses(session: AsyncSession, instructor_id: UUID, page: int, limit: int):
    """Courses owned by ``instructor_id`` paired with their completed revenue."""
    revenue = (
        select(Payment.course_id, func.sum(Payment.amount).label("total_revenue"))
        .where(Payment.status == PaymentStatus.COMPLETED)
        .group_by(Payment.course_id)
        .subquery()
    )
    total = await session.scalar(
        select(func.count()).select_from(Course).where(Course.instructor_id == instructor_id)
    )
    query = (
        select(Course, func.coalesce(revenue.c.total_revenue, 0))
        .outerjoin(revenue, revenue.c.course_id == Course.id)
        .where(Course.instructor_id == instructor_id)
        .options(*COURSE_DETAIL)
        .order_by(Course.created_at.desc(), Course.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await session.execute(query)
    return total, result.all()


# ========== CATEGORIES ==========
async def get_category(session: AsyncSession, category_id: UUID):
    result = await session.execute(select(Category).where(Category.id == category_id))
    return result.scalar_one_or_none()


async def list_categories(session: AsyncSession):
    """Categories with the number of published courses in each."""
    published = (
        select(Course.category_id, func.count(Course.id).label("course_count"))
        .where(Course.status == CourseStatus.PUBLISHED)
        .group_by(Course.category_id)
        .subquery()
    )
    result = await session.execute(
        select(Category, func.coalesce(published.c.course_count, 0))
        .outerjoin(published, published.c.category_id == Category.id)
        .order_by(Category.name)
    )
    return result.all()


async def create_category(session: AsyncSession, name: str, description: Optional[str]) -> Category:
    slug = generate_slug(name)
    existing = await session.execute(
        select(Category.id).where(or_(func.lower(Category.name) == name.lower(), Category.slug == slug))
    )
    if existing.first() is not None:
        raise Conflict("Category already exists")

    category = Category(name=name, slug=slug, description=description)
    session.add(category)
    await session.commit()
    return category


# ========== ENROLLMENTS ==========
async def get_enrollment_for(session: AsyncSession, user_id: UUID, course_id: UUID):
    result = await session.execute(
        select(Enrollment).where(Enrollment.user_id == user_id, Enrollment.course_id == course_id)
    )
    return result.scalar_one_or_none()


async def upsert_active_enrollment(session: AsyncSession, user_id: UUID, course_id: UUID) -> bool:
    """Make the (user, course) enrollment ACTIVE.

    Returns ``True`` when this created or re-activated the enrollment, i.e. when
    the course gained a student.
    """
    enrollment = await get_enrollment_for(session, user_id, course_id)
    if enrollment is None:
        session.add(Enrollment(user_id=user_id, course_id=course_id, status=EnrollmentStatus.ACTIVE))
        await session.flush()
        return True
    if enrollment.status == EnrollmentStatus.CANCELLED:
        enrollment.status = EnrollmentStatus.ACTIVE
        await session.flush()
        return True
    return False


async def load_enrollment(session: AsyncSession, enrollment_id: UUID):
    result = await session.execute(
        select(Enrollment)
        .where(Enrollment.id == enrollment_id)
        .options(*ENROLLMENT_DETAIL)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_enrollments(
    session: AsyncSession,
    user_id: UUID,
    page: int,
    limit: int,
    statuses: Optional[Iterable[EnrollmentStatus]] = None,
    course_id: Optional[UUID] = None,
):
    filters = [Enrollment.user_id == user_id]
    if statuses:
        filters.append(Enrollment.status.in_(list(statuses)))
    if course_id:
        filters.append(Enrollment.course_id == course_id)

    total = await session.scalar(select(func.count()).select_from(Enrollment).where(and_(*filters)))
    result = await session.execute(
        select(Enrollment)
        .where(and_(*filters))
        .options(*ENROLLMENT_DETAIL)
        .order_by(Enrollment.enrolled_at.desc(), Enrollment.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return total, result.scalars().all()


async def create_direct_enrollment(session: AsyncSession, user: AuthenticatedUser, course_id: UUID) -> Enrollment:
    """Enroll without payment; only free courses, or any course for an admin."""
    course = await get_course(session, course_id)
    if course is None:
        raise CourseNotFound()
    if course.instructor_id == user.id:
        raise SelfEnrollmentForbidden()

    existing = await get_enrollment_for(session, user.id, course.id)
    if existing is not None and existing.status in (EnrollmentStatus.ACTIVE, EnrollmentStatus.COMPLETED):
        raise AlreadyEnrolled()

    if course.effective_price > 0 and user.role != UserRole.ADMIN:
        raise PaymentRequired()

    if await upsert_active_enrollment(session, user.id, course.id):
        await increment_enrollment_count(session, course.id)
    await session.commit()

    enrollment = await get_enrollment_for(session, user.id, course.id)
    return await load_enrollment(session, enrollment.id)


async def get_enrollment(session: AsyncSession, user: AuthenticatedUser, enrollment_id: UUID) -> Enrollment:
    enrollment = await load_enrollment(session, enrollment_id)
    if enrollment is None:
        raise EnrollmentNotFound()
    if enrollment.user_id != user.id and user.role != UserRole.ADMIN:
        raise Forbidden("Unauthorized access to enrollment")
    return enrollment


async def update_enrollment(
    session: AsyncSession, user: AuthenticatedUser, enrollment_id: UUID, data: EnrollmentUpdate
) -> Enrollment:
    enrollment = await get_enrollment(session, user, enrollment_id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)

    if changes.get("status") == EnrollmentStatus.CANCELLED:
        raise Conflict("Use DELETE to cancel an enrollment")
    if enrollment.status == EnrollmentStatus.CANCELLED and user.role != UserRole.ADMIN:
        raise Conflict("Enrollment is cancelled")

    if "progress" in changes:
        enrollment.progress = changes["progress"]
    if "status" in changes and changes["status"] != enrollment.status:
        if enrollment.status == EnrollmentStatus.CANCELLED:
            await increment_enrollment_count(session, enrollment.course_id)
        enrollment.status = changes["status"]
        if enrollment.status == EnrollmentStatus.COMPLETED:
            enrollment.completed_at = utcnow()
        else:
            enrollment.completed_at = None

    await session.commit()
    return await load_enrollment(session, enrollment.id)


async def cancel_enrollment(session: AsyncSession, user: AuthenticatedUser, enrollment_id: UUID) -> Enrollment:
    enrollment = await load_enrollment(session, enrollment_id)
    if enrollment is None:
        raise EnrollmentNotFound()

    can_cancel = (
        enrollment.user_id == user.id
        or enrollment.course.instructor_id == user.id
        or user.role == UserRole.ADMIN
    )
    if not can_cancel:
        raise Forbidden("Unauthorized to cancel this enrollment")
    if enrollment.status == EnrollmentStatus.COMPLETED:
        raise Conflict("Cannot cancel a completed course")

    if enrollment.status == EnrollmentStatus.ACTIVE:
        enrollment.status = EnrollmentStatus.CANCELLED
        await decrement_enrollment_count(session, enrollment.course_id)
        await session.commit()
    return await load_enrollment(session, enrollment.id)


# ========== CURRICULUM ==========
def _require_course_owner(course: Course, user: AuthenticatedUser, action: str):
    if course.instructor_id != user.id and user.role != UserRole.ADMIN:
        raise Forbidden(f"You can only {action} your own courses")


async def _next_position(session: AsyncSession, column, *where) -> int:
    current = await session.scalar(select(func.max(column)).where(*where))
    return (current or 0) + 1


async def load_module(session: AsyncSession, module_id: UUID):
    result = await session.execute(
        select(CourseModule)
        .where(CourseModule.id == module_id)
        .options(selectinload(CourseModule.lessons))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def create_module(session: AsyncSession, user: AuthenticatedUser, course_id: UUID, data: ModuleCreate):
    course = await get_course(session, course_id)
    if course is None:
        raise CourseNotFound()
    _require_course_owner(course, user, "add modules to")

    module = CourseModule(
        **data.model_dump(),
        course_id=course.id,
        position=await _next_position(session, CourseModule.position, CourseModule.course_id == course.id),
    )
    session.add(module)
    await session.commit()
    return await load_module(session, module.id)


async def create_lesson(
    session: AsyncSession, user: AuthenticatedUser, course_id: UUID, module_id: UUID, data: LessonCreate
) -> Lesson:
    course = await get_course(session, course_id)
    if course is None:
        raise CourseNotFound()
    _require_course_owner(course, user, "add lessons to")

    module = await session.get(CourseModule, module_id)
    if module is None or module.course_id != course.id:
        raise ModuleNotFound()

    lesson = Lesson(
        **data.model_dump(),
        module_id=module.id,
        course_id=course.id,
        position=await _next_position(session, Lesson.position, Lesson.module_id == module.id),
    )
    session.add(lesson)
    await session.commit()
    return lesson


async def list_course_lessons(session: AsyncSession, user: AuthenticatedUser, course_id: UUID):
    """Full lessons, for the course instructor, admins and enrolled students."""
    course = await get_course(session, course_id)
    if course is None:
        raise CourseNotFound()
    if course.instructor_id != user.id and user.role != UserRole.ADMIN:
        enrollment = await get_enrollment_for(session, user.id, course.id)
        if enrollment is None or enrollment.status == EnrollmentStatus.CANCELLED:
            raise Forbidden("You must be enrolled to access course lessons")

    result = await session.execute(
        select(Lesson)
        .join(CourseModule, CourseModule.id == Lesson.module_id)
        .where(Lesson.course_id == course.id)
        .order_by(CourseModule.position, Lesson.position)
    )
    return result.scalars().all()


# ========== REVIEWS ==========
RATING_PLACES = Decimal("0.01")


async def refresh_course_rating(session: AsyncSession, course_id: UUID):
    """Recompute the course's stored average rating and review count."""
    average, count = (await session.execute(
        select(func.avg(Review.rating), func.count(Review.id))
        .where(Review.course_id == course_id, Review.is_active == True)
    )).one()
    await session.execute(
        update(Course)
        .where(Course.id == course_id)
        .values(
            average_rating=Decimal(average or 0).quantize(RATING_PLACES, rounding=ROUND_HALF_UP),
            review_count=count,
        )
        .execution_options(synchronize_session=False)
    )


async def load_review(session: AsyncSession, review_id: UUID):
    result = await session.execute(
        select(Review)
        .where(Review.id == review_id)
        .options(*REVIEW_DETAIL)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _paginate_reviews(session: AsyncSession, filters, page: int, limit: int):
    filters = [Review.is_active == True, *filters]
    base = select(Review).join(Course, Course.id == Review.course_id).where(*filters)
    total = await session.scalar(select(func.count()).select_from(base.subquery()))
    result = await session.execute(
        base.options(*REVIEW_DETAIL)
        .order_by(Review.created_at.desc(), Review.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return total, result.scalars().all()


async def list_course_reviews(session: AsyncSession, course_id: UUID, page: int, limit: int):
    return await _paginate_reviews(session, [Review.course_id == course_id], page, limit)


async def list_user_reviews(session: AsyncSession, user_id: UUID, page: int, limit: int):
    return await _paginate_reviews(session, [Review.user_id == user_id], page, limit)


async def list_instructor_reviews(session: AsyncSession, instructor_id: UUID, page: int, limit: int):
    return await _paginate_reviews(session, [Course.instructor_id == instructor_id], page, limit)


async def course_review_stats(session: AsyncSession, course_id: UUID):
    """Total, average and per-star distribution of a course's active reviews."""
    active = (Review.course_id == course_id, Review.is_active == True)
    rows = await session.execute(
        select(Review.rating, func.count(Review.id)).where(*active).group_by(Review.rating)
    )
    counts = dict(rows.all())
    average = await session.scalar(select(func.avg(Review.rating)).where(*active))
    return {
        "total": sum(counts.values()),
        "average_rating": round(float(average or 0), 2),
        "distribution": [{"rating": star, "count": counts.get(star, 0)} for star in range(1, 6)],
    }


async def create_review(session: AsyncSession, user: AuthenticatedUser, course_id: UUID, data: ReviewCreate) -> Review:
    course = await get_course(session, course_id)
    if course is None:
        raise CourseNotFound()
    enrollment = await get_enrollment_for(session, user.id, course.id)
    if enrollment is None or enrollment.status == EnrollmentStatus.CANCELLED:
        raise Forbidden("You must be enrolled in the course to leave a review")

    result = await session.execute(
        select(Review).where(Review.user_id == user.id, Review.course_id == course.id)
    )
    review = result.scalar_one_or_none()
    if review is not None and review.is_active:
        raise AlreadyReviewed()
    if review is None:
        review = Review(user_id=user.id, course_id=course.id)
        session.add(review)

    # A deleted review is brought back rather than duplicated
    review.rating = data.rating
    review.comment = data.comment
    review.is_active = True
    review.created_at = utcnow()
    await session.flush()

    await refresh_course_rating(session, course.id)
    await session.commit()
    return await load_review(session, review.id)


async def _get_own_review(
    session: AsyncSession, user: AuthenticatedUser, course_id: UUID, review_id: UUID, action: str,
    allow_admin: bool = False,
) -> Review:
    review = await load_review(session, review_id)
    if review is None or not review.is_active:
        raise ReviewNotFound()
    if review.user_id != user.id and not (allow_admin and user.role == UserRole.ADMIN):
        raise Forbidden(f"You can only {action} your own reviews")
    if review.course_id != course_id:
        raise Conflict("Review does not belong to this course")
    return review


async def update_review(
    session: AsyncSession, user: AuthenticatedUser, course_id: UUID, review_id: UUID, data: ReviewUpdate
) -> Review:
    review = await _get_own_review(session, user, course_id, review_id, "update")
    changes = data.model_dump(exclude_unset=True)
    if changes.get("rating") is None:
        changes.pop("rating", None)
    for field, value in changes.items():
        setattr(review, field, value)
    await session.flush()

    await refresh_course_rating(session, course_id)
    await session.commit()
    return await load_review(session, review.id)


async def delete_review(session: AsyncSession, user: AuthenticatedUser, course_id: UUID, review_id: UUID):
    review = await _get_own_review(session, user, course_id, review_id, "delete", allow_admin=True)
    review.is_active = False
    await session.flush()

    await refresh_course_rating(session, course_id)
    await session.commit()


# ========== INSTRUCTOR ANALYTICS ==========
ANALYTICS_MONTHS = 6
TOP_COURSES = 5
RECENT_ENROLLMENTS = 10


def _month_starts(now: datetime, count: int):
    """First instant of each of the last ``count`` months, oldest first."""
    year, month = now.year, now.month
    starts = []
    for _ in range(count):
        starts.append(datetime(year, month, 1, tzinfo=timezone.utc))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return starts[::-1]


async def instructor_analytics(session: AsyncSession, instructor_id: UUID, days: int = 30):
    owned = Course.instructor_id == instructor_id
    enrolled = Enrollment.status.in_([EnrollmentStatus.ACTIVE, EnrollmentStatus.COMPLETED])
    sold = Payment.status == PaymentStatus.COMPLETED
    now = utcnow()

    total_courses = await session.scalar(select(func.count()).select_from(Course).where(owned))
    total_students = await session.scalar(
        select(func.count(Enrollment.id)).join(Course, Course.id == Enrollment.course_id).where(owned, enrolled)
    )
    total_revenue = await session.scalar(
        select(func.coalesce(func.sum(Payment.amount), 0))
        .join(Course, Course.id == Payment.course_id)
        .where(owned, sold)
    )
    avg_rating = await session.scalar(
        select(func.avg(Review.rating))
        .join(Course, Course.id == Review.course_id)
        .where(owned, Review.is_active == True)
    )

    # Monthly revenue from completed payments, bucketed in Python to stay dialect-neutral
    months = _month_starts(now, ANALYTICS_MONTHS)
    revenue_by_month = {(start.year, start.month): Decimal(0) for start in months}
    payments = await session.execute(
        select(Payment.completed_at, Payment.amount)
        .join(Course, Course.id == Payment.course_id)
        .where(owned, sold, Payment.completed_at >= months[0])
    )
    for completed_at, amount in payments.all():
        key = (completed_at.year, completed_at.month)
        if key in revenue_by_month:
            revenue_by_month[key] += amount

    students = (
        select(Enrollment.course_id, func.count(Enrollment.id).label("students"))
        .where(enrolled)
        .group_by(Enrollment.course_id)
        .subquery()
    )
    revenue = (
        select(Payment.course_id, func.sum(Payment.amount).label("revenue"))
        .where(sold)
        .group_by(Payment.course_id)
        .subquery()
    )
    course_revenue = func.coalesce(revenue.c.revenue, 0)
    top = await session.execute(
        select(Course.id, Course.title, func.coalesce(students.c.students, 0), course_revenue)
        .outerjoin(students, students.c.course_id == Course.id)
        .outerjoin(revenue, revenue.c.course_id == Course.id)
        .where(owned)
        .order_by(course_revenue.desc(), Course.title)
        .limit(TOP_COURSES)
    )

    recent = await session.execute(
        select(Enrollment)
        .join(Course, Course.id == Enrollment.course_id)
        .where(owned, enrolled, Enrollment.enrolled_at >= now - timedelta(days=days))
        .options(selectinload(Enrollment.user), selectinload(Enrollment.course))
        .order_by(Enrollment.enrolled_at.desc())
        .limit(RECENT_ENROLLMENTS)
    )

    return {
        "total_students": total_students,
        "total_revenue": float(total_revenue or 0),
        "total_courses": total_courses,
        "avg_rating": round(float(avg_rating or 0), 1),
        "monthly_revenue": [
            {"month": f"{year:04d}-{month:02d}", "revenue": float(amount)}
            for (year, month), amount in revenue_by_month.items()
        ],
        "top_courses": [
            {"course_id": course_id, "title": title, "students": count, "revenue": float(amount)}
            for course_id, title, count, amount in top.all()
        ],
        "recent_enrollments": [
            {
                "student_name": enrollment.user.full_name,
                "course_title": enrollment.course.title,
                "enrolled_at": enrollment.enrolled_at,
            }
            for enrollment in recent.scalars().all()
        ],
    }


# ========== USERS ==========
async def profile_counts(session: AsyncSession, user_id: UUID):
    """``(enrollment_count, course_count)`` for a user."""
    enrollment_count = await session.scalar(
        select(func.count()).select_from(Enrollment).where(
            Enrollment.user_id == user_id,
            Enrollment.status != EnrollmentStatus.CANCELLED,
        )
    )
    course_count = await session.scalar(
        select(func.count()).select_from(Course).where(Course.instructor_id == user_id)
    )
    return enrollment_count, course_count


async def update_profile(session: AsyncSession, user: User, data: UpdateProfileRequest) -> User:
    changes = data.model_dump(exclude_unset=True)
    for name_field in ("first_name", "last_name"):
        if changes.get(name_field) is None:
            changes.pop(name_field, None)
    if "avatar" in changes and changes["avatar"] is not None:
        changes["avatar"] = str(changes["avatar"])
    for field, value in changes.items():
        setattr(user, field, value)
    await session.commit()
    return user
