from fastapi import APIRouter, Query, status
from typing import List, Literal, Optional
from uuid import UUID
import logging

from marketplace.crud import (
    create_course, create_lesson, create_module, get_course, list_course_lessons, list_course_reviews,
    list_courses, list_instructor_courses, update_course,
)
from marketplace.dependencies import CurrentUserDep, DBSessionDep, InstructorDep, PageDep, VerifiedInstructorDep
from marketplace.errors import CourseNotFound
from marketplace.schemas import (
    CourseCreate, CourseDetailOut, CourseOut, CourseUpdate, InstructorCourseOut, LessonCreate, LessonOut,
    ModuleCreate, ModuleOut, PaginatedCourses, PaginatedInstructorCourses, ReviewOut,
)
from marketplace.utils import build_pagination

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/courses", tags=["courses"])

RECENT_REVIEWS = 10


@router.get("", response_model=PaginatedCourses)
async def list_courses_endpoint(
    db: DBSessionDep,
    pages: PageDep,
    q: Optional[str] = Query(None, alias="search", description="Keyword search"),
    category_id: Optional[UUID] = Query(None, alias="categoryId"),
    level: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, ge=0, alias="minPrice"),
    max_price: Optional[float] = Query(None, ge=0, alias="maxPrice"),
    sort_by: Literal["created_at", "price", "title", "students", "rating"] = Query("created_at", alias="sortBy"),
    order: Literal["asc", "desc"] = Query("desc"),
):
    """Published courses only."""
    page, limit = pages
    total, courses = await list_courses(
        db, q, page, limit, category_id, level, min_price, max_price, sort_by, order
    )
    return PaginatedCourses(
        courses=[CourseOut.model_validate(c) for c in courses],
        pagination=build_pagination(page, limit, total),
    )


@router.post("/create", response_model=CourseOut, status_code=status.HTTP_201_CREATED)
async def create_course_endpoint(payload: CourseCreate, current_user: VerifiedInstructorDep, db: DBSessionDep):
    course = await create_course(db, current_user.id, payload)
    logger.info(f"Course {course.id} created by instructor {current_user.id}")
    return course


@router.get("/instructor", response_model=PaginatedInstructorCourses)
async def instructor_courses_endpoint(current_user: InstructorDep, db: DBSessionDep, pages: PageDep):
    """The caller's own courses, any status, with completed revenue."""
    page, limit = pages
    total, rows = await list_instructor_courses(db, current_user.id, page, limit)
    courses = [
        InstructorCourseOut(**CourseOut.model_validate(course).model_dump(), total_revenue=float(revenue))
        for course, revenue in rows
    ]
    return PaginatedInstructorCourses(courses=courses, pagination=build_pagination(page, limit, total))


@router.get("/{course_id}", response_model=CourseDetailOut)
async def get_course_endpoint(course_id: UUID, db: DBSessionDep):
    """Course with its curriculum outline and latest reviews."""
    course = await get_course(db, course_id, detail=True, curriculum=True)
    if not course:
        raise CourseNotFound()
    _, reviews = await list_course_reviews(db, course.id, 1, RECENT_REVIEWS)
    detail = CourseDetailOut.model_validate(course)
    detail.recent_reviews = [ReviewOut.model_validate(r) for r in reviews]
    return detail


@router.patch("/{course_id}", response_model=CourseOut)
async def update_course_endpoint(
    course_id: UUID, payload: CourseUpdate, current_user: InstructorDep, db: DBSessionDep
):
    course = await update_course(db, current_user, course_id, payload)
    logger.info(f"Course {course.id} updated by {current_user.id}")
    return course


@router.post("/{course_id}/modules", response_model=ModuleOut, status_code=status.HTTP_201_CREATED)
async def create_module_endpoint(
    course_id: UUID, payload: ModuleCreate, current_user: InstructorDep, db: DBSessionDep
):
    module = await create_module(db, current_user, course_id, payload)
    logger.info(f"Module {module.id} added to course {course_id}")
    return module


@router.post(
    "/{course_id}/modules/{module_id}/lessons", response_model=LessonOut, status_code=status.HTTP_201_CREATED
)
async def create_lesson_endpoint(
    course_id: UUID, module_id: UUID, payload: LessonCreate, current_user: InstructorDep, db: DBSessionDep
):
    lesson = await create_lesson(db, current_user, course_id, module_id, payload)
    logger.info(f"Lesson {lesson.id} added to module {module_id}")
    return lesson


@router.get("/{course_id}/lessons", response_model=List[LessonOut])
async def course_lessons_endpoint(course_id: UUID, current_user: CurrentUserDep, db: DBSessionDep):
    """Lesson content; enrolled students, the instructor and admins only."""
    return await list_course_lessons(db, current_user, course_id)
