from fastapi import APIRouter, status
from uuid import UUID
import logging

from marketplace.crud import (
    course_review_stats, create_review, delete_review, get_course, list_course_reviews,
    list_instructor_reviews, list_user_reviews, update_review,
)
from marketplace.dependencies import CurrentUserDep, DBSessionDep, InstructorDep, PageDep
from marketplace.errors import CourseNotFound
from marketplace.schemas import (
    CourseReviews, MessageResponse, PaginatedReviews, ReviewCreate, ReviewOut, ReviewStats, ReviewUpdate,
)
from marketplace.utils import build_pagination

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reviews", tags=["reviews"])


@router.get("/courses/{course_id}", response_model=CourseReviews)
async def course_reviews_endpoint(course_id: UUID, db: DBSessionDep, pages: PageDep):
    """Public: a course's active reviews with rating stats."""
    if await get_course(db, course_id) is None:
        raise CourseNotFound()
    page, limit = pages
    total, reviews = await list_course_reviews(db, course_id, page, limit)
    return CourseReviews(
        reviews=[ReviewOut.model_validate(r) for r in reviews],
        stats=ReviewStats(**await course_review_stats(db, course_id)),
        pagination=build_pagination(page, limit, total),
    )


@router.post("/courses/{course_id}", response_model=ReviewOut, status_code=status.HTTP_201_CREATED)
async def create_review_endpoint(course_id: UUID, payload: ReviewCreate, current_user: CurrentUserDep, db: DBSessionDep):
    review = await create_review(db, current_user, course_id, payload)
    logger.info(f"Review {review.id} ({review.rating} stars) on course {course_id} by {current_user.id}")
    return review


@router.put("/courses/{course_id}/{review_id}", response_model=ReviewOut)
async def update_review_endpoint(
    course_id: UUID, review_id: UUID, payload: ReviewUpdate, current_user: CurrentUserDep, db: DBSessionDep
):
    return await update_review(db, current_user, course_id, review_id, payload)


@router.delete("/courses/{course_id}/{review_id}", response_model=MessageResponse)
async def delete_review_endpoint(course_id: UUID, review_id: UUID, current_user: CurrentUserDep, db: DBSessionDep):
    await delete_review(db, current_user, course_id, review_id)
    logger.info(f"Review {review_id} deleted by {current_user.id}")
    return MessageResponse(message="Review deleted successfully")


@router.get("/my-reviews", response_model=PaginatedReviews)
async def my_reviews_endpoint(current_user: CurrentUserDep, db: DBSessionDep, pages: PageDep):
    page, limit = pages
    total, reviews = await list_user_reviews(db, current_user.id, page, limit)
    return PaginatedReviews(
        reviews=[ReviewOut.model_validate(r) for r in reviews],
        pagination=build_pagination(page, limit, total),
    )


@router.get("/instructor/reviews", response_model=PaginatedReviews)
async def instructor_reviews_endpoint(current_user: InstructorDep, db: DBSessionDep, pages: PageDep):
    """Reviews left on any of the caller's courses."""
    page, limit = pages
    total, reviews = await list_instructor_reviews(db, current_user.id, page, limit)
    return PaginatedReviews(
        reviews=[ReviewOut.model_validate(r) for r in reviews],
        pagination=build_pagination(page, limit, total),
    )
