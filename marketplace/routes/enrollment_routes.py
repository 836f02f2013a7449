from fastapi import APIRouter, Query, status
from typing import Optional
from uuid import UUID
import logging

from marketplace.crud import (
    cancel_enrollment, create_direct_enrollment, get_enrollment, list_enrollments, update_enrollment,
)
from marketplace.dependencies import CurrentUserDep, DBSessionDep, PageDep
from marketplace.models import EnrollmentStatus
from marketplace.schemas import EnrollmentCreate, EnrollmentOut, EnrollmentUpdate, PaginatedEnrollments
from marketplace.utils import build_pagination

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/enrollments", tags=["enrollments"])


@router.get("", response_model=PaginatedEnrollments)
async def list_enrollments_endpoint(
    current_user: CurrentUserDep,
    db: DBSessionDep,
    pages: PageDep,
    enrollment_status: Optional[EnrollmentStatus] = Query(None, alias="status"),
    course_id: Optional[UUID] = Query(None, alias="courseId"),
):
    page, limit = pages
    statuses = [enrollment_status] if enrollment_status else None
    total, enrollments = await list_enrollments(db, current_user.id, page, limit, statuses, course_id)
    return PaginatedEnrollments(
        enrollments=[EnrollmentOut.model_validate(e) for e in enrollments],
        pagination=build_pagination(page, limit, total),
    )


@router.post("", response_model=EnrollmentOut, status_code=status.HTTP_201_CREATED)
async def create_enrollment_endpoint(payload: EnrollmentCreate, current_user: CurrentUserDep, db: DBSessionDep):
    """Enroll directly. Paid courses go through ``/payments/create-intent`` instead."""
    enrollment = await create_direct_enrollment(db, current_user, payload.course_id)
    logger.info(f"User {current_user.id} enrolled in course {payload.course_id}")
    return enrollment


@router.get("/{enrollment_id}", response_model=EnrollmentOut)
async def get_enrollment_endpoint(enrollment_id: UUID, current_user: CurrentUserDep, db: DBSessionDep):
    return await get_enrollment(db, current_user, enrollment_id)


@router.patch("/{enrollment_id}", response_model=EnrollmentOut)
async def update_enrollment_endpoint(
    enrollment_id: UUID, payload: EnrollmentUpdate, current_user: CurrentUserDep, db: DBSessionDep
):
    return await update_enrollment(db, current_user, enrollment_id, payload)


@router.delete("/{enrollment_id}", response_model=EnrollmentOut)
async def cancel_enrollment_endpoint(enrollment_id: UUID, current_user: CurrentUserDep, db: DBSessionDep):
    enrollment = await cancel_enrollment(db, current_user, enrollment_id)
    logger.info(f"Enrollment {enrollment_id} cancelled by {current_user.id}")
    return enrollment
