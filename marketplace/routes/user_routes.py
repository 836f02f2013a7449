from fastapi import APIRouter
import logging

from marketplace.auth import get_user_by_id
from marketplace.crud import list_enrollments, update_profile
from marketplace.dependencies import CurrentUserDep, DBSessionDep, PageDep
from marketplace.errors import UserNotFound
from marketplace.models import EnrollmentStatus
from marketplace.routes.auth_routes import profile_response
from marketplace.schemas import EnrollmentOut, PaginatedEnrollments, UpdateProfileRequest, UserProfileResponse
from marketplace.utils import build_pagination

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/profile", response_model=UserProfileResponse)
async def get_profile(current_user: CurrentUserDep, db: DBSessionDep):
    user = await get_user_by_id(db, current_user.id)
    if user is None:
        raise UserNotFound()
    return await profile_response(db, user)


@router.put("/profile", response_model=UserProfileResponse)
async def put_profile(payload: UpdateProfileRequest, current_user: CurrentUserDep, db: DBSessionDep):
    user = await get_user_by_id(db, current_user.id)
    if user is None:
        raise UserNotFound()
    user = await update_profile(db, user, payload)
    logger.info(f"Profile updated for user: {user.email}")
    return await profile_response(db, user)


@router.get("/enrollments", response_model=PaginatedEnrollments)
async def my_enrollments(current_user: CurrentUserDep, db: DBSessionDep, pages: PageDep):
    """Active and completed enrollments of the caller."""
    page, limit = pages
    total, enrollments = await list_enrollments(
        db, current_user.id, page, limit, [EnrollmentStatus.ACTIVE, EnrollmentStatus.COMPLETED]
    )
    return PaginatedEnrollments(
        enrollments=[EnrollmentOut.model_validate(e) for e in enrollments],
        pagination=build_pagination(page, limit, total),
    )
