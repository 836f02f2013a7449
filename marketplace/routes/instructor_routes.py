from fastapi import APIRouter, Query
import logging

from marketplace.crud import instructor_analytics
from marketplace.dependencies import DBSessionDep, InstructorDep
from marketplace.schemas import InstructorAnalytics

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/instructor", tags=["instructor"])


@router.get("/analytics", response_model=InstructorAnalytics)
async def analytics_endpoint(
    current_user: InstructorDep,
    db: DBSessionDep,
    days: int = Query(30, ge=1, le=365, description="Window for recent enrollments"),
):
    """Students, revenue and ratings across the caller's courses."""
    return InstructorAnalytics(**await instructor_analytics(db, current_user.id, days))
