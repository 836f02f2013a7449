from typing import List
import logging

from fastapi import APIRouter, status

from marketplace.crud import create_category, list_categories
from marketplace.dependencies import AdminDep, DBSessionDep
from marketplace.schemas import CategoryCreate, CategoryOut, CategoryWithCount

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("", response_model=List[CategoryWithCount])
async def list_categories_endpoint(db: DBSessionDep):
    rows = await list_categories(db)
    return [
        CategoryWithCount(**CategoryOut.model_validate(category).model_dump(), course_count=count)
        for category, count in rows
    ]


@router.post("", response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
async def create_category_endpoint(payload: CategoryCreate, current_user: AdminDep, db: DBSessionDep):
    category = await create_category(db, payload.name, payload.description)
    logger.info(f"Category '{category.name}' created by admin {current_user.id}")
    return category
