from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from contentdesk.cache import cache
from contentdesk.database import get_db
from contentdesk.dependencies import Caller, require_privileged
from contentdesk.schemas import CategoryCreate, CategoryUpdate, ItemEnvelope
from contentdesk.services import category_service

router = APIRouter(prefix="/api/v1/categories", tags=["categories"])


@router.get("", response_model=ItemEnvelope)
async def list_categories(
    search: str | None = Query(None, max_length=50),
    db: AsyncSession = Depends(get_db),
):
    return {"success": True, "data": await category_service.get_categories(db, search)}


@router.get("/{identifier}", response_model=ItemEnvelope)
async def get_category(identifier: str, db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": await category_service.get_category(db, identifier)}


@router.post("", status_code=201, response_model=ItemEnvelope)
async def create_category(
    data: CategoryCreate,
    caller: Caller = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    category = await category_service.create_category(db, data)
    await db.commit()
    await cache.invalidate("articles")
    return {"success": True, "data": category, "message": "Category created"}


@router.put("/{category_id}", response_model=ItemEnvelope)
async def update_category(
    category_id: int,
    data: CategoryUpdate,
    caller: Caller = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    category = await category_service.update_category(db, category_id, data)
    await db.commit()
    await cache.invalidate("articles")
    return {"success": True, "data": category, "message": "Category updated"}


@router.delete("/{category_id}", response_model=ItemEnvelope)
async def delete_category(
    category_id: int,
    caller: Caller = Depends(require_privileged),
    db: AsyncSession = Depends(get_db),
):
    await category_service.delete_category(db, category_id)
    await db.commit()
    await cache.invalidate("articles")
    return {"success": True, "message": "Category deleted"}
