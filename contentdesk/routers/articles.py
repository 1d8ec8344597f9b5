from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from contentdesk.assets import AssetStore, get_asset_store
from contentdesk.cache import cache
from contentdesk.database import get_db
from contentdesk.dependencies import ArticleListParams, Caller, require_caller
from contentdesk.schemas import ArticleCreate, ArticleUpdate, ItemEnvelope, ListEnvelope
from contentdesk.services import article_service, listing_service, stats_service

router = APIRouter(prefix="/api/v1/articles", tags=["articles"])


@router.get("", response_model=ListEnvelope)
async def list_articles(
    params: ArticleListParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    query = listing_service.ListingQuery(
        page=params.page,
        limit=params.limit,
        search=params.search,
        status=params.status.value if params.status else None,
        category=params.category,
        author=params.author,
        featured=params.featured,
        sort_by=params.sort_by,
        sort_order=params.sort_order,
    )
    result = await listing_service.list_articles(db, query)
    return result.to_envelope()


# Registered before /{identifier} so "stats" is not taken for a slug.
@router.get("/stats", response_model=ItemEnvelope)
async def get_stats(db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": await stats_service.compute_stats(db)}


@router.get("/{identifier}", response_model=ItemEnvelope)
async def get_article(identifier: str, db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": await article_service.get_article(db, identifier)}


@router.post("/upload-image", status_code=201, response_model=ItemEnvelope)
async def upload_image(
    file: UploadFile = File(...),
    caller: Caller = Depends(require_caller),
    assets: AssetStore = Depends(get_asset_store),
):
    data = await file.read()
    stored = await article_service.upload_featured_image(assets, data, file.content_type)
    return {"success": True, "data": stored, "message": "Image uploaded"}


@router.post("", status_code=201, response_model=ItemEnvelope)
async def create_article(
    data: ArticleCreate,
    caller: Caller = Depends(require_caller),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.create_article(db, data, author_id=caller.id)
    await db.commit()
    await cache.invalidate("articles")
    return {"success": True, "data": article, "message": "Article created"}


@router.put("/{article_id}", response_model=ItemEnvelope)
async def update_article(
    article_id: int,
    data: ArticleUpdate,
    caller: Caller = Depends(require_caller),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.update_article(db, article_id, data, caller)
    await db.commit()
    await cache.invalidate("articles")
    return {"success": True, "data": article, "message": "Article updated"}


@router.delete("/{article_id}", response_model=ItemEnvelope)
async def delete_article(
    article_id: int,
    caller: Caller = Depends(require_caller),
    assets: AssetStore = Depends(get_asset_store),
    db: AsyncSession = Depends(get_db),
):
    await article_service.delete_article(db, article_id, caller, assets)
    await db.commit()
    await cache.invalidate("articles")
    return {"success": True, "message": "Article deleted"}
