"""
Category service: CRUD for categories plus id-or-slug resolution.

Name uniqueness is enforced by the unique index on ``categories.name``; a
violation surfaces as a 409.  The slug is derived from the name on create
and rename and is not checked for uniqueness on its own.  Writes touch
article listings, so routers commit and then invalidate ``articles``.
"""
import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from contentdesk.errors import ServiceError
from contentdesk.models import Category, article_categories
from contentdesk.sanitizer import FieldPolicy, sanitize
from contentdesk.schemas import CATEGORY_DESCRIPTION_MAX, CategoryCreate, CategoryUpdate
from contentdesk.slugs import slugify

logger = logging.getLogger(__name__)

# Width of ``categories.slug``.
CATEGORY_SLUG_MAX = 80


def category_to_dict(category: Category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "created_at": category.created_at.isoformat() if category.created_at else None,
        "updated_at": category.updated_at.isoformat() if category.updated_at else None,
    }


def _category_slug(name: str) -> str:
    return slugify(name, CATEGORY_SLUG_MAX) or "category"


def _clean_description(raw: str | None) -> str | None:
    clean = sanitize(raw, FieldPolicy.PLAIN)
    if len(clean) > CATEGORY_DESCRIPTION_MAX:
        raise ServiceError.validation(
            "description",
            f"description must be at most {CATEGORY_DESCRIPTION_MAX} characters after sanitization",
        )
    return clean or None


async def resolve_category(db: AsyncSession, identifier: str | int) -> Category | None:
    """Resolve *identifier* as a numeric id first, falling back to a slug."""
    ident = str(identifier).strip()
    if ident.isdigit():
        category = await db.get(Category, int(ident))
        if category is not None:
            return category
    result = await db.execute(
        select(Category).where(Category.slug == ident.lower()).order_by(Category.id).limit(1)
    )
    return result.scalar_one_or_none()


async def _flush_unique_name(db: AsyncSession, category: Category) -> None:
    db.add(category)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise ServiceError.conflict("category", "A category with this name already exists") from exc


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def get_categories(db: AsyncSession, search: str | None = None) -> list[dict]:
    """Return all categories, newest first, optionally filtered by name."""
    q = select(Category).order_by(Category.created_at.desc(), Category.id.desc())
    if search:
        q = q.where(Category.name.icontains(search, autoescape=True))
    result = await db.execute(q)
    return [category_to_dict(c) for c in result.scalars().all()]


async def get_category(db: AsyncSession, identifier: str | int) -> dict:
    category = await resolve_category(db, identifier)
    if category is None:
        raise ServiceError.not_found("category")
    return category_to_dict(category)


async def create_category(db: AsyncSession, data: CategoryCreate) -> dict:
    category = Category(
        name=data.name,
        slug=_category_slug(data.name),
        description=_clean_description(data.description),
    )
    await _flush_unique_name(db, category)
    logger.info("Category created", extra={"category_id": category.id, "category_slug": category.slug})
    return category_to_dict(category)


async def update_category(db: AsyncSession, category_id: int, data: CategoryUpdate) -> dict:
    category = await db.get(Category, category_id)
    if category is None:
        raise ServiceError.not_found("category")

    changes = data.model_dump(exclude_unset=True)
    if changes.get("name"):
        category.name = changes["name"]
        category.slug = _category_slug(changes["name"])
    if "description" in changes:
        category.description = _clean_description(changes["description"])

    await _flush_unique_name(db, category)
    await db.refresh(category)
    logger.info("Category updated", extra={"category_id": category_id})
    return category_to_dict(category)


async def delete_category(db: AsyncSession, category_id: int) -> None:
    """
    Delete a category.  Articles are untouched; only their links to this
    category are removed.
    """
    category = await db.get(Category, category_id)
    if category is None:
        raise ServiceError.not_found("category")

    await db.execute(delete(article_categories).where(article_categories.c.category_id == category_id))
    await db.delete(category)
    await db.flush()
    logger.info("Category deleted", extra={"category_id": category_id})
