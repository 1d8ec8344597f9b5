"""
Article service: the write pipeline and single-article reads.

Design notes
------------
- Every write runs the same explicit pipeline: sanitize each rich-text or
  plain-text field, derive the slug, apply the publish transition, then
  flush.  Nothing relies on ORM-level setters or hooks.
- The slug pre-check in ``contentdesk.slugs`` is advisory.  The flush that
  assigns a slug runs inside a SAVEPOINT; when the unique index rejects it
  the savepoint is rolled back and derivation resumes from the next
  counter, up to ``settings.SLUG_MAX_ATTEMPTS`` times.
- Existence is checked before authorization on update and delete.
- Relationships are ``noload`` on the model, so every read that needs them
  goes through ``with_relations`` (joinedload author, selectinload tags and
  categories).
- Service functions flush but do not commit.  Routers commit a write and
  only then invalidate the ``articles`` cache namespace; ``get_db`` rolls
  back on error.
"""
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from contentdesk.assets import EXTENSIONS, AssetStore
from contentdesk.cache import cache
from contentdesk.config import settings
from contentdesk.dependencies import Caller
from contentdesk.errors import ServiceError
from contentdesk.models import Article, Category, Tag, User
from contentdesk.publishing import apply_status, compute_read_time
from contentdesk.sanitizer import FieldPolicy, sanitize, sanitize_keywords, sanitize_tags
from contentdesk.schemas import (
    META_DESCRIPTION_MAX,
    META_TITLE_MAX,
    TERM_MAX,
    ArticleCreate,
    ArticleUpdate,
    FeaturedImage,
)
from contentdesk.slugs import base_slug, candidate, free_counter

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _author_to_dict(author: User | None) -> dict | None:
    if author is None:
        return None
    return {"id": author.id, "username": author.username, "display_name": author.display_name}


def article_to_dict(article: Article, detail: bool = False) -> dict:
    """Serialise an Article; *detail* adds the full content body."""
    data = {
        "id": article.id,
        "title": article.title,
        "slug": article.slug,
        "excerpt": article.excerpt,
        "status": article.status,
        "published_at": _iso(article.published_at),
        "featured_image": (
            {"url": article.featured_image_url, "reference_id": article.featured_image_ref}
            if article.featured_image_url
            else None
        ),
        "read_time": article.read_time,
        "is_featured": article.is_featured,
        "meta": {
            "title": article.meta_title,
            "description": article.meta_description,
            "keywords": list(article.meta_keywords or []),
        },
        "created_at": _iso(article.created_at),
        "updated_at": _iso(article.updated_at),
        "author_id": article.author_id,
        "author": _author_to_dict(article.author),
        "tags": [t.name for t in article.tags],
        # Category links are optional on read.
        "categories": [{"id": c.id, "name": c.name, "slug": c.slug} for c in article.categories],
    }
    if detail:
        data["content"] = article.content
    return data


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def with_relations(q):
    return q.options(
        joinedload(Article.author),
        selectinload(Article.tags),
        selectinload(Article.categories),
    ).execution_options(populate_existing=True)


async def _load(db: AsyncSession, article_id: int) -> Article | None:
    result = await db.execute(with_relations(select(Article).where(Article.id == article_id)))
    return result.unique().scalar_one_or_none()


async def find_article(db: AsyncSession, identifier: str | int) -> Article | None:
    """Resolve *identifier* as a numeric id first, then as a slug."""
    ident = str(identifier).strip()
    if ident.isdigit():
        article = await _load(db, int(ident))
        if article is not None:
            return article
    result = await db.execute(with_relations(select(Article).where(Article.slug == ident.lower())))
    return result.unique().scalar_one_or_none()


# ---------------------------------------------------------------------------
# Field pipeline
# ---------------------------------------------------------------------------

def _set_content(article: Article, raw: str) -> None:
    clean = sanitize(raw, FieldPolicy.CONTENT)
    if not clean:
        raise ServiceError.validation("content", "Content is empty after sanitization")
    article.content = clean
    article.read_time = compute_read_time(clean)


def _clean_excerpt(raw: str | None) -> str | None:
    return sanitize(raw, FieldPolicy.EXCERPT) or None


def _within(field: str, value: str, limit: int) -> str:
    # Bounds apply to the stored, entity-escaped form.
    if len(value) > limit:
        raise ServiceError.validation(
            field, f"{field} must be at most {limit} characters after sanitization"
        )
    return value


def _set_meta(article: Article, meta: dict[str, Any]) -> None:
    if "title" in meta:
        clean = sanitize(meta["title"], FieldPolicy.PLAIN)
        article.meta_title = _within("meta.title", clean, META_TITLE_MAX) or None
    if "description" in meta:
        clean = sanitize(meta["description"], FieldPolicy.PLAIN)
        article.meta_description = _within("meta.description", clean, META_DESCRIPTION_MAX) or None
    if "keywords" in meta:
        article.meta_keywords = [
            _within("meta.keywords", k, TERM_MAX) for k in sanitize_keywords(meta["keywords"])
        ]


def _clean_tags(raw: list[str]) -> list[str]:
    return [_within("tags", name, TERM_MAX) for name in sanitize_tags(raw)]


def _set_featured_image(article: Article, image: FeaturedImage | None) -> None:
    article.featured_image_url = image.url if image else None
    article.featured_image_ref = image.reference_id if image else None


async def _resolve_tags(db: AsyncSession, names: list[str]) -> list[Tag]:
    """
    Return Tag rows for *names* (already sanitized), creating missing ones
    within the caller's transaction.
    """
    if not names:
        return []
    result = await db.execute(select(Tag).where(Tag.name.in_(names)))
    existing = {tag.name: tag for tag in result.scalars()}
    tags: list[Tag] = []
    for name in names:
        tag = existing.get(name)
        if tag is None:
            tag = Tag(name=name)
            db.add(tag)
            await db.flush()
        tags.append(tag)
    return tags


async def _resolve_categories(db: AsyncSession, ids: list[int]) -> list[Category]:
    wanted = list(dict.fromkeys(ids))
    if not wanted:
        return []
    result = await db.execute(select(Category).where(Category.id.in_(wanted)))
    found = {c.id: c for c in result.scalars()}
    missing = [i for i in wanted if i not in found]
    if missing:
        raise ServiceError.validation(
            "categories", f"Unknown category id(s): {', '.join(map(str, missing))}"
        )
    return [found[i] for i in wanted]


def _is_slug_violation(exc: IntegrityError) -> bool:
    return "slug" in str(exc.orig).lower()


async def _flush_with_unique_slug(
    db: AsyncSession,
    article: Article,
    title: str,
    excluding_id: int | None = None,
) -> None:
    """Assign the first free slug for *title* and flush, retrying on races."""
    base = base_slug(title)
    start = 0
    for attempt in range(1, settings.SLUG_MAX_ATTEMPTS + 1):
        counter = await free_counter(db, base, excluding_id, start)
        slug = candidate(base, counter)
        try:
            # begin_nested() flushes pending changes first, so only the slug
            # assignment (and the INSERT for new rows) sits in the savepoint.
            async with db.begin_nested():
                article.slug = slug
                db.add(article)
                await db.flush()
            return
        except IntegrityError as exc:
            if not _is_slug_violation(exc):
                raise
            logger.warning(
                "Slug %r lost a concurrent write (attempt %d/%d)",
                slug,
                attempt,
                settings.SLUG_MAX_ATTEMPTS,
            )
            start = counter + 1
            if excluding_id is not None:
                await db.refresh(article)
    raise ServiceError.conflict("article", "Could not allocate a unique slug; please retry")


def _authorize(article: Article, caller: Caller, action: str) -> None:
    if not (caller.is_privileged or article.author_id == caller.id):
        raise ServiceError.forbidden(f"Not authorized to {action} this article")


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def get_article(db: AsyncSession, identifier: str | int) -> dict:
    """Return the detail dict for an article addressed by id or slug."""
    key = await cache.key("articles", "detail", {"id": str(identifier)})
    cached = await cache.get(key)
    if cached:
        return cached

    article = await find_article(db, identifier)
    if article is None:
        raise ServiceError.not_found("article")

    data = article_to_dict(article, detail=True)
    await cache.set(key, data, ttl=settings.CACHE_TTL_DETAIL)
    return data


async def create_article(db: AsyncSession, data: ArticleCreate, author_id: int) -> dict:
    """Run the create pipeline for an article owned by *author_id*."""
    if await db.get(User, author_id) is None:
        raise ServiceError.not_found("author")
    categories = await _resolve_categories(db, data.categories)

    article = Article(
        title=data.title,
        author_id=author_id,
        is_featured=data.is_featured,
        meta_keywords=[],
    )
    _set_content(article, data.content)
    article.excerpt = _clean_excerpt(data.excerpt)
    _set_meta(article, data.meta.model_dump())
    _set_featured_image(article, data.featured_image)
    apply_status(article, data.status)
    article.tags = await _resolve_tags(db, _clean_tags(data.tags))
    article.categories = categories

    await _flush_with_unique_slug(db, article, data.title)
    logger.info(
        "Article created",
        extra={"article_id": article.id, "slug": article.slug, "author_id": author_id},
    )

    return article_to_dict(await _load(db, article.id), detail=True)


async def update_article(
    db: AsyncSession, article_id: int, data: ArticleUpdate, caller: Caller
) -> dict:
    """
    Partially update an article.  Only fields present in the payload are
    touched; the slug is re-derived only when the title changes and the
    read time only when the content changes.
    """
    article = await _load(db, article_id)
    if article is None:
        raise ServiceError.not_found("article")
    _authorize(article, caller, "update")

    changes = data.model_dump(exclude_unset=True)
    categories = None
    if changes.get("categories") is not None:
        categories = await _resolve_categories(db, changes["categories"])

    title_changed = "title" in changes and changes["title"] != article.title
    if "title" in changes:
        article.title = changes["title"]
    if "content" in changes:
        _set_content(article, changes["content"])
    if "excerpt" in changes:
        article.excerpt = _clean_excerpt(changes["excerpt"])
    if changes.get("meta") is not None:
        _set_meta(article, changes["meta"])
    if "featured_image" in changes:
        _set_featured_image(article, data.featured_image)
    if changes.get("is_featured") is not None:
        article.is_featured = changes["is_featured"]
    if changes.get("status") is not None:
        apply_status(article, changes["status"])
    if changes.get("tags") is not None:
        article.tags = await _resolve_tags(db, _clean_tags(changes["tags"]))
    if categories is not None:
        article.categories = categories

    if title_changed:
        await _flush_with_unique_slug(db, article, article.title, excluding_id=article.id)
    else:
        await db.flush()
    logger.info("Article updated", extra={"article_id": article_id, "caller_id": caller.id})

    return article_to_dict(await _load(db, article_id), detail=True)


async def delete_article(
    db: AsyncSession, article_id: int, caller: Caller, assets: AssetStore
) -> None:
    """
    Hard-delete an article, then make a best-effort attempt to remove its
    featured image from the asset store.  A failed cleanup is logged only.
    """
    article = await _load(db, article_id)
    if article is None:
        raise ServiceError.not_found("article")
    _authorize(article, caller, "delete")

    reference_id = article.featured_image_ref
    await db.delete(article)
    await db.flush()
    logger.info("Article deleted", extra={"article_id": article_id, "caller_id": caller.id})

    if reference_id:
        try:
            await assets.delete(reference_id)
        except Exception:
            logger.warning("Asset cleanup failed for %s", reference_id, exc_info=True)


async def upload_featured_image(assets: AssetStore, data: bytes, content_type: str | None) -> dict:
    """Validate an image blob and hand it to the asset store."""
    if content_type not in EXTENSIONS:
        raise ServiceError.validation("file", "Only JPEG, PNG, and WebP images are allowed")
    if not data:
        raise ServiceError.validation("file", "File is empty")
    if len(data) > settings.ASSET_MAX_BYTES:
        raise ServiceError.validation(
            "file", f"File exceeds the {settings.ASSET_MAX_BYTES // (1024 * 1024)} MB limit"
        )

    try:
        stored = await assets.upload(data, content_type)
    except Exception as exc:
        logger.exception("Asset upload failed")
        raise ServiceError.external("asset_store", "Failed to upload image") from exc
    return {"url": stored.url, "reference_id": stored.reference_id}
