"""
Listing engine: filtered, sorted, paginated article queries.

Two SQL statements are issued per page: a COUNT over the filtered set and
the page SELECT (plus the selectin loads for tags and categories).  They
are separate reads, so a write landing between them can make ``total``
and the returned page disagree slightly.  That is accepted for a listing.
"""
import math
from dataclasses import asdict, dataclass, field

from sqlalchemy import asc, desc, func, nulls_last, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from contentdesk.cache import cache
from contentdesk.config import settings
from contentdesk.errors import ServiceError
from contentdesk.models import Article, ArticleStatus, Category, Tag
from contentdesk.services.article_service import with_relations, article_to_dict
from contentdesk.services.category_service import resolve_category

# Public sort keys mapped to columns; anything else is rejected.
SORTABLE_COLUMNS = {
    "title": Article.title,
    "createdAt": Article.created_at,
    "updatedAt": Article.updated_at,
    "publishedAt": Article.published_at,
}

SORT_ORDERS = ("asc", "desc")


@dataclass
class ListingQuery:
    page: int = 1
    limit: int = 10
    search: str | None = None
    status: str | None = None
    category: str | None = None
    author: int | None = None
    featured: bool | None = None
    sort_by: str = "createdAt"
    sort_order: str = "desc"

    def validate(self) -> None:
        if self.page < 1:
            raise ServiceError.validation("page", "page must be >= 1")
        if not 1 <= self.limit <= settings.MAX_PAGE_SIZE:
            raise ServiceError.validation(
                "limit", f"limit must be between 1 and {settings.MAX_PAGE_SIZE}"
            )
        if self.status is not None and self.status not in {s.value for s in ArticleStatus}:
            raise ServiceError.validation("status", "status must be draft, published, or archived")
        if self.sort_by not in SORTABLE_COLUMNS:
            raise ServiceError.validation(
                "sortBy", f"sortBy must be one of: {', '.join(SORTABLE_COLUMNS)}"
            )
        if self.sort_order not in SORT_ORDERS:
            raise ServiceError.validation("sortOrder", "sortOrder must be asc or desc")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def filters(self) -> dict:
        applied = {
            "search": self.search,
            "status": self.status,
            "category": self.category,
            "author": self.author,
            "featured": self.featured,
        }
        applied = {k: v for k, v in applied.items() if v not in (None, "")}
        applied["sortBy"] = self.sort_by
        applied["sortOrder"] = self.sort_order
        return applied


@dataclass
class ListingResult:
    items: list[dict]
    total: int
    page: int
    limit: int
    filters: dict = field(default_factory=dict)

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total > 0 else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    def to_envelope(self) -> dict:
        return {
            "success": True,
            "data": self.items,
            "pagination": {
                "total": self.total,
                "page": self.page,
                "limit": self.limit,
                "pages": self.pages,
                "hasNext": self.has_next,
                "hasPrev": self.has_prev,
            },
            "filters": self.filters,
        }


def _search_condition(text: str):
    """Case-insensitive literal substring match across the searchable fields."""
    return or_(
        Article.title.icontains(text, autoescape=True),
        Article.content.icontains(text, autoescape=True),
        Article.excerpt.icontains(text, autoescape=True),
        Article.tags.any(Tag.name.icontains(text, autoescape=True)),
    )


async def _build_conditions(db: AsyncSession, query: ListingQuery) -> list:
    conditions = []
    if query.search:
        conditions.append(_search_condition(query.search))
    if query.status:
        conditions.append(Article.status == query.status)
    if query.category:
        category = await resolve_category(db, query.category)
        if category is None:
            raise ServiceError.not_found("category")
        conditions.append(Article.categories.any(Category.id == category.id))
    if query.author is not None:
        conditions.append(Article.author_id == query.author)
    if query.featured is not None:
        conditions.append(Article.is_featured.is_(query.featured))
    return conditions


async def list_articles(db: AsyncSession, query: ListingQuery) -> ListingResult:
    """
    Return one page of articles matching *query*.

    An unknown ``category`` raises a 404; a known category with no articles
    yields an empty page.
    """
    query.validate()
    key = await cache.key("articles", "list", asdict(query))
    cached = await cache.get(key)
    if cached:
        return ListingResult(**cached)

    conditions = await _build_conditions(db, query)

    # 1. Total count
    count_q = select(func.count()).select_from(Article).where(*conditions)
    total: int = (await db.execute(count_q)).scalar_one()

    # 2. Page rows; ties on the sort column break on id in the same direction.
    direction = desc if query.sort_order == "desc" else asc
    sort_col = SORTABLE_COLUMNS[query.sort_by]
    page_q = with_relations(
        select(Article)
        .where(*conditions)
        .order_by(nulls_last(direction(sort_col)), direction(Article.id))
        .offset(query.offset)
        .limit(query.limit)
    )
    articles = (await db.execute(page_q)).unique().scalars().all()

    result = ListingResult(
        items=[article_to_dict(a) for a in articles],
        total=total,
        page=query.page,
        limit=query.limit,
        filters=query.filters(),
    )
    await cache.set(key, asdict(result), ttl=settings.CACHE_TTL_LIST)
    return result
