from dataclasses import dataclass

from fastapi import Depends, Header, Query

from contentdesk.config import settings
from contentdesk.errors import ServiceError
from contentdesk.models import ArticleStatus


# ---------------------------------------------------------------------------
# Caller identity (trusted from the transport layer)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Caller:
    id: int
    role: str

    @property
    def is_privileged(self) -> bool:
        return self.role in settings.PRIVILEGED_ROLES


def get_caller(
    x_user_id: int | None = Header(None, description="Authenticated user id."),
    x_user_role: str = Header("author", description="Role of the authenticated user."),
) -> Caller | None:
    if x_user_id is None:
        return None
    return Caller(id=x_user_id, role=x_user_role)


def require_caller(caller: Caller | None = Depends(get_caller)) -> Caller:
    if caller is None:
        raise ServiceError.forbidden("Authentication required")
    return caller


def require_privileged(caller: Caller = Depends(require_caller)) -> Caller:
    if not caller.is_privileged:
        raise ServiceError.forbidden()
    return caller


# ---------------------------------------------------------------------------
# Listing query parameters
# ---------------------------------------------------------------------------

class PaginationParams:
    """
    Reusable dependency for ``page`` / ``limit``.

    ``limit`` is additionally clamped to ``settings.MAX_PAGE_SIZE`` so a
    settings change is enough to lower the ceiling.
    """

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number (1-based)."),
        limit: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            le=100,
            description="Items per page (max 100).",
        ),
    ) -> None:
        self.page = page
        self.limit = min(limit, settings.MAX_PAGE_SIZE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class ArticleListParams(PaginationParams):
    """Pagination plus the article listing filters and sort."""

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number (1-based)."),
        limit: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            le=100,
            description="Items per page (max 100).",
        ),
        search: str | None = Query(None, max_length=200, description="Substring to look for."),
        status: ArticleStatus | None = Query(None),
        category: str | None = Query(None, description="Category id or slug."),
        author: int | None = Query(None, description="Author user id."),
        featured: bool | None = Query(None),
        sort_by: str = Query("createdAt", alias="sortBy"),
        sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    ) -> None:
        super().__init__(page, limit)
        self.search = search
        self.status = status
        self.category = category
        self.author = author
        self.featured = featured
        self.sort_by = sort_by
        self.sort_order = sort_order
