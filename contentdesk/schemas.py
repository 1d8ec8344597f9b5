from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from contentdesk.models import ArticleStatus, ContactStatus

_EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
_PHONE_PATTERN = r"^\+?[1-9]\d{0,15}$"


class _Input(BaseModel):
    # Every bound below applies to the trimmed value.
    model_config = ConfigDict(str_strip_whitespace=True)


# --- User ---

class UserCreate(_Input):
    username: str = Field(min_length=1, max_length=50)
    email: str = Field(max_length=255, pattern=_EMAIL_PATTERN)
    display_name: str | None = Field(None, max_length=150)
    bio: str | None = None


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    display_name: str | None = None
    bio: str | None = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# --- Category ---

CATEGORY_DESCRIPTION_MAX = 500


class CategoryCreate(_Input):
    name: str = Field(min_length=2, max_length=50)
    description: str | None = Field(None, max_length=CATEGORY_DESCRIPTION_MAX)


class CategoryUpdate(_Input):
    name: str | None = Field(None, min_length=2, max_length=50)
    description: str | None = Field(None, max_length=CATEGORY_DESCRIPTION_MAX)


# --- Article ---

class FeaturedImage(_Input):
    url: str = Field(min_length=1, max_length=1000)
    reference_id: str | None = Field(None, max_length=255)


META_TITLE_MAX = 70
META_DESCRIPTION_MAX = 160
# Width of ``tags.name``; also applied to each meta keyword.
TERM_MAX = 100

Term = Annotated[str, Field(max_length=TERM_MAX)]


class ArticleMeta(_Input):
    title: str | None = Field(None, max_length=META_TITLE_MAX)
    description: str | None = Field(None, max_length=META_DESCRIPTION_MAX)
    keywords: list[Term] = []


class ArticleCreate(_Input):
    title: str = Field(min_length=3, max_length=200)
    content: str = Field(min_length=50)
    excerpt: str | None = Field(None, max_length=1000)
    tags: list[Term] = []
    categories: list[int] = []
    status: ArticleStatus = ArticleStatus.DRAFT
    is_featured: bool = False
    featured_image: FeaturedImage | None = None
    meta: ArticleMeta = Field(default_factory=ArticleMeta)


class ArticleUpdate(_Input):
    title: str | None = Field(None, min_length=3, max_length=200)
    content: str | None = Field(None, min_length=50)
    excerpt: str | None = Field(None, max_length=1000)
    tags: list[Term] | None = None
    categories: list[int] | None = None
    status: ArticleStatus | None = None
    is_featured: bool | None = None
    featured_image: FeaturedImage | None = None
    meta: ArticleMeta | None = None

    @field_validator("title", "content")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


# --- Contact ---

class ContactCreate(_Input):
    full_name: str = Field(min_length=2, max_length=100, pattern=r"^[A-Za-z\s]+$")
    email: str = Field(max_length=255, pattern=_EMAIL_PATTERN)
    phone_no: str = Field(pattern=_PHONE_PATTERN)
    country: str = Field(min_length=2, max_length=50)
    requirements: str = Field(min_length=10, max_length=1000)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.lower()


class ContactStatusUpdate(BaseModel):
    status: ContactStatus


# --- Envelopes ---

class Pagination(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total: int
    page: int
    limit: int
    pages: int
    has_next: bool = Field(alias="hasNext")
    has_prev: bool = Field(alias="hasPrev")


class ListEnvelope(BaseModel):
    success: bool = True
    data: list[Any]
    pagination: Pagination
    filters: dict[str, Any] = {}


class ItemEnvelope(BaseModel):
    success: bool = True
    data: Any = None
    message: str | None = None
