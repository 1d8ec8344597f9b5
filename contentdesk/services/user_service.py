"""
User service: the author directory.

Identity and roles come from the transport layer; this table only exists so
article author references resolve to a name.  Username and email uniqueness
is enforced by unique constraints and surfaces as a 409.
"""
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from contentdesk.errors import ServiceError
from contentdesk.models import User
from contentdesk.schemas import UserCreate


def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "display_name": user.display_name,
        "bio": user.bio,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _article_summary_to_dict(article) -> dict:
    """Lightweight article entry embedded in the user detail view."""
    return {
        "id": article.id,
        "title": article.title,
        "slug": article.slug,
        "status": article.status,
        "published_at": article.published_at.isoformat() if article.published_at else None,
        "created_at": article.created_at.isoformat() if article.created_at else None,
    }


async def get_users(db: AsyncSession) -> list[dict]:
    q = select(User).order_by(User.created_at.desc(), User.id.desc())
    result = await db.execute(q)
    return [_user_to_dict(u) for u in result.scalars().all()]


async def get_user(db: AsyncSession, user_id: int) -> dict:
    """Return the user plus a summary of their articles (one extra SELECT)."""
    q = select(User).where(User.id == user_id).options(selectinload(User.articles))
    user = (await db.execute(q)).scalar_one_or_none()
    if user is None:
        raise ServiceError.not_found("user")

    data = _user_to_dict(user)
    data["articles"] = [_article_summary_to_dict(a) for a in user.articles]
    return data


async def create_user(db: AsyncSession, data: UserCreate) -> dict:
    user = User(
        username=data.username,
        email=data.email.lower(),
        display_name=data.display_name,
        bio=data.bio,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise ServiceError.conflict(
            "user", "A user with this username or email already exists"
        ) from exc
    return _user_to_dict(user)
