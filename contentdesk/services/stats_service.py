"""
Statistics aggregator.

All counts come from one aggregate SELECT over ``articles`` using
conditional sums, so the status breakdown and the publication windows
describe the same instant.  Window boundaries are derived once from a
single ``now`` in ``settings.TIMEZONE``:

- today: local midnight up to (excluding) the next midnight
- this week: the most recent Sunday 00:00 up to ``now``
- this month: the first of the month 00:00 up to ``now``

The "recently published" preview is a second, independent read.
"""
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import and_, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from contentdesk.cache import cache
from contentdesk.config import settings
from contentdesk.models import Article, ArticleStatus

RECENT_LIMIT = 5


@dataclass(frozen=True)
class StatsWindows:
    now: datetime
    today_start: datetime
    tomorrow_start: datetime
    week_start: datetime
    month_start: datetime

    def as_dict(self) -> dict:
        return {name: value.isoformat() for name, value in self.__dict__.items()}


def compute_windows(now: datetime, tz: ZoneInfo) -> StatsWindows:
    """
    Derive every window boundary from *now*.  Naive values are taken as UTC.
    Boundaries are returned in UTC, which is how timestamps are stored.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(tz)
    today = local.date()
    # date.weekday(): Monday=0 ... Sunday=6
    days_since_sunday = (today.weekday() + 1) % 7

    def _midnight(day):
        return datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)

    return StatsWindows(
        now=now.astimezone(timezone.utc),
        today_start=_midnight(today),
        tomorrow_start=_midnight(today + timedelta(days=1)),
        week_start=_midnight(today - timedelta(days=days_since_sunday)),
        month_start=_midnight(today.replace(day=1)),
    )


def _count_where(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


def _recent_to_dict(article: Article) -> dict:
    author = article.author
    return {
        "id": article.id,
        "title": article.title,
        "slug": article.slug,
        "created_at": article.created_at.isoformat() if article.created_at else None,
        "published_at": article.published_at.isoformat() if article.published_at else None,
        "author": {"id": author.id, "username": author.username} if author else None,
    }


async def compute_stats(db: AsyncSession, now: datetime | None = None) -> dict:
    """Return a consistent statistics snapshot as of *now* (default: current time)."""
    live = now is None
    windows = compute_windows(now or datetime.now(timezone.utc), ZoneInfo(settings.TIMEZONE))

    key = await cache.key("articles", "stats", {}) if live else None
    cached = await cache.get(key) if key else None
    if cached:
        return cached

    published = Article.status == ArticleStatus.PUBLISHED.value
    snapshot_q = select(
        func.count(Article.id).label("total"),
        _count_where(published).label("published"),
        _count_where(Article.status == ArticleStatus.DRAFT.value).label("draft"),
        _count_where(Article.status == ArticleStatus.ARCHIVED.value).label("archived"),
        _count_where(Article.is_featured.is_(True)).label("featured"),
        _count_where(
            and_(
                published,
                Article.published_at >= windows.today_start,
                Article.published_at < windows.tomorrow_start,
            )
        ).label("published_today"),
        _count_where(
            and_(
                published,
                Article.published_at >= windows.week_start,
                Article.published_at <= windows.now,
            )
        ).label("published_this_week"),
        _count_where(
            and_(
                published,
                Article.published_at >= windows.month_start,
                Article.published_at <= windows.now,
            )
        ).label("published_this_month"),
    )
    row = (await db.execute(snapshot_q)).one()

    recent_q = (
        select(Article)
        .where(published, Article.published_at.is_not(None))
        .options(joinedload(Article.author))
        .order_by(Article.published_at.desc(), Article.id.desc())
        .limit(RECENT_LIMIT)
    )
    recent = (await db.execute(recent_q)).unique().scalars().all()

    snapshot = {name: int(value) for name, value in row._mapping.items()}
    snapshot["recent"] = [_recent_to_dict(a) for a in recent]
    snapshot["windows"] = windows.as_dict()
    snapshot["generated_at"] = windows.now.isoformat()

    await cache.set(key, snapshot, ttl=settings.CACHE_TTL_STATS)
    return snapshot
