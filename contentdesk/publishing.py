"""Publish-state transition and derived reading time."""
import math
from datetime import datetime, timezone

from contentdesk.models import Article, ArticleStatus
from contentdesk.sanitizer import strip_markup

WORDS_PER_MINUTE = 200


def apply_status(article: Article, status: ArticleStatus | str, now: datetime | None = None) -> None:
    """
    Assign *status* to *article*.

    Any state may move to any other.  The first entry into ``published``
    stamps ``published_at``; it is never cleared or overwritten afterwards.
    """
    status = ArticleStatus(status)
    article.status = status.value
    if status is ArticleStatus.PUBLISHED and article.published_at is None:
        article.published_at = now or datetime.now(timezone.utc)


def compute_read_time(content: str) -> int:
    """Minutes to read sanitized *content*, at least 1, rounded half up."""
    words = len(strip_markup(content).split())
    return max(1, math.floor(words / WORDS_PER_MINUTE + 0.5))
