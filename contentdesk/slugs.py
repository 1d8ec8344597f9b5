"""
Slug normalisation and unique slug derivation.

``derive_slug`` probes storage for a free ``base``, ``base-1``, ``base-2``...
The probe is only a hint: two writers can pass it with the same candidate,
so the unique index on ``articles.slug`` decides and the write path retries
with a higher starting counter (see ``article_service._flush_with_unique_slug``).
"""
import re
import unicodedata

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from contentdesk.models import Article

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")

FALLBACK_SLUG = "article"

# Width of ``articles.slug`` minus room for a "-N" counter suffix.
BASE_SLUG_MAX = 240


def slugify(text: str, max_length: int | None = None) -> str:
    """
    Lowercase *text* and collapse every non-alphanumeric run into one hyphen.

    Folding can expand a character into several ("㎉" -> "kcal"), so
    *max_length* caps the folded result rather than the input.
    """
    # Fold accents (e.g. "Café" -> "cafe") before dropping non-ASCII.
    folded = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    slug = _NON_ALNUM_RE.sub("-", folded.lower()).strip("-")
    if max_length is not None:
        slug = slug[:max_length].rstrip("-")
    return slug


def candidate(base: str, counter: int) -> str:
    return base if counter == 0 else f"{base}-{counter}"


async def slug_taken(db: AsyncSession, slug: str, excluding_id: int | None = None) -> bool:
    q = select(Article.id).where(Article.slug == slug)
    if excluding_id is not None:
        q = q.where(Article.id != excluding_id)
    return (await db.execute(q.limit(1))).first() is not None


def base_slug(title: str) -> str:
    return slugify(title, BASE_SLUG_MAX) or FALLBACK_SLUG


async def free_counter(
    db: AsyncSession,
    base: str,
    excluding_id: int | None = None,
    start: int = 0,
) -> int:
    """Return the first counter >= *start* whose candidate slug is unused."""
    counter = start
    while await slug_taken(db, candidate(base, counter), excluding_id):
        counter += 1
    return counter


async def derive_slug(
    db: AsyncSession,
    title: str,
    excluding_id: int | None = None,
    start: int = 0,
) -> str:
    """
    Return the first free slug for *title*, trying counters from *start*.

    *excluding_id* lets an article keep its own slug on update.
    """
    base = base_slug(title)
    return candidate(base, await free_counter(db, base, excluding_id, start))
