"""Database seeder: authors, categories, tags and a spread of articles."""
import argparse
import asyncio
import random
import time
from datetime import datetime, timedelta, timezone

from contentdesk.database import Base, async_session, engine
from contentdesk.models import Article, ArticleStatus, Category, Tag, User
from contentdesk.publishing import compute_read_time

TAGS = ["python", "fastapi", "postgresql", "redis", "docker", "kubernetes",
        "react", "typescript", "aws", "devops", "testing", "performance",
        "security", "design", "seo", "writing"]

CATEGORIES = ["Engineering", "Product", "Design", "Marketing", "Company News"]


async def seed(small: bool = False):
    num_users = 5 if small else 25
    num_articles = 100 if small else 5000

    print(f"Seeding: {num_users} authors, {len(CATEGORIES)} categories, {num_articles} articles")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        tags = [Tag(name=name) for name in TAGS]
        categories = [
            Category(name=name, slug=name.lower().replace(" ", "-")) for name in CATEGORIES
        ]
        users = [
            User(
                username=f"author_{i:03d}",
                email=f"author_{i:03d}@example.com",
                display_name=f"Author {i}",
                bio=f"Author number {i}. Writes about technology.",
            )
            for i in range(num_users)
        ]
        session.add_all(tags + categories + users)
        await session.flush()
        print(f"  Created {len(tags)} tags, {len(categories)} categories, {len(users)} authors")

        now = datetime.now(timezone.utc)
        batch_size = 500
        for batch_start in range(0, num_articles, batch_size):
            batch_end = min(batch_start + batch_size, num_articles)
            for i in range(batch_start, batch_end):
                created = now - timedelta(days=random.randint(0, 365), minutes=random.randint(0, 1440))
                roll = random.random()
                status = (
                    ArticleStatus.PUBLISHED if roll < 0.8
                    else ArticleStatus.DRAFT if roll < 0.95
                    else ArticleStatus.ARCHIVED
                )
                topic = random.choice(TAGS)
                content = f"<p>This is the body of article {i} about {topic}.</p>" * random.randint(5, 60)
                article = Article(
                    title=f"Article {i}: working with {topic}",
                    slug=f"article-{i}-working-with-{topic}",
                    content=content,
                    excerpt=f"<p>A practical look at {topic}.</p>",
                    status=status.value,
                    published_at=created if status is not ArticleStatus.DRAFT else None,
                    read_time=compute_read_time(content),
                    is_featured=random.random() < 0.05,
                    meta_keywords=[topic],
                    created_at=created,
                    author_id=random.choice(users).id,
                )
                article.tags.extend(random.sample(tags, k=random.randint(1, 4)))
                article.categories.extend(random.sample(categories, k=random.randint(0, 2)))
                session.add(article)

            await session.flush()
            print(f"  Batch {batch_start}-{batch_end}: articles created")

        await session.commit()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")


def main():
    parser = argparse.ArgumentParser(description="Seed the content database")
    parser.add_argument("--small", action="store_true", help="Use small dataset (100 articles)")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
