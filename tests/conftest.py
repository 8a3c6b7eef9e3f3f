"""Pytest configuration and shared fixtures."""

from datetime import UTC, datetime

import pytest

from navireader.models import ArticleRecord, Feed
from navireader.store import ArticleStore


def make_record(article_id: str = "article-1", **overrides) -> ArticleRecord:
    """Build an ArticleRecord with sensible defaults."""
    fields = {
        "id": article_id,
        "feed_url": "https://example.com/feed.xml",
        "title": f"Title of {article_id}",
        "link": f"https://example.com/{article_id}",
        "description": "A short summary.",
        "content": "First paragraph.\n\nSecond paragraph.",
        "author": "Jane Doe",
        "published": datetime(2024, 1, 1, 10, 0, tzinfo=UTC),
    }
    fields.update(overrides)
    return ArticleRecord(**fields)


def make_feed(url: str, count: int = 2) -> Feed:
    """Build a Feed whose items have ids derived from the URL."""
    slug = url.rstrip("/").rsplit("/", 1)[-1]
    return Feed(
        url=url,
        title=f"Feed {slug}",
        description=None,
        fetched_at=datetime.now(UTC),
        items=[make_record(f"{slug}-{i}", feed_url=url) for i in range(count)],
    )


@pytest.fixture
def store(tmp_path):
    """Provide an ArticleStore rooted in a temporary directory."""
    return ArticleStore(tmp_path / "data")


@pytest.fixture
def sample_record():
    return make_record()
