"""Data models for navireader."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class ArticleRecord:
    """Represents a single cached article.

    Only ``read`` and ``starred`` change after the record is first stored.
    """

    id: str
    feed_url: str
    title: str
    link: str
    description: str | None = None
    content: str | None = None
    author: str | None = None
    published: datetime | None = None
    read: bool = False
    starred: bool = False


@dataclass
class Feed:
    """A fetched feed: metadata plus its items in document order."""

    url: str
    title: str
    description: str | None
    fetched_at: datetime
    items: list[ArticleRecord] = field(default_factory=list)


@dataclass
class FeedMeta:
    """Metadata persisted for each subscribed feed."""

    url: str
    title: str
    description: str | None = None
    last_fetched: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "last_fetched": (
                self.last_fetched.isoformat() if self.last_fetched else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FeedMeta":
        last_fetched = data.get("last_fetched")
        return cls(
            url=data["url"],
            title=data.get("title") or data["url"],
            description=data.get("description"),
            last_fetched=datetime.fromisoformat(last_fetched) if last_fetched else None,
        )


@dataclass
class FeedResult:
    """Outcome of fetching and storing one feed."""

    url: str
    success: bool
    items_fetched: int = 0
    items_stored: int = 0
    error: str | None = None


@dataclass
class BatchReport:
    """Aggregate outcome of a fetch run."""

    results: list[FeedResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[FeedResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> list[FeedResult]:
        return [r for r in self.results if not r.success]

    @property
    def total_stored(self) -> int:
        return sum(r.items_stored for r in self.results)

    def to_metrics(self) -> dict[str, Any]:
        """Summarize the run in the shape used for metrics logging."""
        return {
            "feeds_processed": len(self.results),
            "feeds_succeeded": len(self.succeeded),
            "feeds_failed": len(self.failed),
            "items_found": sum(r.items_fetched for r in self.results),
            "items_stored": self.total_stored,
            "errors": [f"{r.url}: {r.error}" for r in self.failed],
        }
