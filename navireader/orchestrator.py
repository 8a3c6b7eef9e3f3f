"""Concurrent fetch-and-store pipeline for navireader."""

import threading
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Protocol

from .exceptions import FetchError
from .logging_config import create_execution_logger
from .models import BatchReport, Feed, FeedResult
from .store import ArticleStore

DEFAULT_CONCURRENCY = 5


class FeedClient(Protocol):
    def fetch_feed(self, feed_url: str) -> Feed: ...


class FetchOrchestrator:
    """Fetches many feeds with a fixed ceiling on in-flight fetches.

    Each feed holds one admission slot from the start of its fetch until its
    articles and metadata are stored. The gate belongs to the orchestrator,
    so overlapping ``fetch_all`` calls on one instance share the ceiling.
    """

    def __init__(
        self,
        store: ArticleStore,
        client: FeedClient,
        concurrency: int = DEFAULT_CONCURRENCY,
        execution_id: str | None = None,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.store = store
        self.client = client
        self.concurrency = concurrency
        self.logger = create_execution_logger("orchestrator", execution_id)
        self._gate = threading.BoundedSemaphore(concurrency)

    def fetch_all(self, feed_urls: Sequence[str]) -> BatchReport:
        """Fetch and store every feed, isolating failures per feed.

        Args:
            feed_urls: Feed URLs to fetch, each attempted once

        Returns:
            BatchReport with one result per URL, in input order
        """
        self.logger.log_execution_start(
            feed_count=len(feed_urls), concurrency=self.concurrency
        )
        results: list[FeedResult | None] = [None] * len(feed_urls)

        if feed_urls:
            workers = min(self.concurrency, len(feed_urls))
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="navireader-fetch"
            ) as executor:
                future_map = {
                    executor.submit(self._process_feed, url): idx
                    for idx, url in enumerate(feed_urls)
                }
                for future in as_completed(future_map):
                    results[future_map[future]] = future.result()

        report = BatchReport(results=[r for r in results if r is not None])
        metrics = report.to_metrics()
        self.logger.log_metrics(metrics)
        self.logger.log_execution_end(success=True, metrics=metrics)
        return report

    def _process_feed(self, feed_url: str) -> FeedResult:
        with self._gate:
            try:
                feed = self.client.fetch_feed(feed_url)
            except Exception as e:
                error = e.message if isinstance(e, FetchError) else str(e)
                self.logger.error(
                    f"Failed to fetch feed {feed_url}: {error}",
                    feed_url=feed_url,
                    error=error,
                )
                return FeedResult(url=feed_url, success=False, error=error)

            try:
                stored = self.store.store_feed(feed)
            except Exception as e:
                self.logger.error(
                    f"Failed to store feed {feed_url}: {e}",
                    feed_url=feed_url,
                    error=str(e),
                )
                return FeedResult(
                    url=feed_url,
                    success=False,
                    items_fetched=len(feed.items),
                    error=str(e),
                )

        return FeedResult(
            url=feed_url,
            success=True,
            items_fetched=len(feed.items),
            items_stored=stored,
        )
