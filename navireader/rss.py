"""RSS/Atom feed fetching and normalization for navireader."""

import hashlib
import re
import time
from datetime import UTC, datetime
from urllib.parse import urlparse

import feedparser
import requests
import urllib3
from bs4 import BeautifulSoup
from dateutil import parser as date_parser
from urllib3.exceptions import ReadTimeoutError

from .exceptions import FetchError
from .logging_config import create_execution_logger
from .models import ArticleRecord, Feed

BLOCK_TAGS = [
    "p",
    "div",
    "li",
    "ul",
    "ol",
    "blockquote",
    "pre",
    "table",
    "tr",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
]

_PARAGRAPH_BREAK_RE = re.compile(r"\n\s*\n")

# Upper bound for one read; a read returns sooner with whatever has arrived
READ_SIZE = 64 * 1024


class FeedProcessor:
    """Downloads one feed document and normalizes it into a Feed."""

    def __init__(
        self,
        timeout: float = 30,
        user_agent: str = "NaviReader/0.1",
        execution_id: str | None = None,
    ):
        """Initialize FeedProcessor with configuration.

        Args:
            timeout: Total time budget in seconds for one feed download
            user_agent: User-Agent header sent with every request
            execution_id: Execution ID for logging context
        """
        self.timeout = timeout
        self.logger = create_execution_logger("feed_processor", execution_id)
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

        self.logger.debug("FeedProcessor initialized", timeout=timeout)

    def fetch_feed(self, feed_url: str) -> Feed:
        """Download and parse a single RSS/Atom feed.

        One attempt is made; the caller decides what a failure means.

        Args:
            feed_url: URL of the RSS/Atom feed

        Returns:
            Feed with its items in document order

        Raises:
            FetchError: If the URL is unsupported, the download fails or
                times out, or the document is not a feed
        """
        parsed_url = urlparse(feed_url)
        if parsed_url.scheme not in ("http", "https"):
            raise FetchError(feed_url, f"unsupported URL scheme {parsed_url.scheme!r}")

        content = self._download(feed_url)

        feed = feedparser.parse(content)
        if feed.bozo and not feed.entries and not feed.feed.get("title"):
            raise FetchError(
                feed_url, f"not a valid feed: {getattr(feed, 'bozo_exception', 'unknown')}"
            )
        if feed.bozo:
            self.logger.warning(
                f"Feed parsing warning for {feed_url}: {feed.get('bozo_exception')}",
                feed_url=feed_url,
            )

        items = []
        for entry in feed.entries:
            try:
                items.append(self.normalize_item(entry, feed_url))
            except Exception as e:
                self.logger.warning(
                    f"Failed to normalize entry from {feed_url}: {e}",
                    feed_url=feed_url,
                    error=str(e),
                )
                continue

        self.logger.info(
            "Successfully parsed feed",
            feed_url=feed_url,
            items_count=len(items),
            total_entries=len(feed.entries),
        )
        return Feed(
            url=feed_url,
            title=feed.feed.get("title") or feed_url,
            description=feed.feed.get("subtitle") or feed.feed.get("description"),
            fetched_at=datetime.now(UTC),
            items=items,
        )

    def _download(self, feed_url: str) -> bytes:
        """Stream the feed body within a total deadline.

        Each read returns whatever bytes have arrived and waits at most for
        the time left, so a server trickling data cannot hold the fetch open
        past ``timeout``.
        """
        deadline = time.monotonic() + self.timeout
        body = bytearray()
        try:
            with self.session.get(feed_url, timeout=self.timeout, stream=True) as response:
                response.raise_for_status()
                while True:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise FetchError(feed_url, f"download exceeded {self.timeout}s")
                    _set_read_timeout(response, remaining)
                    chunk = response.raw.read1(READ_SIZE, decode_content=True)
                    if not chunk:
                        break
                    body.extend(chunk)
                status_code = response.status_code
        except (ReadTimeoutError, TimeoutError) as e:
            self.logger.error(
                f"Feed download timed out {feed_url}",
                feed_url=feed_url,
                error=str(e),
            )
            raise FetchError(feed_url, f"download exceeded {self.timeout}s") from e
        except urllib3.exceptions.HTTPError as e:
            self.logger.error(
                f"Failed to download feed {feed_url}: {e}",
                feed_url=feed_url,
                error=str(e),
            )
            raise FetchError(feed_url, str(e)) from e
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "error"
            self.logger.error(
                f"Failed to download feed {feed_url}: HTTP {status}",
                feed_url=feed_url,
                error=str(e),
            )
            raise FetchError(feed_url, f"HTTP {status}") from e
        except requests.RequestException as e:
            self.logger.error(
                f"Failed to download feed {feed_url}: {e}",
                feed_url=feed_url,
                error=str(e),
            )
            raise FetchError(feed_url, str(e)) from e

        self.logger.debug(
            "Feed downloaded successfully",
            feed_url=feed_url,
            status_code=status_code,
            content_length=len(body),
        )
        return bytes(body)

    def normalize_item(self, raw_item, feed_url: str) -> ArticleRecord:
        """Normalize a raw feed entry into an ArticleRecord.

        Args:
            raw_item: Raw feed entry from feedparser
            feed_url: Source feed URL

        Returns:
            Unread, unstarred ArticleRecord
        """
        title = getattr(raw_item, "title", None) or "Untitled"
        link = getattr(raw_item, "link", None) or feed_url

        published = None
        for attr in ("published", "updated"):
            published = parse_timestamp(getattr(raw_item, attr, None))
            if published:
                break

        author = getattr(raw_item, "author", None)
        if not author:
            authors = getattr(raw_item, "authors", None)
            if isinstance(authors, list) and authors:
                author = authors[0].get("name")

        summary = getattr(raw_item, "summary", None) or getattr(
            raw_item, "description", None
        )
        description = self.clean_html_content(summary) if isinstance(summary, str) else ""

        content = ""
        raw_content = getattr(raw_item, "content", None)
        if isinstance(raw_content, list) and raw_content:
            content = self.clean_html_content(raw_content[0].get("value", ""))
        elif isinstance(raw_content, str):
            content = self.clean_html_content(raw_content)

        guid = getattr(raw_item, "id", None) or getattr(raw_item, "guid", None)
        if not isinstance(guid, str) or not guid.strip():
            guid = generate_item_id(feed_url, link, published, title)

        return ArticleRecord(
            id=guid.strip(),
            feed_url=feed_url,
            title=title,
            link=link,
            description=description or None,
            content=content or description or None,
            author=author if isinstance(author, str) and author else None,
            published=published,
            read=False,
            starred=False,
        )

    def clean_html_content(self, content: str) -> str:
        """Remove HTML tags and normalize whitespace, keeping paragraphs.

        Args:
            content: Raw content that may contain HTML

        Returns:
            Plain text with paragraphs separated by blank lines
        """
        if not content:
            return ""

        if "<" in content or ">" in content:
            soup = BeautifulSoup(content, "html.parser")

            for script in soup(["script", "style"]):
                script.decompose()
            for br in soup.find_all("br"):
                br.replace_with("\n")
            for block in soup.find_all(BLOCK_TAGS):
                block.insert_after("\n\n")

            content = soup.get_text()

        paragraphs = (
            " ".join(paragraph.split())
            for paragraph in _PARAGRAPH_BREAK_RE.split(content)
        )
        return "\n\n".join(paragraph for paragraph in paragraphs if paragraph)


def _set_read_timeout(response: requests.Response, seconds: float) -> None:
    """Cap how long the next socket read of a streamed response may block."""
    connection = getattr(response.raw, "connection", None)
    sock = getattr(connection, "sock", None)
    if sock is not None:
        sock.settimeout(seconds)


def parse_timestamp(value) -> datetime | None:
    """Parse a feed date string into an aware UTC datetime.

    Naive values are taken as UTC; unparsable values give None.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = date_parser.parse(value)
    except (ValueError, TypeError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def generate_item_id(
    feed_url: str, link: str, published: datetime | None, title: str
) -> str:
    """Build a stable id for entries that carry no GUID.

    SHA256 of feed URL + link + published date, or + title when undated.
    """
    suffix = published.isoformat() if published else title
    return hashlib.sha256(f"{feed_url}{link}{suffix}".encode("utf-8")).hexdigest()
