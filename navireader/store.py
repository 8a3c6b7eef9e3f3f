"""File-backed article store for navireader."""

import json
import os
import tempfile
import threading
from collections.abc import Iterable, Iterator
from datetime import UTC, datetime
from pathlib import Path

from . import codec
from .codec import HeaderField
from .exceptions import (
    ArticleNotFoundError,
    MalformedFrontmatterError,
    MalformedRecordError,
    StoreError,
    StoreIOError,
)
from .logging_config import create_execution_logger
from .models import ArticleRecord, Feed, FeedMeta

MAX_KEY_LENGTH = 50


def sanitize_key(value: str, max_length: int = MAX_KEY_LENGTH) -> str:
    """Turn an id or URL into a filesystem-safe file stem.

    Every character that is not alphanumeric, ``-`` or ``_`` becomes ``_``
    and the result is truncated to ``max_length`` characters.
    """
    safe = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in value)
    return safe[:max_length] or "_"


class ArticleStore:
    """Directory-backed key-value store of articles keyed by article id.

    Layout under ``root``::

        articles/<sanitized id>.md     one encoded article per file
        feeds/<sanitized url>.json     feed metadata
        state/feeds.txt                subscribed feed URLs, one per line

    All writes go through a temporary file in the target directory followed
    by ``os.replace``, so readers never see a half-written file.
    """

    ARTICLES_DIR = "articles"
    FEEDS_DIR = "feeds"
    STATE_DIR = "state"
    FEED_LIST_FILE = "feeds.txt"

    def __init__(self, root: Path, execution_id: str | None = None):
        """Open the store, creating its directories when needed.

        Args:
            root: Data directory holding the store
            execution_id: Execution ID for logging context

        Raises:
            StoreIOError: If the directories cannot be created
        """
        self.root = Path(root)
        self.articles_dir = self.root / self.ARTICLES_DIR
        self.feeds_dir = self.root / self.FEEDS_DIR
        self.state_dir = self.root / self.STATE_DIR
        self.logger = create_execution_logger("store", execution_id)
        self._insert_lock = threading.Lock()

        try:
            for directory in (self.articles_dir, self.feeds_dir, self.state_dir):
                directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.logger.error(
                f"Cannot initialize store at {self.root}: {e}",
                path=str(self.root),
                error=str(e),
            )
            raise StoreIOError(f"Cannot initialize store at {self.root}: {e}") from e

        self.logger.debug("ArticleStore initialized", path=str(self.root))

    # Paths

    def article_path(self, article_id: str) -> Path:
        return self.articles_dir / f"{sanitize_key(article_id)}.md"

    def feed_meta_path(self, feed_url: str) -> Path:
        return self.feeds_dir / f"{sanitize_key(feed_url)}.json"

    @property
    def feed_list_path(self) -> Path:
        return self.state_dir / self.FEED_LIST_FILE

    # Low level file access

    def _write_atomic(self, path: Path, text: str) -> None:
        """Write ``text`` to ``path`` via temp file and rename."""
        fd, tmp_name = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(text)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            self.logger.error(
                f"Failed to write {path}: {e}", path=str(path), error=str(e)
            )
            raise StoreIOError(f"Failed to write {path}: {e}") from e

    def _read_text(self, path: Path) -> str | None:
        """Read a file, returning None when it does not exist.

        Raises:
            MalformedRecordError: If the file is not valid UTF-8
            StoreIOError: If the file cannot be read
        """
        try:
            # newline="" keeps line endings intact for verbatim rewrites
            with open(path, encoding="utf-8", newline="") as handle:
                return handle.read()
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            raise MalformedRecordError(path, f"not valid UTF-8: {e}") from e
        except OSError as e:
            raise StoreIOError(f"Failed to read {path}: {e}") from e

    def _decode(self, path: Path, text: str) -> ArticleRecord:
        try:
            return codec.decode(text)
        except MalformedFrontmatterError as e:
            raise MalformedRecordError(path, str(e)) from e

    def _read_owned(self, article_id: str) -> tuple[Path, str, ArticleRecord] | None:
        """Load the file for ``article_id`` if it holds that exact id.

        Distinct ids can share a truncated key; the id in the header decides
        which article the file belongs to.
        """
        path = self.article_path(article_id)
        text = self._read_text(path)
        if text is None:
            return None
        record = self._decode(path, text)
        if record.id != codec.single_line(article_id):
            self.logger.debug(
                "Article key is held by a different id",
                article_id=article_id,
                path=str(path),
            )
            return None
        return path, text, record

    # Articles

    def insert_if_absent(self, record: ArticleRecord) -> bool:
        """Store an article unless one already exists under its key.

        Args:
            record: Article to store

        Returns:
            True if the article was written, False if it was already present

        Raises:
            StoreIOError: If the file cannot be written
        """
        path = self.article_path(record.id)
        with self._insert_lock:
            if path.exists():
                self.logger.log_item_processing(record.id, "skipped_duplicate")
                return False
            self._write_atomic(path, codec.encode(record, now=datetime.now(UTC)))

        self.logger.log_item_processing(record.id, "stored")
        return True

    def get_by_id(self, article_id: str) -> ArticleRecord | None:
        """Look up one article by id without scanning the directory.

        Raises:
            MalformedRecordError: If the stored file cannot be decoded
            StoreIOError: If the file cannot be read
        """
        loaded = self._read_owned(article_id)
        return loaded[2] if loaded else None

    def set_field(self, article_id: str, field: str | HeaderField, value: bool) -> None:
        """Set the ``read`` or ``starred`` flag of a stored article.

        Only the matching header line changes; the rest of the file is
        written back verbatim.

        Raises:
            ValueError: If ``field`` is not ``read`` or ``starred``
            ArticleNotFoundError: If no article has this id
            MalformedRecordError: If the stored file cannot be decoded
            StoreIOError: If the file cannot be read or written
        """
        header_field = HeaderField(field)
        if header_field not in codec.MUTABLE_FLAGS:
            raise ValueError(f"Field {header_field.value!r} cannot be updated")

        loaded = self._read_owned(article_id)
        if loaded is None:
            raise ArticleNotFoundError(article_id)
        path, text, _ = loaded

        self._write_atomic(path, codec.set_header_flag(text, header_field, value))
        self.logger.info(
            f"Set {header_field.value}={str(value).lower()}",
            article_id=article_id,
        )

    def mark_read(self, article_id: str) -> None:
        self.set_field(article_id, HeaderField.READ, True)

    def mark_unread(self, article_id: str) -> None:
        self.set_field(article_id, HeaderField.READ, False)

    def toggle_star(self, article_id: str) -> bool:
        """Flip the starred flag and return its new value."""
        record = self.get_by_id(article_id)
        if record is None:
            raise ArticleNotFoundError(article_id)
        starred = not record.starred
        self.set_field(article_id, HeaderField.STARRED, starred)
        return starred

    def _iter_article_files(self) -> list[Path]:
        try:
            return [p for p in self.articles_dir.glob("*.md") if p.is_file()]
        except OSError as e:
            raise StoreIOError(f"Cannot list {self.articles_dir}: {e}") from e

    def _scan(self, paths: Iterable[Path]) -> Iterator[tuple[Path, str, ArticleRecord]]:
        """Yield decodable articles, skipping unreadable or corrupt files."""
        for path in paths:
            try:
                text = self._read_text(path)
                if text is None:
                    continue
                yield path, text, self._decode(path, text)
            except (MalformedRecordError, StoreIOError) as e:
                self.logger.warning(
                    f"Skipping unreadable article file {path.name}",
                    path=str(path),
                    error=str(e),
                )

    def list_recent(self, limit: int | None = None) -> list[ArticleRecord]:
        """Return articles ordered by file modification time, newest first."""
        stamped = []
        for path in self._iter_article_files():
            try:
                stamped.append((path.stat().st_mtime_ns, path))
            except FileNotFoundError:
                continue
        stamped.sort(key=lambda item: (-item[0], item[1].name))

        records = []
        for _, _, record in self._scan(path for _, path in stamped):
            if limit is not None and len(records) >= limit:
                break
            records.append(record)
        return records

    def search(self, query: str) -> list[ArticleRecord]:
        """Case-insensitive substring search over the stored article text.

        Results are newest first by published date; articles without a date
        come last, and equal dates are ordered by id.
        """
        needle = query.casefold()
        matches = [
            record
            for _, text, record in self._scan(self._iter_article_files())
            if needle in text.casefold()
        ]
        return sorted(matches, key=published_sort_key)

    def count_unread(self) -> int:
        return sum(
            1 for _, _, record in self._scan(self._iter_article_files()) if not record.read
        )

    # Feeds

    def save_feed_meta(self, feed: Feed) -> FeedMeta:
        """Overwrite the metadata file for a fetched feed."""
        meta = FeedMeta(
            url=feed.url,
            title=feed.title,
            description=feed.description,
            last_fetched=datetime.now(UTC),
        )
        self._write_atomic(
            self.feed_meta_path(feed.url),
            json.dumps(meta.to_dict(), indent=2, ensure_ascii=False),
        )
        return meta

    def load_feed_meta(self, feed_url: str) -> FeedMeta | None:
        path = self.feed_meta_path(feed_url)
        text = self._read_text(path)
        if text is None:
            return None
        try:
            return FeedMeta.from_dict(json.loads(text))
        except (ValueError, KeyError, TypeError) as e:
            raise MalformedRecordError(path, str(e)) from e

    def list_feed_meta(self) -> list[FeedMeta]:
        metas = []
        for path in sorted(self.feeds_dir.glob("*.json")):
            try:
                text = self._read_text(path)
                if text is not None:
                    metas.append(FeedMeta.from_dict(json.loads(text)))
            except (StoreError, ValueError, KeyError, TypeError) as e:
                self.logger.warning(
                    f"Skipping unreadable feed metadata {path.name}",
                    path=str(path),
                    error=str(e),
                )
        return metas

    def store_feed(self, feed: Feed) -> int:
        """Insert every article of a feed, then refresh its metadata.

        Returns:
            Number of articles newly written
        """
        stored = sum(1 for item in feed.items if self.insert_if_absent(item))
        self.save_feed_meta(feed)
        self.logger.log_feed_processing(feed.url, len(feed.items), stored)
        return stored

    def save_feed_list(self, urls: Iterable[str]) -> None:
        """Replace the subscription list."""
        self._write_atomic(self.feed_list_path, "\n".join(urls))

    def load_feed_list(self) -> list[str]:
        text = self._read_text(self.feed_list_path)
        if text is None:
            return []
        return [line.strip() for line in text.splitlines() if line.strip()]


def published_sort_key(record: ArticleRecord) -> tuple[bool, float, str]:
    """Sort key: newest published first, undated last, then by id."""
    if record.published is None:
        return (True, 0.0, record.id)
    return (False, -record.published.timestamp(), record.id)
