"""Exception hierarchy for navireader."""


class NavireaderError(Exception):
    """Base class for all navireader errors."""


class MalformedFrontmatterError(NavireaderError, ValueError):
    """Article text does not contain a delimited header section."""


class FetchError(NavireaderError):
    """A single feed could not be downloaded or parsed."""

    def __init__(self, feed_url: str, message: str):
        super().__init__(f"{feed_url}: {message}")
        self.feed_url = feed_url
        self.message = message


class StoreError(NavireaderError):
    """Base class for article store failures."""


class StoreIOError(StoreError):
    """Filesystem failure inside the store."""


class MalformedRecordError(StoreError):
    """An existing article file could not be decoded."""

    def __init__(self, path, reason: str):
        super().__init__(f"Malformed article file {path}: {reason}")
        self.path = path
        self.reason = reason


class ArticleNotFoundError(StoreError):
    """The targeted article id is not in the store."""

    def __init__(self, article_id: str):
        super().__init__(f"Article not found: {article_id}")
        self.article_id = article_id
