"""Text encoding of cached articles.

Each article is stored as a Markdown document with a ``---`` delimited header
block followed by a readable body::

    ---
    id: <id>
    feed: <feed url>
    title: <title>
    link: <link>
    author: <author or empty>
    date: <RFC3339>
    read: true|false
    starred: true|false
    ---

    # <title>

    <description>

    <content>

    [Read original](<link>)

Decoding splits the text on delimiter lines at most twice, so a ``---`` line
inside the body is kept as body text.
"""

import re
from datetime import UTC, datetime
from enum import Enum

from dateutil import parser as date_parser

from .exceptions import MalformedFrontmatterError
from .models import ArticleRecord

DELIMITER = "---"
BYTE_ORDER_MARK = "\ufeff"

_DELIMITER_RE = re.compile(r"^---[ \t]*(?:\r?\n|\Z)", re.MULTILINE)
_READ_ORIGINAL_RE = re.compile(r"^\[Read original\]\((?P<link>.*)\)$")


class HeaderField(Enum):
    """Known header keys, in the order they are written."""

    ID = "id"
    FEED = "feed"
    TITLE = "title"
    LINK = "link"
    AUTHOR = "author"
    DATE = "date"
    READ = "read"
    STARRED = "starred"


_FIELDS_BY_KEY = {header.value: header for header in HeaderField}

# Header fields that may be rewritten after the article is stored
MUTABLE_FLAGS = frozenset({HeaderField.READ, HeaderField.STARRED})


def single_line(value: str | None) -> str:
    """Collapse line breaks so a value fits on one header line."""
    if not value:
        return ""
    return " ".join(value.splitlines()).strip()


def _format_bool(value: bool) -> str:
    return "true" if value else "false"


def _format_description(description: str | None) -> str:
    # Blank lines separate description from content, so the description is
    # kept as a single block.
    if not description:
        return ""
    lines = (line.strip() for line in description.splitlines())
    return "\n".join(line for line in lines if line)


def encode(record: ArticleRecord, now: datetime | None = None) -> str:
    """Render an article as header block plus body.

    Args:
        record: Article to encode
        now: Timestamp written when the article has no published date

    Returns:
        The full file text
    """
    published = record.published or now or datetime.now(UTC)
    if published.tzinfo is None:
        published = published.replace(tzinfo=UTC)
    published = published.astimezone(UTC)

    title = single_line(record.title)
    header = {
        HeaderField.ID: single_line(record.id),
        HeaderField.FEED: single_line(record.feed_url),
        HeaderField.TITLE: title,
        HeaderField.LINK: single_line(record.link),
        HeaderField.AUTHOR: single_line(record.author),
        HeaderField.DATE: published.isoformat(),
        HeaderField.READ: _format_bool(record.read),
        HeaderField.STARRED: _format_bool(record.starred),
    }
    header_lines = [f"{key.value}: {value}" for key, value in header.items()]

    return (
        f"{DELIMITER}\n"
        + "\n".join(header_lines)
        + f"\n{DELIMITER}\n"
        + f"\n# {title}\n"
        + f"\n{_format_description(record.description)}\n"
        + f"\n{(record.content or '').strip()}\n"
        + f"\n[Read original]({single_line(record.link)})\n"
    )


def split_sections(text: str) -> tuple[str, str]:
    """Return the header and body sections of an encoded article.

    A leading byte-order mark, as some editors write, is ignored.

    Raises:
        MalformedFrontmatterError: If the text has fewer than three sections
    """
    parts = _DELIMITER_RE.split(text.removeprefix(BYTE_ORDER_MARK), maxsplit=2)
    if len(parts) < 3:
        raise MalformedFrontmatterError(
            f"expected a {DELIMITER!r} delimited header, found {len(parts) - 1} delimiter(s)"
        )
    return parts[1], parts[2]


def parse_header(header: str) -> dict[HeaderField, str]:
    """Parse ``key: value`` lines, ignoring unknown keys and stray lines.

    When a key is repeated the last line wins.
    """
    values: dict[HeaderField, str] = {}
    for line in header.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        field = _FIELDS_BY_KEY.get(key.strip())
        if field is None:
            continue
        values[field] = value.strip()
    return values


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = date_parser.isoparse(value)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _parse_body(body: str) -> tuple[str | None, str | None]:
    if body.startswith("\n"):
        body = body[1:]

    # Bodies written by hand without the heading are kept whole as content
    if not body.startswith("# "):
        content = body.strip()
        return None, content or None

    # Drop the heading line and the blank line that follows it
    _, _, rest = body.partition("\n")
    if rest.startswith("\n"):
        rest = rest[1:]

    stripped = rest.rstrip()
    last_break = stripped.rfind("\n")
    if _READ_ORIGINAL_RE.match(stripped[last_break + 1 :]):
        rest = stripped[: last_break + 1] if last_break >= 0 else ""

    description, _, content = rest.partition("\n\n")
    return description.strip() or None, content.strip() or None


def decode(text: str) -> ArticleRecord:
    """Parse an encoded article.

    Missing optional keys decode to ``None``; an unparsable date decodes to
    ``published=None`` instead of failing the record.

    Raises:
        MalformedFrontmatterError: If the header block is missing
    """
    header_text, body = split_sections(text)
    header = parse_header(header_text)
    description, content = _parse_body(body)

    return ArticleRecord(
        id=header.get(HeaderField.ID, ""),
        feed_url=header.get(HeaderField.FEED, ""),
        title=header.get(HeaderField.TITLE, ""),
        link=header.get(HeaderField.LINK, ""),
        author=header.get(HeaderField.AUTHOR) or None,
        published=_parse_date(header.get(HeaderField.DATE)),
        read=header.get(HeaderField.READ) == "true",
        starred=header.get(HeaderField.STARRED) == "true",
        description=description,
        content=content,
    )


def set_header_flag(text: str, field: HeaderField, value: bool) -> str:
    """Rewrite a boolean header line, leaving every other byte as is.

    The replacement is confined to the header section, so body lines that
    happen to look like ``read: false`` are never touched. Every header line
    for the key is rewritten, so a hand-edited header with a repeated key
    still decodes to ``value``. A missing line is added at the end of the
    header.

    Raises:
        ValueError: If ``field`` is not a mutable flag
        MalformedFrontmatterError: If the header block is missing
    """
    if field not in MUTABLE_FLAGS:
        raise ValueError(f"Header field {field.value!r} is not mutable")

    bom = BYTE_ORDER_MARK if text.startswith(BYTE_ORDER_MARK) else ""
    text = text[len(bom) :]

    delimiters = list(_DELIMITER_RE.finditer(text))
    if len(delimiters) < 2:
        raise MalformedFrontmatterError(
            f"expected a {DELIMITER!r} delimited header, found {len(delimiters)} delimiter(s)"
        )
    start, end = delimiters[0].end(), delimiters[1].start()

    new_line = f"{field.value}: {_format_bool(value)}"
    lines = text[start:end].splitlines(keepends=True)
    replaced = False
    for index, line in enumerate(lines):
        key, sep, _ = line.partition(":")
        if sep and key.strip() == field.value:
            ending = line[len(line.rstrip("\r\n")) :] or "\n"
            lines[index] = new_line + ending
            replaced = True

    if not replaced:
        if lines and not lines[-1].endswith("\n"):
            lines[-1] += "\n"
        lines.append(new_line + "\n")

    return bom + text[:start] + "".join(lines) + text[end:]
