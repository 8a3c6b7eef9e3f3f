"""Discovery of feed URLs tagged in a directory of Markdown notes."""

import os
import re
from dataclasses import dataclass
from pathlib import Path

from .logging_config import create_execution_logger

FEED_TAG_RE = re.compile(r"#feed\s+(https?://[^\s)>\]]+)")
TRAILING_PUNCTUATION = ".,)]>"


@dataclass
class FeedSource:
    """A discovered feed URL and where it was first seen."""

    url: str
    source_file: str
    line_number: int


def _markdown_files(root: Path) -> list[Path]:
    files = []
    for dirpath, dirnames, filenames in os.walk(root, followlinks=True):
        dirnames.sort()
        files.extend(Path(dirpath) / name for name in sorted(filenames) if name.endswith(".md"))
    return files


def scan_markdown_for_feeds(
    notes_dir: Path, execution_id: str | None = None
) -> list[FeedSource]:
    """Collect URLs written as ``#feed <url>`` in Markdown files.

    Files are visited in sorted order and each URL is kept at its first
    occurrence. Unreadable files are skipped.

    Args:
        notes_dir: Root directory to walk recursively
        execution_id: Execution ID for logging context

    Returns:
        Deduplicated feed sources in discovery order
    """
    logger = create_execution_logger("scanner", execution_id)
    feeds: dict[str, FeedSource] = {}

    for path in _markdown_files(Path(notes_dir)):
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Skipping unreadable note {path}", path=str(path), error=str(e))
            continue

        for line_number, line in enumerate(text.splitlines(), start=1):
            for match in FEED_TAG_RE.finditer(line):
                url = match.group(1).strip().rstrip(TRAILING_PUNCTUATION)
                if url and url not in feeds:
                    feeds[url] = FeedSource(
                        url=url, source_file=str(path), line_number=line_number
                    )

    logger.info(f"Found {len(feeds)} feeds", path=str(notes_dir))
    return list(feeds.values())
