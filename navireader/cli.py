"""
Command-line interface for navireader.

Uses Typer for the command surface and Rich for console output. The data
directory and fetch settings come from the environment (see ``config``).

Example:
    $ navireader scan --path ~/zet
    $ navireader fetch
    $ navireader list --limit 20
"""

from datetime import UTC, datetime
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape

from .config import Config
from .exceptions import ArticleNotFoundError, StoreError, StoreIOError
from .logging_config import setup_structured_logging
from .models import ArticleRecord
from .orchestrator import FetchOrchestrator
from .rss import FeedProcessor
from .scanner import scan_markdown_for_feeds
from .store import ArticleStore

app = typer.Typer(add_completion=False, help="Local cache of RSS/Atom articles.")
console = Console(soft_wrap=True)


def _execution_id() -> str:
    return f"cli_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S_%f')}"


def _fail(message: str) -> NoReturn:
    console.print(f"[red]Error:[/red] {escape(message)}")
    raise typer.Exit(code=1)


def _load_config() -> Config:
    try:
        return Config()
    except ValueError as e:
        _fail(str(e))


def _open_store(config: Config, execution_id: str | None = None) -> ArticleStore:
    try:
        return ArticleStore(config.data_dir, execution_id=execution_id)
    except StoreIOError as e:
        _fail(str(e))


def _format_line(record: ArticleRecord) -> str:
    marker = "[bold yellow]*[/bold yellow]" if record.starred else " "
    status = " " if record.read else "[cyan]●[/cyan]"
    date = record.published.strftime("%Y-%m-%d") if record.published else "----------"
    return f"{status}{marker} {date}  {escape(record.title)}  [dim]{escape(record.id)}[/dim]"


def _discover(config: Config, path: Path | None, execution_id: str) -> list[str]:
    notes_dir = path.expanduser() if path else config.notes_dir
    return [source.url for source in scan_markdown_for_feeds(notes_dir, execution_id)]


@app.callback()
def main(
    log_level: str | None = typer.Option(
        None, "--log-level", help="Logging level (defaults to LOG_LEVEL or WARNING)."
    ),
):
    """Local cache of RSS/Atom articles."""
    config = _load_config()
    setup_structured_logging(log_level or config.log_level)


@app.command()
def scan(
    path: Path | None = typer.Option(None, "--path", "-p", help="Notes directory to scan."),
):
    """Find '#feed <url>' tags in Markdown notes and save them as subscriptions."""
    config = _load_config()
    execution_id = _execution_id()
    store = _open_store(config, execution_id)

    urls = _discover(config, path, execution_id)
    try:
        store.save_feed_list(urls)
    except StoreError as e:
        _fail(str(e))

    console.print(f"Found {len(urls)} RSS feeds:")
    for url in urls:
        console.print(f"  - {escape(url)}")


@app.command()
def fetch(
    update: bool = typer.Option(
        False, "--update", "-u", help="Re-scan notes for feeds before fetching."
    ),
    path: Path | None = typer.Option(None, "--path", "-p", help="Notes directory for --update."),
):
    """Fetch all subscribed feeds and store new articles."""
    config = _load_config()
    execution_id = _execution_id()
    store = _open_store(config, execution_id)

    try:
        if update:
            feed_urls = _discover(config, path, execution_id)
            store.save_feed_list(feed_urls)
        else:
            feed_urls = store.load_feed_list()
    except StoreError as e:
        _fail(str(e))

    if not feed_urls:
        console.print("No feeds subscribed. Run 'navireader scan' first.")
        return

    fetch_config = config.get_fetch_config()
    client = FeedProcessor(
        timeout=fetch_config.timeout,
        user_agent=fetch_config.user_agent,
        execution_id=execution_id,
    )
    orchestrator = FetchOrchestrator(
        store, client, concurrency=fetch_config.concurrency, execution_id=execution_id
    )
    report = orchestrator.fetch_all(feed_urls)

    for result in report.results:
        if result.success:
            console.print(
                f"[green]✓[/green] {escape(result.url)}: "
                f"{result.items_fetched} items, {result.items_stored} new"
            )
        else:
            console.print(f"[red]✗[/red] {escape(result.url)}: {escape(result.error or '')}")

    console.print(
        f"{len(report.succeeded)} succeeded, {len(report.failed)} failed, "
        f"{report.total_stored} new articles"
    )


@app.command("list")
def list_articles(
    limit: int | None = typer.Option(None, "--limit", "-n", min=1, help="Maximum articles."),
    unread: bool = typer.Option(False, "--unread", help="Only show unread articles."),
):
    """List cached articles, most recently written first."""
    store = _open_store(_load_config())
    try:
        records = store.list_recent(None if unread else limit)
    except StoreError as e:
        _fail(str(e))

    if unread:
        records = [r for r in records if not r.read][:limit]
    for record in records:
        console.print(_format_line(record))


@app.command()
def search(query: str = typer.Argument(..., help="Case-insensitive text to find.")):
    """Search cached articles, newest published first."""
    store = _open_store(_load_config())
    try:
        records = store.search(query)
    except StoreError as e:
        _fail(str(e))

    for record in records:
        console.print(_format_line(record))
    console.print(f"{len(records)} matching articles")


@app.command()
def show(article_id: str = typer.Argument(..., help="Article id.")):
    """Print an article and mark it read."""
    store = _open_store(_load_config())
    try:
        record = store.get_by_id(article_id)
        if record is None:
            raise ArticleNotFoundError(article_id)
        store.mark_read(article_id)
    except StoreError as e:
        _fail(str(e))

    console.print(f"[bold]{escape(record.title)}[/bold]")
    if record.author:
        console.print(f"by {escape(record.author)}")
    if record.published:
        console.print(record.published.isoformat())
    console.print(escape(record.link))
    for part in (record.description, record.content):
        if part:
            console.print()
            console.print(escape(part))


@app.command()
def read(article_id: str = typer.Argument(..., help="Article id.")):
    """Mark an article read."""
    _set_read(article_id, True)


@app.command()
def unread(article_id: str = typer.Argument(..., help="Article id.")):
    """Mark an article unread."""
    _set_read(article_id, False)


def _set_read(article_id: str, value: bool) -> None:
    store = _open_store(_load_config())
    try:
        if value:
            store.mark_read(article_id)
        else:
            store.mark_unread(article_id)
    except StoreError as e:
        _fail(str(e))
    console.print(f"Marked {escape(article_id)} {'read' if value else 'unread'}")


@app.command()
def star(article_id: str = typer.Argument(..., help="Article id.")):
    """Toggle the starred flag of an article."""
    store = _open_store(_load_config())
    try:
        starred = store.toggle_star(article_id)
    except StoreError as e:
        _fail(str(e))
    console.print(f"{'Starred' if starred else 'Unstarred'} {escape(article_id)}")


@app.command("unread-count")
def unread_count():
    """Print the number of unread articles."""
    store = _open_store(_load_config())
    try:
        count = store.count_unread()
    except StoreError as e:
        _fail(str(e))
    console.print(str(count))


@app.command()
def feeds():
    """List subscribed feeds with their last fetch time."""
    store = _open_store(_load_config())
    try:
        urls = store.load_feed_list()
        metas = {meta.url: meta for meta in store.list_feed_meta()}
    except StoreError as e:
        _fail(str(e))

    for url in urls:
        meta = metas.get(url)
        if meta and meta.last_fetched:
            console.print(
                f"{escape(url)}  {escape(meta.title)}  "
                f"[dim]{meta.last_fetched.isoformat()}[/dim]"
            )
        else:
            console.print(f"{escape(url)}  [dim]never fetched[/dim]")


if __name__ == "__main__":
    app()
