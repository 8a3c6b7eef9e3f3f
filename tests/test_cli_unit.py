"""Unit tests for the navireader command-line interface."""

import logging
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from conftest import make_feed, make_record
from navireader.cli import app
from navireader.exceptions import FetchError
from navireader.store import ArticleStore

runner = CliRunner()


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger("navireader")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.propagate = True


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def cli_store(data_dir):
    return ArticleStore(data_dir)


def _invoke(data_dir, *args, **env):
    return runner.invoke(
        app, list(args), env={"NAVIREADER_DATA_DIR": str(data_dir), **env}
    )


class TestArticleCommands:
    """Tests for commands that read or flag cached articles."""

    def test_unread_count(self, data_dir, cli_store):
        cli_store.insert_if_absent(make_record("a"))
        cli_store.insert_if_absent(make_record("b", read=True))

        result = _invoke(data_dir, "unread-count")

        assert result.exit_code == 0
        assert result.output.strip() == "1"

    def test_read_and_unread(self, data_dir, cli_store):
        cli_store.insert_if_absent(make_record("a"))

        result = _invoke(data_dir, "read", "a")
        assert result.exit_code == 0
        assert "Marked a read" in result.output
        assert cli_store.get_by_id("a").read is True

        result = _invoke(data_dir, "unread", "a")
        assert result.exit_code == 0
        assert cli_store.get_by_id("a").read is False

    def test_star_toggles(self, data_dir, cli_store):
        cli_store.insert_if_absent(make_record("a"))

        first = _invoke(data_dir, "star", "a")
        second = _invoke(data_dir, "star", "a")

        assert "Starred a" in first.output
        assert "Unstarred a" in second.output
        assert cli_store.get_by_id("a").starred is False

    def test_show_marks_read(self, data_dir, cli_store):
        cli_store.insert_if_absent(make_record("a", title="Readable Title"))

        result = _invoke(data_dir, "show", "a")

        assert result.exit_code == 0
        assert "Readable Title" in result.output
        assert "First paragraph." in result.output
        assert cli_store.get_by_id("a").read is True

    def test_missing_article(self, data_dir, cli_store):
        for command in ("show", "read", "star"):
            result = _invoke(data_dir, command, "nope")

            assert result.exit_code == 1
            assert "Article not found: nope" in result.output

    def test_list_and_unread_filter(self, data_dir, cli_store):
        cli_store.insert_if_absent(make_record("a", title="Alpha"))
        cli_store.insert_if_absent(make_record("b", title="Beta", read=True))

        everything = _invoke(data_dir, "list")
        unread_only = _invoke(data_dir, "list", "--unread")

        assert "Alpha" in everything.output
        assert "Beta" in everything.output
        assert "Alpha" in unread_only.output
        assert "Beta" not in unread_only.output

    def test_search(self, data_dir, cli_store):
        cli_store.insert_if_absent(make_record("a", title="Python tips"))
        cli_store.insert_if_absent(make_record("b", title="Gardening"))

        result = _invoke(data_dir, "search", "PYTHON")

        assert result.exit_code == 0
        assert "Python tips" in result.output
        assert "Gardening" not in result.output
        assert "1 matching articles" in result.output


class TestFeedCommands:
    """Tests for scan, fetch and feeds."""

    def test_scan_saves_feed_list(self, data_dir, cli_store, tmp_path):
        notes = tmp_path / "notes"
        notes.mkdir()
        (notes / "feeds.md").write_text(
            "#feed https://one.example/feed\n#feed https://two.example/feed\n",
            encoding="utf-8",
        )

        result = _invoke(data_dir, "scan", "--path", str(notes))

        assert result.exit_code == 0
        assert "Found 2 RSS feeds" in result.output
        assert cli_store.load_feed_list() == [
            "https://one.example/feed",
            "https://two.example/feed",
        ]

    def test_scan_uses_notes_dir_setting(self, data_dir, cli_store, tmp_path):
        notes = tmp_path / "zet"
        notes.mkdir()
        (notes / "a.md").write_text("#feed https://env.example/feed\n", encoding="utf-8")

        result = _invoke(data_dir, "scan", NAVIREADER_NOTES_DIR=str(notes))

        assert result.exit_code == 0
        assert cli_store.load_feed_list() == ["https://env.example/feed"]

    def test_fetch_reports_each_feed(self, data_dir, cli_store):
        good = "https://good.example/feed"
        bad = "https://bad.example/feed"
        cli_store.save_feed_list([good, bad])

        def fetch_feed(url):
            if url == bad:
                raise FetchError(url, "HTTP 500")
            return make_feed(url, count=3)

        with patch("navireader.cli.FeedProcessor") as mock_processor_class:
            mock_processor_class.return_value.fetch_feed.side_effect = fetch_feed
            result = _invoke(data_dir, "fetch")

        assert result.exit_code == 0
        assert f"{good}: 3 items, 3 new" in result.output
        assert f"{bad}: HTTP 500" in result.output
        assert "1 succeeded, 1 failed, 3 new articles" in result.output
        assert cli_store.get_by_id("feed-0") is not None

    def test_fetch_without_feeds(self, data_dir):
        with patch("navireader.cli.FeedProcessor") as mock_processor_class:
            result = _invoke(data_dir, "fetch")

        assert result.exit_code == 0
        assert "No feeds subscribed" in result.output
        mock_processor_class.assert_not_called()

    def test_fetch_update_rescans(self, data_dir, cli_store, tmp_path):
        notes = tmp_path / "notes"
        notes.mkdir()
        (notes / "a.md").write_text("#feed https://new.example/feed\n", encoding="utf-8")

        with patch("navireader.cli.FeedProcessor") as mock_processor_class:
            mock_processor_class.return_value.fetch_feed.side_effect = make_feed
            result = _invoke(data_dir, "fetch", "--update", "--path", str(notes))

        assert result.exit_code == 0
        assert cli_store.load_feed_list() == ["https://new.example/feed"]
        assert "1 succeeded, 0 failed, 2 new articles" in result.output

    def test_feeds_lists_fetch_state(self, data_dir, cli_store):
        fetched = "https://fetched.example/feed"
        pending = "https://pending.example/feed"
        cli_store.save_feed_list([fetched, pending])
        cli_store.store_feed(make_feed(fetched, count=1))

        result = _invoke(data_dir, "feeds")

        assert result.exit_code == 0
        assert "Feed feed" in result.output
        assert f"{pending}  never fetched" in result.output

    def test_invalid_configuration(self, data_dir):
        result = _invoke(data_dir, "unread-count", NAVIREADER_CONCURRENCY="many")

        assert result.exit_code == 1
        assert "NAVIREADER_CONCURRENCY" in result.output
