"""
Unit tests for the CLI supervisor: fatal conditions exit non-zero.
"""

import logging
import threading

import pytest
from typer.testing import CliRunner

from autobirther import cli, config
from autobirther.errors import SourceError
from autobirther.events import EventKind, Source
from autobirther.store import ArchiveStore

from fakes import EndlessHeads, FakeChain, kitty, pregnant

runner = CliRunner()


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = str(tmp_path / "archive.db")
    monkeypatch.setattr(config, "DB_PATH", path)
    return path


def use_chain(monkeypatch, chain):
    monkeypatch.setattr(cli, "_chain", lambda with_autobirther=False: chain)


class TestRun:
    def test_missing_commitments_exits_non_zero(self, db_path, monkeypatch):
        use_chain(monkeypatch, FakeChain(pregnant_count=3, heads=[1000]))

        result = runner.invoke(cli.app, ["run"])

        assert result.exit_code == 1

    def test_source_error_exits_non_zero(self, db_path, monkeypatch):
        class Down(FakeChain):
            def current_height(self):
                raise SourceError("eth_blockNumber", RuntimeError("refused"))

        use_chain(monkeypatch, Down())

        assert runner.invoke(cli.app, ["run"]).exit_code == 1

    def test_clean_run_processes_heads(self, db_path, monkeypatch):
        chain = FakeChain(pregnant_count=0, heads=[1000, 1001])
        use_chain(monkeypatch, chain)

        result = runner.invoke(cli.app, ["run", "--poll", "0"])

        assert result.exit_code == 0
        assert (Source.CORE, EventKind.PREGNANT, 997, 1001) in chain.queries


class TestSync:
    def test_backfill_to_origin(self, db_path, monkeypatch, caplog):
        chain = FakeChain(head=100, events={(Source.CORE, EventKind.PREGNANT): [pregnant(1, due=120, block=98)]})
        use_chain(monkeypatch, chain)

        caplog.set_level(logging.INFO)
        result = runner.invoke(cli.app, ["sync", "--no-follow", "--throttle", "0", "--origin", "97"])

        assert result.exit_code == 0
        assert "Archive holds 1 Pregnant events from core" in caplog.text
        store = ArchiveStore(db_path)
        assert store.count(EventKind.PREGNANT) == 1
        assert store.load_cursor(Source.SALE, EventKind.AUCTION_CREATED) == (96, 100)

    def test_cursor_failure_exits_non_zero(self, db_path, monkeypatch):
        chain = FakeChain(head=100)
        chain.failing_heights = {99}
        use_chain(monkeypatch, chain)

        result = runner.invoke(cli.app, ["sync", "--no-follow", "--throttle", "0", "--origin", "97"])

        assert result.exit_code == 1

    def test_cursor_failure_exits_non_zero_while_following(self, db_path, monkeypatch):
        """With the live tail running, a dead cursor still ends the command."""
        chain = EndlessHeads(head=100)
        chain.failing_heights = {99}
        use_chain(monkeypatch, chain)
        result = {}

        def invoke():
            result["r"] = runner.invoke(cli.app, ["sync", "--throttle", "0", "--origin", "97"])

        t = threading.Thread(target=invoke, daemon=True)
        t.start()
        t.join(timeout=10)

        assert not t.is_alive()
        assert result["r"].exit_code == 1


class TestKitty:
    def test_shows_stored_status(self, db_path):
        store = ArchiveStore(db_path)
        store.create_tables()
        store.upsert_kitty(kitty(5, gestating=True, cooldown_index=2))

        result = runner.invoke(cli.app, ["kitty", "5"])

        assert result.exit_code == 0
        assert "ispregnant: 1" in result.output
        assert "cooldownindex: 2" in result.output

    def test_unknown_kitty_exits_non_zero(self, db_path):
        assert runner.invoke(cli.app, ["kitty", "42"]).exit_code == 1
