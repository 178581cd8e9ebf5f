"""
Unit tests for per-kitty reconciliation.
"""

import pytest

from autobirther.errors import CalendarUntrustworthy, SourceError
from autobirther.events import DueEntry
from autobirther.reconcile import verify

from fakes import FakeChain


class TestVerify:
    """Tests for verify()."""

    def test_drops_non_gestating_and_keeps_order(self):
        """Only kitties still pregnant survive, in calendar order."""
        entries = [DueEntry(3, 10), DueEntry(1, 20), DueEntry(2, 30), DueEntry(4, 40)]
        chain = FakeChain(gestating={1: False, 4: False})

        assert verify(entries, chain) == [DueEntry(3, 10), DueEntry(2, 30)]

    def test_consecutive_removals(self):
        """Adjacent stale entries are all removed (no index skipping)."""
        entries = [DueEntry(1, 10), DueEntry(2, 20), DueEntry(3, 30)]
        chain = FakeChain(gestating={1: False, 2: False, 3: False})

        assert verify(entries, chain) == []

    def test_returns_fresh_list(self):
        """The input list isn't modified."""
        entries = [DueEntry(1, 10), DueEntry(2, 20)]
        chain = FakeChain(gestating={1: False})

        verify(entries, chain)

        assert entries == [DueEntry(1, 10), DueEntry(2, 20)]

    def test_any_read_failure_is_fatal(self):
        """One unreadable kitty poisons the whole batch."""
        entries = [DueEntry(1, 10), DueEntry(2, 20)]
        chain = FakeChain(gestating={2: SourceError("getKitty(2)", RuntimeError("timeout"))})

        with pytest.raises(CalendarUntrustworthy) as exc:
            verify(entries, chain)

        assert exc.value.reason == "unverifiable_subject"
        assert exc.value.subject_id == 2
