"""
Unit tests for the due-date calendar.

Tests cover:
- Supersession and removal rules
- Sorting and uniqueness invariants (property-based)
- Recount against the chain's pregnant count
"""

import pytest
from hypothesis import given, strategies as st

from autobirther.duedates import apply_events, update
from autobirther.errors import CalendarUntrustworthy
from autobirther.events import Commitment, Completion, DueEntry

from fakes import FakeChain

commitments_st = st.lists(st.builds(Commitment, subject_id=st.integers(1, 20), due_height=st.integers(0, 500)))
completions_st = st.lists(st.builds(Completion, subject_id=st.integers(1, 20), at_height=st.integers(0, 500)))


class TestApplyEvents:
    """Tests for the pure event fold."""

    def test_new_commitments_are_sorted(self):
        """Two new pregnancies come back ordered by due height."""
        result = apply_events([], [Commitment(1, 100), Commitment(2, 90)], [])

        assert result == [DueEntry(2, 90), DueEntry(1, 100)]

    def test_completion_at_or_after_due_removes(self):
        """A birth after the due height clears the entry."""
        assert apply_events([DueEntry(1, 100)], [], [Completion(1, 101)]) == []
        assert apply_events([DueEntry(1, 100)], [], [Completion(1, 100)]) == []

    def test_completion_before_due_keeps_entry(self):
        """A birth before the due height belongs to an older pregnancy."""
        result = apply_events([DueEntry(1, 100)], [], [Completion(1, 99)])

        assert result == [DueEntry(1, 100)]

    def test_later_commitment_overwrites_due_height(self):
        """Supersession replaces the due height and keeps the kitty id."""
        result = apply_events([DueEntry(7, 100)], [Commitment(7, 150)], [])

        assert result == [DueEntry(7, 150)]

    def test_earlier_commitment_is_ignored(self):
        """Stale re-deliveries never move a due height backward."""
        result = apply_events([DueEntry(7, 100)], [Commitment(7, 80), Commitment(7, 100)], [])

        assert result == [DueEntry(7, 100)]

    def test_input_is_not_mutated(self):
        """The caller's calendar is left untouched."""
        calendar = [DueEntry(1, 100), DueEntry(2, 50)]

        apply_events(calendar, [Commitment(3, 10)], [Completion(1, 200)])

        assert calendar == [DueEntry(1, 100), DueEntry(2, 50)]

    @given(commitments_st, completions_st)
    def test_one_entry_per_kitty_and_sorted(self, commitments, completions):
        result = apply_events([], commitments, completions)

        ids = [e.subject_id for e in result]
        assert len(ids) == len(set(ids))
        assert [e.due_height for e in result] == sorted(e.due_height for e in result)

    @given(commitments_st, completions_st)
    def test_reapplying_window_is_idempotent(self, commitments, completions):
        once = apply_events([], commitments, completions)
        twice = apply_events(once, commitments, completions)

        assert sorted(twice, key=lambda e: e.subject_id) == sorted(once, key=lambda e: e.subject_id)

    @given(st.integers(0, 500), st.integers(0, 500))
    def test_supersession_is_monotonic(self, existing, incoming):
        result = apply_events([DueEntry(1, existing)], [Commitment(1, incoming)], [])

        assert result == [DueEntry(1, max(existing, incoming))]

    @given(st.integers(1, 500), st.data())
    def test_early_completion_never_removes(self, due, data):
        at = data.draw(st.integers(0, due - 1))

        assert apply_events([DueEntry(1, due)], [], [Completion(1, at)]) == [DueEntry(1, due)]


class TestUpdate:
    """Tests for update() with the authoritative recount."""

    def test_matching_count_returns_calendar(self):
        """Equal counts leave the applied calendar as-is."""
        chain = FakeChain(pregnant_count=2)

        result = update([], [Commitment(1, 100), Commitment(2, 90)], [], chain)

        assert result == [DueEntry(2, 90), DueEntry(1, 100)]

    def test_too_many_entries_are_reconciled(self):
        """Chain says 1, we have 2; kitty 1 isn't pregnant anymore and is dropped."""
        chain = FakeChain(pregnant_count=1, gestating={1: False, 2: True})

        result = update([DueEntry(1, 100), DueEntry(2, 110)], [], [], chain)

        assert result == [DueEntry(2, 110)]

    def test_too_many_after_reconcile_is_fatal(self):
        """If every kitty still checks out as pregnant the counts can't be squared."""
        chain = FakeChain(pregnant_count=1, gestating={1: True, 2: True})

        with pytest.raises(CalendarUntrustworthy) as exc:
            update([DueEntry(1, 100), DueEntry(2, 110)], [], [], chain)

        assert exc.value.reason == "count_mismatch"

    def test_missing_commitments_is_fatal(self):
        """Chain says 2, we have 1: a pregnancy was never observed."""
        chain = FakeChain(pregnant_count=2)

        with pytest.raises(CalendarUntrustworthy) as exc:
            update([DueEntry(1, 100)], [], [], chain)

        assert exc.value.reason == "missing_commitments"
        assert exc.value.expected == 2
        assert exc.value.actual == 1
