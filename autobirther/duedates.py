"""
The due-date calendar.

A calendar is a list of DueEntry sorted by due_height, at most one per
kitty. Callers own it: update() never mutates its input and always hands
back a fresh list that becomes the new authoritative calendar.

    update(calendar, commitments, completions, chain) -> calendar'

where
  - commitments[i] = Commitment(subject_id=123, due_height=464)
    kitty 123 got pregnant and will be ready to give birth at block 464
  - completions[i] = Completion(subject_id=456, at_height=457)
    kitty 456 gave birth at block 457
"""
from __future__ import annotations

import logging
from operator import attrgetter
from typing import Iterable, List

from .errors import CalendarUntrustworthy
from .events import Commitment, Completion, DueEntry
from .reconcile import verify

logger = logging.getLogger(__name__)


def apply_events(calendar: Iterable[DueEntry], commitments: Iterable[Commitment],
                 completions: Iterable[Completion]) -> List[DueEntry]:
    """Fold commitment and completion events into a copy of the calendar, sorted by due height."""
    by_subject = {e.subject_id: e for e in calendar}

    for c in commitments:
        current = by_subject.get(c.subject_id)
        # a later commitment supersedes; earlier or repeated ones are re-deliveries
        if current is None or c.due_height > current.due_height:
            by_subject[c.subject_id] = DueEntry(subject_id=c.subject_id, due_height=c.due_height)

    for b in completions:
        current = by_subject.get(b.subject_id)
        # a birth before the recorded due height resolved an older, superseded pregnancy
        if current is not None and b.at_height >= current.due_height:
            del by_subject[b.subject_id]

    return sorted(by_subject.values(), key=attrgetter("due_height"))


def update(calendar: Iterable[DueEntry], commitments: Iterable[Commitment],
           completions: Iterable[Completion], chain) -> List[DueEntry]:
    """
    Apply new events, then cross-check the result against chain.pregnant_count().

    Too many entries triggers a per-kitty reconciliation; too few (or still
    too many after reconciling) means we missed events and the calendar can't
    be trusted, so CalendarUntrustworthy is raised.
    """
    duedates = apply_events(calendar, commitments, completions)

    expected = chain.pregnant_count()
    if expected < len(duedates):
        logger.warning("We have %d due dates but chain reports %d pregnant kitties, double checking...",
                       len(duedates), expected)
        duedates = verify(duedates, chain)
        if expected != len(duedates):
            raise CalendarUntrustworthy("count_mismatch", expected=expected, actual=len(duedates))
    elif expected > len(duedates):
        raise CalendarUntrustworthy("missing_commitments", expected=expected, actual=len(duedates))

    return duedates
