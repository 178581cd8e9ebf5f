"""
backfill.py — Walk the chain backward and archive every event, one block at a time.

Each (source, kind) pair gets its own cursor and thread:

    RUNNING(frontier) -> RUNNING(frontier - 1) -> ... -> DONE (frontier < floor)

A step queries exactly one block, writes what it finds with insert-or-ignore,
persists the new frontier, then waits on the stop event for the throttle
delay. Setting the stop event therefore ends every walk at a step boundary
with its frontier saved.

Resuming: the stored cursor remembers the head it started from (ceiling).
On restart we first walk the gap from the new head down to ceiling + 1,
then pick the old walk up at its stored frontier.
"""
from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from .events import CURSOR_PAIRS, ArchivedEvent, EventKind, Source

logger = logging.getLogger(__name__)

SECONDS_PER_BLOCK = 15


@dataclass
class Cursor:
    source: Source
    kind: EventKind
    frontier: int
    ceiling: int
    floor: int
    persist: bool = True

    @property
    def done(self) -> bool:
        return self.frontier < self.floor

    @property
    def label(self) -> str:
        return f"{self.kind.value} events from {self.source.value}"


class BackfillSynchronizer:
    def __init__(self, chain, store, origin_height: int, throttle_sec: float = 0.1,
                 progress_every: int = 100, window_size: int = 4):
        self.chain = chain
        self.store = store
        self.origin_height = origin_height
        self.throttle_sec = throttle_sec
        self.progress_every = progress_every
        self.window_size = window_size
        self.failures: Dict[object, Exception] = {}

    # ----------------------
    # Planning
    # ----------------------

    def plan(self, source: Source, kind: EventKind, head: int) -> List[Cursor]:
        saved = self.store.load_cursor(source, kind)
        if saved is None:
            return [Cursor(source, kind, frontier=head, ceiling=head, floor=self.origin_height)]

        frontier, ceiling = saved
        segments = []
        if head > ceiling:
            # not persisted: an interrupted gap walk is simply redone next time
            segments.append(Cursor(source, kind, frontier=head, ceiling=head, floor=ceiling + 1, persist=False))
        segments.append(Cursor(source, kind, frontier=frontier, ceiling=max(head, ceiling),
                               floor=self.origin_height))
        return segments

    # ----------------------
    # Stepping
    # ----------------------

    def _write(self, event: ArchivedEvent) -> bool:
        try:
            inserted = self.store.insert_if_absent(event)
        except sqlite3.Error as e:
            logger.error("Failed to archive %s %s: %s", event.kind.value, event.event_id, e)
            return False
        if inserted:
            logger.debug("Archived %s %s at block %d", event.kind.value, event.event_id, event.block_number)
        return inserted

    def step(self, cursor: Cursor) -> int:
        """Archive the events at cursor.frontier and move one block down. Returns how many were found."""
        events = self.chain.query_events(cursor.source, cursor.kind, cursor.frontier, cursor.frontier)
        for event in events:
            self._write(event)
        cursor.frontier -= 1
        if cursor.persist:
            self.store.save_cursor(cursor.source, cursor.kind, cursor.frontier, cursor.ceiling)
        return len(events)

    def walk(self, cursor: Cursor, stop: threading.Event) -> bool:
        """Step until DONE or stop is set. Returns True if the cursor finished."""
        if cursor.persist:
            self.store.save_cursor(cursor.source, cursor.kind, cursor.frontier, cursor.ceiling)

        count = 0
        since = cursor.frontier
        while not cursor.done:
            if stop.is_set():
                logger.info("Stopped syncing %s at block %d", cursor.label, cursor.frontier)
                return False

            # log a chunk of our progress
            if count > self.progress_every:
                hours = round(SECONDS_PER_BLOCK * (cursor.ceiling - cursor.frontier) / 60 / 60)
                logger.info("=== Found %d %s in blocks %d-%d (%d hours ago)",
                            count, cursor.label, since, cursor.frontier, hours)
                count = 0
                since = cursor.frontier

            count += self.step(cursor)
            stop.wait(self.throttle_sec)
        return True

    def sync_pair(self, source: Source, kind: EventKind, head: int, stop: threading.Event) -> bool:
        for cursor in self.plan(source, kind, head):
            if not self.walk(cursor, stop):
                return False
        logger.info("Finished syncing %s events from %s", kind.value, source.value)
        return True

    # ----------------------
    # Live tail
    # ----------------------

    def tail(self, pairs: Iterable[Tuple[Source, EventKind]], stop: threading.Event,
             poll_interval: float = 2.0) -> None:
        """Archive events from every new head until stop is set, re-reading a few blocks behind each head."""
        pairs = list(pairs)
        for h in self.chain.iter_heads(stop, poll_interval):
            lo = max(0, h - self.window_size)
            for source, kind in pairs:
                for event in self.chain.query_events(source, kind, lo, h):
                    self._write(event)

    # ----------------------
    # Threads
    # ----------------------

    def _guarded(self, key, stop: threading.Event, fn, *args) -> None:
        try:
            fn(*args)
        except Exception as e:
            logger.error("Sync %s stopped on error: %s", key, e)
            self.failures[key] = e
            # one failed cursor takes the whole sync down, the others stop at their next step
            stop.set()

    def start(self, head: int, stop: threading.Event, pairs: Iterable[Tuple[Source, EventKind]] = CURSOR_PAIRS,
              follow: bool = True, poll_interval: float = 2.0) -> List[threading.Thread]:
        """
        Start one backfill thread per pair, plus a live tail if follow.

        A failure lands in self.failures and sets stop, so every other thread
        winds down and the caller can exit.
        """
        pairs = list(pairs)
        logger.info("Starting %d event backfills from block %d down to %d", len(pairs), head, self.origin_height)
        threads = []
        for source, kind in pairs:
            threads.append(threading.Thread(
                target=self._guarded, args=((source, kind), stop, self.sync_pair, source, kind, head, stop),
                name=f"backfill-{source.value}-{kind.value}", daemon=True))
        if follow:
            threads.append(threading.Thread(
                target=self._guarded, args=("tail", stop, self.tail, pairs, stop, poll_interval),
                name="backfill-tail", daemon=True))
        for t in threads:
            t.start()
        return threads
