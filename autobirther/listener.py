"""
Keeps the due-date calendar current, one block at a time.

The calendar is owned by a single consumer. A producer thread polls the
node for new heads and pushes heights onto an ordered queue; the consumer
drains it and fully finishes block h (event window, calendar update,
recount, scheduling) before it starts h+1. The producer never touches the
calendar, so updates can't interleave however fast blocks arrive.
"""
import logging
import queue
import threading
from typing import Iterable, List

from .duedates import update
from .errors import SourceError
from .events import DueEntry, EventKind, Source

logger = logging.getLogger(__name__)

_DONE = object()


def bootstrap(store, chain, history_blocks: int) -> List[DueEntry]:
    """Build the initial calendar from archived Pregnant/Birth events of the last history_blocks."""
    latest = chain.current_height()
    since = latest - history_blocks
    logger.info("Initializing due dates from archived events after block %d (latest %d)", since, latest)
    commitments = store.commitments_since(since)
    completions = store.completions_since(since)
    calendar = update([], commitments, completions, chain)
    logger.info("Initial calendar: %d due dates from %d pregnancies and %d births",
                len(calendar), len(commitments), len(completions))
    return calendar


class BlockListener:
    def __init__(self, chain, scheduler, calendar: Iterable[DueEntry] = (), window_size: int = 4,
                 log_balance: bool = True):
        self.chain = chain
        self.scheduler = scheduler
        self.calendar: List[DueEntry] = list(calendar)
        self.window_size = window_size
        self.log_balance = log_balance
        self.queue: "queue.Queue" = queue.Queue()

    def process(self, height: int) -> List[DueEntry]:
        if self.log_balance:
            # one attempt only: a slow balance read must not eat into the lead time
            try:
                logger.info("Imported block %d (Current Balance: %d uETH)", height,
                            round(self.chain.balance(retries=0) / 1_000_000_000_000))
            except SourceError as e:
                logger.warning("Imported block %d (balance unavailable: %s)", height, e)
        else:
            logger.info("Imported block %d", height)

        # the node occasionally skips events for the newest blocks, so re-read a few behind
        lo = max(0, height - self.window_size)
        births = self.chain.query_events(Source.CORE, EventKind.BIRTH, lo, height)
        pregos = self.chain.query_events(Source.CORE, EventKind.PREGNANT, lo, height)

        self.calendar = update(
            self.calendar,
            [p.as_commitment() for p in pregos],
            [b.as_completion() for b in births],
            self.chain,
        )
        logger.info("Due dates (%d): %s", len(self.calendar),
                    ", ".join(str(e.due_height) for e in self.calendar[:3]))

        self.scheduler.on_block(self.calendar, height)
        return self.calendar

    def _produce(self, heads: Iterable[int]) -> None:
        try:
            for h in heads:
                self.queue.put(h)
        except Exception as e:
            # hand the failure to the consumer, which owns error handling
            self.queue.put(e)
        finally:
            self.queue.put(_DONE)

    def run_heads(self, heads: Iterable[int]) -> List[DueEntry]:
        """Consume heights from heads strictly in order until it is exhausted. Re-raises producer errors."""
        producer = threading.Thread(target=self._produce, args=(heads,), name="head-poller", daemon=True)
        producer.start()
        while True:
            item = self.queue.get()
            if item is _DONE:
                break
            if isinstance(item, Exception):
                raise item
            self.process(item)
        producer.join()
        return self.calendar

    def run(self, stop: threading.Event, poll_interval: float = 2.0) -> List[DueEntry]:
        return self.run_heads(self.chain.iter_heads(stop, poll_interval))
