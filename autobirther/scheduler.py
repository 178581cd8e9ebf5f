import logging
from typing import List

from .errors import SourceError
from .events import DueEntry

logger = logging.getLogger(__name__)


def due_batch(calendar: List[DueEntry], height: int, lead_time: int = 2, sweep_window: int = 5) -> List[DueEntry]:
    """
    Entries to birth at this block, or [] if nothing is due.

    We only send when some kitty is due exactly lead_time blocks ahead, so the
    transaction has time to land. When we do send, every kitty due before
    height + sweep_window rides along in the same transaction.
    """
    if not any(e.due_height == height + lead_time for e in calendar):
        return []
    return [e for e in calendar if e.due_height < height + sweep_window]


class BirthScheduler:
    def __init__(self, chain, lead_time: int = 2, sweep_window: int = 5):
        self.chain = chain
        self.lead_time = lead_time
        self.sweep_window = sweep_window

    def on_block(self, calendar: List[DueEntry], height: int) -> str | None:
        """Submit one batched birth transaction if anything is due. Returns the tx hash, if sent."""
        batch = due_batch(calendar, height, self.lead_time, self.sweep_window)
        if not batch:
            return None

        ids = [e.subject_id for e in batch]
        logger.info("Block %d: sending birth tx for %d kitties %s", height, len(ids), ids)
        try:
            tx_hash = self.chain.submit_births(ids)
        except SourceError as e:
            # the Birth events (or their absence) show up through the listener either way
            logger.error("Block %d: birth tx failed: %s", height, e)
            return None
        logger.info("Block %d: birth tx %s", height, tx_hash)
        return tx_hash
