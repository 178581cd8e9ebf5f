import logging
import threading

from .errors import SourceError

logger = logging.getLogger(__name__)


def sync_kitties(chain, store, stop: threading.Event, throttle_sec: float = 0.05, start_id: int = 1) -> int:
    """
    Refresh the kitties table for ids start_id..totalSupply.

    Existing rows only get their mutable status columns updated. A kitty
    whose read fails is logged and skipped; the walk goes on. Returns how
    many kitties were written.
    """
    total = chain.total_supply()
    logger.info("Total Supply = %d", total)

    synced = 0
    for kitty_id in range(start_id, total + 1):
        if stop.is_set():
            logger.info("Stopped kitty sync at id %d", kitty_id)
            break
        try:
            status = chain.get_kitty(kitty_id)
        except SourceError as e:
            logger.error("Could not read kitty %d: %s", kitty_id, e)
            continue
        store.upsert_kitty(status)
        synced += 1
        if synced % 1000 == 0:
            logger.info("Synced %d/%d kitties", synced, total)
        stop.wait(throttle_sec)
    return synced
