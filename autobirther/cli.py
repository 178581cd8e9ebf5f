import logging
import threading
from typing import List

import typer

from . import config
from .backfill import BackfillSynchronizer
from .chain import ChainClient
from .errors import CalendarUntrustworthy, SourceError
from .events import CURSOR_PAIRS, Source
from .kitties import sync_kitties
from .listener import BlockListener, bootstrap
from .scheduler import BirthScheduler
from .store import ArchiveStore

app = typer.Typer(help="Kitty due-date calendar, autobirther & event archive")
logger = logging.getLogger("autobirther")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO,
                        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")


def _chain(with_autobirther: bool = False) -> ChainClient:
    keys = ["EXECUTION_RPC_URL", "CORE_ADDRESS", "SALE_ADDRESS", "SIRE_ADDRESS"]
    if with_autobirther:
        keys.append("AUTOBIRTHER_ADDRESS")
    config.require(*keys)
    return ChainClient(
        config.EXECUTION_RPC_URL,
        {Source.CORE: config.CORE_ADDRESS, Source.SALE: config.SALE_ADDRESS, Source.SIRE: config.SIRE_ADDRESS},
        autobirther_address=config.AUTOBIRTHER_ADDRESS if with_autobirther else None,
        from_account=config.FROM_ACCOUNT,
        retries=config.RPC_RETRIES,
        backoff=config.RPC_BACKOFF,
    )


def _store() -> ArchiveStore:
    store = ArchiveStore(config.DB_PATH)
    store.create_tables()
    return store


def _wait(threads: List[threading.Thread], stop: threading.Event) -> None:
    try:
        while any(t.is_alive() for t in threads):
            for t in threads:
                t.join(timeout=1.0)
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping at the next block boundary...")
        stop.set()
        for t in threads:
            t.join()


@app.command()
def run(
    history_blocks: int = typer.Option(config.HISTORY_BLOCKS, help="Blocks of archived events to seed the calendar"),
    poll: float = typer.Option(config.POLL_INTERVAL, "--poll", help="Seconds between head polls"),
):
    """Track due dates block by block and send birth transactions when kitties are due."""
    chain = _chain(with_autobirther=True)
    store = _store()
    stop = threading.Event()
    try:
        calendar = bootstrap(store, chain, history_blocks)
        scheduler = BirthScheduler(chain, lead_time=config.LEAD_TIME, sweep_window=config.SWEEP_WINDOW)
        listener = BlockListener(chain, scheduler, calendar, window_size=config.WINDOW_SIZE)
        listener.run(stop, poll_interval=poll)
    except CalendarUntrustworthy as e:
        logger.critical("Our due date info is dangerously out of date, exiting: %s", e)
        raise typer.Exit(code=1)
    except SourceError as e:
        logger.critical("Chain source failed, exiting: %s", e)
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
    finally:
        stop.set()


@app.command()
def sync(
    follow: bool = typer.Option(True, help="Also archive events from new blocks as they arrive"),
    throttle: float = typer.Option(config.THROTTLE_SEC, help="Seconds between backfill queries per cursor"),
    origin: int = typer.Option(config.ORIGIN_HEIGHT, help="Stop backfilling below this block"),
):
    """Archive every contract event from the current head back to the origin block."""
    chain = _chain()
    store = _store()
    stop = threading.Event()
    try:
        head = chain.current_height()
    except SourceError as e:
        logger.critical("Could not read the current block, exiting: %s", e)
        raise typer.Exit(code=1)

    synchronizer = BackfillSynchronizer(chain, store, origin_height=origin, throttle_sec=throttle,
                                        progress_every=config.PROGRESS_EVERY, window_size=config.WINDOW_SIZE)
    threads = synchronizer.start(head, stop, follow=follow, poll_interval=config.POLL_INTERVAL)
    _wait(threads, stop)

    for source, kind in CURSOR_PAIRS:
        logger.info("Archive holds %d %s events from %s", store.count(kind, source), kind.value, source.value)
    if synchronizer.failures:
        for key, err in synchronizer.failures.items():
            logger.critical("Sync %s failed: %s", key, err)
        raise typer.Exit(code=1)


@app.command("sync-kitties")
def sync_kitties_cmd(
    start_id: int = typer.Option(1, help="First kitty id to refresh"),
    throttle: float = typer.Option(config.THROTTLE_SEC / 2, help="Seconds between kitty reads"),
):
    """Refresh the per-kitty status table from getKitty()."""
    chain = _chain()
    store = _store()
    stop = threading.Event()
    result = {}

    def work():
        try:
            result["synced"] = sync_kitties(chain, store, stop, throttle_sec=throttle, start_id=start_id)
        except SourceError as e:
            result["error"] = e

    t = threading.Thread(target=work, name="sync-kitties", daemon=True)
    t.start()
    _wait([t], stop)

    if "error" in result:
        logger.critical("Kitty sync failed: %s", result["error"])
        raise typer.Exit(code=1)
    logger.info("Synced %d kitties", result.get("synced", 0))


@app.command()
def kitty(kitty_id: int = typer.Argument(..., help="Kitty id")):
    """Show the stored status of one kitty."""
    row = _store().get_kitty(kitty_id)
    if row is None:
        logger.error("Kitty %d has not been synced yet, run sync-kitties first", kitty_id)
        raise typer.Exit(code=1)
    for key in row.keys():
        typer.echo(f"{key}: {row[key]}")


if __name__ == "__main__":
    app()
