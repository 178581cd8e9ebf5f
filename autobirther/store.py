"""
SQLite event archive.

One table per (source, kind), keyed by event id ("<txhash>:<logIndex>").
Writes are INSERT OR IGNORE, so replaying a block that was already archived
is a no-op and concurrent cursors never need a lock of their own. Each
thread gets its own connection; WAL mode lets readers and the single
writer-at-a-time coexist.
"""
from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import List, Optional

from .events import (
    AUCTION_KINDS, ArchivedEvent, Commitment, Completion, EventKind, KittyStatus, Source,
)

logger = logging.getLogger(__name__)

# kind -> extra columns (after event_id, txhash, blockn)
_COLUMNS = {
    EventKind.TRANSFER: "sender TEXT NOT NULL, recipient TEXT NOT NULL, kittyid INTEGER NOT NULL",
    EventKind.APPROVAL: "owner TEXT NOT NULL, approved TEXT NOT NULL, kittyid INTEGER NOT NULL",
    EventKind.BIRTH: ("owner TEXT NOT NULL, kittyid INTEGER NOT NULL, matronid INTEGER NOT NULL, "
                      "sireid INTEGER NOT NULL, genes TEXT NOT NULL"),
    EventKind.PREGNANT: ("owner TEXT NOT NULL, matronid INTEGER NOT NULL, sireid INTEGER NOT NULL, "
                         "cooldownend INTEGER NOT NULL"),
    EventKind.AUCTION_CREATED: ("kittyid INTEGER NOT NULL, startprice TEXT NOT NULL, endprice TEXT NOT NULL, "
                                "duration INTEGER NOT NULL"),
    EventKind.AUCTION_SUCCESSFUL: "kittyid INTEGER NOT NULL, price TEXT NOT NULL, winner TEXT NOT NULL",
    EventKind.AUCTION_CANCELLED: "kittyid INTEGER NOT NULL",
}


def table_name(source: Source, kind: EventKind) -> str:
    # auction tables are prefixed with their contract, e.g. saleAuctionCreated
    if kind in AUCTION_KINDS:
        return f"{source.value}{kind.value}"
    return kind.value


class ArchiveStore:
    def __init__(self, db_path: str):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()

    @property
    def conn(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(self.db_path, timeout=30)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn = conn
        return conn

    def close(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None

    def create_tables(self) -> None:
        stmts = []
        for source, kinds in ((Source.CORE, [EventKind.TRANSFER, EventKind.APPROVAL, EventKind.BIRTH,
                                             EventKind.PREGNANT]),
                              (Source.SALE, AUCTION_KINDS), (Source.SIRE, AUCTION_KINDS)):
            for kind in kinds:
                table = table_name(source, kind)
                stmts.append(f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        event_id TEXT PRIMARY KEY,
                        txhash   TEXT NOT NULL,
                        blockn   INTEGER NOT NULL,
                        {_COLUMNS[kind]});
                    CREATE INDEX IF NOT EXISTS idx_{table}_blockn ON {table}(blockn);""")
        stmts.append("""
            CREATE TABLE IF NOT EXISTS kitties (
                kittyid         INTEGER PRIMARY KEY,
                ispregnant      INTEGER NOT NULL,
                isready         INTEGER NOT NULL,
                cooldownindex   INTEGER NOT NULL,
                nextactionat    INTEGER NOT NULL,
                siringwith      INTEGER NOT NULL,
                birthtime       INTEGER NOT NULL,
                matronid        INTEGER NOT NULL,
                sireid          INTEGER NOT NULL,
                generation      INTEGER NOT NULL,
                genes           TEXT NOT NULL);
            CREATE TABLE IF NOT EXISTS cursors (
                source   TEXT NOT NULL,
                kind     TEXT NOT NULL,
                frontier INTEGER NOT NULL,
                ceiling  INTEGER NOT NULL,
                PRIMARY KEY (source, kind));""")
        self.conn.executescript("\n".join(stmts))
        self.conn.commit()

    # ----------------------
    # Events
    # ----------------------

    def insert_if_absent(self, event: ArchivedEvent) -> bool:
        """Archive one event. Returns False if its id was already stored."""
        fields = event.fields()
        cols = ["event_id", "txhash", "blockn", *fields.keys()]
        sql = (f"INSERT OR IGNORE INTO {table_name(event.source, event.kind)} "
               f"({', '.join(cols)}) VALUES ({', '.join('?' for _ in cols)})")
        cur = self.conn.execute(sql, (event.event_id, event.tx_hash, event.block_number, *fields.values()))
        self.conn.commit()
        return cur.rowcount > 0

    def count(self, kind: EventKind, source: Source = Source.CORE) -> int:
        row = self.conn.execute(f"SELECT COUNT(*) AS n FROM {table_name(source, kind)}").fetchone()
        return int(row["n"])

    def commitments_since(self, height: int) -> List[Commitment]:
        rows = self.conn.execute(
            "SELECT matronid, cooldownend FROM Pregnant WHERE blockn > ? ORDER BY blockn DESC", (height,)
        ).fetchall()
        return [Commitment(subject_id=int(r["matronid"]), due_height=int(r["cooldownend"])) for r in rows]

    def completions_since(self, height: int) -> List[Completion]:
        rows = self.conn.execute(
            "SELECT matronid, blockn FROM Birth WHERE blockn > ? ORDER BY blockn DESC", (height,)
        ).fetchall()
        return [Completion(subject_id=int(r["matronid"]), at_height=int(r["blockn"])) for r in rows]

    # ----------------------
    # Kitty status projection
    # ----------------------

    def upsert_kitty(self, k: KittyStatus) -> None:
        self.conn.execute("""
            INSERT INTO kitties (kittyid, ispregnant, isready, cooldownindex, nextactionat, siringwith,
                                 birthtime, matronid, sireid, generation, genes)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(kittyid) DO UPDATE SET
                ispregnant=excluded.ispregnant, isready=excluded.isready,
                cooldownindex=excluded.cooldownindex, nextactionat=excluded.nextactionat,
                siringwith=excluded.siringwith""",
            (k.kitty_id, int(k.is_gestating), int(k.is_ready), k.cooldown_index, k.next_action_at,
             k.siring_with_id, k.birth_time, k.matron_id, k.sire_id, k.generation, str(k.genes)))
        self.conn.commit()

    def get_kitty(self, kitty_id: int) -> Optional[sqlite3.Row]:
        return self.conn.execute("SELECT * FROM kitties WHERE kittyid = ?", (kitty_id,)).fetchone()

    # ----------------------
    # Backfill cursors
    # ----------------------

    def load_cursor(self, source: Source, kind: EventKind) -> Optional[tuple[int, int]]:
        """Returns (frontier, ceiling) or None if this pair was never synced."""
        row = self.conn.execute(
            "SELECT frontier, ceiling FROM cursors WHERE source = ? AND kind = ?", (source.value, kind.value)
        ).fetchone()
        if row is None:
            return None
        return int(row["frontier"]), int(row["ceiling"])

    def save_cursor(self, source: Source, kind: EventKind, frontier: int, ceiling: int) -> None:
        self.conn.execute("""
            INSERT INTO cursors (source, kind, frontier, ceiling) VALUES (?, ?, ?, ?)
            ON CONFLICT(source, kind) DO UPDATE SET frontier=excluded.frontier, ceiling=excluded.ceiling""",
            (source.value, kind.value, frontier, ceiling))
        self.conn.commit()
