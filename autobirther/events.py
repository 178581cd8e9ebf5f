"""
events.py — Typed records for every event kind we read from the chain.

Raw web3 logs are decoded once at the chain-client boundary (see
``from_log``) into one of the frozen dataclasses below; nothing past that
boundary touches positional ``returnValues``.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Tuple

from web3 import Web3


class Source(str, Enum):
    CORE = "core"
    SALE = "sale"
    SIRE = "sire"


class EventKind(str, Enum):
    TRANSFER = "Transfer"
    APPROVAL = "Approval"
    BIRTH = "Birth"
    PREGNANT = "Pregnant"
    AUCTION_CREATED = "AuctionCreated"
    AUCTION_SUCCESSFUL = "AuctionSuccessful"
    AUCTION_CANCELLED = "AuctionCancelled"


AUCTION_KINDS = (EventKind.AUCTION_CREATED, EventKind.AUCTION_SUCCESSFUL, EventKind.AUCTION_CANCELLED)

# Every (source, kind) pair that gets its own backfill cursor
CURSOR_PAIRS: List[Tuple[Source, EventKind]] = [
    (Source.CORE, EventKind.TRANSFER),
    (Source.CORE, EventKind.APPROVAL),
    (Source.CORE, EventKind.BIRTH),
    (Source.CORE, EventKind.PREGNANT),
    *[(Source.SALE, k) for k in AUCTION_KINDS],
    *[(Source.SIRE, k) for k in AUCTION_KINDS],
]


# ----------------------
# Calendar records
# ----------------------

@dataclass(frozen=True)
class DueEntry:
    subject_id: int
    due_height: int


@dataclass(frozen=True)
class Commitment:
    subject_id: int
    due_height: int


@dataclass(frozen=True)
class Completion:
    subject_id: int
    at_height: int


# ----------------------
# Archived events
# ----------------------

@dataclass(frozen=True)
class ArchivedEvent:
    source: Source
    tx_hash: str
    log_index: int
    block_number: int

    kind = None  # set per subclass

    @property
    def event_id(self) -> str:
        # one tx can emit several events of one kind (batched births), so txhash alone isn't unique
        return f"{self.tx_hash}:{self.log_index}"

    def fields(self) -> Dict[str, object]:
        return {}


@dataclass(frozen=True)
class Transfer(ArchivedEvent):
    sender: str = ""
    recipient: str = ""
    kitty_id: int = 0

    kind = EventKind.TRANSFER

    def fields(self):
        return {"sender": self.sender, "recipient": self.recipient, "kittyid": self.kitty_id}


@dataclass(frozen=True)
class Approval(ArchivedEvent):
    owner: str = ""
    approved: str = ""
    kitty_id: int = 0

    kind = EventKind.APPROVAL

    def fields(self):
        return {"owner": self.owner, "approved": self.approved, "kittyid": self.kitty_id}


@dataclass(frozen=True)
class Birth(ArchivedEvent):
    owner: str = ""
    kitty_id: int = 0
    matron_id: int = 0
    sire_id: int = 0
    genes: int = 0

    kind = EventKind.BIRTH

    def fields(self):
        return {"owner": self.owner, "kittyid": self.kitty_id, "matronid": self.matron_id,
                "sireid": self.sire_id, "genes": str(self.genes)}

    def as_completion(self) -> Completion:
        return Completion(subject_id=self.matron_id, at_height=self.block_number)


@dataclass(frozen=True)
class Pregnant(ArchivedEvent):
    owner: str = ""
    matron_id: int = 0
    sire_id: int = 0
    cooldown_end: int = 0

    kind = EventKind.PREGNANT

    def fields(self):
        return {"owner": self.owner, "matronid": self.matron_id, "sireid": self.sire_id,
                "cooldownend": self.cooldown_end}

    def as_commitment(self) -> Commitment:
        return Commitment(subject_id=self.matron_id, due_height=self.cooldown_end)


@dataclass(frozen=True)
class AuctionCreated(ArchivedEvent):
    kitty_id: int = 0
    start_price: int = 0
    end_price: int = 0
    duration: int = 0

    kind = EventKind.AUCTION_CREATED

    def fields(self):
        return {"kittyid": self.kitty_id, "startprice": str(self.start_price),
                "endprice": str(self.end_price), "duration": self.duration}


@dataclass(frozen=True)
class AuctionSuccessful(ArchivedEvent):
    kitty_id: int = 0
    price: int = 0
    winner: str = ""

    kind = EventKind.AUCTION_SUCCESSFUL

    def fields(self):
        return {"kittyid": self.kitty_id, "price": str(self.price), "winner": self.winner}


@dataclass(frozen=True)
class AuctionCancelled(ArchivedEvent):
    kitty_id: int = 0

    kind = EventKind.AUCTION_CANCELLED

    def fields(self):
        return {"kittyid": self.kitty_id}


@dataclass(frozen=True)
class KittyStatus:
    kitty_id: int
    is_gestating: bool
    is_ready: bool
    cooldown_index: int
    next_action_at: int
    siring_with_id: int
    birth_time: int
    matron_id: int
    sire_id: int
    generation: int
    genes: int

    @classmethod
    def from_call(cls, kitty_id: int, values) -> "KittyStatus":
        # getKitty() returns a positional 10-tuple
        v = list(values)
        return cls(kitty_id, bool(v[0]), bool(v[1]), int(v[2]), int(v[3]), int(v[4]),
                   int(v[5]), int(v[6]), int(v[7]), int(v[8]), int(v[9]))


# ----------------------
# Decoding (chain-client boundary)
# ----------------------

def _tx_hash(log) -> str:
    h = log["transactionHash"]
    return h if isinstance(h, str) else Web3.to_hex(h)


def from_log(source: Source, kind: EventKind, log) -> ArchivedEvent:
    """Build the typed record for a decoded web3 event log (an AttributeDict with 'args')."""
    a = log["args"]
    base = dict(source=source, tx_hash=_tx_hash(log), log_index=int(log["logIndex"]),
                block_number=int(log["blockNumber"]))

    if kind == EventKind.TRANSFER:
        return Transfer(**base, sender=a["from"], recipient=a["to"], kitty_id=int(a["tokenId"]))
    if kind == EventKind.APPROVAL:
        return Approval(**base, owner=a["owner"], approved=a["approved"], kitty_id=int(a["tokenId"]))
    if kind == EventKind.BIRTH:
        return Birth(**base, owner=a["owner"], kitty_id=int(a["kittyId"]), matron_id=int(a["matronId"]),
                     sire_id=int(a["sireId"]), genes=int(a["genes"]))
    if kind == EventKind.PREGNANT:
        return Pregnant(**base, owner=a["owner"], matron_id=int(a["matronId"]), sire_id=int(a["sireId"]),
                        cooldown_end=int(a["cooldownEndBlock"]))
    if kind == EventKind.AUCTION_CREATED:
        return AuctionCreated(**base, kitty_id=int(a["tokenId"]), start_price=int(a["startingPrice"]),
                              end_price=int(a["endingPrice"]), duration=int(a["duration"]))
    if kind == EventKind.AUCTION_SUCCESSFUL:
        return AuctionSuccessful(**base, kitty_id=int(a["tokenId"]), price=int(a["totalPrice"]),
                                 winner=a["winner"])
    if kind == EventKind.AUCTION_CANCELLED:
        return AuctionCancelled(**base, kitty_id=int(a["tokenId"]))
    raise ValueError(f"Unknown event kind {kind!r}")
