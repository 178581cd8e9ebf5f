import json
import threading
from typing import Dict, Iterator, List

from web3 import Web3

from .events import ArchivedEvent, EventKind, KittyStatus, Source, from_log
from .retry import with_retries


# Minimal ABIs: only the events and calls we use
CORE_ABI = json.loads("""[
 {"anonymous":false,"name":"Transfer","type":"event","inputs":[
  {"indexed":false,"name":"from","type":"address"},
  {"indexed":false,"name":"to","type":"address"},
  {"indexed":false,"name":"tokenId","type":"uint256"}]},
 {"anonymous":false,"name":"Approval","type":"event","inputs":[
  {"indexed":false,"name":"owner","type":"address"},
  {"indexed":false,"name":"approved","type":"address"},
  {"indexed":false,"name":"tokenId","type":"uint256"}]},
 {"anonymous":false,"name":"Birth","type":"event","inputs":[
  {"indexed":false,"name":"owner","type":"address"},
  {"indexed":false,"name":"kittyId","type":"uint256"},
  {"indexed":false,"name":"matronId","type":"uint256"},
  {"indexed":false,"name":"sireId","type":"uint256"},
  {"indexed":false,"name":"genes","type":"uint256"}]},
 {"anonymous":false,"name":"Pregnant","type":"event","inputs":[
  {"indexed":false,"name":"owner","type":"address"},
  {"indexed":false,"name":"matronId","type":"uint256"},
  {"indexed":false,"name":"sireId","type":"uint256"},
  {"indexed":false,"name":"cooldownEndBlock","type":"uint256"}]},
 {"constant":true,"name":"pregnantKitties","type":"function","stateMutability":"view",
  "inputs":[],"outputs":[{"name":"","type":"uint256"}]},
 {"constant":true,"name":"totalSupply","type":"function","stateMutability":"view",
  "inputs":[],"outputs":[{"name":"","type":"uint256"}]},
 {"constant":true,"name":"getKitty","type":"function","stateMutability":"view",
  "inputs":[{"name":"_id","type":"uint256"}],
  "outputs":[
   {"name":"isGestating","type":"bool"},
   {"name":"isReady","type":"bool"},
   {"name":"cooldownIndex","type":"uint256"},
   {"name":"nextActionAt","type":"uint256"},
   {"name":"siringWithId","type":"uint256"},
   {"name":"birthTime","type":"uint256"},
   {"name":"matronId","type":"uint256"},
   {"name":"sireId","type":"uint256"},
   {"name":"generation","type":"uint256"},
   {"name":"genes","type":"uint256"}]}
]""")

AUCTION_ABI = json.loads("""[
 {"anonymous":false,"name":"AuctionCreated","type":"event","inputs":[
  {"indexed":false,"name":"tokenId","type":"uint256"},
  {"indexed":false,"name":"startingPrice","type":"uint256"},
  {"indexed":false,"name":"endingPrice","type":"uint256"},
  {"indexed":false,"name":"duration","type":"uint256"}]},
 {"anonymous":false,"name":"AuctionSuccessful","type":"event","inputs":[
  {"indexed":false,"name":"tokenId","type":"uint256"},
  {"indexed":false,"name":"totalPrice","type":"uint256"},
  {"indexed":false,"name":"winner","type":"address"}]},
 {"anonymous":false,"name":"AuctionCancelled","type":"event","inputs":[
  {"indexed":false,"name":"tokenId","type":"uint256"}]}
]""")

AUTOBIRTHER_ABI = json.loads("""[
 {"constant":false,"name":"giveBirthMany","type":"function","stateMutability":"nonpayable",
  "inputs":[{"name":"matronIds","type":"uint256[]"}],"outputs":[]}
]""")


def _event_topic(abi: list, name: str) -> str:
    entry = next(e for e in abi if e.get("type") == "event" and e["name"] == name)
    signature = f"{name}({','.join(i['type'] for i in entry['inputs'])})"
    return Web3.to_hex(Web3.keccak(text=signature))


def _provider(rpc_url: str):
    if rpc_url.endswith(".ipc"):
        return Web3.IPCProvider(rpc_url)
    return Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": 60})


class ChainClient:
    """
    Read/write access to the kitty contracts over web3.

    Every call goes through with_retries, so a flaky node costs a few backoff
    sleeps and only raises SourceError once retries are exhausted.
    """

    def __init__(self, rpc_url: str, addresses: Dict[Source, str], autobirther_address: str | None = None,
                 from_account: str | None = None, retries: int = 3, backoff: float = 1.5, w3: Web3 | None = None):
        self.w3 = w3 or Web3(_provider(rpc_url))
        self.retries = retries
        self.backoff = backoff
        self._from_account = from_account
        self.contracts = {}
        for source, address in addresses.items():
            abi = CORE_ABI if source == Source.CORE else AUCTION_ABI
            self.contracts[source] = self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
        self.autobirther = None
        if autobirther_address:
            self.autobirther = self.w3.eth.contract(
                address=Web3.to_checksum_address(autobirther_address), abi=AUTOBIRTHER_ABI)

    def _call(self, operation: str, fn, retries: int | None = None):
        return with_retries(fn, operation, retries=self.retries if retries is None else retries,
                            backoff=self.backoff)

    @property
    def core(self):
        return self.contracts[Source.CORE]

    # ----------------------
    # Blocks & events
    # ----------------------

    def current_height(self) -> int:
        return int(self._call("eth_blockNumber", lambda: self.w3.eth.block_number))

    def query_events(self, source: Source, kind: EventKind, from_height: int, to_height: int) -> List[ArchivedEvent]:
        contract = self.contracts[source]
        abi = CORE_ABI if source == Source.CORE else AUCTION_ABI
        params = {
            "fromBlock": int(from_height),
            "toBlock": int(to_height),
            "address": contract.address,
            "topics": [_event_topic(abi, kind.value)],
        }
        logs = self._call(f"getLogs {source.value}.{kind.value} [{from_height}-{to_height}]",
                          lambda: self.w3.eth.get_logs(params))
        event = getattr(contract.events, kind.value)()
        return [from_log(source, kind, event.process_log(lg)) for lg in logs]

    def iter_heads(self, stop: threading.Event, poll_interval: float = 2.0) -> Iterator[int]:
        """
        Yield each new head height in ascending order until stop is set.

        HTTP nodes can't push headers, so we poll. If the node jumps ahead by
        several blocks between polls, every skipped height is yielded too so
        no lead-time trigger is missed.
        """
        last = None
        while not stop.is_set():
            head = self.current_height()
            if last is None:
                yield head
                last = head
            elif head > last:
                for h in range(last + 1, head + 1):
                    yield h
                last = head
            stop.wait(poll_interval)

    # ----------------------
    # Contract reads
    # ----------------------

    def pregnant_count(self) -> int:
        return int(self._call("pregnantKitties", lambda: self.core.functions.pregnantKitties().call()))

    def total_supply(self) -> int:
        return int(self._call("totalSupply", lambda: self.core.functions.totalSupply().call()))

    def get_kitty(self, kitty_id: int) -> KittyStatus:
        values = self._call(f"getKitty({kitty_id})", lambda: self.core.functions.getKitty(kitty_id).call())
        return KittyStatus.from_call(kitty_id, values)

    def is_gestating(self, kitty_id: int) -> bool:
        return self.get_kitty(kitty_id).is_gestating

    # ----------------------
    # Account & transactions
    # ----------------------

    @property
    def account(self) -> str:
        if self._from_account is None:
            self._from_account = self._call("eth_accounts", lambda: self.w3.eth.accounts[0])
        return self._from_account

    def balance(self, retries: int | None = None) -> int:
        return int(self._call("eth_getBalance", lambda: self.w3.eth.get_balance(self.account), retries=retries))

    def submit_births(self, matron_ids: List[int]) -> str:
        if self.autobirther is None:
            raise RuntimeError("AUTOBIRTHER_ADDRESS is not configured")
        fn = self.autobirther.functions.giveBirthMany([int(i) for i in matron_ids])
        # never retried: a resend after a timeout could land twice
        tx_hash = self._call("giveBirthMany", lambda: fn.transact({"from": self.account}), retries=0)
        return Web3.to_hex(tx_hash)
