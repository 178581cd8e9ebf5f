import os
from dotenv import load_dotenv

load_dotenv()

def get_env_for_chain(base_key: str, chain_id: str):
    """
    Prefer CHAIN_ID-suffixed env (e.g. EXECUTION_RPC_URL_1) over generic (EXECUTION_RPC_URL).
    Return None if neither is set.
    """
    return os.getenv(f"{base_key}_{chain_id}") or os.getenv(base_key)

def _int_env(key: str, default: int) -> int:
    return int(os.getenv(key, str(default)))

def _float_env(key: str, default: float) -> float:
    return float(os.getenv(key, str(default)))

# Select network (string, e.g. "1", "11155111")
CHAIN_ID = os.getenv("CHAIN_ID", "1").strip()

# EL RPC: http(s) URL or a path to a geth .ipc socket
EXECUTION_RPC_URL = get_env_for_chain("EXECUTION_RPC_URL", CHAIN_ID)

# Contract addresses
CORE_ADDRESS = get_env_for_chain("CORE_ADDRESS", CHAIN_ID)
SALE_ADDRESS = get_env_for_chain("SALE_ADDRESS", CHAIN_ID)
SIRE_ADDRESS = get_env_for_chain("SIRE_ADDRESS", CHAIN_ID)
AUTOBIRTHER_ADDRESS = get_env_for_chain("AUTOBIRTHER_ADDRESS", CHAIN_ID)

# Account that pays for birth transactions; defaults to the node's first unlocked account
FROM_ACCOUNT = get_env_for_chain("FROM_ACCOUNT", CHAIN_ID)

# Archive
DB_PATH = os.getenv("AUTOBIRTHER_DB_PATH", "data/autobirther.db")

# Block at which the core contract was deployed
ORIGIN_HEIGHT = _int_env("ORIGIN_HEIGHT", 4_605_167)

# Pause between backfill queries (geth can't stay synced if we hammer it)
THROTTLE_SEC = _float_env("THROTTLE_SEC", 0.1)
PROGRESS_EVERY = _int_env("PROGRESS_EVERY", 100)

# Listener / scheduler
WINDOW_SIZE = _int_env("WINDOW_SIZE", 4)
LEAD_TIME = _int_env("LEAD_TIME", 2)
SWEEP_WINDOW = _int_env("SWEEP_WINDOW", 5)
HISTORY_BLOCKS = _int_env("HISTORY_BLOCKS", 4 * 60 * 24 * 7)  # a week of blocks
POLL_INTERVAL = _float_env("POLL_INTERVAL", 2.0)

# Retry policy for every chain call
RPC_RETRIES = _int_env("RPC_RETRIES", 3)
RPC_BACKOFF = _float_env("RPC_BACKOFF", 1.5)

_REQUIRED = {
    "EXECUTION_RPC_URL": EXECUTION_RPC_URL,
    "CORE_ADDRESS": CORE_ADDRESS,
    "SALE_ADDRESS": SALE_ADDRESS,
    "SIRE_ADDRESS": SIRE_ADDRESS,
    "AUTOBIRTHER_ADDRESS": AUTOBIRTHER_ADDRESS,
}

def require(*keys: str) -> None:
    """Raise if any of the named settings is missing for the selected chain."""
    for key in keys:
        if not _REQUIRED.get(key):
            raise RuntimeError(f"{key} (or {key}_{CHAIN_ID}) is required.")
