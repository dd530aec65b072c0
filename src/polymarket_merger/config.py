from __future__ import annotations

from dataclasses import dataclass
import os


DEFAULT_RELAYER_URL = "https://relayer-v2.polymarket.com/"
RELAYER_TX_TYPES = ("SAFE", "PROXY")

# USDC has 6 decimals, so 10 USDC = 10_000_000
DEFAULT_MIN_MERGE_AMOUNT = 10_000_000


@dataclass(frozen=True)
class MergerConfig:
    redis_url: str
    metadata_key_prefix: str

    rpc_url: str
    chain_id: int
    rpc_timeout_seconds: float

    encrypted_private_key: str
    asset: str
    proxy_address: str

    relayer_url: str
    relayer_tx_type: str

    merge_interval_seconds: float
    request_delay_seconds: float
    min_merge_amount: int
    batch_size: int
    hourly_quota_limit: int
    max_attempts: int

    log_level: str

    @property
    def merge_interval_minutes(self) -> float:
        return self.merge_interval_seconds / 60.0


def _positive_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _millis_as_seconds(name: str, default_ms: int) -> float:
    return _positive_int(name, default_ms) / 1000.0


def _min_merge_amount() -> int:
    raw = os.getenv("MIN_MERGE_AMOUNT", "").strip()
    if not raw:
        return DEFAULT_MIN_MERGE_AMOUNT
    try:
        return max(0, int(raw))
    except ValueError:
        return DEFAULT_MIN_MERGE_AMOUNT


def _relayer_tx_type() -> str:
    raw = os.getenv("RELAYER_TX_TYPE", "SAFE").strip().upper()
    return raw if raw in RELAYER_TX_TYPES else "SAFE"


def load_config() -> MergerConfig:
    redis_host = os.getenv("REDIS_HOST", "localhost").strip() or "localhost"
    redis_port = os.getenv("REDIS_PORT", "6379").strip() or "6379"
    redis_db = os.getenv("REDIS_DB", "0").strip() or "0"

    return MergerConfig(
        redis_url=f"redis://{redis_host}:{redis_port}/{redis_db}",
        metadata_key_prefix="pm:metadata:",
        rpc_url=os.getenv("RPC_URL", "").strip() or "https://polygon-rpc.com",
        chain_id=_positive_int("CHAIN_ID", 137),
        rpc_timeout_seconds=10.0,
        encrypted_private_key=os.getenv("ENCRYPT_PRIVATE_KEY", "").strip(),
        asset=os.getenv("ASSET", "").strip() or "bitcoin",
        proxy_address=os.getenv("PROXY_ADDRESS", "").strip(),
        relayer_url=os.getenv("RELAYER_URL", "").strip() or DEFAULT_RELAYER_URL,
        relayer_tx_type=_relayer_tx_type(),
        merge_interval_seconds=_millis_as_seconds("MERGE_INTERVAL_MS", 30 * 60 * 1000),
        request_delay_seconds=_millis_as_seconds("REQUEST_DELAY_MS", 5000),
        min_merge_amount=_min_merge_amount(),
        batch_size=_positive_int("BATCH_SIZE", 10),
        hourly_quota_limit=_positive_int("HOURLY_QUOTA_LIMIT", 20),
        max_attempts=_positive_int("MAX_ATTEMPTS", 3),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
