from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

USDC_DECIMALS = 6


def format_usdc(amount: int) -> str:
    divisor = 10**USDC_DECIMALS
    whole, fraction = divmod(int(amount), divisor)
    return f"{whole}.{str(fraction).rjust(USDC_DECIMALS, '0')[:2]} USDC"


def _optional_str(raw: Any) -> str | None:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


def _optional_float(raw: Any) -> float | None:
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class MarketDescriptor:
    yes_token_id: str
    no_token_id: str
    condition_id: str
    market_slug: str | None = None
    event_slug: str | None = None
    event_id: str | None = None
    underlying: str | None = None
    strike: float | None = None
    expiry: str | None = None
    tick_size: float | None = None

    @property
    def display_name(self) -> str:
        return self.market_slug or self.condition_id[:10]

    @classmethod
    def from_payload(cls, payload: Any) -> "MarketDescriptor | None":
        """Build a descriptor from the camelCase JSON stored in Redis.

        Returns None when either position id or the condition id is missing.
        """
        if not isinstance(payload, dict):
            return None
        yes_token_id = _optional_str(payload.get("yesTokenId"))
        no_token_id = _optional_str(payload.get("noTokenId"))
        condition_id = _optional_str(payload.get("conditionId"))
        if not yes_token_id or not no_token_id or not condition_id:
            return None
        return cls(
            yes_token_id=yes_token_id,
            no_token_id=no_token_id,
            condition_id=condition_id,
            market_slug=_optional_str(payload.get("marketSlug")),
            event_slug=_optional_str(payload.get("eventSlug")),
            event_id=_optional_str(payload.get("eventId")),
            underlying=_optional_str(payload.get("underlying")),
            strike=_optional_float(payload.get("strike")),
            expiry=_optional_str(payload.get("expiry")),
            tick_size=_optional_float(payload.get("tickSize")),
        )


@dataclass(frozen=True)
class MergeCandidate:
    market: MarketDescriptor
    amount: int


@dataclass
class ScanResult:
    candidates: list[MergeCandidate] = field(default_factory=list)
    skipped_zero: int = 0
    skipped_below_min: int = 0
    errored: int = 0

    @property
    def scanned(self) -> int:
        return len(self.candidates) + self.skipped_zero + self.skipped_below_min + self.errored


@dataclass(frozen=True)
class TransactionBatch:
    index: int
    total: int
    candidates: tuple[MergeCandidate, ...]
    transactions: tuple[dict[str, str], ...]
    label: str

    @property
    def size(self) -> int:
        return len(self.candidates)


class BatchState(str, Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


@dataclass
class BatchOutcome:
    state: BatchState
    merged: int = 0
    errored: int = 0
    attempts: int = 0
    quota_exhausted: bool = False
    transaction_hash: str | None = None
    error: str = ""

    @property
    def success(self) -> bool:
        return self.state == BatchState.SUCCEEDED


@dataclass
class CycleSummary:
    merged: int = 0
    errored: int = 0
    skipped_zero: int = 0
    skipped_below_min: int = 0
    scan_errors: int = 0
    deferred: int = 0
    quota_exhausted: bool = False

    def apply(self, outcome: BatchOutcome) -> None:
        self.merged += outcome.merged
        self.errored += outcome.errored
        if outcome.quota_exhausted:
            self.quota_exhausted = True
