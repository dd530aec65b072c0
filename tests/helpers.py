from __future__ import annotations

from dataclasses import replace
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from polymarket_merger.config import load_config  # noqa: E402
from polymarket_merger.models import MarketDescriptor, MergeCandidate  # noqa: E402
from polymarket_merger.relayer import RelayerError, RelayResult  # noqa: E402

PROXY = "0x" + ("ab" * 20)


def build_config(**kwargs):
    cfg = load_config()
    defaults = {
        "proxy_address": PROXY,
        "merge_interval_seconds": 0.0,
        "request_delay_seconds": 0.0,
        "min_merge_amount": 10,
        "batch_size": 10,
        "hourly_quota_limit": 20,
        "max_attempts": 3,
    }
    defaults.update(kwargs)
    return replace(cfg, **defaults)


def build_market(n: int, slug: str | None = None) -> MarketDescriptor:
    return MarketDescriptor(
        yes_token_id=str(1000 + n),
        no_token_id=str(2000 + n),
        condition_id="0x" + f"{n:02x}" * 32,
        market_slug=slug if slug is not None else f"btc-market-{n}",
    )


def build_candidates(count: int, amount: int = 50) -> list[MergeCandidate]:
    return [MergeCandidate(market=build_market(i), amount=amount) for i in range(count)]


def rate_limited(message: str = "too many requests") -> RelayerError:
    return RelayerError(message, status=429, error=message)


class FakeClock:
    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeEncoder:
    target = "0x" + ("cd" * 20)

    def merge_transaction(self, condition_id: str, amount: int) -> dict[str, str]:
        return {"to": self.target, "data": f"merge:{condition_id}:{amount}", "value": "0"}


class FakeChain(FakeEncoder):
    def __init__(self, balances: dict[str, tuple[int, int]] | None = None, failing: set[str] | None = None) -> None:
        self.balances = balances or {}
        self.failing = failing or set()
        self.reads: list[str] = []
        self.opened = False
        self.closed = False

    def open(self) -> None:
        self.opened = True

    def close(self) -> None:
        self.closed = True

    def get_balances(self, owner: str, market: MarketDescriptor) -> tuple[int, int]:
        self.reads.append(market.condition_id)
        if market.condition_id in self.failing:
            raise RuntimeError("rpc timeout")
        return self.balances.get(market.condition_id, (0, 0))


class FakeStore:
    def __init__(self, markets: list[MarketDescriptor] | None = None, error: Exception | None = None) -> None:
        self.markets = list(markets or [])
        self.error = error
        self.fetches: list[str] = []
        self.opened = False
        self.closed = False
        self.on_fetch = None

    def open(self) -> None:
        self.opened = True

    def close(self) -> None:
        self.closed = True

    def fetch_markets(self, asset: str) -> list[MarketDescriptor]:
        self.fetches.append(asset)
        if self.on_fetch is not None:
            self.on_fetch()
        if self.error is not None:
            raise self.error
        return list(self.markets)


class FakeHandle:
    def __init__(self, result) -> None:
        self.result = result

    def wait(self):
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class FakeRelayer:
    """Plays back scripted outcomes: RelayResult, None, or an exception to raise."""

    def __init__(self, outcomes: list | None = None, default=None) -> None:
        self.outcomes = list(outcomes or [])
        self.default = default if default is not None else RelayResult(state="STATE_MINED", transaction_hash="0xhash")
        self.calls: list[tuple[tuple[dict[str, str], ...], str]] = []

    def execute(self, transactions, label):
        self.calls.append((tuple(transactions), label))
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return FakeHandle(outcome)


class RecordingSleep:
    def __init__(self, interrupt: bool = False) -> None:
        self.calls: list[float] = []
        self.interrupt = interrupt

    def __call__(self, seconds: float) -> bool:
        self.calls.append(seconds)
        return self.interrupt
