from __future__ import annotations

import logging
from typing import Iterable, Protocol

from polymarket_merger.models import MarketDescriptor, MergeCandidate, ScanResult, format_usdc

LOGGER = logging.getLogger("polymarket_merger")


class BalanceReader(Protocol):
    def get_balances(self, owner: str, market: MarketDescriptor) -> tuple[int, int]:
        ...


def mergeable_amount(yes_balance: int, no_balance: int) -> int:
    return min(int(yes_balance), int(no_balance))


def is_eligible(amount: int, min_merge_amount: int) -> bool:
    return amount > 0 and amount >= min_merge_amount


def scan_candidates(
    markets: Iterable[MarketDescriptor],
    *,
    owner: str,
    min_merge_amount: int,
    balance_reader: BalanceReader,
) -> ScanResult:
    result = ScanResult()
    # Sequential on purpose: one market at a time against the RPC.
    for market in markets:
        try:
            yes_balance, no_balance = balance_reader.get_balances(owner, market)
        except Exception as exc:
            result.errored += 1
            LOGGER.error("balance_read_failed market=%s error=%s", market.display_name, exc)
            continue

        amount = mergeable_amount(yes_balance, no_balance)
        if amount == 0:
            result.skipped_zero += 1
            continue
        if amount < min_merge_amount:
            result.skipped_below_min += 1
            continue

        result.candidates.append(MergeCandidate(market=market, amount=amount))
        LOGGER.info("merge_eligible market=%s amount=%s", market.display_name, format_usdc(amount))
    return result
