from __future__ import annotations

import unittest

from polymarket_merger.scanner import is_eligible, mergeable_amount, scan_candidates
from tests.helpers import PROXY, FakeChain, build_market


class ScannerTests(unittest.TestCase):
    def test_mergeable_amount_is_min_of_balances(self) -> None:
        self.assertEqual(mergeable_amount(20, 15), 15)
        self.assertEqual(mergeable_amount(3, 5), 3)
        self.assertEqual(mergeable_amount(0, 7), 0)

    def test_eligibility_requires_positive_and_minimum(self) -> None:
        self.assertFalse(is_eligible(0, 0))
        self.assertFalse(is_eligible(9, 10))
        self.assertTrue(is_eligible(10, 10))
        self.assertTrue(is_eligible(1, 0))

    def test_classifies_zero_below_min_and_eligible(self) -> None:
        below, zero, eligible = build_market(1), build_market(2), build_market(3)
        chain = FakeChain(
            balances={
                below.condition_id: (5, 3),
                zero.condition_id: (0, 7),
                eligible.condition_id: (20, 15),
            }
        )
        result = scan_candidates([below, zero, eligible], owner=PROXY, min_merge_amount=10, balance_reader=chain)

        self.assertEqual(result.skipped_below_min, 1)
        self.assertEqual(result.skipped_zero, 1)
        self.assertEqual(len(result.candidates), 1)
        self.assertEqual(result.candidates[0].market, eligible)
        self.assertEqual(result.candidates[0].amount, 15)

    def test_balance_failure_drops_market_and_continues(self) -> None:
        markets = [build_market(i) for i in range(4)]
        chain = FakeChain(
            balances={m.condition_id: (100, 100) for m in markets},
            failing={markets[1].condition_id},
        )
        result = scan_candidates(markets, owner=PROXY, min_merge_amount=10, balance_reader=chain)

        self.assertEqual(result.errored, 1)
        self.assertEqual([c.market for c in result.candidates], [markets[0], markets[2], markets[3]])
        self.assertEqual(chain.reads, [m.condition_id for m in markets])
        self.assertEqual(result.scanned, 4)


if __name__ == "__main__":
    unittest.main()
