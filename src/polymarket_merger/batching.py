from __future__ import annotations

import math
from typing import Protocol, Sequence

from polymarket_merger.models import MergeCandidate, TransactionBatch


class MergeEncoder(Protocol):
    def merge_transaction(self, condition_id: str, amount: int) -> dict[str, str]:
        ...


def batch_label(index: int, candidates: Sequence[MergeCandidate]) -> str:
    names = ", ".join(candidate.market.display_name for candidate in candidates)
    return f"merge batch {index}: {names}"


def build_batches(
    candidates: Sequence[MergeCandidate],
    *,
    max_batch_size: int,
    encoder: MergeEncoder,
) -> list[TransactionBatch]:
    """Split candidates into ordered batches of at most ``max_batch_size``.

    Each candidate becomes one ``mergePositions`` transaction produced by
    ``encoder``. The concatenation of all batches preserves input order.
    """
    if max_batch_size < 1:
        raise ValueError("max_batch_size must be >= 1")
    if not candidates:
        return []

    total = math.ceil(len(candidates) / max_batch_size)
    batches: list[TransactionBatch] = []
    for offset in range(0, len(candidates), max_batch_size):
        chunk = tuple(candidates[offset : offset + max_batch_size])
        index = len(batches) + 1
        transactions = tuple(
            encoder.merge_transaction(candidate.market.condition_id, candidate.amount) for candidate in chunk
        )
        batches.append(
            TransactionBatch(
                index=index,
                total=total,
                candidates=chunk,
                transactions=transactions,
                label=batch_label(index, chunk),
            )
        )
    return batches
