from __future__ import annotations

import logging
import time
from typing import Any, Callable, Protocol, Sequence

from polymarket_merger.models import BatchOutcome, BatchState, TransactionBatch
from polymarket_merger.quota import QuotaTracker
from polymarket_merger.relayer import (
    RelayResult,
    is_quota_exhausted,
    relayer_backoff_seconds,
    relayer_error_text,
    relayer_status,
)

LOGGER = logging.getLogger("polymarket_merger")

DEFAULT_MAX_ATTEMPTS = 3


class RelayHandleLike(Protocol):
    def wait(self) -> RelayResult | None:
        ...


class Relayer(Protocol):
    def execute(self, transactions: Sequence[dict[str, str]], label: str) -> RelayHandleLike:
        ...


class BatchExecutor:
    """Submits one batch and drives it to SUCCEEDED or FAILED.

    ATTEMPTING -> SUCCEEDED | FAILED, with RATE_LIMITED looping back into
    ATTEMPTING while attempts remain. The quota is charged once for every
    submission that reached the relayer.
    """

    def __init__(
        self,
        relayer: Relayer,
        quota: QuotaTracker,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        sleep: Callable[[float], Any] = time.sleep,
        expected_proxy: str = "",
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.relayer = relayer
        self.quota = quota
        self.max_attempts = int(max_attempts)
        self._sleep = sleep
        self.expected_proxy = expected_proxy

    def execute(self, batch: TransactionBatch) -> BatchOutcome:
        outcome = BatchOutcome(state=BatchState.ATTEMPTING)
        while outcome.state in (BatchState.ATTEMPTING, BatchState.RATE_LIMITED):
            outcome.attempts += 1
            outcome.state = BatchState.ATTEMPTING
            self._attempt(batch, outcome)
        return outcome

    def _attempt(self, batch: TransactionBatch, outcome: BatchOutcome) -> None:
        try:
            handle = self.relayer.execute(batch.transactions, batch.label)
        except Exception as exc:
            if relayer_status(exc) is not None:
                self.quota.increment()
            self._on_error(batch, outcome, exc)
            return
        self.quota.increment()

        try:
            result = handle.wait()
        except Exception as exc:
            self._on_error(batch, outcome, exc)
            return

        if result is None or not result.state:
            self._fail(batch, outcome, "relayer returned no result")
            return

        outcome.state = BatchState.SUCCEEDED
        outcome.merged = batch.size
        outcome.transaction_hash = result.transaction_hash
        LOGGER.info(
            "merge_batch_done batch=%s/%s status=%s tx=%s",
            batch.index,
            batch.total,
            result.state,
            result.transaction_hash or "",
        )
        self._check_proxy(result)

    def _on_error(self, batch: TransactionBatch, outcome: BatchOutcome, exc: Exception) -> None:
        if is_quota_exhausted(exc):
            LOGGER.error("relayer_quota_exhausted batch=%s/%s stopping merges", batch.index, batch.total)
            self.quota.mark_exhausted()
            outcome.quota_exhausted = True
            self._fail(batch, outcome, relayer_error_text(exc))
            return

        backoff = relayer_backoff_seconds(exc)
        if backoff is not None and outcome.attempts < self.max_attempts:
            outcome.state = BatchState.RATE_LIMITED
            LOGGER.warning(
                "relayer_rate_limited batch=%s/%s attempt=%s/%s backoff_s=%.0f",
                batch.index,
                batch.total,
                outcome.attempts,
                self.max_attempts,
                backoff,
            )
            if self._sleep(backoff):
                # Interruptible waits return True once shutdown is requested.
                self._fail(batch, outcome, "shutdown requested during backoff")
            return

        self._fail(batch, outcome, relayer_error_text(exc))

    def _fail(self, batch: TransactionBatch, outcome: BatchOutcome, error: str) -> None:
        outcome.state = BatchState.FAILED
        outcome.errored = batch.size
        outcome.error = error
        LOGGER.error(
            "merge_batch_failed batch=%s/%s attempts=%s error=%s",
            batch.index,
            batch.total,
            outcome.attempts,
            error,
        )

    def _check_proxy(self, result: RelayResult) -> None:
        if not self.expected_proxy or not result.proxy_address:
            return
        if result.proxy_address.strip().lower() != self.expected_proxy.strip().lower():
            LOGGER.warning(
                "relayer_proxy_mismatch expected=%s actual=%s",
                self.expected_proxy,
                result.proxy_address,
            )
