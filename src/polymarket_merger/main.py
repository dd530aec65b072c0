from __future__ import annotations

import argparse
import logging
import os
import signal
import time
from typing import Any, Iterable, Protocol

from polymarket_merger.batching import MergeEncoder, build_batches
from polymarket_merger.config import MergerConfig, load_config
from polymarket_merger.ctf import ChainClient
from polymarket_merger.execution import BatchExecutor, Relayer
from polymarket_merger.keys import KeyDecryptionError, decrypt_private_key
from polymarket_merger.models import CycleSummary, MarketDescriptor, format_usdc
from polymarket_merger.quota import QuotaTracker
from polymarket_merger.relayer import BuilderRelayer
from polymarket_merger.scanner import BalanceReader, scan_candidates
from polymarket_merger.storage import MetadataStore

LOGGER = logging.getLogger("polymarket_merger")

WAIT_SLICE_SECONDS = 0.5

USAGE = "Usage: bot.py <password> [asset]  (or set DECRYPT_PASSWORD)"


class MarketSource(Protocol):
    def open(self) -> None:
        ...

    def close(self) -> None:
        ...

    def fetch_markets(self, asset: str) -> list[MarketDescriptor]:
        ...


class ChainAccess(BalanceReader, MergeEncoder, Protocol):
    def open(self) -> None:
        ...

    def close(self) -> None:
        ...


class MergeRuntime:
    def __init__(
        self,
        config: MergerConfig,
        *,
        store: MarketSource,
        chain: ChainAccess,
        relayer: Relayer,
        asset: str | None = None,
        quota: QuotaTracker | None = None,
    ) -> None:
        self.config = config
        self.asset = asset or config.asset
        self.store = store
        self.chain = chain
        self.quota = quota or QuotaTracker(config.hourly_quota_limit)
        self.executor = BatchExecutor(
            relayer,
            self.quota,
            max_attempts=config.max_attempts,
            sleep=self._wait,
            expected_proxy=config.proxy_address,
        )
        self._keep_running = True
        self._opened = False

    @property
    def stopped(self) -> bool:
        return not self._keep_running

    def stop(self) -> None:
        self._keep_running = False

    def _wait(self, seconds: float) -> bool:
        deadline = time.monotonic() + seconds
        while not self.stopped:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            time.sleep(min(WAIT_SLICE_SECONDS, remaining))
        return self.stopped

    def open(self) -> None:
        if self._opened:
            return
        self.store.open()
        self.chain.open()
        self._opened = True

    def close(self) -> None:
        self._opened = False
        try:
            self.chain.close()
        finally:
            self.store.close()

    def run(self) -> None:
        self.open()
        LOGGER.info("merge_loop_start asset=%s", self.asset)
        while not self.stopped:
            try:
                self.run_cycle()
            except Exception as exc:
                LOGGER.exception("merge_cycle_failed error=%s", exc)
            if self.stopped:
                break
            LOGGER.info("merge_sleep minutes=%.1f", self.config.merge_interval_minutes)
            self._wait(self.config.merge_interval_seconds)
        LOGGER.info("merge_loop_stopped")

    def run_cycle(self) -> CycleSummary | None:
        if not self.quota.check_and_update():
            LOGGER.info("quota_wait asset=%s", self.asset)
            return None

        markets = self.store.fetch_markets(self.asset)
        LOGGER.info("markets_loaded asset=%s count=%s", self.asset, len(markets))

        scan = scan_candidates(
            markets,
            owner=self.config.proxy_address,
            min_merge_amount=self.config.min_merge_amount,
            balance_reader=self.chain,
        )
        summary = CycleSummary(
            skipped_zero=scan.skipped_zero,
            skipped_below_min=scan.skipped_below_min,
            scan_errors=scan.errored,
        )
        LOGGER.info(
            "scan_complete eligible=%s zero=%s below_min=%s errors=%s",
            len(scan.candidates),
            scan.skipped_zero,
            scan.skipped_below_min,
            scan.errored,
        )
        if not scan.candidates:
            LOGGER.info("no_eligible_markets asset=%s", self.asset)
            return summary

        batches = build_batches(scan.candidates, max_batch_size=self.config.batch_size, encoder=self.chain)
        for position, batch in enumerate(batches):
            if self.stopped:
                summary.deferred += sum(b.size for b in batches[position:])
                break
            if not self.quota.check_and_update():
                LOGGER.warning("quota_exhausted_mid_cycle deferred_batches=%s", len(batches) - position)
                summary.deferred += sum(b.size for b in batches[position:])
                break

            LOGGER.info("merge_batch_start batch=%s/%s size=%s", batch.index, batch.total, batch.size)
            for candidate in batch.candidates:
                LOGGER.info("  %s: %s", candidate.market.display_name, format_usdc(candidate.amount))

            outcome = self.executor.execute(batch)
            summary.apply(outcome)
            if outcome.quota_exhausted:
                summary.deferred += sum(b.size for b in batches[position + 1 :])
                break

            if position + 1 < len(batches):
                self._wait(self.config.request_delay_seconds)

        LOGGER.info(
            "merge_cycle_complete merged=%s errors=%s deferred=%s",
            summary.merged,
            summary.errored,
            summary.deferred,
        )
        return summary


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    for noisy in ("httpx", "httpcore", "urllib3", "web3", "redis"):
        logging.getLogger(noisy).setLevel(logging.ERROR)


def _signer_address(private_key: str) -> str:
    try:
        from eth_account import Account  # type: ignore
    except Exception as exc:  # pragma: no cover - runtime dependency path
        raise RuntimeError("eth-account is required. Install it with `pip install eth-account`.") from exc
    return str(Account.from_key(private_key).address)


def _log_startup(config: MergerConfig, asset: str, signer: str) -> None:
    LOGGER.info("EOA address: %s", signer)
    LOGGER.info("Proxy address: %s", config.proxy_address)
    LOGGER.info("Relayer URL: %s", config.relayer_url)
    LOGGER.info("Relayer type: %s", config.relayer_tx_type)
    LOGGER.info("Asset: %s", asset)
    LOGGER.info("Merge interval: %.1f minutes", config.merge_interval_minutes)
    LOGGER.info("Min merge amount: %s", format_usdc(config.min_merge_amount))
    LOGGER.info("Batch size: %s", config.batch_size)
    LOGGER.info("Hourly quota limit: %s", config.hourly_quota_limit)


def _install_signal_handlers(runtime: MergeRuntime) -> None:
    shutting_down = {"active": False}

    def _handle_signal(signum: int, _frame: Any) -> None:
        if shutting_down["active"]:
            return
        shutting_down["active"] = True
        LOGGER.warning("Received signal %s, shutting down...", signum)
        runtime.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)


def build_runtime(config: MergerConfig, *, password: str, asset: str) -> MergeRuntime:
    LOGGER.info("Decrypting private key...")
    private_key = decrypt_private_key(config.encrypted_private_key, password)
    LOGGER.info("Private key decrypted successfully")

    relayer = BuilderRelayer(
        relayer_url=config.relayer_url,
        chain_id=config.chain_id,
        private_key=private_key,
        tx_type=config.relayer_tx_type,
    )
    relayer.preflight()
    _log_startup(config, asset, _signer_address(private_key))

    return MergeRuntime(
        config,
        asset=asset,
        store=MetadataStore(config.redis_url, key_prefix=config.metadata_key_prefix),
        chain=ChainClient(config.rpc_url, config.chain_id, timeout_seconds=config.rpc_timeout_seconds),
        relayer=relayer,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="polymarket_merger",
        description="Merge complementary Polymarket positions back into USDC",
    )
    parser.add_argument("password", nargs="?", default=None, help="Password for ENCRYPT_PRIVATE_KEY")
    parser.add_argument("asset", nargs="?", default=None, help="Asset key override (default: ASSET)")
    return parser


def cli(argv: Iterable[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    config = load_config()
    _setup_logging(config.log_level)

    password = args.password or os.getenv("DECRYPT_PASSWORD", "")
    if not password:
        LOGGER.error("Password is required. %s", USAGE)
        return 1
    asset = args.asset or config.asset
    if not config.proxy_address:
        LOGGER.error("PROXY_ADDRESS is required (your Polymarket proxy wallet address).")
        return 1

    try:
        runtime = build_runtime(config, password=password, asset=asset)
    except (KeyDecryptionError, RuntimeError) as exc:
        LOGGER.error("Startup failed: %s", exc)
        return 1

    _install_signal_handlers(runtime)
    try:
        runtime.run()
        return 0
    except Exception as exc:
        LOGGER.error("Fatal runtime error: %s", exc)
        return 1
    finally:
        runtime.close()
        LOGGER.info("Shutdown complete")


def main() -> None:
    raise SystemExit(cli())


if __name__ == "__main__":
    main()
