from __future__ import annotations

from dataclasses import dataclass
import logging
import os
import re
from typing import Any, Sequence

LOGGER = logging.getLogger("polymarket_merger")

RATE_LIMIT_STATUS = 429
DEFAULT_BACKOFF_SECONDS = 60.0
RESET_HINT_PADDING_SECONDS = 5.0
QUOTA_EXHAUSTED_MARKER = "0 units remaining"

_RESET_HINT = re.compile(r"resets in (\d+) seconds", re.IGNORECASE)


class RelayerError(RuntimeError):
    """Relayer failure with the HTTP status and error text kept apart."""

    def __init__(self, message: str, *, status: int | None = None, error: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.error = error or message


@dataclass(frozen=True)
class RelayResult:
    state: str
    transaction_hash: str | None = None
    proxy_address: str | None = None


def _field(source: Any, name: str) -> Any:
    if isinstance(source, dict):
        return source.get(name)
    return getattr(source, name, None)


def relayer_status(exc: BaseException) -> int | None:
    for name in ("status", "status_code"):
        raw = getattr(exc, name, None)
        if raw is None:
            continue
        try:
            return int(raw)
        except (TypeError, ValueError):
            continue
    return None


def relayer_error_text(exc: BaseException) -> str:
    data = getattr(exc, "data", None)
    nested = _field(data, "error") if data is not None else None
    if nested:
        return str(nested)
    for name in ("error", "error_msg", "message"):
        raw = getattr(exc, name, None)
        if raw:
            return raw if isinstance(raw, str) else str(raw)
    return str(exc)


def relayer_backoff_seconds(exc: BaseException) -> float | None:
    """Seconds to wait before retrying, or None when the error is not a throttle."""
    if relayer_status(exc) != RATE_LIMIT_STATUS:
        return None
    match = _RESET_HINT.search(relayer_error_text(exc))
    if match:
        return float(int(match.group(1))) + RESET_HINT_PADDING_SECONDS
    return DEFAULT_BACKOFF_SECONDS


def is_quota_exhausted(exc: BaseException) -> bool:
    # Coupled to the relayer's wording; there is no structured code for this yet.
    if relayer_status(exc) != RATE_LIMIT_STATUS:
        return False
    return QUOTA_EXHAUSTED_MARKER in relayer_error_text(exc)


def as_relayer_error(exc: BaseException) -> RelayerError:
    if isinstance(exc, RelayerError):
        return exc
    return RelayerError(str(exc), status=relayer_status(exc), error=relayer_error_text(exc))


def builder_creds_from_env() -> dict[str, str] | None:
    key = (os.getenv("POLY_BUILDER_API_KEY") or os.getenv("BUILDER_API_KEY") or "").strip()
    secret = (os.getenv("POLY_BUILDER_API_SECRET") or os.getenv("BUILDER_API_SECRET") or "").strip()
    passphrase = (os.getenv("POLY_BUILDER_API_PASSPHRASE") or os.getenv("BUILDER_API_PASSPHRASE") or "").strip()
    if key and secret and passphrase:
        return {"key": key, "secret": secret, "passphrase": passphrase}
    return None


def parse_relay_result(payload: Any) -> RelayResult | None:
    if payload is None:
        return None
    state = _field(payload, "state")
    if not state:
        return None
    tx_hash = _field(payload, "transactionHash") or _field(payload, "transaction_hash")
    proxy = _field(payload, "proxyAddress") or _field(payload, "proxy_address")
    return RelayResult(
        state=str(state),
        transaction_hash=str(tx_hash) if tx_hash else None,
        proxy_address=str(proxy) if proxy else None,
    )


class RelayHandle:
    def __init__(self, response: Any) -> None:
        self._response = response

    def wait(self) -> RelayResult | None:
        try:
            payload = self._response.wait()
        except Exception as exc:  # pragma: no cover - live path
            raise as_relayer_error(exc) from exc
        return parse_relay_result(payload)


class BuilderRelayer:
    """Submits transaction batches through the Polymarket builder relayer."""

    def __init__(
        self,
        *,
        relayer_url: str,
        chain_id: int,
        private_key: str,
        tx_type: str = "SAFE",
        creds: dict[str, str] | None = None,
    ) -> None:
        self.relayer_url = relayer_url
        self.chain_id = int(chain_id)
        self.tx_type = tx_type.upper()
        self._private_key = private_key
        self._creds = creds if creds is not None else builder_creds_from_env()
        self.client = None

    def preflight(self) -> None:
        if self._creds is None:
            raise RuntimeError("Missing builder API credentials. Set POLY_BUILDER_API_KEY/SECRET/PASSPHRASE.")
        self._bootstrap_client()

    def _bootstrap_client(self) -> None:
        if self.client is not None:
            return
        try:
            from py_builder_relayer_client.client import RelayClient  # type: ignore
            from py_builder_relayer_client.models import RelayerTxType  # type: ignore
            from py_builder_signing_sdk.config import BuilderApiKeyCreds, BuilderConfig  # type: ignore
        except Exception as exc:  # pragma: no cover - runtime dependency path
            raise RuntimeError(
                "py-builder-relayer-client is required. Install it with `pip install py-builder-relayer-client`."
            ) from exc

        assert self._creds is not None
        builder_config = BuilderConfig(
            local_builder_creds=BuilderApiKeyCreds(
                key=self._creds["key"],
                secret=self._creds["secret"],
                passphrase=self._creds["passphrase"],
            )
        )
        self.client = RelayClient(
            self.relayer_url,
            self.chain_id,
            self._private_key,
            builder_config,
            relay_tx_type=RelayerTxType[self.tx_type],
        )

    @staticmethod
    def _to_relay_transactions(transactions: Sequence[dict[str, str]]) -> list[Any]:
        # The client wraps these as safe or proxy calls according to relay_tx_type.
        from py_builder_relayer_client.models import Transaction  # type: ignore

        return [
            Transaction(to=tx["to"], data=tx["data"], value=str(tx.get("value", "0")))
            for tx in transactions
        ]

    def execute(self, transactions: Sequence[dict[str, str]], label: str) -> RelayHandle:
        self.preflight()
        assert self.client is not None
        try:  # pragma: no cover - live path
            response = self.client.execute(self._to_relay_transactions(transactions), label)
        except Exception as exc:  # pragma: no cover - live path
            raise as_relayer_error(exc) from exc
        return RelayHandle(response)
