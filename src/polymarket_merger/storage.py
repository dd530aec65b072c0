from __future__ import annotations

import json
import logging
from typing import Any

from polymarket_merger.models import MarketDescriptor

LOGGER = logging.getLogger("polymarket_merger")


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def parse_markets(raw: dict[Any, Any]) -> list[MarketDescriptor]:
    """Decode an ``HGETALL`` reply of condition id -> JSON metadata."""
    markets: list[MarketDescriptor] = []
    for field, value in raw.items():
        key = _text(field)
        try:
            payload = json.loads(_text(value))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            LOGGER.warning("metadata_parse_failed condition=%s error=%s", key, exc)
            continue
        market = MarketDescriptor.from_payload(payload)
        if market is None:
            LOGGER.warning("metadata_invalid condition=%s reason=missing token ids or condition id", key)
            continue
        markets.append(market)
    return markets


class MetadataStore:
    def __init__(self, redis_url: str, key_prefix: str = "pm:metadata:", client: Any = None) -> None:
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.client = client

    def open(self) -> None:
        if self.client is not None:
            return
        try:
            import redis
        except Exception as exc:
            raise RuntimeError("redis is required for market metadata. Install with `pip install redis`.") from exc
        self.client = redis.Redis.from_url(self.redis_url)

    def close(self) -> None:
        if self.client is None:
            return
        client, self.client = self.client, None
        try:
            client.close()
        except Exception as exc:
            LOGGER.warning("redis_close_failed error=%s", exc)

    def metadata_key(self, asset: str) -> str:
        return f"{self.key_prefix}{asset}"

    def fetch_markets(self, asset: str) -> list[MarketDescriptor]:
        self.open()
        raw = self.client.hgetall(self.metadata_key(asset))
        return parse_markets(raw or {})
