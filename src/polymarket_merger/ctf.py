from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

from polymarket_merger.models import MarketDescriptor

LOGGER = logging.getLogger("polymarket_merger")

ZERO_BYTES32 = "0x" + ("00" * 32)
PARENT_COLLECTION_ID = ZERO_BYTES32
PARTITION = (1, 2)

CONDITIONAL_TOKENS_ABI: list[dict[str, Any]] = [
    {
        "inputs": [
            {"internalType": "address", "name": "collateralToken", "type": "address"},
            {"internalType": "bytes32", "name": "parentCollectionId", "type": "bytes32"},
            {"internalType": "bytes32", "name": "conditionId", "type": "bytes32"},
            {"internalType": "uint256[]", "name": "partition", "type": "uint256[]"},
            {"internalType": "uint256", "name": "amount", "type": "uint256"},
        ],
        "name": "mergePositions",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "owner", "type": "address"},
            {"internalType": "uint256", "name": "id", "type": "uint256"},
        ],
        "name": "balanceOf",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


@dataclass(frozen=True)
class ContractAddresses:
    conditional_tokens: str
    collateral: str


def normalize_condition_id(condition_id: str) -> str:
    raw = str(condition_id or "").strip().lower()
    if raw.startswith("0x"):
        raw = raw[2:]
    if len(raw) != 64:
        raise ValueError("condition_id must be a 32-byte hex value")
    try:
        bytes.fromhex(raw)
    except ValueError as exc:
        raise ValueError("condition_id must be a 32-byte hex value") from exc
    return "0x" + raw


def _bytes32(value: str) -> bytes:
    return bytes.fromhex(normalize_condition_id(value)[2:])


class ChainClient:
    """Reads CTF balances and encodes merge calls against one chain."""

    def __init__(self, rpc_url: str, chain_id: int, timeout_seconds: float = 10.0) -> None:
        self.rpc_url = rpc_url
        self.chain_id = int(chain_id)
        self.timeout_seconds = float(timeout_seconds)
        self._w3 = None
        self._contracts: ContractAddresses | None = None
        self._ctf = None

    def open(self) -> None:
        self._web3()

    def close(self) -> None:
        self._ctf = None
        self._w3 = None

    def _web3(self):
        if self._w3 is not None:
            return self._w3
        try:
            from web3 import Web3
        except Exception as exc:
            raise RuntimeError("web3 is required for balance reads. Install with `pip install web3`.") from exc

        provider = Web3.HTTPProvider(
            self.rpc_url,
            request_kwargs={"timeout": max(5.0, self.timeout_seconds)},
        )
        self._w3 = Web3(provider)
        return self._w3

    def contracts(self) -> ContractAddresses:
        if self._contracts is not None:
            return self._contracts
        from py_clob_client.config import get_contract_config
        from web3 import Web3

        config = get_contract_config(self.chain_id, neg_risk=False)
        self._contracts = ContractAddresses(
            conditional_tokens=Web3.to_checksum_address(str(config.conditional_tokens)),
            collateral=Web3.to_checksum_address(str(config.collateral)),
        )
        return self._contracts

    def _conditional_tokens(self):
        if self._ctf is None:
            self._ctf = self._web3().eth.contract(
                address=self.contracts().conditional_tokens,
                abi=CONDITIONAL_TOKENS_ABI,
            )
        return self._ctf

    def balance_of(self, owner: str, position_id: str) -> int:
        from web3 import Web3

        ctf = self._conditional_tokens()
        return int(ctf.functions.balanceOf(Web3.to_checksum_address(owner), int(position_id)).call())

    def get_balances(self, owner: str, market: MarketDescriptor) -> tuple[int, int]:
        return (
            self.balance_of(owner, market.yes_token_id),
            self.balance_of(owner, market.no_token_id),
        )

    def encode_merge(self, condition_id: str, amount: int) -> str:
        contracts = self.contracts()
        merge_fn = self._conditional_tokens().functions.mergePositions(
            contracts.collateral,
            _bytes32(PARENT_COLLECTION_ID),
            _bytes32(condition_id),
            list(PARTITION),
            int(amount),
        )
        data = merge_fn._encode_transaction_data()
        return data if isinstance(data, str) else "0x" + bytes(data).hex()

    def merge_transaction(self, condition_id: str, amount: int) -> dict[str, str]:
        return {
            "to": self.contracts().conditional_tokens,
            "data": self.encode_merge(condition_id, amount),
            "value": "0",
        }
