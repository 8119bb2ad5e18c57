"""Block and transaction values decoded from Ethereum JSON-RPC payloads."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple


class MalformedBlockError(ValueError):
    """Raised when a block payload does not have the expected shape."""


@dataclass(frozen=True)
class BlockNumber:
    hex: str
    dec: int


@dataclass(frozen=True)
class Transaction:
    hash: str
    sender: str
    recipient: str
    value: int
    block_number: int

    def to_dict(self) -> dict:
        return {
            "hash": self.hash,
            "from": self.sender,
            "to": self.recipient,
            "value": str(self.value),
            "block_number": self.block_number,
        }


@dataclass(frozen=True)
class Block:
    number: int
    transactions: Tuple[Transaction, ...] = ()


def _int_from_hex_or_int(value: object) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        value = value.strip()
        try:
            if value.startswith(("0x", "0X")):
                return int(value, 16)
            return int(value)
        except ValueError:
            return None
    return None


def parse_quantity(value: object, field: str = "quantity") -> int:
    """Decode a JSON-RPC quantity (hex string, decimal string or int)."""

    parsed = _int_from_hex_or_int(value)
    if parsed is None or parsed < 0:
        raise MalformedBlockError(f"Invalid {field}: {value!r}")
    return parsed


def transaction_from_rpc(item: dict, block_number: int) -> Transaction:
    if not isinstance(item, dict):
        raise MalformedBlockError(f"Expected full transaction object in block {block_number}, got {item!r}")
    tx_hash = item.get("hash")
    sender = item.get("from")
    if not tx_hash or not sender:
        raise MalformedBlockError(f"Transaction without hash/from in block {block_number}")
    # contract creation carries "to": null
    recipient = item.get("to") or ""
    value = item.get("value")
    return Transaction(
        hash=tx_hash,
        sender=sender,
        recipient=recipient,
        value=parse_quantity(value, "value") if value is not None else 0,
        block_number=block_number,
    )


def block_from_rpc(payload: object) -> Block:
    """Build a Block from an ``eth_getBlockByNumber`` result with full transactions.

    The wire form carries the height once on the block, so every transaction
    is stamped with the block's number here.
    """

    if not isinstance(payload, dict):
        raise MalformedBlockError(f"Unexpected block payload: {type(payload).__name__}")
    number = parse_quantity(payload.get("number"), "block number")
    raw_transactions = payload.get("transactions") or []
    if not isinstance(raw_transactions, list):
        raise MalformedBlockError(f"Unexpected transactions list in block {number}")
    transactions: List[Transaction] = [transaction_from_rpc(item, number) for item in raw_transactions]
    return Block(number=number, transactions=tuple(transactions))
