"""Transaction stores keyed by address."""

from __future__ import annotations

import itertools
import logging
import threading
from collections import defaultdict
from typing import Dict, List, Optional, Protocol, Sequence

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

from .models import Transaction


_LOGGER = logging.getLogger("ethwatch.storage")


class TransactionStore(Protocol):
    def save_transactions(self, address: str, transactions: Sequence[Transaction]) -> None:
        ...

    def get_transactions(self, address: str) -> List[Transaction]:
        ...


class MemoryStorage:
    """In-process store; append order is read order."""

    def __init__(self) -> None:
        self._data: Dict[str, List[Transaction]] = defaultdict(list)
        self._lock = threading.Lock()

    def save_transactions(self, address: str, transactions: Sequence[Transaction]) -> None:
        with self._lock:
            self._data[address].extend(transactions)

    def get_transactions(self, address: str) -> List[Transaction]:
        with self._lock:
            return list(self._data.get(address, ()))


class DynamoStorage:
    """DynamoDB-backed store.

    Table layout: hash key ``address`` (S), range key ``seq`` (S). ``seq`` is
    the zero-padded block number followed by a per-process counter, so a
    partition query in ascending key order returns transactions in the
    order they were appended.
    """

    def __init__(self, table: str, client=None, region: Optional[str] = None) -> None:
        if not table:
            raise ValueError("table is required")
        self.table = table
        self._region = region
        self._client = client
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()
        self._seq = itertools.count()
        self._seq_lock = threading.Lock()

    def _ddb_client(self):
        if self._client is None:
            _LOGGER.info("ddb init table=%s region=%s", self.table, self._region)
            self._client = boto3.client("dynamodb", region_name=self._region)
        return self._client

    def _next_seq(self, block_number: int) -> str:
        with self._seq_lock:
            return f"{block_number:016d}#{next(self._seq):012d}"

    def _marshal(self, address: str, tx: Transaction) -> dict:
        item = {
            "address": address,
            "seq": self._next_seq(tx.block_number),
            "hash": tx.hash,
            "sender": tx.sender,
            "recipient": tx.recipient,
            # stored as string; wei values overflow DynamoDB's number precision
            "value": str(tx.value),
            "block_number": tx.block_number,
        }
        return {key: self._serializer.serialize(value) for key, value in item.items()}

    def _unmarshal(self, item: dict) -> Transaction:
        data = {key: self._deserializer.deserialize(value) for key, value in item.items()}
        return Transaction(
            hash=data["hash"],
            sender=data["sender"],
            recipient=data.get("recipient") or "",
            value=int(data["value"]),
            block_number=int(data["block_number"]),
        )

    def save_transactions(self, address: str, transactions: Sequence[Transaction]) -> None:
        client = self._ddb_client()
        for tx in transactions:
            client.put_item(TableName=self.table, Item=self._marshal(address, tx))
        _LOGGER.info("ddb put_item address=%s count=%s", address, len(transactions))

    def get_transactions(self, address: str) -> List[Transaction]:
        client = self._ddb_client()
        transactions: List[Transaction] = []
        start_key = None
        while True:
            kwargs = {
                "TableName": self.table,
                "KeyConditionExpression": "#address = :address",
                "ExpressionAttributeNames": {"#address": "address"},
                "ExpressionAttributeValues": {":address": {"S": address}},
                "ScanIndexForward": True,
            }
            if start_key:
                kwargs["ExclusiveStartKey"] = start_key
            response = client.query(**kwargs)
            transactions.extend(self._unmarshal(item) for item in response.get("Items", []))
            start_key = response.get("LastEvaluatedKey")
            if not start_key:
                break
        return transactions


def build_storage(settings) -> TransactionStore:
    if settings.ddb_table:
        return DynamoStorage(settings.ddb_table, region=settings.ddb_region)
    return MemoryStorage()
