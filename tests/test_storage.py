from __future__ import annotations

import threading
from types import SimpleNamespace
from unittest.mock import Mock

from boto3.dynamodb.types import TypeSerializer

from ethwatch.models import Transaction
from ethwatch.storage import DynamoStorage, MemoryStorage, build_storage


TX1 = Transaction("0xaa", "0x1", "0x2", 100, 1)
TX2 = Transaction("0xbb", "0x2", "0x3", 10**21, 2)


def test_memory_append_order():
    store = MemoryStorage()
    store.save_transactions("0x2", [TX1])
    store.save_transactions("0x2", [TX2])
    assert store.get_transactions("0x2") == [TX1, TX2]


def test_memory_unknown_address_is_empty():
    assert MemoryStorage().get_transactions("never-subscribed") == []


def test_memory_returns_copy():
    store = MemoryStorage()
    store.save_transactions("0x1", [TX1])
    store.get_transactions("0x1").append(TX2)
    assert store.get_transactions("0x1") == [TX1]


def test_memory_concurrent_appends():
    store = MemoryStorage()

    def worker(n):
        for i in range(50):
            store.save_transactions("0x1", [Transaction(f"{n}-{i}", "0x1", "0x2", i, i)])

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert len(store.get_transactions("0x1")) == 400


def test_dynamo_put_items_in_order():
    client = Mock()
    store = DynamoStorage("txs", client=client)
    store.save_transactions("0x2", [TX1, TX2])
    items = [call.kwargs["Item"] for call in client.put_item.call_args_list]
    assert [call.kwargs["TableName"] for call in client.put_item.call_args_list] == ["txs", "txs"]
    assert items[0]["address"] == {"S": "0x2"}
    assert items[0]["seq"]["S"] < items[1]["seq"]["S"]
    assert items[1]["value"] == {"S": str(10**21)}


def test_dynamo_query_pages_and_decodes():
    serializer = TypeSerializer()

    def _item(tx: Transaction, seq: str) -> dict:
        raw = {
            "address": "0x2",
            "seq": seq,
            "hash": tx.hash,
            "sender": tx.sender,
            "recipient": tx.recipient,
            "value": str(tx.value),
            "block_number": tx.block_number,
        }
        return {key: serializer.serialize(value) for key, value in raw.items()}

    client = Mock()
    client.query.side_effect = [
        {"Items": [_item(TX1, "a")], "LastEvaluatedKey": {"address": {"S": "0x2"}, "seq": {"S": "a"}}},
        {"Items": [_item(TX2, "b")]},
    ]
    store = DynamoStorage("txs", client=client)
    assert store.get_transactions("0x2") == [TX1, TX2]
    first, second = client.query.call_args_list
    assert first.kwargs["ScanIndexForward"] is True
    assert "ExclusiveStartKey" not in first.kwargs
    assert second.kwargs["ExclusiveStartKey"] == {"address": {"S": "0x2"}, "seq": {"S": "a"}}


def test_dynamo_unknown_address_is_empty():
    client = Mock()
    client.query.return_value = {"Items": []}
    assert DynamoStorage("txs", client=client).get_transactions("nobody") == []


def test_build_storage_picks_backend():
    assert isinstance(build_storage(SimpleNamespace(ddb_table=None, ddb_region=None)), MemoryStorage)
    store = build_storage(SimpleNamespace(ddb_table="txs", ddb_region="us-east-1"))
    assert isinstance(store, DynamoStorage)
    assert store.table == "txs"
