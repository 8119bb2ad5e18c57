# tests/conftest.py
"""
Shared fixtures: an in-memory chain that stands in for the JSON-RPC node,
a recording notifier, and a tracker factory that always shuts its threads
down after the test.
"""

from __future__ import annotations

import threading

import pytest

from ethwatch.client import ChainClientError
from ethwatch.models import Block, Transaction
from ethwatch.storage import MemoryStorage
from ethwatch.tracker import AddressTracker


class FakeChain:
    def __init__(self, height: int = 0) -> None:
        self.height = height
        self.blocks: dict[int, Block] = {}
        self.failing: set[int] = set()
        self.height_error = False
        self.requested: list[int] = []
        self._lock = threading.Lock()

    def add_block(self, number: int, *txs: tuple) -> Block:
        transactions = tuple(
            Transaction(hash=tx_hash, sender=sender, recipient=recipient, value=value, block_number=number)
            for tx_hash, sender, recipient, value in txs
        )
        block = Block(number=number, transactions=transactions)
        with self._lock:
            self.blocks[number] = block
            self.height = max(self.height, number)
        return block

    def get_height(self) -> int:
        with self._lock:
            if self.height_error:
                raise ChainClientError("node unavailable")
            return self.height

    def get_block(self, height: int) -> Block:
        with self._lock:
            self.requested.append(height)
            if height in self.failing:
                raise ChainClientError(f"block number {height} failed")
            if height not in self.blocks:
                return Block(number=height)
            return self.blocks[height]


class RecordingNotifier:
    def __init__(self) -> None:
        self.calls: list[tuple[str, list[Transaction]]] = []

    def __call__(self, address, transactions) -> None:
        self.calls.append((address, list(transactions)))


class CountingStorage(MemoryStorage):
    def __init__(self) -> None:
        super().__init__()
        self.saves: list[tuple[str, list[Transaction]]] = []

    def save_transactions(self, address, transactions) -> None:
        self.saves.append((address, list(transactions)))
        super().save_transactions(address, transactions)


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def storage():
    return CountingStorage()


@pytest.fixture
def make_tracker(chain, notifier, storage):
    """Build trackers with long periods so only explicit calls drive them."""

    created = []

    def _make(**kwargs):
        kwargs.setdefault("lookback", 10)
        tracker = AddressTracker(storage, kwargs.pop("period", 3600), chain, notifier, **kwargs)
        created.append(tracker)
        return tracker

    yield _make
    for tracker in created:
        tracker.shutdown(timeout=5)
