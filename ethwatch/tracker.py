"""Address tracking engine.

Keeps a view of the chain head, scans every new block once and hands
transactions touching subscribed addresses to the notifier and the store.
Two background threads drive it: one refreshes the head height, the other
scans from the last processed height up to the head captured at the start
of each pass.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set

from .client import ChainClient
from .config import DEFAULT_LOOKBACK, SCAN_DELAY_SECONDS
from .models import Transaction
from .notification import Notifier
from .storage import TransactionStore


_LOGGER = logging.getLogger("ethwatch.tracker")


@dataclass(frozen=True)
class ScanResult:
    start: int
    end: int
    scanned: int
    skipped: List[int]
    matches: int


def match_block_transactions(
    transactions: List[Transaction], subscribed: Set[str]
) -> "OrderedDict[str, List[Transaction]]":
    """Group a block's transactions by subscribed sender and recipient.

    A transaction is added to the sender's group and, independently, to the
    recipient's group, so it may show up under two addresses.
    """

    groups: "OrderedDict[str, List[Transaction]]" = OrderedDict()
    for tx in transactions:
        if tx.sender in subscribed:
            groups.setdefault(tx.sender, []).append(tx)
        if tx.recipient in subscribed:
            groups.setdefault(tx.recipient, []).append(tx)
    return groups


class AddressTracker:
    def __init__(
        self,
        store: TransactionStore,
        period: int,
        client: ChainClient,
        notifier: Notifier,
        *,
        stop_event: Optional[threading.Event] = None,
        scan_period: Optional[int] = None,
        lookback: int = DEFAULT_LOOKBACK,
    ) -> None:
        if isinstance(period, bool) or not isinstance(period, int) or period <= 0:
            raise ValueError(f"period must be a positive integer, got {period!r}")
        if scan_period is not None and (isinstance(scan_period, bool) or not isinstance(scan_period, int) or scan_period <= 0):
            raise ValueError(f"scan_period must be a positive integer, got {scan_period!r}")
        if isinstance(lookback, bool) or not isinstance(lookback, int) or lookback < 0:
            raise ValueError(f"lookback must be a non-negative integer, got {lookback!r}")
        if store is None or client is None or notifier is None:
            raise ValueError("store, client and notifier are required")
        if not callable(notifier):
            raise TypeError("notifier must be callable")

        self._store = store
        self._client = client
        self._notifier: Callable = notifier
        self._period = period
        self._scan_period = scan_period or period + SCAN_DELAY_SECONDS
        self._lookback = lookback
        self._stop = stop_event or threading.Event()

        self._lock = threading.Lock()
        self._subscriptions: Set[str] = set()
        self._current_height = 0
        self._last_processed_height = 0
        self._bootstrapped = False

        self._bootstrap()

        self._threads = [
            threading.Thread(target=self._run_refresh, name="ethwatch-refresh", daemon=True),
            threading.Thread(target=self._run_scan, name="ethwatch-scan", daemon=True),
        ]
        for thread in self._threads:
            thread.start()
        _LOGGER.info(
            "tracker started period=%s scan_period=%s current_height=%s last_processed=%s",
            self._period,
            self._scan_period,
            self._current_height,
            self._last_processed_height,
        )

    def _bootstrap(self) -> None:
        # the lookback window is applied by the first successful refresh
        self.refresh_height()
        if not self._bootstrapped:
            _LOGGER.warning("bootstrap deferred until the node reports a height")

    # -- background loops -------------------------------------------------

    def _run_refresh(self) -> None:
        while not self._stop.wait(self._period):
            _LOGGER.debug("refresh tick")
            self.refresh_height()
        _LOGGER.info("refresh loop stopped")

    def _run_scan(self) -> None:
        while not self._stop.wait(self._scan_period):
            _LOGGER.debug("scan tick")
            try:
                self.scan_once()
            except Exception:
                _LOGGER.exception("scan pass failed")
        _LOGGER.info("scan loop stopped")

    # -- steps --------------------------------------------------------------

    def refresh_height(self) -> int:
        """Ask the node for the head height once; keep the old value on failure."""

        try:
            height = self._client.get_height()
        except Exception as exc:
            _LOGGER.warning("refresh failed error=%s", exc)
            with self._lock:
                return self._current_height
        with self._lock:
            if height < self._current_height:
                _LOGGER.warning("refresh ignored lower height reported=%s current=%s", height, self._current_height)
            else:
                self._current_height = height
            if not self._bootstrapped:
                # start a bounded window behind the head instead of genesis
                self._last_processed_height = max(0, self._current_height - self._lookback)
                self._bootstrapped = True
                _LOGGER.info("bootstrap height=%s last_processed=%s", height, self._last_processed_height)
            return self._current_height

    def scan_once(self) -> ScanResult:
        with self._lock:
            subscribed = set(self._subscriptions)
            start = self._last_processed_height + 1
            end = self._current_height

        if start > end:
            return ScanResult(start=start, end=end, scanned=0, skipped=[], matches=0)

        _LOGGER.info("scan start from=%s to=%s subscriptions=%s", start, end, len(subscribed))
        scanned = 0
        matches = 0
        skipped: List[int] = []
        for height in range(start, end + 1):
            if self._stop.is_set():
                # partial pass: last processed height stays where it was
                _LOGGER.info("scan interrupted by shutdown at=%s", height)
                break
            try:
                block = self._client.get_block(height)
            except Exception as exc:
                # the height is still marked processed below and never retried
                _LOGGER.warning("scan skipped block=%s error=%s", height, exc)
                skipped.append(height)
                continue
            scanned += 1
            if block.number != height:
                _LOGGER.warning("scan block number mismatch requested=%s got=%s", height, block.number)
            groups = match_block_transactions(list(block.transactions), subscribed)
            for address, transactions in groups.items():
                _LOGGER.info("scan found count=%s address=%s block=%s", len(transactions), address, height)
                self._deliver(address, transactions)
                matches += len(transactions)
        else:
            with self._lock:
                if end > self._last_processed_height:
                    self._last_processed_height = end
            _LOGGER.info("scan complete to=%s scanned=%s skipped=%s matches=%s", end, scanned, len(skipped), matches)
        return ScanResult(start=start, end=end, scanned=scanned, skipped=skipped, matches=matches)

    def _deliver(self, address: str, transactions: List[Transaction]) -> None:
        # notify first, then persist; a failed save does not undo the notification
        try:
            self._notifier(address, list(transactions))
        except Exception:
            _LOGGER.exception("notify failed address=%s", address)
        try:
            self._store.save_transactions(address, list(transactions))
        except Exception:
            _LOGGER.exception("store failed address=%s count=%s", address, len(transactions))

    # -- public operations --------------------------------------------------

    def subscribe(self, address: str) -> bool:
        if not address:
            raise ValueError("address must not be empty")
        with self._lock:
            if address in self._subscriptions:
                return False
            self._subscriptions.add(address)
        _LOGGER.info("subscribed address=%s", address)
        return True

    def current_height(self) -> int:
        with self._lock:
            return self._current_height

    def last_processed_height(self) -> int:
        with self._lock:
            return self._last_processed_height

    def subscriptions(self) -> List[str]:
        with self._lock:
            return sorted(self._subscriptions)

    def transactions(self, address: str) -> List[Transaction]:
        return list(self._store.get_transactions(address) or [])

    def status(self) -> Dict[str, object]:
        with self._lock:
            return {
                "current_height": self._current_height,
                "last_processed_height": self._last_processed_height,
                "subscriptions": len(self._subscriptions),
                "running": not self._stop.is_set(),
            }

    @property
    def stopped(self) -> bool:
        return self._stop.is_set() and not any(thread.is_alive() for thread in self._threads)

    def shutdown(self, timeout: Optional[float] = None) -> None:
        _LOGGER.info("waiting for background jobs to complete")
        self._stop.set()
        for thread in self._threads:
            if thread is not threading.current_thread():
                thread.join(timeout)
        alive = [thread.name for thread in self._threads if thread.is_alive()]
        if alive:
            _LOGGER.warning("background jobs still running after timeout=%s threads=%s", timeout, ",".join(alive))
            return
        _LOGGER.info("background jobs stopped")
