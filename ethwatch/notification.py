"""Notifiers invoked with (address, transactions) for every saved match."""

from __future__ import annotations

import logging
from typing import Callable, Sequence

import requests

from .models import Transaction


_LOGGER = logging.getLogger("ethwatch.notification")

Notifier = Callable[[str, Sequence[Transaction]], None]


def notify_on_console(address: str, transactions: Sequence[Transaction]) -> None:
    for tx in transactions:
        _LOGGER.info(
            "notification address=%s tx=%s from=%s to=%s value=%s block=%s",
            address,
            tx.hash,
            tx.sender,
            tx.recipient,
            tx.value,
            tx.block_number,
        )


class WebhookNotifier:
    """POST matches to an HTTP endpoint. Delivery failures are logged only."""

    def __init__(self, url: str, timeout: int = 5, session=None) -> None:
        if not url:
            raise ValueError("url is required")
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()

    def __call__(self, address: str, transactions: Sequence[Transaction]) -> None:
        payload = {
            "address": address,
            "transactions": [tx.to_dict() for tx in transactions],
        }
        try:
            response = self._session.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException:
            _LOGGER.exception("webhook exception address=%s url=%s", address, self.url)
            return
        if response.status_code >= 400:
            _LOGGER.warning(
                "webhook error address=%s status=%s body=%s",
                address,
                response.status_code,
                response.text[:300],
            )
            return
        _LOGGER.info("webhook delivered address=%s count=%s", address, len(transactions))


def build_notifier(settings) -> Notifier:
    if settings.webhook_url:
        return WebhookNotifier(settings.webhook_url)
    return notify_on_console
