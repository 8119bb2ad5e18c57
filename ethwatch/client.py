"""Ethereum JSON-RPC chain client."""

from __future__ import annotations

import itertools
import logging
import threading
import time
from typing import Any, List, Optional, Protocol

import requests

from .models import Block, BlockNumber, block_from_rpc, parse_quantity


_LOGGER = logging.getLogger("ethwatch.client")
_RETRY_STATUSES = {429, 500, 502, 503, 504}


class ChainClientError(RuntimeError):
    """Raised when the node cannot be reached or answers with an error."""


class ChainClient(Protocol):
    def get_height(self) -> int:
        ...

    def get_block(self, height: int) -> Block:
        ...


class JsonRpcClient:
    """Minimal JSON-RPC 2.0 client over HTTP POST.

    Only the calls the tracker needs are wrapped. Nothing is cached; the
    node is asked every time.
    """

    def __init__(
        self,
        endpoint: str,
        timeout: int = 10,
        retries: int = 1,
        backoff: float = 0.5,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not endpoint:
            raise ValueError("endpoint is required")
        self.endpoint = endpoint
        self.timeout = timeout
        self.retries = max(0, retries)
        self.backoff = backoff
        self._session = session or requests.Session()
        self._ids = itertools.count(1)
        self._ids_lock = threading.Lock()

    def _next_id(self) -> int:
        with self._ids_lock:
            return next(self._ids)

    def _post(self, payload: dict) -> requests.Response:
        last_error: Optional[str] = None
        for attempt in range(self.retries + 1):
            if attempt:
                time.sleep(self.backoff * (2 ** (attempt - 1)))
            try:
                response = self._session.post(
                    self.endpoint,
                    json=payload,
                    headers={"accept": "application/json"},
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                last_error = str(exc)
                _LOGGER.warning("rpc transport error method=%s attempt=%s error=%s", payload["method"], attempt + 1, exc)
                continue
            if response.status_code in _RETRY_STATUSES:
                last_error = f"HTTP {response.status_code}"
                _LOGGER.warning(
                    "rpc retryable status method=%s attempt=%s status=%s",
                    payload["method"],
                    attempt + 1,
                    response.status_code,
                )
                continue
            if response.status_code >= 400:
                raise ChainClientError(
                    f"{payload['method']} failed: HTTP {response.status_code} {response.text[:300]}"
                )
            return response
        raise ChainClientError(f"{payload['method']} failed: {last_error}")

    def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": self._next_id(),
            "method": method,
            "params": params or [],
        }
        response = self._post(payload)
        try:
            data = response.json()
        except ValueError as exc:
            raise ChainClientError(f"{method} returned a non-JSON body") from exc
        if not isinstance(data, dict):
            raise ChainClientError(f"{method} returned an unexpected body")
        if data.get("error") is not None:
            raise ChainClientError(f"JSON-RPC error: {data['error']}")
        return data.get("result")

    def get_height(self) -> int:
        result = self.call("eth_blockNumber")
        if not result:
            raise ChainClientError("No result in eth_blockNumber response")
        try:
            return parse_quantity(result, "block number")
        except ValueError as exc:
            raise ChainClientError(str(exc)) from exc

    def get_block_number(self) -> BlockNumber:
        height = self.get_height()
        return BlockNumber(hex=hex(height), dec=height)

    def get_block(self, height: int) -> Block:
        result = self.call("eth_getBlockByNumber", [hex(height), True])
        if result is None:
            raise ChainClientError(f"No result in eth_getBlockByNumber response for {height}")
        return block_from_rpc(result)

    def close(self) -> None:
        self._session.close()
