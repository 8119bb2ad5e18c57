from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from ethwatch.client import JsonRpcClient
from ethwatch.config import Settings
from ethwatch.notification import build_notifier
from ethwatch.storage import build_storage
from ethwatch.tracker import AddressTracker

_LOGGER = logging.getLogger("ethwatch.api")
_LOGGER.setLevel(logging.INFO)
_TRACKER: Optional[AddressTracker] = None
_CLIENT: Optional[JsonRpcClient] = None


class AddressRequest(BaseModel):
    address: str = Field(
        min_length=1,
        description="Account address, matched case-sensitively.",
    )


def _tracker() -> AddressTracker:
    if _TRACKER is None:
        raise HTTPException(status_code=503, detail="Tracker not started.")
    return _TRACKER


def _transactions_response(address: str):
    transactions = _tracker().transactions(address)
    if not transactions:
        return Response(status_code=204)
    return [tx.to_dict() for tx in transactions]


app = FastAPI(
    title="ethwatch API",
    version="0.1",
    root_path=os.getenv("ETHWATCH_ROOT_PATH", ""),
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_http_request(request, call_next):
    _LOGGER.info(
        "http request method=%s path=%s client=%s",
        request.method,
        request.url.path,
        request.client.host if request.client else "unknown",
    )
    response = await call_next(request)
    _LOGGER.info("http response status=%s path=%s", response.status_code, request.url.path)
    return response


@app.on_event("startup")
def _start_tracker() -> None:
    global _TRACKER, _CLIENT
    if _TRACKER is not None:
        return
    settings = Settings.from_env()
    _LOGGER.info(
        "startup endpoint=%s poll_seconds=%s scan_seconds=%s lookback=%s ddb_table=%s webhook=%s",
        settings.endpoint,
        settings.poll_seconds,
        settings.scan_seconds,
        settings.lookback,
        settings.ddb_table,
        bool(settings.webhook_url),
    )
    _CLIENT = JsonRpcClient(settings.endpoint, timeout=settings.rpc_timeout, retries=settings.rpc_retries)
    _TRACKER = AddressTracker(
        build_storage(settings),
        settings.poll_seconds,
        _CLIENT,
        build_notifier(settings),
        scan_period=settings.scan_seconds,
        lookback=settings.lookback,
    )


@app.on_event("shutdown")
def _stop_tracker() -> None:
    global _TRACKER, _CLIENT
    if _TRACKER is not None:
        _TRACKER.shutdown()
        _TRACKER = None
    if _CLIENT is not None:
        _CLIENT.close()
        _CLIENT = None
    _LOGGER.info("shutdown complete")


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/status")
def status() -> dict:
    return _tracker().status()


@app.get("/current_block")
def current_block() -> dict:
    return {"current_block": _tracker().current_height()}


@app.post("/subscribe")
def subscribe(req: AddressRequest) -> dict:
    success = _tracker().subscribe(req.address)
    _LOGGER.info("subscribe address=%s success=%s", req.address, success)
    return {"success": success}


@app.post("/transactions")
def transactions(req: AddressRequest):
    return _transactions_response(req.address)


@app.get("/transactions/{address}")
def transactions_for(address: str):
    return _transactions_response(address)
