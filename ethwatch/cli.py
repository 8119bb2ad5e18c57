"""CLI for ethwatch."""

from __future__ import annotations

import argparse
import json
import logging
import signal
import threading
from pathlib import Path
from typing import List

from .client import JsonRpcClient
from .config import Settings, configure_logging, resolve_endpoint
from .notification import build_notifier
from .storage import build_storage
from .tracker import AddressTracker


_LOGGER = logging.getLogger("ethwatch.cli")


def _read_addresses(path: Path) -> List[str]:
    addresses = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        addresses.append(line)
    return addresses


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ethwatch")
    subparsers = parser.add_subparsers(dest="command", required=True)

    block_number_parser = subparsers.add_parser("blocknumber", help="Fetch latest Ethereum block number")
    block_number_parser.add_argument("--endpoint", help="Override RPC endpoint URL")
    block_number_parser.add_argument("--timeout", type=int, default=10, help="Request timeout in seconds")
    block_number_parser.add_argument(
        "--json",
        action="store_true",
        help="Print as JSON (hex and dec)",
    )

    block_parser = subparsers.add_parser("block", help="Fetch and decode one block")
    block_parser.add_argument("height", type=int, help="Block height")
    block_parser.add_argument("--endpoint", help="Override RPC endpoint URL")
    block_parser.add_argument("--timeout", type=int, default=10, help="Request timeout in seconds")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API with a live tracker")
    serve_parser.add_argument("--host", help="Bind address (default ETHWATCH_HOST)")
    serve_parser.add_argument("--port", type=int, help="Bind port (default ETHWATCH_PORT)")

    watch_parser = subparsers.add_parser("watch", help="Track addresses without the HTTP API")
    watch_parser.add_argument("addresses", nargs="*", help="Addresses to subscribe")
    watch_parser.add_argument("--addresses-file", help="File with one address per line")

    return parser


def _watch(settings: Settings, addresses: List[str]) -> int:
    if not addresses:
        _LOGGER.error("watch needs at least one address")
        return 2
    stop_event = threading.Event()

    def _on_signal(signum, _frame):
        _LOGGER.info("received shutdown signal signum=%s", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    client = JsonRpcClient(settings.endpoint, timeout=settings.rpc_timeout, retries=settings.rpc_retries)
    tracker = AddressTracker(
        build_storage(settings),
        settings.poll_seconds,
        client,
        build_notifier(settings),
        stop_event=stop_event,
        scan_period=settings.scan_seconds,
        lookback=settings.lookback,
    )
    for address in addresses:
        tracker.subscribe(address)
    stop_event.wait()
    tracker.shutdown()
    client.close()
    _LOGGER.info("watch stopped")
    return 0


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    if args.command == "blocknumber":
        client = JsonRpcClient(resolve_endpoint(args.endpoint), timeout=args.timeout)
        result = client.get_block_number()
        if args.json:
            print(json.dumps({"hex": result.hex, "dec": result.dec}))
        else:
            print(f"hex: {result.hex}")
            print(f"dec: {result.dec}")
        return 0

    if args.command == "block":
        client = JsonRpcClient(resolve_endpoint(args.endpoint), timeout=args.timeout)
        block = client.get_block(args.height)
        print(
            json.dumps(
                {"number": block.number, "transactions": [tx.to_dict() for tx in block.transactions]},
                indent=2,
            )
        )
        return 0

    if args.command == "serve":
        import uvicorn

        from api.main import app

        uvicorn.run(
            app,
            host=args.host or settings.host,
            port=args.port or settings.port,
            log_level=settings.log_level.lower(),
        )
        return 0

    if args.command == "watch":
        addresses = list(args.addresses)
        if args.addresses_file:
            addresses.extend(_read_addresses(Path(args.addresses_file)))
        return _watch(settings, addresses)

    parser.error("Unknown command")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
