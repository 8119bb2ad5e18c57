"""Runtime settings read from the environment (and an optional .env file)."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


DEFAULT_ENDPOINT = "https://cloudflare-eth.com"
DEFAULT_NOTES_PATH = ".notes/notes.txt"
DEFAULT_POLL_SECONDS = 10
SCAN_DELAY_SECONDS = 5
DEFAULT_LOOKBACK = 10

_ALCHEMY_MAINNET = "https://eth-mainnet.g.alchemy.com/v2/{}"
_URL_RE = re.compile(r"https?://\S+")
_ALCHEMY_KEY_RE = re.compile(r"(https?://[^\s]*/v2/)([^/?#\s]+)")
_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _load_dotenv(path: str = ".env") -> None:
    env_file = Path(path)
    if not env_file.exists():
        return
    for line in env_file.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _endpoint_from_notes(notes_path: str) -> Optional[str]:
    notes_file = Path(notes_path)
    if not notes_file.exists():
        return None
    match = _URL_RE.search(notes_file.read_text(encoding="utf-8"))
    if not match:
        return None
    endpoint = match.group(0)
    env_key = os.getenv("ALCHEMY_API_KEY")
    if env_key:
        endpoint = endpoint.replace("${ALCHEMY_API_KEY}", env_key).replace("$ALCHEMY_API_KEY", env_key)
        endpoint = _ALCHEMY_KEY_RE.sub(r"\g<1>" + env_key, endpoint)
    return endpoint


def resolve_endpoint(endpoint: Optional[str] = None, notes_path: Optional[str] = None) -> str:
    """Pick the node endpoint: explicit value, env, Alchemy key, notes file, public default."""

    if endpoint:
        return endpoint
    env_endpoint = os.getenv("ETHWATCH_RPC_URL")
    if env_endpoint:
        return env_endpoint
    api_key = os.getenv("ALCHEMY_API_KEY")
    if api_key:
        return _ALCHEMY_MAINNET.format(api_key)
    from_notes = _endpoint_from_notes(notes_path or os.getenv("ETHWATCH_NOTES_PATH", DEFAULT_NOTES_PATH))
    return from_notes or DEFAULT_ENDPOINT


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    endpoint: str = DEFAULT_ENDPOINT
    poll_seconds: int = DEFAULT_POLL_SECONDS
    scan_seconds: int = DEFAULT_POLL_SECONDS + SCAN_DELAY_SECONDS
    lookback: int = DEFAULT_LOOKBACK
    rpc_timeout: int = 10
    rpc_retries: int = 1
    ddb_table: Optional[str] = None
    ddb_region: Optional[str] = None
    webhook_url: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv_path: str = ".env") -> "Settings":
        _load_dotenv(dotenv_path)
        poll_seconds = _env_int("ETHWATCH_POLL_SECONDS", DEFAULT_POLL_SECONDS)
        return cls(
            endpoint=resolve_endpoint(),
            poll_seconds=poll_seconds,
            scan_seconds=_env_int("ETHWATCH_SCAN_SECONDS", poll_seconds + SCAN_DELAY_SECONDS),
            lookback=_env_int("ETHWATCH_LOOKBACK", DEFAULT_LOOKBACK),
            rpc_timeout=_env_int("ETHWATCH_RPC_TIMEOUT", 10),
            rpc_retries=_env_int("ETHWATCH_RPC_RETRIES", 1),
            ddb_table=os.getenv("ETHWATCH_DDB_TABLE") or None,
            ddb_region=os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION"),
            webhook_url=os.getenv("ETHWATCH_WEBHOOK_URL") or None,
            host=os.getenv("ETHWATCH_HOST", "0.0.0.0"),
            port=_env_int("ETHWATCH_PORT", 8080),
            log_level=os.getenv("ETHWATCH_LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=_LOG_FORMAT)
