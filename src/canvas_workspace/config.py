"""Configuration constants and session resolution for canvas-workspace."""

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_API_URL: str = "http://localhost:8001/rest/v2"

# API token location. First file found is used.
API_TOKEN_FILES: list[Path] = [
    Path("~/.config/canvas-token.txt").expanduser(),
    Path("~/.config/secret/canvas-token.txt").expanduser(),
]

# Seconds before a REST request is abandoned.
REQUEST_TIMEOUT: float = 30.0

# Identical push events within this many seconds are applied once.
EVENT_DEDUP_WINDOW: float = 1.0
# Dedup map size above which stale entries are evicted.
DEDUP_EVICT_THRESHOLD: int = 50

# Identical user notifications within this many seconds are shown once.
NOTIFICATION_DEBOUNCE: float = 0.5

DEFAULT_PAGE_SIZE: int = 50

RECONNECT_BASE_DELAY: float = 1.0
RECONNECT_MAX_DELAY: float = 30.0

# A connection that drops before delivering a message or staying up this long
# counts as a failed attempt.
CONNECTION_STABLE_AFTER: float = 5.0


@dataclass(frozen=True)
class Session:
    """Credential and endpoints supplied by the surrounding application."""

    api_url: str
    token: str
    ws_url: str


def derive_ws_url(api_url: str) -> str:
    """Turn ``http://host:8001/rest/v2`` into ``ws://host:8001/ws``."""
    base = api_url.split("/rest")[0].rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base.removeprefix("https://")
    elif base.startswith("http://"):
        base = "ws://" + base.removeprefix("http://")
    return base + "/ws"


def resolve_session(api_url: str | None = None, token: str | None = None) -> Session:
    """Build a session from explicit values, environment, then token files."""
    url = api_url or os.environ.get("CANVAS_API_URL") or DEFAULT_API_URL
    url = url.rstrip("/")

    resolved_token = token or os.environ.get("CANVAS_TOKEN")
    if not resolved_token:
        for token_path in API_TOKEN_FILES:
            try:
                resolved_token = token_path.read_text(encoding="utf-8").strip()
                break
            except FileNotFoundError:
                pass
        else:
            msg = f"Cannot find canvas token file, was looking at {API_TOKEN_FILES!r}"
            raise RuntimeError(msg)

    ws_url = os.environ.get("CANVAS_WS_URL") or derive_ws_url(url)
    return Session(api_url=url, token=resolved_token, ws_url=ws_url)
