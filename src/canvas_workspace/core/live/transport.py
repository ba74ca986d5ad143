"""WebSocket transport for the live event channel."""

import json
from typing import Any

from loguru import logger
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from websockets.sync.client import ClientConnection, connect


class WebSocketTransport:
    """One JSON message per text frame, ``{"event": ..., "data": ...}``."""

    def __init__(self, *, open_timeout: float = 10.0) -> None:
        self.open_timeout = open_timeout
        self._ws: ClientConnection | None = None

    def connect(self, url: str, token: str) -> None:
        self.close()
        try:
            self._ws = connect(
                url,
                additional_headers={"Authorization": f"Bearer {token}"},
                open_timeout=self.open_timeout,
            )
        except (InvalidHandshake, InvalidURI, TimeoutError, OSError) as e:
            msg = f"WebSocket connect to {url} failed: {e}"
            raise ConnectionError(msg) from e
        logger.debug("WebSocket connected to {}", url)

    def send(self, message: dict[str, Any]) -> None:
        if self._ws is None:
            msg = "WebSocket is not connected"
            raise ConnectionError(msg)
        try:
            self._ws.send(json.dumps(message))
        except ConnectionClosed as e:
            raise ConnectionError(str(e)) from e

    def receive(self, timeout: float | None = None) -> dict[str, Any] | None:
        if self._ws is None:
            msg = "WebSocket is not connected"
            raise ConnectionError(msg)
        try:
            raw = self._ws.recv(timeout=timeout)
        except TimeoutError:
            return None
        except ConnectionClosed as e:
            raise ConnectionError(str(e)) from e

        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.debug("Ignoring non-JSON frame: {!r}", raw[:64])
            return None
        return message if isinstance(message, dict) else None

    def close(self) -> None:
        if self._ws is not None:
            self._ws.close()
            self._ws = None
