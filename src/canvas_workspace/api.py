"""Canvas REST API client."""

import json
from typing import Any

import requests
from loguru import logger

from canvas_workspace.config import REQUEST_TIMEOUT, Session
from canvas_workspace.errors import ApiError, ConflictError, NetworkError, NotFoundError


class CanvasApi:
    """Encapsulated Canvas REST API with bearer authentication."""

    def __init__(self, session: Session, *, timeout: float = REQUEST_TIMEOUT) -> None:
        self.session = session
        self.timeout = timeout
        self.sess = requests.Session()
        logger.debug("API ready: {} (token {}...)", session.api_url, session.token[:6])

    def set_session(self, session: Session) -> None:
        """Swap credential/endpoint after a login change."""
        self.session = session
        logger.debug("API session replaced: {}", session.api_url)

    def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | list[tuple[str, Any]] | None = None,
        body: Any = None,
    ) -> dict[str, Any]:
        """Invoke an endpoint, return the decoded response envelope.

        Raises:
            NotFoundError: on HTTP 404.
            ConflictError: on HTTP 409.
            NetworkError: on connection failures and timeouts.
            ApiError: on any other non-2xx status.
        """
        url = self.session.api_url + path
        headers = {"Authorization": f"Bearer {self.session.token}"}
        data: str | None = None
        if body is not None:
            headers["Content-Type"] = "application/json"
            data = json.dumps(body)

        logger.debug("Making request: {} {} {}", method, path, repr(body)[:64] if body else "")
        try:
            r = self.sess.request(
                method, url, params=params, data=data, headers=headers, timeout=self.timeout
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            msg = f"{method} {path} failed: {e}"
            raise NetworkError(msg) from e

        try:
            rv: dict[str, Any] = r.json()
        except ValueError:
            rv = {}

        if r.status_code >= 400:
            message = rv.get("message") or f"HTTP error! status: {r.status_code}"
            if r.status_code == 404:
                raise NotFoundError(message)
            if r.status_code == 409:
                raise ConflictError(message)
            raise ApiError(message, status_code=r.status_code)

        return rv


def payload_of(envelope: dict[str, Any]) -> Any:
    """Extract the payload from a response envelope."""
    return envelope.get("payload")
