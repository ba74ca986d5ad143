"""Persistent push subscription: topics, typed event dispatch, automatic reconnect."""

import random
import time
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from loguru import logger

from canvas_workspace.config import (
    CONNECTION_STABLE_AFTER,
    RECONNECT_BASE_DELAY,
    RECONNECT_MAX_DELAY,
    Session,
)
from canvas_workspace.protocols import TransportProtocol

Handler = Callable[[Any], None]


class ChannelState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class LiveChannel:
    """Disconnected -> Connecting -> Connected -> (Disconnected on error/close).

    Handlers run on the thread that calls :meth:`poll` / :meth:`run`, in delivery
    order. Subscribed topics are re-sent after every reconnect.

    The backoff counter is only reset once a connection proves stable: it delivered
    a message or stayed up for ``stable_after`` seconds. A connection that is
    accepted and then dropped straight away counts as a failed attempt.
    """

    def __init__(
        self,
        transport: TransportProtocol,
        session: Session,
        *,
        base_delay: float = RECONNECT_BASE_DELAY,
        max_delay: float = RECONNECT_MAX_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        jitter: Callable[[], float] = random.random,
        stable_after: float = CONNECTION_STABLE_AFTER,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._transport = transport
        self.session = session
        self.state = ChannelState.DISCONNECTED
        self.topics: list[str] = []
        self._handlers: dict[str, list[Handler]] = {}
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._sleep = sleep
        self._jitter = jitter
        self._stable_after = stable_after
        self._clock = clock
        self._connected_at = 0.0
        self._stable = False
        self.attempts = 0

    @property
    def connected(self) -> bool:
        return self.state is ChannelState.CONNECTED

    # --- Handlers ---

    def on(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.setdefault(event, [])
        if handler in handlers:
            logger.debug("Duplicate handler registration prevented for event: {}", event)
            return
        handlers.append(handler)

    def off(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                del self._handlers[event]

    def dispatch(self, event: str, data: Any) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(data)
            except Exception:
                logger.exception("Handler for {} failed", event)

    # --- Topics ---

    def subscribe(self, topic: str) -> None:
        if topic not in self.topics:
            self.topics.append(topic)
        if self.connected:
            self._send("subscribe", {"channel": topic})

    def unsubscribe(self, topic: str) -> None:
        if topic in self.topics:
            self.topics.remove(topic)
            if self.connected:
                self._send("unsubscribe", {"channel": topic})

    def _send(self, event: str, data: Any) -> None:
        try:
            self._transport.send({"event": event, "data": data})
        except (ConnectionError, OSError):
            logger.warning("Sending {} failed, connection lost", event)
            self._lost()

    # --- Connection lifecycle ---

    def set_session(self, session: Session) -> None:
        """Use a new credential; an open connection is dropped and re-established."""
        self.session = session
        if self.state is not ChannelState.DISCONNECTED:
            self._transport.close()
            self.state = ChannelState.DISCONNECTED
            self.attempts = 0

    def connect(self) -> bool:
        self.state = ChannelState.CONNECTING
        try:
            self._transport.connect(self.session.ws_url, self.session.token)
        except (ConnectionError, OSError) as e:
            self.state = ChannelState.DISCONNECTED
            self.attempts += 1
            logger.warning("Connection attempt {} failed: {}", self.attempts, e)
            return False

        self.state = ChannelState.CONNECTED
        self._connected_at = self._clock()
        self._stable = False
        logger.info("Connected to {}", self.session.ws_url)
        for topic in list(self.topics):
            self._send("subscribe", {"channel": topic})
        return self.connected

    def next_delay(self) -> float:
        """Exponential backoff with up to 10% jitter; zero before the first failure."""
        if self.attempts == 0:
            return 0.0
        delay = min(self._base_delay * 2 ** (self.attempts - 1), self._max_delay)
        return delay + delay * 0.1 * self._jitter()

    def reconnect(self) -> bool:
        self._transport.close()
        self.state = ChannelState.DISCONNECTED
        delay = self.next_delay()
        if delay:
            logger.info("Reconnecting in {:.1f}s (attempt {})", delay, self.attempts + 1)
            self._sleep(delay)
        return self.connect()

    def _lost(self) -> None:
        self._transport.close()
        self.state = ChannelState.DISCONNECTED
        if self._stable:
            logger.info("Disconnected from {}", self.session.ws_url)
            return
        self.attempts += 1
        logger.warning(
            "Connection to {} dropped before it became stable (attempt {})", self.session.ws_url, self.attempts
        )

    def _mark_stable(self, *, received: bool) -> None:
        if self._stable:
            return
        if received or self._clock() - self._connected_at >= self._stable_after:
            self._stable = True
            self.attempts = 0

    def poll(self, timeout: float | None = None) -> bool:
        """Receive and dispatch at most one message. False when the connection dropped."""
        if not self.connected:
            return False
        try:
            message = self._transport.receive(timeout)
        except (ConnectionError, OSError):
            self._lost()
            return False
        if message is None:
            self._mark_stable(received=False)
            return True
        self._mark_stable(received=True)

        event = message.get("event")
        if not isinstance(event, str):
            logger.debug("Ignoring message without event name: {!r}", message)
            return True
        self.dispatch(event, message.get("data"))
        return True

    def run(self, *, should_stop: Callable[[], bool] = lambda: False, poll_timeout: float = 1.0) -> None:
        """Receive until ``should_stop()``; reconnects whenever the connection is down."""
        while not should_stop():
            if not self.connected:
                self.reconnect()
                continue
            self.poll(poll_timeout)

    def close(self) -> None:
        self._transport.close()
        self.state = ChannelState.DISCONNECTED
