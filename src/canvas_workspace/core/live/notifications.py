"""User-facing notification sinks and burst coalescing."""

import time
from collections.abc import Callable

from loguru import logger

from canvas_workspace.config import NOTIFICATION_DEBOUNCE
from canvas_workspace.models.node import Notification
from canvas_workspace.protocols import NotifierProtocol


class LogNotifier:
    """Shows notifications as log lines."""

    def notify(self, notification: Notification) -> None:
        if notification.variant == "destructive":
            logger.warning("{}: {}", notification.title, notification.description)
        else:
            logger.info("{}: {}", notification.title, notification.description)


class NotificationCoalescer:
    """Forward a notification unless an identical one was shown within the window.

    Identity is ``title:description``; the first of a burst is shown.
    """

    def __init__(
        self,
        sink: NotifierProtocol,
        *,
        window: float = NOTIFICATION_DEBOUNCE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sink = sink
        self._window = window
        self._clock = clock
        self._shown: dict[str, float] = {}

    def notify(self, notification: Notification) -> bool:
        """Return True when the notification reached the sink."""
        now = self._clock()
        self._shown = {k: t for k, t in self._shown.items() if now - t < self._window}
        if notification.key in self._shown:
            logger.debug("Coalesced notification {!r}", notification.key)
            return False
        self._shown[notification.key] = now
        self._sink.notify(notification)
        return True
