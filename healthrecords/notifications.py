"""User-facing notifications for the ingestion workflow.

Only one notification is visible at a time. Showing a new one cancels the
pending auto-dismiss of the previous one before scheduling its own.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

INFO = "info"
SUCCESS = "success"
WARNING = "warning"
DANGER = "danger"


@dataclass(frozen=True)
class Notification:
    message: str
    severity: str = INFO
    duration: float = 3.0


class Notifier:
    def __init__(
        self,
        default_duration: float = 3.0,
        listener: Callable[[Notification | None], None] | None = None,
    ):
        self.default_duration = default_duration
        self.listener = listener
        self.current: Notification | None = None
        self._timer: asyncio.TimerHandle | None = None

    def show(self, message: str, severity: str = INFO, duration: float | None = None) -> Notification:
        self._cancel_timer()
        notification = Notification(message, severity, self.default_duration if duration is None else duration)
        self.current = notification
        logger.debug("notify[%s]: %s", severity, message)
        self._emit()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; notification stays until dismissed")
        else:
            if notification.duration > 0:
                self._timer = loop.call_later(notification.duration, self._expire, notification)
        return notification

    def dismiss(self) -> None:
        self._cancel_timer()
        if self.current is not None:
            self.current = None
            self._emit()

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None and not self._timer.cancelled()

    def _expire(self, notification: Notification) -> None:
        self._timer = None
        if self.current is notification:
            self.current = None
            self._emit()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _emit(self) -> None:
        if self.listener is not None:
            self.listener(self.current)
