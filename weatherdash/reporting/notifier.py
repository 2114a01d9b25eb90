"""Transient user notifications ("toasts")."""

import logging
from collections.abc import Callable

from weatherdash.models.reporting import Notification, NotificationLevel

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    NotificationLevel.INFO: logging.INFO,
    NotificationLevel.SUCCESS: logging.INFO,
    NotificationLevel.WARNING: logging.WARNING,
    NotificationLevel.ERROR: logging.ERROR,
}


class Notifier:
    """Records notifications and forwards them to an optional sink."""

    def __init__(self, sink: Callable[[Notification], None] | None = None):
        self.sink = sink
        self.history: list[Notification] = []

    def notify(
        self, level: NotificationLevel, message: str, kind: str | None = None
    ) -> Notification:
        note = Notification(level=level, message=message, kind=kind)
        self.history.append(note)
        logger.log(_LOG_LEVELS[level], "[%s] %s", level.value, message)
        if self.sink is not None:
            self.sink(note)
        return note

    def success(self, message: str) -> Notification:
        return self.notify(NotificationLevel.SUCCESS, message)

    def info(self, message: str) -> Notification:
        return self.notify(NotificationLevel.INFO, message)

    def error(self, message: str, exc: BaseException | None = None) -> Notification:
        kind = type(exc).__name__ if exc is not None else None
        return self.notify(NotificationLevel.ERROR, message, kind)

    def errors(self) -> list[Notification]:
        return [n for n in self.history if n.level == NotificationLevel.ERROR]
