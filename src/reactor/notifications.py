from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol

from .models import utc_now

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


@dataclass(frozen=True, slots=True)
class Notification:
    title: str
    description: str
    kind: NotificationKind
    created_at: datetime = field(default_factory=utc_now)


class Notifier(Protocol):
    def notify(self, title: str, description: str, kind: NotificationKind) -> None: ...


class LoggingNotifier:
    def notify(self, title: str, description: str, kind: NotificationKind) -> None:
        level = logging.ERROR if kind is NotificationKind.ERROR else logging.INFO
        logger.log(level, "%s %s", title, description)


class RecordingNotifier(LoggingNotifier):
    """Keeps the most recent notifications so the HTTP surface can show them."""

    def __init__(self, maxlen: int = 50) -> None:
        self._recent: deque[Notification] = deque(maxlen=maxlen)

    def notify(self, title: str, description: str, kind: NotificationKind) -> None:
        super().notify(title, description, kind)
        self._recent.append(Notification(title=title, description=description, kind=kind))

    def recent(self) -> list[Notification]:
        return list(self._recent)
