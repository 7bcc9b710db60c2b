"""
User-visible notifications.

The UI surfaces these as toasts; the backend only queues them per session
and hands them out when the UI polls.
"""
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Deque, List, Protocol

MAX_PENDING = 50


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Notifier(Protocol):
    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...


class NotificationQueue:
    """Bounded per-session queue; oldest entries drop first."""

    def __init__(self, maxlen: int = MAX_PENDING):
        self._items: Deque[Notification] = deque(maxlen=maxlen)

    def push(self, level: NotificationLevel, message: str) -> None:
        self._items.append(Notification(level=level, message=message))

    def success(self, message: str) -> None:
        self.push(NotificationLevel.SUCCESS, message)

    def error(self, message: str) -> None:
        self.push(NotificationLevel.ERROR, message)

    def info(self, message: str) -> None:
        self.push(NotificationLevel.INFO, message)

    def pending(self) -> List[Notification]:
        return list(self._items)

    def drain(self) -> List[Notification]:
        items = list(self._items)
        self._items.clear()
        return items

    def __len__(self) -> int:
        return len(self._items)
