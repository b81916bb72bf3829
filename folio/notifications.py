"""
User-Facing Notices

The presentation boundary of the data layer. Repositories and the mutation
executor describe what happened as a Notice; a Notifier renders it (a toast on
a device, a log line in a service). Message texts are translation keys.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)


class Messages:
    """Translation keys for notices."""

    NO_CONNECTION = "No internet connection for new content!"
    SOMETHING_WENT_WRONG = "Something went wrong!"
    BOOK_DELETED = "You delete book!"
    BOOK_DELETE_FAILED = "Something went wrong"
    MESSAGE_FAILED = "Error in message!"
    REVIEW_ADDED = "You add book review!"
    FAVORITE_ADDED = "You add book to favorites!"
    FAVORITE_REMOVED = "You book remove from favorites!"
    BOOK_FINISHED = "You finish book!"
    BOOK_ADDED = "You add book!"
    CATALOG_PROBLEM = "MaybeProblemWithGoogleApi"


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    """A short message for the user, with optional secondary text."""

    level: NoticeLevel
    message: str
    detail: str | None = None

    @classmethod
    def success(cls, message: str) -> Notice:
        return cls(NoticeLevel.SUCCESS, message)

    @classmethod
    def error(cls, message: str, detail: str | None = None) -> Notice:
        return cls(NoticeLevel.ERROR, message, detail)

    @classmethod
    def warning(cls, message: str, detail: str | None = None) -> Notice:
        return cls(NoticeLevel.WARNING, message, detail)


@runtime_checkable
class Notifier(Protocol):
    async def notify(self, notice: Notice) -> None:
        ...


class LogNotifier:
    """Notifier that writes notices to the structured log."""

    async def notify(self, notice: Notice) -> None:
        log = logger.error if notice.level == NoticeLevel.ERROR else logger.info
        log("user_notice", level=notice.level.value, message=notice.message, detail=notice.detail)


class CollectingNotifier:
    """Notifier that keeps every notice in memory, for tests and headless tools."""

    def __init__(self) -> None:
        self.notices: list[Notice] = []

    async def notify(self, notice: Notice) -> None:
        self.notices.append(notice)

    @property
    def messages(self) -> list[str]:
        return [n.message for n in self.notices]

    def clear(self) -> None:
        self.notices.clear()


async def deliver(notifier: Notifier | None, notice: Notice) -> None:
    """Send ``notice`` if a notifier is configured. Notifier failures are logged, never raised."""
    if notifier is None:
        return
    try:
        await notifier.notify(notice)
    except Exception as e:
        logger.warning("notifier_failed", message=notice.message, error=str(e))


__all__ = [
    "Messages",
    "NoticeLevel",
    "Notice",
    "Notifier",
    "LogNotifier",
    "CollectingNotifier",
    "deliver",
]
