"""Terminal-state notifications for the UI and share links."""

import inspect
from enum import Enum
from typing import Awaitable, Callable, Optional, Union
from urllib.parse import quote

from pydantic import BaseModel

from tribute.logger import configure_logger
from tribute.models.settlement import DonationResult

logger = configure_logger(__name__)


class NotificationKind(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class DonationNotification(BaseModel):
    """A toast-worthy event."""
    kind: NotificationKind
    message: str
    result: Optional[DonationResult] = None


Subscriber = Callable[[DonationNotification], Union[None, Awaitable[None]]]


class NotificationHub:
    """Fan-out of donation notifications to subscribers."""

    def __init__(self):
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def publish(self, notification: DonationNotification) -> None:
        for callback in list(self._subscribers):
            try:
                outcome = callback(notification)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception(
                    "Notification subscriber failed",
                    extra={"kind": notification.kind.value}
                )


def build_share_link(base_url: str, username: str) -> str:
    """Deep link to a recipient's donation page."""
    return f"{base_url.rstrip('/')}/donate/{quote(username, safe='')}"
