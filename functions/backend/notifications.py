"""
Publish/subscribe notification channel.

Pipeline code publishes user-facing messages on named topics instead of
writing to shared state: `status` carries toast-style notifications and
`photoStatus` carries short screen-reader announcements.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Callable, Optional

from shared.constants import PHOTO_STATUS_TOPIC, STATUS_TOPIC
from shared.types import NotificationKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    topic: str
    kind: NotificationKind
    title: str
    detail: str = ""
    # User the message belongs to; None is never shown to polling clients.
    owner_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def as_dict(self) -> dict:
        return {
            "topic": self.topic,
            "kind": self.kind.value,
            "title": self.title,
            "detail": self.detail,
            "timestamp": self.timestamp,
        }


Subscriber = Callable[[Notification], None]


class NotificationChannel:
    """In-process topic fan-out. Subscriber errors are logged, not raised."""

    def __init__(self):
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, topic: str, callback: Subscriber) -> Callable[[], None]:
        """Registers `callback` and returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers[topic].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers[topic]:
                    self._subscribers[topic].remove(callback)

        return unsubscribe

    def publish(self, notification: Notification) -> None:
        with self._lock:
            subscribers = list(self._subscribers.get(notification.topic, ()))
        for callback in subscribers:
            try:
                callback(notification)
            except Exception:
                logger.exception(
                    "Notification subscriber failed on topic %s", notification.topic
                )


class RecentNotifications:
    """Keeps the last `maxlen` notifications per topic for polling clients."""

    def __init__(self, channel: NotificationChannel, maxlen: int = 100):
        self._items: dict[str, deque] = defaultdict(lambda: deque(maxlen=maxlen))
        self._lock = threading.Lock()
        self._unsubscribers = [
            channel.subscribe(topic, self._record)
            for topic in (STATUS_TOPIC, PHOTO_STATUS_TOPIC)
        ]

    def _record(self, notification: Notification) -> None:
        with self._lock:
            self._items[notification.topic].append(notification)

    def list(
        self, topic: Optional[str] = None, owner_id: Optional[str] = None
    ) -> list[Notification]:
        """Buffered notifications, oldest first. `owner_id` limits to one user."""
        with self._lock:
            if topic is not None:
                items = list(self._items.get(topic, ()))
            else:
                items = sorted(
                    (n for buffered in self._items.values() for n in buffered),
                    key=lambda n: n.timestamp,
                )
        if owner_id is not None:
            items = [n for n in items if n.owner_id == owner_id]
        return items

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()


class Notifier:
    """The notification surface used by the photo pipeline."""

    def __init__(self, channel: NotificationChannel):
        self.channel = channel

    def notify(
        self,
        kind: NotificationKind,
        title: str,
        detail: str = "",
        *,
        owner_id: Optional[str] = None,
    ) -> None:
        if kind == NotificationKind.ERROR:
            logger.warning("%s: %s", title, detail)
        self.channel.publish(
            Notification(
                topic=STATUS_TOPIC,
                kind=kind,
                title=title,
                detail=detail,
                owner_id=owner_id,
            )
        )

    def announce(self, text: str, *, owner_id: Optional[str] = None) -> None:
        self.channel.publish(
            Notification(
                topic=PHOTO_STATUS_TOPIC,
                kind=NotificationKind.INFO,
                title=text,
                owner_id=owner_id,
            )
        )
