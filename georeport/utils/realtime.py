"""Reference-counted realtime channels for notification delivery.

The manager is created once by the application (``app.state.subscriptions``)
and handed to whoever needs it. Each consumer acquires a ``Subscription`` for
a user; the first subscriber of a user opens that user's channel and the last
one to release tears it down. Messages published for a user fan out to every
subscriber of that user's channel.
"""

from __future__ import annotations

import itertools
import threading
import time
from typing import Any, Callable, Dict, Optional

from georeport.logging_utils import get_logger

logger = get_logger(__name__)

MessageHandler = Callable[[Dict[str, Any]], None]

EVENT_TYPES = ("INSERT", "UPDATE", "DELETE")


class NotificationChannel:
    def __init__(self, user_id: str):
        self.user_id = user_id
        self.name = f"notifications-{user_id}-{int(time.time() * 1000)}"
        self.filter = f"user_id=eq.{user_id}"
        self.closed = False
        self._handlers: Dict[int, MessageHandler] = {}

    def add(self, key: int, handler: MessageHandler) -> None:
        self._handlers[key] = handler

    def remove(self, key: int) -> None:
        self._handlers.pop(key, None)

    def handlers(self) -> list[MessageHandler]:
        return list(self._handlers.values())

    def close(self) -> None:
        self._handlers.clear()
        self.closed = True


class Subscription:
    """Disposable handle returned by ``NotificationSubscriptionManager.acquire``."""

    def __init__(self, manager: "NotificationSubscriptionManager", key: int, user_id: str, on_message: MessageHandler):
        self._manager = manager
        self.key = key
        self.user_id = user_id
        self.on_message = on_message
        self.active = True

    @property
    def channel(self) -> Optional[NotificationChannel]:
        return self._manager.channel_for(self.user_id) if self.active else None

    def release(self) -> None:
        if self.active:
            self._manager._release(self)

    def switch_user(self, user_id: Any) -> None:
        self._manager._switch(self, str(user_id))

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class NotificationSubscriptionManager:
    def __init__(self, channel_factory: Callable[[str], NotificationChannel] = NotificationChannel):
        self._channel_factory = channel_factory
        self._lock = threading.Lock()
        self._channels: Dict[str, NotificationChannel] = {}
        self._counts: Dict[str, int] = {}
        self._keys = itertools.count(1)

    # Introspection

    def channel_for(self, user_id: Any) -> Optional[NotificationChannel]:
        with self._lock:
            return self._channels.get(str(user_id))

    def subscriber_count(self, user_id: Any) -> int:
        with self._lock:
            return self._counts.get(str(user_id), 0)

    @property
    def channels(self) -> Dict[str, NotificationChannel]:
        with self._lock:
            return dict(self._channels)

    # Lifecycle

    def acquire(self, user_id: Any, on_message: MessageHandler) -> Subscription:
        user_key = str(user_id)
        with self._lock:
            subscription = Subscription(self, next(self._keys), user_key, on_message)
            self._attach(subscription)
        return subscription

    def _attach(self, subscription: Subscription) -> None:
        user_key = subscription.user_id
        count = self._counts.get(user_key, 0) + 1
        self._counts[user_key] = count

        channel = self._channels.get(user_key)
        if channel is None:
            channel = self._channel_factory(user_key)
            self._channels[user_key] = channel
            logger.info("Opened notification channel %s", channel.name)

        channel.add(subscription.key, subscription.on_message)
        subscription.active = True
        logger.info("Notification subscriber added for user %s (%d total)", user_key, count)

    def _detach(self, subscription: Subscription) -> None:
        user_key = subscription.user_id
        subscription.active = False

        channel = self._channels.get(user_key)
        if channel is not None:
            channel.remove(subscription.key)

        remaining = max(self._counts.get(user_key, 0) - 1, 0)
        logger.info("Notification subscriber removed for user %s (%d remaining)", user_key, remaining)

        if remaining == 0:
            self._counts.pop(user_key, None)
            if channel is not None:
                channel.close()
                del self._channels[user_key]
                logger.info("Closed notification channel %s", channel.name)
        else:
            self._counts[user_key] = remaining

    def _release(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription.active:
                self._detach(subscription)

    def _switch(self, subscription: Subscription, user_id: str) -> None:
        with self._lock:
            if subscription.active and subscription.user_id == user_id:
                return
            if subscription.active:
                logger.info("User changed from %s to %s, moving subscription", subscription.user_id, user_id)
                self._detach(subscription)
            subscription.user_id = user_id
            self._attach(subscription)

    def close_all(self) -> None:
        with self._lock:
            for channel in self._channels.values():
                channel.close()
            self._channels.clear()
            self._counts.clear()

    # Delivery

    def publish(
        self,
        user_id: Any,
        event_type: str,
        new: Optional[Dict[str, Any]] = None,
        old: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Deliver a change event to every subscriber of ``user_id``; returns how many got it."""
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unsupported event type: {event_type}")

        with self._lock:
            channel = self._channels.get(str(user_id))
            handlers = channel.handlers() if channel is not None else []

        if not handlers:
            return 0

        message: Dict[str, Any] = {
            "schema": "public",
            "table": "notifications",
            "eventType": event_type,
            "new": new or {},
            "old": old or {},
            "invalidate": ["notifications"],
        }
        if event_type == "INSERT" and new:
            message["toast"] = {"title": new.get("title"), "message": new.get("message")}

        delivered = 0
        for handler in handlers:
            try:
                handler(message)
                delivered += 1
            except Exception:
                logger.exception("Failed to deliver %s notification event for user %s", event_type, user_id)

        return delivered
