"""Publish/subscribe routing of agent notifications."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable

from acp_bridge.methods import NOTIFICATION_TOPICS
from acp_bridge.rpc.protocol import JsonRpcNotification
from acp_bridge.types import JsonValue

logger = logging.getLogger(__name__)

NotificationCallback = Callable[[JsonValue], object]


class Subscription:
    """Handle for one listener; :meth:`cancel` revokes exactly that listener."""

    def __init__(
        self,
        router: NotificationRouter,
        topic: str,
        callback: NotificationCallback,
    ) -> None:
        self._router = router
        self.topic = topic
        self.callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Unsubscribe. Safe to call more than once."""
        if self._active:
            self._active = False
            self._router._remove(self)


class NotificationRouter:
    """Re-publishes ``session/update`` and ``session/complete`` params.

    Notifications for other methods are ignored so that new notification
    kinds from newer agents never break the host.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = {
            topic: [] for topic in NOTIFICATION_TOPICS
        }
        self._tasks: set[asyncio.Task[object]] = set()

    @property
    def topics(self) -> tuple[str, ...]:
        return tuple(self._subscriptions)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscriptions.get(topic, ()))

    def subscribe(self, topic: str, callback: NotificationCallback) -> Subscription:
        """Register *callback* for *topic*.

        Callbacks receive the notification ``params``. A coroutine function
        callback is scheduled as a task.

        Raises:
            ValueError: If *topic* is not a routed notification method.
        """
        subscribers = self._subscriptions.get(topic)
        if subscribers is None:
            raise ValueError(
                f"Unknown notification topic: {topic}. "
                f"Available topics: {', '.join(self._subscriptions)}"
            )
        subscription = Subscription(self, topic, callback)
        subscribers.append(subscription)
        return subscription

    def handle_notification(self, notification: JsonRpcNotification) -> int:
        """Deliver *notification* to the subscribers of its method.

        Returns:
            Number of subscribers the params were delivered to.
        """
        subscribers = self._subscriptions.get(notification.method)
        if subscribers is None:
            logger.debug("Ignoring notification: %s", notification.method)
            return 0

        delivered = 0
        for subscription in list(subscribers):
            if subscription.active:
                self._deliver(subscription, notification.params)
                delivered += 1
        return delivered

    def clear(self) -> None:
        """Drop every subscription and cancel callback tasks still running."""
        for subscribers in self._subscriptions.values():
            for subscription in subscribers:
                subscription._active = False
            subscribers.clear()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def _remove(self, subscription: Subscription) -> None:
        subscribers = self._subscriptions.get(subscription.topic, [])
        if subscription in subscribers:
            subscribers.remove(subscription)

    def _deliver(self, subscription: Subscription, params: JsonValue) -> None:
        try:
            result = subscription.callback(params)
        except Exception:
            logger.error(
                "Subscriber for '%s' raised", subscription.topic, exc_info=True
            )
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[object]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Async subscriber raised", exc_info=exc)
