"""Per-user push channel for live task events.

Each authenticated WebSocket joins the channel of its user. Events are
delivered at most once to whoever is connected at that moment; nothing is
stored or replayed.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List

from fastapi import WebSocket

logger = logging.getLogger(__name__)

TASK_COMPLETED = "taskCompleted"
FRIEND_ACTIVITY = "friendActivity"
SUBSCRIBED = "subscribed"


def make_event(name: str, **data: Any) -> Dict[str, Any]:
    return {"event": name, "data": data}


@dataclass(eq=False)
class Subscription:
    websocket: WebSocket
    # The loop that owns the socket; sends must happen there
    loop: asyncio.AbstractEventLoop


class NotificationHub:
    """
    Registry of live connections keyed by user id.

    The hub only tracks membership. Opening and closing sockets stays with
    the endpoint that accepted them, which calls subscribe() after accept
    and unsubscribe() on disconnect.

    Usage:
        hub = NotificationHub()
        hub.subscribe(user.id, websocket)          # inside the socket handler
        hub.notify(user.id, make_event(...))      # from any thread
        await hub.publish(user.id, make_event(...))  # from the socket's loop
        hub.unsubscribe(user.id, websocket)
    """

    def __init__(self) -> None:
        self._channels: Dict[int, List[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, user_id: int, websocket: WebSocket) -> None:
        """Must be called from the event loop that serves `websocket`."""
        subscription = Subscription(websocket, asyncio.get_running_loop())
        with self._lock:
            self._channels.setdefault(user_id, []).append(subscription)
        logger.debug("User %s subscribed (%d connections)", user_id, self.connection_count(user_id))

    def unsubscribe(self, user_id: int, websocket: WebSocket) -> None:
        with self._lock:
            remaining = [s for s in self._channels.get(user_id, []) if s.websocket is not websocket]
            if remaining:
                self._channels[user_id] = remaining
            else:
                self._channels.pop(user_id, None)
        logger.debug("User %s unsubscribed", user_id)

    def subscriptions(self, user_id: int) -> List[Subscription]:
        with self._lock:
            return list(self._channels.get(user_id, []))

    def connection_count(self, user_id: int) -> int:
        return len(self.subscriptions(user_id))

    async def _send(self, user_id: int, subscription: Subscription, event: Dict[str, Any]) -> bool:
        try:
            await subscription.websocket.send_json(event)
            return True
        except Exception:
            logger.warning("Dropping dead connection for user %s", user_id, exc_info=True)
            self.unsubscribe(user_id, subscription.websocket)
            return False

    async def publish(self, user_id: int, event: Dict[str, Any]) -> int:
        """
        Sends `event` to every connection of `user_id` and returns how many
        accepted it. Meant for code already running on the sockets' loop.
        """
        delivered = 0
        for subscription in self.subscriptions(user_id):
            if await self._send(user_id, subscription, event):
                delivered += 1
        return delivered

    def notify(self, user_id: int, event: Dict[str, Any]) -> int:
        """
        Fire-and-forget publish, safe to call from worker threads.
        Returns the number of connections the event was handed to.
        """
        subscriptions = self.subscriptions(user_id)
        if not subscriptions:
            logger.debug("No listeners for user %s, dropping %s", user_id, event.get("event"))
            return 0

        scheduled = 0
        for subscription in subscriptions:
            coro = self._send(user_id, subscription, event)
            try:
                asyncio.run_coroutine_threadsafe(coro, subscription.loop)
                scheduled += 1
            except RuntimeError:
                # The socket's loop is gone
                coro.close()
                self.unsubscribe(user_id, subscription.websocket)
        return scheduled
