"""
In-process publish/subscribe of reservation changes, keyed by instance.

Services publish after commit; WebSocket handlers subscribe and forward
messages shaped as {"type": "INSERT|UPDATE|DELETE", "table": ..., "record": ...}.
"""

import asyncio
import logging
from threading import Lock

logger = logging.getLogger(__name__)

EVENT_INSERT = "INSERT"
EVENT_UPDATE = "UPDATE"
EVENT_DELETE = "DELETE"

SUBSCRIBER_QUEUE_SIZE = 256


class Subscription:
    def __init__(self, instance_id: int, loop: asyncio.AbstractEventLoop):
        self.instance_id = instance_id
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)

    def deliver(self, message: dict):
        if self.queue.full():
            logger.warning(f"⚠️ Realtime subscriber for instance {self.instance_id} is lagging, dropping event")
            return
        self.queue.put_nowait(message)

    async def get(self) -> dict:
        return await self.queue.get()


class RealtimeBroker:
    def __init__(self):
        self._subscribers: dict[int, set] = {}
        self._lock = Lock()

    def subscribe(self, instance_id: int) -> Subscription:
        """Register a subscriber; must be called from a running event loop"""
        subscription = Subscription(instance_id, asyncio.get_running_loop())
        with self._lock:
            self._subscribers.setdefault(instance_id, set()).add(subscription)
        logger.info(f"📡 Realtime subscriber added for instance {instance_id}")
        return subscription

    def unsubscribe(self, subscription: Subscription):
        with self._lock:
            subscribers = self._subscribers.get(subscription.instance_id)
            if subscribers is not None:
                subscribers.discard(subscription)
                if not subscribers:
                    del self._subscribers[subscription.instance_id]

    def subscriber_count(self, instance_id: int) -> int:
        with self._lock:
            return len(self._subscribers.get(instance_id, ()))

    def publish(self, instance_id: int, event_type: str, record: dict, table: str = "reservations") -> int:
        """
        Fan a change out to every subscriber of the instance.
        Safe to call from any thread. Returns the number of subscribers reached.
        """
        message = {"type": event_type, "table": table, "record": record}
        with self._lock:
            subscribers = list(self._subscribers.get(instance_id, ()))

        delivered = 0
        for subscription in subscribers:
            try:
                subscription.loop.call_soon_threadsafe(subscription.deliver, message)
                delivered += 1
            except RuntimeError:
                # Loop already closed; the WebSocket handler is gone
                self.unsubscribe(subscription)
        return delivered


broker = RealtimeBroker()
