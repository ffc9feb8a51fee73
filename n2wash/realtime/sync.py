"""
Client-side reconciliation of the reservation calendar with the realtime feed.

ReservationSync keeps a local store of reservations keyed by id, applies
INSERT/UPDATE/DELETE events from the server, and protects local optimistic
edits from being overwritten by their own echoes.
"""

import asyncio
import json
import logging
import time
from datetime import date
from typing import Callable, Optional

logger = logging.getLogger(__name__)

MAX_RETRIES = 5
BASE_DELAY_MS = 1000
MAX_DELAY_MS = 30000
BACKOFF_MULTIPLIER = 1.5
MIN_REFETCH_INTERVAL = 10.0
LOCAL_UPDATE_GRACE = 3.0
FALLBACK_POLL_INTERVAL = 30.0


def reconnect_delay_ms(attempt: int) -> float:
    """Backoff before reconnect attempt number `attempt` (1-based)"""
    return min(BASE_DELAY_MS * BACKOFF_MULTIPLIER**attempt, MAX_DELAY_MS)


def _record_date(record: dict) -> Optional[date]:
    value = record.get("reservation_date")
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    return None


class ReservationSync:
    """
    Args:
        fetch: callable(loaded_from) returning the reservation records to load
        loaded_from: first day of the loaded calendar range
        clock: monotonic clock in seconds, injectable for tests
    """

    def __init__(self, fetch: Callable[[date], list], loaded_from: date, clock: Callable[[], float] = time.monotonic):
        self.fetch = fetch
        self.loaded_from = loaded_from
        self.clock = clock
        self.reservations: dict = {}
        self.connected = False
        self.retry_count = 0
        self._last_refetch: Optional[float] = None
        self._local_updates: dict = {}

    # Store

    def load(self, loaded_from: Optional[date] = None) -> int:
        """Replace the local store with a fresh fetch"""
        if loaded_from is not None:
            self.loaded_from = loaded_from
        records = self.fetch(self.loaded_from)
        self.reservations = {r["id"]: r for r in records}
        self._last_refetch = self.clock()
        return len(self.reservations)

    def refetch(self, force: bool = False) -> bool:
        """Reload, at most once per MIN_REFETCH_INTERVAL unless forced"""
        now = self.clock()
        if not force and self._last_refetch is not None and now - self._last_refetch < MIN_REFETCH_INTERVAL:
            logger.debug(f"Skipping refetch - rate limited ({now - self._last_refetch:.1f}s since last)")
            return False
        self.load()
        return True

    def mark_local_update(self, reservation_id):
        self._local_updates[reservation_id] = self.clock()

    def _recently_updated(self, reservation_id) -> bool:
        marked_at = self._local_updates.get(reservation_id)
        if marked_at is None:
            return False
        if self.clock() - marked_at < LOCAL_UPDATE_GRACE:
            return True
        del self._local_updates[reservation_id]
        return False

    def apply_event(self, event: dict) -> bool:
        """Apply one realtime message. Returns True when the store changed."""
        event_type = event.get("type")
        record = event.get("record") or {}
        reservation_id = record.get("id")
        if reservation_id is None:
            return False

        if event_type == "INSERT":
            record_date = _record_date(record)
            if record_date is not None and record_date < self.loaded_from:
                return False
            self.reservations[reservation_id] = record
            return True

        if event_type == "UPDATE":
            if self._recently_updated(reservation_id):
                logger.debug(f"Skipping update for locally modified reservation {reservation_id}")
                return False
            self.reservations[reservation_id] = record
            return True

        if event_type == "DELETE":
            return self.reservations.pop(reservation_id, None) is not None

        logger.warning(f"⚠️ Unknown realtime event type: {event_type}")
        return False

    def optimistic_update(self, reservation_id, changes: dict, remote_call: Callable[[], object]):
        """
        Apply `changes` locally, then run the remote call.
        The local record is restored when the remote call raises.
        """
        previous = self.reservations.get(reservation_id)
        if previous is None:
            raise KeyError(reservation_id)

        self.mark_local_update(reservation_id)
        self.reservations[reservation_id] = {**previous, **changes}
        try:
            return remote_call()
        except Exception:
            self.reservations[reservation_id] = previous
            self._local_updates.pop(reservation_id, None)
            raise

    # Connection

    def on_connected(self):
        self.connected = True
        self.retry_count = 0

    def on_disconnected(self) -> float:
        """
        Register a dropped connection and return seconds to wait before
        reconnecting. After MAX_RETRIES the client falls back to polling.
        """
        self.connected = False
        if self.retry_count < MAX_RETRIES:
            self.retry_count += 1
            delay = reconnect_delay_ms(self.retry_count) / 1000
            logger.info(f"Realtime retry {self.retry_count}/{MAX_RETRIES} in {delay:.2f}s")
            return delay
        logger.error("Realtime max retries reached, falling back to periodic fetch")
        return FALLBACK_POLL_INTERVAL

    @property
    def in_fallback(self) -> bool:
        return self.retry_count >= MAX_RETRIES

    async def consume(self, messages):
        """Apply every message of an async iterable of JSON strings or dicts"""
        async for message in messages:
            if isinstance(message, (str, bytes)):
                message = json.loads(message)
            self.apply_event(message)

    async def run(self, connect, sleep=asyncio.sleep, stop: Optional[asyncio.Event] = None):
        """
        Keep a realtime connection alive.

        `connect()` returns an async context manager yielding an async
        iterable of messages, e.g. `lambda: websockets.connect(url)`.
        """
        while stop is None or not stop.is_set():
            try:
                async with connect() as messages:
                    self.on_connected()
                    await self.consume(messages)
            except Exception as e:
                logger.warning(f"⚠️ Realtime connection lost: {e}")
            if stop is not None and stop.is_set():
                break

            fallback = self.in_fallback
            delay = self.on_disconnected()
            await sleep(delay)
            if fallback:
                self.retry_count = 0
            # Events may have been missed while disconnected
            self.refetch()
