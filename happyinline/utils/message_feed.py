"""Live conversation feed emulated over a polling loop.

A ``MessageSubscription`` seeds a seen-set from a backfill fetch, then polls
the most recent messages on a fixed interval and hands every message it has
not seen before to the consumer callback, oldest first within each batch.
"""

import asyncio
import logging
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, List, Optional, Set

from happyinline.config import (
    MESSAGE_BACKFILL_LIMIT,
    MESSAGE_POLL_INTERVAL_SECONDS,
    MESSAGE_POLL_LIMIT,
    MESSAGE_SEEN_CAPACITY,
)

logger = logging.getLogger(__name__)

Message = Dict[str, Any]
FetchRecentMessages = Callable[[str, int], Awaitable[List[Message]]]
OnMessage = Callable[[Message], Awaitable[None]]


class SubscriptionState(str, Enum):
    IDLE = "idle"
    BACKFILL_PENDING = "backfill_pending"
    POLLING = "polling"
    CANCELLED = "cancelled"


class SeenMessageIds:
    """Insertion-ordered set of message ids that forgets the oldest entries past ``capacity``."""

    def __init__(self, capacity: int = MESSAGE_SEEN_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._ids: Set[str] = set()
        self._order: Deque[str] = deque()

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, message_id: str) -> None:
        if message_id in self._ids:
            return
        self._ids.add(message_id)
        self._order.append(message_id)
        while len(self._order) > self.capacity:
            self._ids.discard(self._order.popleft())

    def update(self, message_ids: Iterable[str]) -> None:
        for message_id in message_ids:
            self.add(message_id)

    def clear(self) -> None:
        self._ids.clear()
        self._order.clear()


class MessageSubscription:
    """Subscription handle for one conversation.

    ``run()`` performs the backfill and then drives the poll timer until
    ``cancel()`` is called. Each timer tick spawns its poll cycle as a separate
    task, so a slow fetch never holds back the schedule and cycles may overlap.
    """

    def __init__(
        self,
        conversation_id: str,
        on_message: OnMessage,
        fetch_recent: FetchRecentMessages,
        *,
        poll_interval: float = MESSAGE_POLL_INTERVAL_SECONDS,
        backfill_limit: int = MESSAGE_BACKFILL_LIMIT,
        poll_limit: int = MESSAGE_POLL_LIMIT,
        seen_capacity: int = MESSAGE_SEEN_CAPACITY,
    ) -> None:
        if not conversation_id:
            raise ValueError("conversation_id is required")
        if seen_capacity < backfill_limit + poll_limit:
            raise ValueError("seen_capacity must hold at least one backfill plus one poll window")
        self.conversation_id = conversation_id
        self._on_message = on_message
        self._fetch_recent = fetch_recent
        self.poll_interval = poll_interval
        self.backfill_limit = backfill_limit
        self.poll_limit = poll_limit
        self._seen = SeenMessageIds(seen_capacity)
        self._state = SubscriptionState.IDLE
        self._timer_task: Optional[asyncio.Task] = None
        self._cycles: Set[asyncio.Task] = set()

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is not SubscriptionState.CANCELLED

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def start(self) -> "MessageSubscription":
        """Schedule ``run()`` on the running loop and return immediately."""
        if self._state is not SubscriptionState.IDLE or self._timer_task is not None:
            raise RuntimeError("subscription already started")
        self._timer_task = asyncio.create_task(self.run())
        return self

    async def run(self) -> None:
        if self._state is SubscriptionState.CANCELLED:
            return
        if self._state is not SubscriptionState.IDLE:
            raise RuntimeError("subscription already started")
        self._state = SubscriptionState.BACKFILL_PENDING
        if await self.backfill():
            self._state = SubscriptionState.POLLING
        while self.active:
            await asyncio.sleep(self.poll_interval)
            if not self.active:
                break
            if self._state is SubscriptionState.BACKFILL_PENDING:
                # no poll cycle runs until the seen-set has been seeded
                if await self.backfill():
                    self._state = SubscriptionState.POLLING
                continue
            task = asyncio.create_task(self.poll_once())
            self._cycles.add(task)
            task.add_done_callback(self._cycles.discard)

    async def backfill(self) -> bool:
        """Seed the seen-set with recent history; nothing is delivered.

        Returns False when the fetch failed or the subscription was cancelled
        meanwhile, in which case ``run()`` tries again on the next tick.
        """
        try:
            messages = await self._fetch_recent(self.conversation_id, self.backfill_limit)
        except Exception:
            logger.exception("Backfill failed for conversation %s", self.conversation_id)
            return False
        if not self.active:
            return False
        self._seen.update(str(m["id"]) for m in messages)
        logger.debug("Backfilled %d message ids for conversation %s", len(messages), self.conversation_id)
        return True

    async def poll_once(self) -> int:
        """Run one poll cycle. Returns how many messages were handed to the consumer."""
        if not self.active:
            return 0
        try:
            messages = await self._fetch_recent(self.conversation_id, self.poll_limit)
        except Exception:
            logger.warning("Poll failed for conversation %s; skipping cycle", self.conversation_id, exc_info=True)
            return 0
        if not self.active:
            return 0

        # filter and record with no await in between, so overlapping cycles never both claim an id
        fresh: List[Message] = []
        for message in messages:
            message_id = str(message["id"])
            if message_id in self._seen:
                continue
            self._seen.add(message_id)
            fresh.append(message)

        delivered = 0
        for message in reversed(fresh):
            if not self.active:
                break
            try:
                await self._on_message(message)
                delivered += 1
            except Exception:
                logger.exception("Message callback failed for message %s", message.get("id"))
        return delivered

    def cancel(self) -> None:
        if self._state is SubscriptionState.CANCELLED:
            return
        self._state = SubscriptionState.CANCELLED
        self._seen.clear()
        if self._timer_task is not None:
            self._timer_task.cancel()
        self._timer_task = None
        logger.debug("Subscription to conversation %s cancelled", self.conversation_id)


def subscribe_to_messages(
    conversation_id: str,
    on_message: OnMessage,
    fetch_recent: FetchRecentMessages,
    **options: Any,
) -> MessageSubscription:
    """Start polling ``conversation_id`` and return the handle used to cancel it."""
    return MessageSubscription(conversation_id, on_message, fetch_recent, **options).start()
