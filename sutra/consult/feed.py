"""
Message Feed — in-process change feed for the messages table.

The store notifies the feed on every insert; subscribers register per
session id and receive only that session's new messages, in insert order.

Usage:
    sub = feed.subscribe(session_id)
    message = await sub.get()
    ...
    feed.unsubscribe(sub)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from pydantic import BaseModel

from sutra.consult.records import Message

logger = logging.getLogger("consult.feed")


class Subscription:
    """One viewer's stream of new messages for a single session."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self._queue: asyncio.Queue[Message] = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            pass
        self.closed = False

    def _deliver(self, message: Message) -> None:
        if self.closed:
            return
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if self._loop is None or current is self._loop or not self._loop.is_running():
            self._queue.put_nowait(message)
        else:
            # Publisher is on another thread
            self._loop.call_soon_threadsafe(self._queue.put_nowait, message)

    async def get(self) -> Message:
        return await self._queue.get()

    def get_nowait(self) -> Message:
        return self._queue.get_nowait()

    @property
    def pending(self) -> int:
        return self._queue.qsize()


class MessageFeed:
    """Fan-out of inserted messages to per-session subscribers."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscription]] = {}

    def subscribe(self, session_id: str) -> Subscription:
        sub = Subscription(session_id)
        self._subscribers.setdefault(session_id, []).append(sub)
        logger.debug("Subscribed to session %s (%d viewers)",
                     session_id, len(self._subscribers[session_id]))
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        sub.closed = True
        subs = self._subscribers.get(sub.session_id, [])
        if sub in subs:
            subs.remove(sub)
        if not subs:
            self._subscribers.pop(sub.session_id, None)
        logger.debug("Unsubscribed from session %s", sub.session_id)

    def subscriber_count(self, session_id: str) -> int:
        return len(self._subscribers.get(session_id, []))

    def publish(self, message: Message) -> None:
        for sub in list(self._subscribers.get(message.session_id, [])):
            sub._deliver(message)

    def on_insert(self, table: str, record: BaseModel) -> None:
        """Store insert listener.  Only rows of the messages table are published."""
        if table == "messages":
            self.publish(record)


def merge_message(messages: list[Message], incoming: Message) -> bool:
    """
    Insert ``incoming`` unless a message with the same id is already present.

    Keeps the list in creation order.  Returns True if the message was added.
    """
    if any(m.id == incoming.id for m in messages):
        return False
    position = len(messages)
    while position > 0 and messages[position - 1].created_at > incoming.created_at:
        position -= 1
    messages.insert(position, incoming)
    return True
