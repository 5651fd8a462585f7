"""Set of chats currently receiving alerts."""

from __future__ import annotations

import logging
from collections.abc import Iterator

logger = logging.getLogger(__name__)


class SubscriberRegistry:
    """Owns the subscriber set.

    Membership only changes through ``add`` (subscribe), ``remove``
    (unsubscribe) and ``discard_unreachable`` (transport reported the chat as
    gone). Iteration works on a snapshot, so removals during a fan-out are
    safe.
    """

    def __init__(self, initial: set[int] | None = None) -> None:
        self._subscribers: set[int] = set(initial or ())

    def add(self, chat_id: int) -> bool:
        """Subscribe a chat. Returns False if it was already subscribed."""
        if chat_id in self._subscribers:
            return False
        self._subscribers.add(chat_id)
        logger.info("Subscriber added: %s (total %d)", chat_id, len(self._subscribers))
        return True

    def remove(self, chat_id: int) -> bool:
        """Unsubscribe a chat. Returns False if it was not subscribed."""
        if chat_id not in self._subscribers:
            return False
        self._subscribers.remove(chat_id)
        logger.info("Subscriber removed: %s (total %d)", chat_id, len(self._subscribers))
        return True

    def discard_unreachable(self, chat_id: int) -> bool:
        """Drop a chat the transport can no longer reach."""
        removed = chat_id in self._subscribers
        self._subscribers.discard(chat_id)
        if removed:
            logger.warning("Removed unreachable subscriber %s", chat_id)
        return removed

    def snapshot(self) -> frozenset[int]:
        """Current members, detached from later changes."""
        return frozenset(self._subscribers)

    def __contains__(self, chat_id: object) -> bool:
        return chat_id in self._subscribers

    def __len__(self) -> int:
        return len(self._subscribers)

    def __iter__(self) -> Iterator[int]:
        return iter(self.snapshot())
