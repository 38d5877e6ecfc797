from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List

from ..domain.models import ActiveNotification

logger = logging.getLogger(__name__)


@dataclass
class _DismissTimer:
    delay_ms: int
    handle: asyncio.TimerHandle


class ActiveNotificationQueue:
    """Transient on-screen alerts, newest first.

    Only the first ``max_visible`` entries hold auto-dismiss timers. The entry
    at rank N is dismissed after ``base_ms + N * stagger_ms``; when an entry's
    rank changes its timer restarts with the delay of the new rank. Must be
    used from inside a running event loop.
    """

    def __init__(self, base_ms: int = 5000, stagger_ms: int = 1000, max_visible: int = 3) -> None:
        self.base_ms = base_ms
        self.stagger_ms = stagger_ms
        self.max_visible = max_visible
        self._entries: List[ActiveNotification] = []
        self._timers: Dict[str, _DismissTimer] = {}

    def entries(self) -> List[ActiveNotification]:
        return list(self._entries)

    def visible(self) -> List[ActiveNotification]:
        return self._entries[: self.max_visible]

    def scheduled_delays(self) -> Dict[str, int]:
        """Auto-dismiss delay (ms) per visible entry id, in display order."""
        return {e.id: self._timers[e.id].delay_ms for e in self.visible() if e.id in self._timers}

    def push(self, entry: ActiveNotification) -> None:
        self._entries = [entry, *self._entries]
        self._reschedule()

    def dismiss(self, notification_id: str) -> bool:
        remaining = [e for e in self._entries if e.id != notification_id]
        if len(remaining) == len(self._entries):
            return False
        self._entries = remaining
        self._reschedule()
        return True

    def clear(self) -> None:
        for timer in self._timers.values():
            timer.handle.cancel()
        self._timers = {}
        self._entries = []

    def _delay_for(self, rank: int) -> int:
        return self.base_ms + rank * self.stagger_ms

    def _reschedule(self) -> None:
        wanted = {e.id: self._delay_for(rank) for rank, e in enumerate(self.visible())}

        for nid, timer in list(self._timers.items()):
            if wanted.get(nid) != timer.delay_ms:
                timer.handle.cancel()
                del self._timers[nid]

        missing = [(nid, delay_ms) for nid, delay_ms in wanted.items() if nid not in self._timers]
        if not missing:
            return
        loop = asyncio.get_running_loop()
        for nid, delay_ms in missing:
            handle = loop.call_later(delay_ms / 1000.0, self._expire, nid)
            self._timers[nid] = _DismissTimer(delay_ms=delay_ms, handle=handle)

    def _expire(self, notification_id: str) -> None:
        self._timers.pop(notification_id, None)
        if self.dismiss(notification_id):
            logger.debug("Auto-dismissed notification %s", notification_id)
