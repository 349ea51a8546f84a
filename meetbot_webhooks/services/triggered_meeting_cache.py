from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from functools import lru_cache


class TriggeredMeetingCache:
    """Meetings a bot was already requested for, forgotten after ``ttl``.

    Process-local and advisory only: it saves duplicate start-bot calls from
    one client. The recording's terminal status is what actually prevents
    double processing.
    """

    def __init__(
        self,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.ttl = ttl
        self.clock = clock or (lambda: datetime.now(UTC))
        self._triggered_at: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def contains(self, meeting_id: str) -> bool:
        with self._lock:
            self._evict_expired()
            return meeting_id in self._triggered_at

    def mark(self, meeting_id: str) -> None:
        with self._lock:
            self._triggered_at[meeting_id] = self.clock()

    def discard(self, meeting_id: str) -> None:
        with self._lock:
            self._triggered_at.pop(meeting_id, None)

    def retain_only(self, current_meeting_ids: Iterable[str]) -> None:
        current_ids = set(current_meeting_ids)
        with self._lock:
            for meeting_id in list(self._triggered_at):
                if meeting_id not in current_ids:
                    del self._triggered_at[meeting_id]

    def __len__(self) -> int:
        with self._lock:
            self._evict_expired()
            return len(self._triggered_at)

    def _evict_expired(self) -> None:
        cutoff = self.clock() - self.ttl
        for meeting_id, triggered_at in list(self._triggered_at.items()):
            if triggered_at <= cutoff:
                del self._triggered_at[meeting_id]


@lru_cache
def get_triggered_meeting_cache(ttl_hours: int) -> TriggeredMeetingCache:
    return TriggeredMeetingCache(ttl=timedelta(hours=ttl_hours))


def clear_triggered_meeting_cache() -> None:
    get_triggered_meeting_cache.cache_clear()
