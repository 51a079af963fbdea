"""
Short-lived hand-off of AI drafts from pre-generation to the user's prompt.

This is not a source of truth: entries expire after a TTL, are removed the
first time they are consumed, and everything is lost on restart. The
daily_recaps table remains authoritative.
"""
import time
from typing import Optional, Dict, Tuple, Callable

from recapbot.core.config import settings
from recapbot.schemas.recap import RecapSummary


CacheKey = Tuple[str, Optional[str]]


class DraftCache:
    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.DRAFT_CACHE_TTL_SECONDS
        self._clock = clock
        self._entries: Dict[CacheKey, Tuple[float, RecapSummary]] = {}

    def _purge(self) -> None:
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    def put(self, user_id: str, team_id: Optional[str], draft: RecapSummary) -> None:
        self._purge()
        self._entries[(user_id, team_id)] = (self._clock() + self.ttl_seconds, draft)

    def peek(self, user_id: str, team_id: Optional[str]) -> Optional[RecapSummary]:
        """Look without consuming."""
        self._purge()
        entry = self._entries.get((user_id, team_id))
        return entry[1] if entry else None

    def pop(self, user_id: str, team_id: Optional[str]) -> Optional[RecapSummary]:
        """Read once: the entry is gone afterwards."""
        self._purge()
        entry = self._entries.pop((user_id, team_id), None)
        return entry[1] if entry else None

    def __len__(self) -> int:
        self._purge()
        return len(self._entries)


draft_cache = DraftCache()


def get_draft_cache() -> DraftCache:
    return draft_cache
