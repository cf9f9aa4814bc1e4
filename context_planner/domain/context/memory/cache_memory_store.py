from typing import Dict, Any, Optional
from collections import defaultdict
import time

from context_planner.domain.models.plan_state import SessionCacheEntry


class SessionCacheStore:
    """In-memory per-session cache of memory bookkeeping.

    Entries are frozen models: every update builds a new entry and replaces the
    old one whole, so a concurrent turn sees either the old or the new record,
    never a half-written one. Last writer wins. No lock spans sessions.
    """

    def __init__(self):
        self.entries: Dict[str, SessionCacheEntry] = {}
        self.write_counts: Dict[str, int] = defaultdict(int)

    async def get(self, session_id: str) -> Optional[SessionCacheEntry]:
        """Get the cached entry for a session"""

        return self.entries.get(session_id)

    async def update(self, session_id: str, **fields: Any) -> SessionCacheEntry:
        """Replace the session entry with a copy carrying ``fields``"""

        current = self.entries.get(session_id) or SessionCacheEntry(session_id=session_id)
        updated = current.model_copy(update=fields)

        self.entries[session_id] = updated
        self.write_counts[session_id] += 1
        return updated

    async def delete(self, session_id: str) -> bool:
        """Delete a session's entry"""

        self.write_counts.pop(session_id, None)
        return self.entries.pop(session_id, None) is not None

    async def clear_stale_synthesis(self, ttl_s: float, now: Optional[float] = None) -> int:
        """Drop synthesis narratives older than ``ttl_s`` and return how many"""

        now = time.time() if now is None else now
        stale = [
            session_id for session_id, entry in self.entries.items()
            if entry.synthesis is not None and not entry.synthesis.is_fresh(now, ttl_s)
        ]

        for session_id in stale:
            await self.update(session_id, synthesis=None)

        return len(stale)

    async def evict_idle(self, idle_ttl_s: float, now: Optional[float] = None) -> int:
        """Remove sessions with no recall, ingest or synthesis within ``idle_ttl_s``"""

        now = time.time() if now is None else now
        idle = [
            session_id for session_id, entry in self.entries.items()
            if entry.last_active_at is None or now - entry.last_active_at >= idle_ttl_s
        ]

        for session_id in idle:
            await self.delete(session_id)

        return len(idle)

    async def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""

        with_synthesis = sum(1 for entry in self.entries.values() if entry.synthesis is not None)

        return {
            "sessions": len(self.entries),
            "with_synthesis": with_synthesis,
            "writes": sum(self.write_counts.values()),
        }
