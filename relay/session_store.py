"""
In-memory registry of Gemini chat sessions, keyed by user id.

Provides:
- EvictionPolicy implementations: NoEviction, IdleTimeout, CapacityBound (LRU)
  and CombinedPolicy to stack them.
- SessionStore: get-or-create with per-key single flight, so two concurrent first
  requests for the same user never build two sessions.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger("relay.sessions")

SessionFactory = Callable[[], Awaitable[Any]]
Clock = Callable[[], float]


# ---------------------------------------------------------------------------
# Session entry (internal)
# ---------------------------------------------------------------------------

class _SessionEntry:
    """Internal container for a live chat session."""

    def __init__(self, session: Any, now: float):
        self.session = session              # google.genai Chat object (opaque here)
        self.created_at: float = now
        self.last_used: float = now
        self.exchange_count: int = 0

    def touch(self, now: float):
        self.last_used = now

    def idle_seconds(self, now: float) -> float:
        return now - self.last_used

    def to_info(self, now: float) -> dict:
        return {
            "age_seconds": round(now - self.created_at, 3),
            "idle_seconds": round(self.idle_seconds(now), 3),
            "exchange_count": self.exchange_count,
        }


# ---------------------------------------------------------------------------
# Per-user construction lock (internal)
# ---------------------------------------------------------------------------

class _KeyLock:
    """Construction lock for one user id, shared by every request waiting on it."""

    def __init__(self):
        self.lock = asyncio.Lock()
        self.holders = 0


# ---------------------------------------------------------------------------
# Eviction policies
# ---------------------------------------------------------------------------

class EvictionPolicy:
    """
    Decides which entries to drop.

    `entries` is ordered least-recently-used first. Implementations return the
    keys to evict and must not mutate the mapping.
    """

    def select(self, entries: "OrderedDict[str, _SessionEntry]", now: float) -> list[str]:
        raise NotImplementedError


class NoEviction(EvictionPolicy):
    def select(self, entries, now):
        return []


class IdleTimeout(EvictionPolicy):
    """Evict sessions unused for more than `max_idle_seconds`."""

    def __init__(self, max_idle_seconds: float):
        self.max_idle_seconds = max_idle_seconds

    def select(self, entries, now):
        return [
            key for key, entry in entries.items()
            if entry.idle_seconds(now) > self.max_idle_seconds
        ]


class CapacityBound(EvictionPolicy):
    """Keep at most `max_entries` sessions, dropping the least recently used."""

    def __init__(self, max_entries: int):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries

    def select(self, entries, now):
        overflow = len(entries) - self.max_entries
        if overflow <= 0:
            return []
        return list(entries.keys())[:overflow]


class CombinedPolicy(EvictionPolicy):
    """Union of several policies."""

    def __init__(self, *policies: EvictionPolicy):
        self.policies = policies

    def select(self, entries, now):
        selected: list[str] = []
        for policy in self.policies:
            for key in policy.select(entries, now):
                if key not in selected:
                    selected.append(key)
        return selected


def build_policy(idle_seconds: float = 0, max_entries: int = 0) -> EvictionPolicy:
    """Build the policy described by the settings; zero disables a bound."""
    policies: list[EvictionPolicy] = []
    if idle_seconds > 0:
        policies.append(IdleTimeout(idle_seconds))
    if max_entries > 0:
        policies.append(CapacityBound(max_entries))
    if not policies:
        return NoEviction()
    if len(policies) == 1:
        return policies[0]
    return CombinedPolicy(*policies)


# ---------------------------------------------------------------------------
# Session store
# ---------------------------------------------------------------------------

class SessionStore:
    """
    In-memory store for live chat sessions.

    Session lifecycle:
        get_or_create(user_id) → existing session, or factory() stored then returned
        touch(user_id)         → count one exchange
        discard(user_id)       → removes the entry
        cleanup()              → applies the eviction policy
    """

    def __init__(
        self,
        factory: SessionFactory,
        policy: Optional[EvictionPolicy] = None,
        clock: Clock = time.monotonic,
    ):
        self._factory = factory
        self._policy = policy or NoEviction()
        self._clock = clock
        self._sessions: "OrderedDict[str, _SessionEntry]" = OrderedDict()
        self._key_locks: dict[str, _KeyLock] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._sessions

    def _lookup(self, user_id: str) -> Optional[_SessionEntry]:
        # Caller holds self._lock
        entry = self._sessions.get(user_id)
        if entry is not None:
            entry.touch(self._clock())
            self._sessions.move_to_end(user_id)
        return entry

    async def get_or_create(self, user_id: str) -> Any:
        """
        Return the session for `user_id`, creating it on first use.

        Construction runs outside the map lock so other users are not held up,
        but under a per-user lock so it happens at most once per user. If the
        factory raises, nothing is stored and the error propagates.

        The per-user lock lives only while some request holds or waits on it,
        whatever the outcome of construction.
        """
        async with self._lock:
            entry = self._lookup(user_id)
            if entry is not None:
                return entry.session
            key_lock = self._key_locks.get(user_id)
            if key_lock is None:
                key_lock = self._key_locks[user_id] = _KeyLock()
            key_lock.holders += 1

        try:
            async with key_lock.lock:
                # Another request may have finished construction while we waited
                async with self._lock:
                    entry = self._lookup(user_id)
                    if entry is not None:
                        return entry.session

                session = await self._factory()

                async with self._lock:
                    self._sessions[user_id] = _SessionEntry(session, self._clock())
                    evicted = self._evict_locked()
        finally:
            # No await between check and delete, so no lock is needed here
            key_lock.holders -= 1
            if key_lock.holders == 0 and self._key_locks.get(user_id) is key_lock:
                del self._key_locks[user_id]

        logger.info(f"[Session] Created: {user_id} ({len(self._sessions)} live)")
        for key in evicted:
            logger.info(f"[Session] Evicted: {key}")
        return session

    async def touch(self, user_id: str) -> None:
        """Record one completed exchange for `user_id`."""
        async with self._lock:
            entry = self._sessions.get(user_id)
            if entry is not None:
                entry.exchange_count += 1
                entry.touch(self._clock())

    async def info(self, user_id: str) -> Optional[dict]:
        async with self._lock:
            entry = self._sessions.get(user_id)
            return entry.to_info(self._clock()) if entry else None

    async def discard(self, user_id: str) -> bool:
        """
        Remove a session.

        Returns:
            True if the session existed and was removed, False otherwise.
        """
        async with self._lock:
            existed = self._sessions.pop(user_id, None) is not None
        if existed:
            logger.info(f"[Session] Discarded: {user_id}")
        return existed

    async def cleanup(self) -> int:
        """
        Apply the eviction policy to every entry.

        Returns:
            Number of sessions removed.
        """
        async with self._lock:
            evicted = self._evict_locked()
        for key in evicted:
            logger.info(f"[Session] Idle cleanup: removed {key}")
        return len(evicted)

    def _evict_locked(self) -> list[str]:
        victims = self._policy.select(self._sessions, self._clock())
        for key in victims:
            self._sessions.pop(key, None)
        return victims
