"""Per-session turn serialization.

One asyncio.Lock per session id, created on first use and dropped when
the last holder or waiter leaves, so the map only contains sessions
with a turn in flight.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict

import structlog

log = structlog.get_logger(__name__)


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class SessionLockManager:
    """Serializes turns of the same session. Different sessions never block each other."""

    def __init__(self):
        self._entries: Dict[str, _LockEntry] = {}

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        """Hold the session's lock for the duration of the block.

            async with locks.hold(session_id):
                ...
        """
        # No await between lookup and increment, so this is atomic on the loop
        entry = self._entries.get(session_id)
        if entry is None:
            entry = _LockEntry()
            self._entries[session_id] = entry
        entry.users += 1

        if entry.lock.locked():
            log.debug("session_lock_waiting", session_id=session_id, users=entry.users)

        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._entries.pop(session_id, None)

    def is_locked(self, session_id: str) -> bool:
        entry = self._entries.get(session_id)
        return entry is not None and entry.lock.locked()

    @property
    def tracked_sessions(self) -> int:
        """Number of sessions with a turn running or waiting."""
        return len(self._entries)
