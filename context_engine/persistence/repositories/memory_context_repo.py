"""In-process session context store.

Same contract as ContextRepository. Records are kept as serialized JSON
so callers never share mutable state with the store. One asyncio.Lock
guards the table.
"""

import asyncio
from typing import Dict, List, Optional, Tuple

import structlog

from context_engine.core.exceptions import PersistenceConflictError
from context_engine.domain.models.session_context import ContextSnapshot, SessionContext

log = structlog.get_logger(__name__)


class InMemoryContextRepository:
    """Session store for tests and single-process deployments."""

    def __init__(self):
        # session_id -> (version, context json)
        self._records: Dict[str, Tuple[int, str]] = {}
        self._lock = asyncio.Lock()

    async def load(self, session_id: str) -> SessionContext:
        """Load a session context, or a fresh empty one for an unknown id."""
        async with self._lock:
            record = self._records.get(session_id)

        if record is None:
            return SessionContext(session_id=session_id)

        version, payload = record
        return SessionContext.model_validate_json(payload).model_copy(
            update={"version": version}
        )

    async def exists(self, session_id: str) -> bool:
        async with self._lock:
            return session_id in self._records

    async def save(self, context: SessionContext, expected_version: int) -> int:
        """Persist a context if the stored version still equals expected_version."""
        async with self._lock:
            current = self._records.get(context.session_id)
            actual: Optional[int] = current[0] if current else None
            if (actual or 0) != expected_version:
                log.warning(
                    "persistence_conflict",
                    session_id=context.session_id,
                    expected_version=expected_version,
                    actual_version=actual,
                )
                raise PersistenceConflictError(
                    f"Session {context.session_id} changed since load "
                    f"(expected version {expected_version}, found {actual})",
                    session_id=context.session_id,
                    expected_version=expected_version,
                    actual_version=actual,
                )

            new_version = expected_version + 1
            stored = context.model_copy(update={"version": new_version})
            self._records[context.session_id] = (new_version, stored.model_dump_json())

        return new_version

    async def list_sessions(
        self,
        active_only: bool = False,
        customer_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[ContextSnapshot]:
        """List stored sessions, most recently active first."""
        async with self._lock:
            records = list(self._records.values())

        contexts = [
            SessionContext.model_validate_json(payload).model_copy(
                update={"version": version}
            )
            for version, payload in records
        ]
        if active_only:
            contexts = [c for c in contexts if c.is_active]
        if customer_id is not None:
            contexts = [c for c in contexts if c.customer_id == customer_id]

        contexts.sort(
            key=lambda c: (c.last_activity.timestamp() if c.last_activity else 0.0),
            reverse=True,
        )
        return [c.snapshot() for c in contexts[offset : offset + limit]]
