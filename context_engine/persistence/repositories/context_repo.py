"""Session context repository backed by SQLite."""

from typing import List, Optional

import aiosqlite
import structlog
from pydantic import ValidationError

from context_engine.core.exceptions import (
    PersistenceConflictError,
    StoreUnavailableError,
)
from context_engine.domain.models.session_context import ContextSnapshot, SessionContext

log = structlog.get_logger(__name__)


class ContextRepository:
    """Repository for per-session context records.

    Each save is one transaction guarded by the record's version, so a
    stale writer gets PersistenceConflictError instead of overwriting a
    newer context.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path

    async def load(self, session_id: str) -> SessionContext:
        """Load a session context, or a fresh empty one for an unknown id."""
        try:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(
                    "SELECT context, version FROM session_contexts WHERE session_id = ?",
                    (session_id,),
                )
                row = await cursor.fetchone()
        except (aiosqlite.Error, OSError) as e:
            log.error("context_load_failed", session_id=session_id, error=str(e))
            raise StoreUnavailableError(f"Failed to load session {session_id}: {e}") from e

        if not row:
            log.debug("context_initialized", session_id=session_id)
            return SessionContext(session_id=session_id)

        return self._row_to_context(row, session_id)

    async def exists(self, session_id: str) -> bool:
        """Check whether a context has ever been persisted for this id."""
        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(
                    "SELECT 1 FROM session_contexts WHERE session_id = ?", (session_id,)
                )
                return await cursor.fetchone() is not None
        except (aiosqlite.Error, OSError) as e:
            raise StoreUnavailableError(f"Failed to query session {session_id}: {e}") from e

    async def save(self, context: SessionContext, expected_version: int) -> int:
        """
        Persist a context if the stored version still equals expected_version.

        Args:
            context: Merged context to store
            expected_version: Version the context was loaded at (0 = new session)

        Returns:
            The new stored version

        Raises:
            PersistenceConflictError: Another writer committed first
            StoreUnavailableError: Database could not be written
        """
        new_version = expected_version + 1
        stored = context.model_copy(update={"version": new_version})
        payload = stored.model_dump_json()

        try:
            async with aiosqlite.connect(self.db_path) as db:
                if expected_version == 0:
                    try:
                        await db.execute(
                            "INSERT INTO session_contexts (session_id, customer_id, "
                            "is_active, current_topic, version, context, created_at, "
                            "updated_at) "
                            "VALUES (?, ?, ?, ?, ?, ?, datetime('now'), datetime('now'))",
                            (
                                stored.session_id,
                                stored.customer_id,
                                int(stored.is_active),
                                stored.current_topic,
                                new_version,
                                payload,
                            ),
                        )
                    except aiosqlite.IntegrityError:
                        actual = await self._current_version(db, stored.session_id)
                        raise self._conflict(stored.session_id, expected_version, actual)
                else:
                    cursor = await db.execute(
                        "UPDATE session_contexts SET customer_id = ?, is_active = ?, "
                        "current_topic = ?, version = ?, context = ?, "
                        "updated_at = datetime('now') "
                        "WHERE session_id = ? AND version = ?",
                        (
                            stored.customer_id,
                            int(stored.is_active),
                            stored.current_topic,
                            new_version,
                            payload,
                            stored.session_id,
                            expected_version,
                        ),
                    )
                    if cursor.rowcount == 0:
                        actual = await self._current_version(db, stored.session_id)
                        raise self._conflict(stored.session_id, expected_version, actual)

                await db.commit()
        except (aiosqlite.Error, OSError) as e:
            log.error("context_save_failed", session_id=context.session_id, error=str(e))
            raise StoreUnavailableError(
                f"Failed to save session {context.session_id}: {e}"
            ) from e

        log.debug(
            "context_saved",
            session_id=stored.session_id,
            version=new_version,
            history_length=stored.history_length,
        )
        return new_version

    async def list_sessions(
        self,
        active_only: bool = False,
        customer_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[ContextSnapshot]:
        """List stored sessions, most recently updated first."""
        clauses = []
        params: list = []
        if active_only:
            clauses.append("is_active = 1")
        if customer_id is not None:
            clauses.append("customer_id = ?")
            params.append(customer_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        try:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(
                    f"SELECT session_id, context, version FROM session_contexts {where} "
                    "ORDER BY updated_at DESC, session_id LIMIT ? OFFSET ?",
                    (*params, limit, offset),
                )
                rows = await cursor.fetchall()
        except (aiosqlite.Error, OSError) as e:
            raise StoreUnavailableError(f"Failed to list sessions: {e}") from e

        return [
            self._row_to_context(row, row["session_id"]).snapshot() for row in rows
        ]

    async def _current_version(
        self, db: aiosqlite.Connection, session_id: str
    ) -> Optional[int]:
        cursor = await db.execute(
            "SELECT version FROM session_contexts WHERE session_id = ?", (session_id,)
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    def _conflict(
        self, session_id: str, expected: int, actual: Optional[int]
    ) -> PersistenceConflictError:
        log.warning(
            "persistence_conflict",
            session_id=session_id,
            expected_version=expected,
            actual_version=actual,
        )
        return PersistenceConflictError(
            f"Session {session_id} changed since load "
            f"(expected version {expected}, found {actual})",
            session_id=session_id,
            expected_version=expected,
            actual_version=actual,
        )

    def _row_to_context(self, row: aiosqlite.Row, session_id: str) -> SessionContext:
        """Convert a database row to a SessionContext."""
        try:
            context = SessionContext.model_validate_json(row["context"])
        except ValidationError as e:
            log.error("context_record_corrupt", session_id=session_id, error=str(e))
            raise StoreUnavailableError(
                f"Stored context for session {session_id} is unreadable"
            ) from e
        # The version column is authoritative
        if context.version != row["version"]:
            context = context.model_copy(update={"version": row["version"]})
        return context
