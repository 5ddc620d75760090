"""
Service protocol definitions (interfaces).

Defines formal interfaces using Python's typing.Protocol so the pipeline
can depend on behaviour rather than concrete classes.
"""

from typing import Awaitable, Callable, List, Optional, Protocol

from context_engine.domain.models.entities import ToolExecution
from context_engine.domain.models.session_context import ContextSnapshot, SessionContext


class ISessionStore(Protocol):
    """
    Protocol for session stores.

    Implementations must give read-your-writes consistency per session id
    and an atomic, version-checked save.
    """

    async def load(self, session_id: str) -> SessionContext:
        """
        Load the context for a session.

        Returns a fresh empty context (version 0) for an unknown id.
        Never raises for a missing session.
        """
        ...

    async def exists(self, session_id: str) -> bool:
        """Whether a context has been persisted for this id."""
        ...

    async def save(self, context: SessionContext, expected_version: int) -> int:
        """
        Persist a context.

        Args:
            context: Context to store
            expected_version: Version the caller loaded (0 for a new session)

        Returns:
            New stored version

        Raises:
            PersistenceConflictError: Stored version differs from expected_version
            StoreUnavailableError: Store could not be written
        """
        ...

    async def list_sessions(
        self,
        active_only: bool = False,
        customer_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[ContextSnapshot]:
        """List stored sessions for monitoring."""
        ...


ToolCallback = Callable[[str, ContextSnapshot], Awaitable[ToolExecution]]
"""
Tool execution callback supplied by the agent layer.

Receives the (resolved) user message and a read-only snapshot of the
session context, runs whatever tools it decides on and returns the
response text together with the tool results.
"""
