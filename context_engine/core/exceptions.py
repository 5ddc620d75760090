"""
Custom exception hierarchy for the context engine.

All application exceptions inherit from ContextEngineError.
"""

from typing import Optional


class ContextEngineError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ContextEngineError):
    """Invalid or missing configuration."""

    pass


# =============================================================================
# Session Errors
# =============================================================================


class SessionError(ContextEngineError):
    """Session-related error."""

    pass


class SessionNotFoundError(SessionError):
    """Session has never been persisted.

    Loading a context never raises this (unknown sessions start empty).
    Only operations that need an existing record, such as summaries and
    closing, raise it.
    """

    pass


class SessionClosedError(SessionError):
    """Attempted to process a turn on a closed session."""

    pass


# =============================================================================
# Persistence Errors
# =============================================================================


class PersistenceError(ContextEngineError):
    """Base for session store errors."""

    pass


class PersistenceConflictError(PersistenceError):
    """Stored version changed between load and save.

    Raised by the store on a stale write. The commit stage retries the
    read-modify-write cycle against the fresh record.
    """

    def __init__(
        self,
        message: str,
        session_id: Optional[str] = None,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
    ):
        super().__init__(message)
        self.session_id = session_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class StoreUnavailableError(PersistenceError):
    """Session store could not be read or written."""

    pass


# =============================================================================
# Turn Processing Errors
# =============================================================================


class TurnProcessingError(ContextEngineError):
    """Unexpected failure while processing a turn."""

    pass


class ToolExecutionError(TurnProcessingError):
    """The external tool callback raised or returned an invalid result."""

    pass
