"""Session store construction from settings."""

from typing import TYPE_CHECKING, Optional

import structlog

from context_engine.core.config import Settings, settings as default_settings
from context_engine.core.exceptions import ConfigurationError
from context_engine.persistence.database import init_database
from context_engine.persistence.repositories import (
    ContextRepository,
    InMemoryContextRepository,
)

if TYPE_CHECKING:
    from context_engine.services.protocols import ISessionStore

log = structlog.get_logger(__name__)


async def create_session_store(settings: Optional[Settings] = None) -> "ISessionStore":
    """
    Build the session store selected by settings.store_backend.

    The SQLite backend has its schema applied before it is returned.

    Raises:
        ConfigurationError: Unknown backend name
    """
    settings = settings or default_settings

    if settings.store_backend == "memory":
        log.info("session_store_created", backend="memory")
        return InMemoryContextRepository()

    if settings.store_backend == "sqlite":
        await init_database(settings.database_path)
        log.info(
            "session_store_created",
            backend="sqlite",
            path=str(settings.database_path),
        )
        return ContextRepository(str(settings.database_path))

    raise ConfigurationError(f"Unknown session store backend: {settings.store_backend}")
