"""Repository implementations."""

from context_engine.persistence.repositories.context_repo import ContextRepository
from context_engine.persistence.repositories.memory_context_repo import (
    InMemoryContextRepository,
)

__all__ = [
    "ContextRepository",
    "InMemoryContextRepository",
]
