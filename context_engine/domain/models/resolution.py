"""Reference resolution result model."""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ResolutionResult(BaseModel):
    """Outcome of rewriting referring expressions in a user message.

    original and resolved are always populated so callers can log or test
    the before/after pair. When nothing was substituted, resolved equals
    original and applied is False.

    ambiguous is set when more than one mentioned entity fit the
    reference. The most recent one was still chosen.
    """

    model_config = ConfigDict(frozen=True)

    original: str
    resolved: str
    applied: bool = False
    entity_type: Optional[Literal["product", "order"]] = None
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    matched_phrases: List[str] = Field(default_factory=list)
    ambiguous: bool = False
    candidate_count: int = Field(default=0, ge=0)

    @classmethod
    def unchanged(cls, message: str) -> "ResolutionResult":
        return cls(original=message, resolved=message)
