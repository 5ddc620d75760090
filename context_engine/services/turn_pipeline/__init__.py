"""
Turn processing pipeline.

Processing a turn is split into small stages (load, resolve, run tools,
track entities, classify, merge, persist) that each record a contract
output on a shared PipelineContext.
"""

from .base import TurnStage
from .context import PipelineContext
from .pipeline import TurnPipeline
from .result import TurnResult

__all__ = [
    "TurnStage",
    "PipelineContext",
    "TurnPipeline",
    "TurnResult",
]
