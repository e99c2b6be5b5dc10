"""Session pipelines and the multi-session trace engine.

@public
"""

from ._stats import EndReason, SessionStats
from .engine import TraceEngine
from .session import SessionPipeline

__all__ = [
    "EndReason",
    "SessionPipeline",
    "SessionStats",
    "TraceEngine",
]
