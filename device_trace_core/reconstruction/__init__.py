"""Span reconstruction: record classification and the per-session span tracker.

@public
"""

from ._types import (
    AttributeValue,
    ClassifiedRecord,
    CloseReason,
    OpenSpan,
    ReconstructedSpan,
    RecordKind,
    SpanEvent,
    TrackerWarning,
    WarningKind,
)
from .classifier import SPAN_ENTER_PREFIX, SPAN_EXIT_PREFIX, classify, marker_kind
from .tracker import DEFAULT_MAX_SPAN_DEPTH, SESSION_ROOT_SPAN_NAME, Session, SpanTracker

__all__ = [
    "DEFAULT_MAX_SPAN_DEPTH",
    "SESSION_ROOT_SPAN_NAME",
    "SPAN_ENTER_PREFIX",
    "SPAN_EXIT_PREFIX",
    "AttributeValue",
    "ClassifiedRecord",
    "CloseReason",
    "OpenSpan",
    "ReconstructedSpan",
    "RecordKind",
    "Session",
    "SpanEvent",
    "SpanTracker",
    "TrackerWarning",
    "WarningKind",
    "classify",
    "marker_kind",
]
