"""Insertion classification and annotation engine."""

from .audit import AnnotationAuditEntry, AnnotationAuditLog, AuditOutcome
from .clipboard import ClipboardDetector
from .config import AnnotatorConfig
from .detection import DetectionEngine
from .diffing import find_new_range
from .errors import (
    AnnotatorConfigError,
    AnnotatorError,
    AnnotatorResolutionError,
    AnnotatorWriteError,
)
from .markers import ANNOTATION_END_MARKER, ANNOTATION_MARKER
from .models import (
    ChangeEvent,
    ClassificationResult,
    InsertionClassification,
    LineRange,
    TextInsert,
    TextPosition,
)
from .scheduler import AsyncioScheduler, VirtualScheduler
from .state import AnnotatorState
from .writer import AnnotationWriter

__all__ = [
    "ANNOTATION_MARKER",
    "ANNOTATION_END_MARKER",
    "AnnotationAuditEntry",
    "AnnotationAuditLog",
    "AnnotationWriter",
    "AnnotatorConfig",
    "AnnotatorConfigError",
    "AnnotatorError",
    "AnnotatorResolutionError",
    "AnnotatorState",
    "AnnotatorWriteError",
    "AsyncioScheduler",
    "AuditOutcome",
    "ChangeEvent",
    "ClassificationResult",
    "ClipboardDetector",
    "DetectionEngine",
    "InsertionClassification",
    "LineRange",
    "TextInsert",
    "TextPosition",
    "VirtualScheduler",
    "find_new_range",
]
