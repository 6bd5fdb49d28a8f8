"""Detect AI-generated insertions and mark them with provenance comments."""

from aiannotator.core import (
    ANNOTATION_END_MARKER,
    ANNOTATION_MARKER,
    AnnotationWriter,
    AnnotatorConfig,
    AnnotatorError,
    ChangeEvent,
    ClassificationResult,
    DetectionEngine,
    InsertionClassification,
    TextPosition,
)
from aiannotator.service import AnnotatorService

__version__ = "0.3.0"

__all__ = [
    "ANNOTATION_END_MARKER",
    "ANNOTATION_MARKER",
    "AnnotationWriter",
    "AnnotatorConfig",
    "AnnotatorError",
    "AnnotatorService",
    "ChangeEvent",
    "ClassificationResult",
    "DetectionEngine",
    "InsertionClassification",
    "TextPosition",
]
