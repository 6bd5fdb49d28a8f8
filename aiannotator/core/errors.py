"""Error hierarchy shared by the annotation engine."""

from __future__ import annotations

__all__ = [
    "AnnotatorError",
    "AnnotatorConfigError",
    "AnnotatorResolutionError",
    "AnnotatorWriteError",
]


class AnnotatorError(Exception):
    """Base error for all annotation engine failures."""


class AnnotatorConfigError(AnnotatorError):
    """Raised when configuration values are missing or invalid."""


class AnnotatorResolutionError(AnnotatorError):
    """Raised when a document identity cannot be mapped to a real file."""


class AnnotatorWriteError(AnnotatorError):
    """Raised when a document cannot be opened, edited or saved."""
