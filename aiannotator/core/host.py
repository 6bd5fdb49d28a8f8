"""Capability protocols describing the editor host and identity helpers."""

from __future__ import annotations

from typing import Optional, Protocol, Sequence
from urllib.parse import unquote, urlsplit

from .models import TextInsert

__all__ = [
    "TextDocument",
    "DocumentSource",
    "EditApplier",
    "ClipboardReader",
    "DiagnosticsSink",
    "FileWatcher",
    "INTERNAL_SCHEMES",
    "uri_scheme",
    "file_key",
    "is_internal_uri",
]

# Editor surfaces that produce change events but never hold user code.
INTERNAL_SCHEMES = frozenset((
    "output",
    "debug",
    "diff",
    "search-editor",
    "git",
    "vscode-scm",
    "vscode-settings",
    "vscode-userdata",
    "walkthrough",
    "comment",
    "merge-conflict.conflict-diff",
))


class TextDocument(Protocol):  # pragma: no cover - typing aid
    """Read access to an open editor document."""

    @property
    def uri(self) -> str:
        ...

    @property
    def language_id(self) -> str:
        ...

    @property
    def file_name(self) -> str:
        ...

    @property
    def is_closed(self) -> bool:
        ...

    @property
    def line_count(self) -> int:
        ...

    def get_text(self) -> str:
        ...

    def line_at(self, line: int) -> str:
        ...


class DocumentSource(Protocol):  # pragma: no cover - typing aid
    """Open and persist documents by URI."""

    async def open_document(self, uri: str) -> TextDocument:
        ...

    async def save_document(self, document: TextDocument) -> bool:
        ...


class EditApplier(Protocol):  # pragma: no cover - typing aid
    """Apply a batch of insertions to one document as a single atomic edit."""

    async def apply_edit(self, uri: str, inserts: Sequence[TextInsert]) -> bool:
        ...


class ClipboardReader(Protocol):  # pragma: no cover - typing aid
    """Read the system clipboard."""

    async def read_text(self) -> str:
        ...


class DiagnosticsSink(Protocol):  # pragma: no cover - typing aid
    """Append-only text log used for observability only."""

    def append_line(self, line: str) -> None:
        ...


class FileWatcher(Protocol):  # pragma: no cover - typing aid
    """Secondary trigger source reporting files changed on disk."""

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...


def uri_scheme(uri: str) -> str:
    """Return the lower-cased scheme of ``uri``, ``file`` for bare paths."""

    scheme, sep, _ = uri.partition(":")
    if not sep or len(scheme) == 1:
        # Plain paths and Windows drive letters
        return "file"
    return scheme.lower()


def file_key(uri: str) -> str:
    """Normalise ``uri`` to the underlying file so alternate views share state."""

    if uri_scheme(uri) == "file" and "://" not in uri:
        path = uri
    else:
        parts = urlsplit(uri)
        path = unquote(parts.path) or unquote(parts.netloc)
    path = path.replace("\\", "/")
    if len(path) > 2 and path[0] == "/" and path[2] == ":":
        path = path[1:]
    if len(path) > 1 and path[1] == ":":
        path = path[0].lower() + path[1:]
    return path


def is_internal_uri(uri: str, file_name: Optional[str] = None) -> bool:
    """Return ``True`` for output, debug, diff and similar synthetic documents."""

    if uri_scheme(uri) in INTERNAL_SCHEMES:
        return True
    name = file_name or uri
    return "extension-output-" in name
