"""Collaborator protocols consumed by the session client.

The host supplies these at construction time:
- VersionCache: per-path document version counter
- ActiveDocumentProvider: the document currently focused in the editor
- DiagnosticSink: fire-and-forget diagnostics (a logging.Logger fits)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

DEFAULT_LANGUAGE_ID = "markdown"


@dataclass(frozen=True, slots=True)
class ActiveDocument:
    """Document focused in the host editor."""

    path: str  # relative to the session's base path
    text: str
    language_id: str = DEFAULT_LANGUAGE_ID


@runtime_checkable
class VersionCache(Protocol):
    """Per-path version counter owned by the host."""

    def get(self, path: str) -> int:
        """Return the current version for path (0 if never seen)."""
        ...

    def increment(self, path: str) -> int:
        """Bump and return the version for path."""
        ...


@runtime_checkable
class ActiveDocumentProvider(Protocol):
    def get_active_document(self) -> ActiveDocument | None: ...


@runtime_checkable
class DiagnosticSink(Protocol):
    def log(self, level: int, msg: str) -> None: ...


class InMemoryVersionCache:
    """Dict-backed VersionCache. Versions only ever go up."""

    def __init__(self, initial: dict[str, int] | None = None) -> None:
        self._versions: dict[str, int] = dict(initial or {})

    def get(self, path: str) -> int:
        return self._versions.get(path, 0)

    def increment(self, path: str) -> int:
        version = self._versions.get(path, 0) + 1
        self._versions[path] = version
        return version

    def __repr__(self) -> str:
        return f"InMemoryVersionCache({self._versions!r})"


@dataclass(slots=True)
class StaticDocumentProvider:
    """ActiveDocumentProvider that returns a fixed document (or none)."""

    document: ActiveDocument | None = None

    def get_active_document(self) -> ActiveDocument | None:
        return self.document
