"""Document synchronization: keeps the agent's mirror of open files current.

Sync failures never reach the caller. The host keeps editing whatever the
state of the remote mirror, so every error is logged and the call returns
False instead.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any

from copilot_client.errors import DocumentVersionError
from copilot_client.protocols import DEFAULT_LANGUAGE_ID, DiagnosticSink, VersionCache
from copilot_client.rpc.endpoint import JsonRpcEndpoint
from copilot_client.types import (
    DidChangeTextDocumentParams,
    DidOpenTextDocumentParams,
    Position,
    TextDocumentContentChangeEvent,
    TextDocumentItem,
    VersionedTextDocumentIdentifier,
)


@dataclass
class DocumentMirror:
    """What the agent currently believes a document contains."""

    uri: str
    language_id: str
    version: int
    text: str


def _offset_at(text: str, position: Position) -> int:
    lines = text.splitlines(keepends=True)
    if position.line >= len(lines):
        return len(text)
    line = lines[position.line]
    content_length = len(line.rstrip("\r\n"))
    line_start = sum(len(prev) for prev in lines[: position.line])
    return line_start + min(position.character, content_length)


def apply_changes(text: str, changes: Sequence[TextDocumentContentChangeEvent]) -> str:
    """Apply content changes in order. A change without a range replaces everything."""
    for change in changes:
        if change.range is None:
            text = change.text
            continue
        start = _offset_at(text, change.range.start)
        end = _offset_at(text, change.range.end)
        text = text[:start] + change.text + text[end:]
    return text


def document_uri(base_path: str, path: str) -> str:
    """Build ``file://<basePath>/<relativePath>`` for a host path."""
    base = str(base_path).rstrip("/")
    relative = PurePosixPath(path.replace("\\", "/")).as_posix().lstrip("/")
    return f"file://{base}/{relative}"


class DocumentSynchronizer:
    """Opens and updates documents on the agent side."""

    def __init__(
        self,
        endpoint: JsonRpcEndpoint,
        *,
        base_path: str,
        version_cache: VersionCache,
        sink: DiagnosticSink,
        guard: Callable[[str], None],
    ) -> None:
        self._endpoint = endpoint
        self._base_path = base_path
        self._version_cache = version_cache
        self._sink = sink
        self._guard = guard
        self._mirrors: dict[str, DocumentMirror] = {}
        # Held from version check through mirror update
        self._send_lock = asyncio.Lock()

    def uri_for(self, path: str) -> str:
        return document_uri(self._base_path, path)

    def mirror(self, uri: str) -> DocumentMirror | None:
        return self._mirrors.get(uri)

    @property
    def mirrors(self) -> list[DocumentMirror]:
        return list(self._mirrors.values())

    def open_params(
        self, path: str, text: str, *, language_id: str = DEFAULT_LANGUAGE_ID
    ) -> DidOpenTextDocumentParams:
        """didOpen params for path, at the version the cache currently holds."""
        return DidOpenTextDocumentParams(
            text_document=TextDocumentItem(
                uri=self.uri_for(path),
                language_id=language_id,
                version=self._version_cache.get(path),
                text=text,
            )
        )

    async def open_document(self, params: DidOpenTextDocumentParams | dict[str, Any]) -> bool:
        """Send textDocument/didOpen. Returns False (after logging) on any failure."""
        try:
            self._guard("open document")
            if not isinstance(params, DidOpenTextDocumentParams):
                params = DidOpenTextDocumentParams.model_validate(params)
            item = params.text_document
            async with self._send_lock:
                self._check_version(item.uri, item.version)
                await self._endpoint.notify("textDocument/didOpen", params.to_wire())
                self._mirrors[item.uri] = DocumentMirror(
                    uri=item.uri,
                    language_id=item.language_id,
                    version=item.version,
                    text=item.text,
                )
            return True
        except Exception as e:
            self._sink.log(logging.ERROR, f"Error in openDocument: {e}")
            return False

    async def did_change(self, params: DidChangeTextDocumentParams | dict[str, Any]) -> bool:
        """Send textDocument/didChange. Returns False (after logging) on any failure."""
        try:
            self._guard("change document")
            if not isinstance(params, DidChangeTextDocumentParams):
                params = DidChangeTextDocumentParams.model_validate(params)
            doc = params.text_document
            async with self._send_lock:
                self._check_version(doc.uri, doc.version)
                await self._endpoint.notify("textDocument/didChange", params.to_wire())
                mirror = self._mirrors.get(doc.uri)
                if mirror is not None:
                    mirror.version = doc.version
                    mirror.text = apply_changes(mirror.text, params.content_changes)
            return True
        except Exception as e:
            self._sink.log(logging.ERROR, f"Error in didChange: {e}")
            return False

    async def sync(self, path: str, text: str, *, language_id: str = DEFAULT_LANGUAGE_ID) -> bool:
        """Push the full text of path: didOpen the first time, didChange after.

        Bumps the cache version for path before sending.
        """
        try:
            self._guard("sync document")
        except Exception as e:
            self._sink.log(logging.ERROR, f"Error in syncDocument: {e}")
            return False

        version = self._version_cache.increment(path)
        uri = self.uri_for(path)
        if uri not in self._mirrors:
            return await self.open_document(
                DidOpenTextDocumentParams(
                    text_document=TextDocumentItem(
                        uri=uri, language_id=language_id, version=version, text=text
                    )
                )
            )
        return await self.did_change(
            DidChangeTextDocumentParams(
                text_document=VersionedTextDocumentIdentifier(uri=uri, version=version),
                content_changes=[TextDocumentContentChangeEvent(text=text)],
            )
        )

    def _check_version(self, uri: str, version: int) -> None:
        mirror = self._mirrors.get(uri)
        if mirror is not None and version < mirror.version:
            raise DocumentVersionError(
                f"Version {version} for {uri} is older than synced version {mirror.version}"
            )
