"""Wire payload models for the Copilot agent protocol.

Field names are snake_case in Python and camelCase on the wire; build models
with either spelling and serialize with ``to_wire()``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CopilotModel(BaseModel):
    """Base model for request payloads."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CopilotResult(CopilotModel):
    """Base model for agent results. Unknown fields are kept."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")


# === Identity / handshake ===


class NameAndVersion(CopilotModel):
    name: str
    version: str


class EditorIdentity(CopilotModel):
    """Editor and plugin identity, sent in initialize and setEditorInfo."""

    editor_info: NameAndVersion = Field(alias="editorInfo")
    editor_plugin_info: NameAndVersion = Field(alias="editorPluginInfo")


class InitializeParams(CopilotModel):
    process_id: int | None = Field(default=None, alias="processId")
    capabilities: dict[str, Any] = Field(default_factory=dict)
    client_info: NameAndVersion = Field(alias="clientInfo")
    root_uri: str = Field(alias="rootUri")
    initialization_options: EditorIdentity = Field(alias="initializationOptions")


class InitializeResult(CopilotResult):
    capabilities: dict[str, Any] = Field(default_factory=dict)
    server_info: NameAndVersion | None = Field(default=None, alias="serverInfo")


# === Documents ===


class Position(CopilotModel):
    line: int
    character: int


class Range(CopilotModel):
    start: Position
    end: Position


class TextDocumentItem(CopilotModel):
    uri: str
    language_id: str = Field(alias="languageId")
    version: int
    text: str


class DidOpenTextDocumentParams(CopilotModel):
    text_document: TextDocumentItem = Field(alias="textDocument")


class VersionedTextDocumentIdentifier(CopilotModel):
    uri: str
    version: int


class TextDocumentContentChangeEvent(CopilotModel):
    """A full-text replacement (no range) or a ranged edit."""

    text: str
    range: Range | None = None
    range_length: int | None = Field(default=None, alias="rangeLength")


class DidChangeTextDocumentParams(CopilotModel):
    text_document: VersionedTextDocumentIdentifier = Field(alias="textDocument")
    content_changes: list[TextDocumentContentChangeEvent] = Field(alias="contentChanges")


# === Completions ===


class CompletionDocument(CopilotModel):
    """Cursor context for a completion request."""

    uri: str
    position: Position
    version: int
    insert_spaces: bool = Field(default=True, alias="insertSpaces")
    tab_size: int = Field(default=4, alias="tabSize")
    indent_size: int | None = Field(default=None, alias="indentSize")
    relative_path: str | None = Field(default=None, alias="relativePath")
    language_id: str | None = Field(default=None, alias="languageId")


class GetCompletionsParams(CopilotModel):
    doc: CompletionDocument


class Completion(CopilotResult):
    text: str
    uuid: str | None = None
    display_text: str | None = Field(default=None, alias="displayText")
    position: Position | None = None
    range: Range | None = None
    doc_version: int | None = Field(default=None, alias="docVersion")


class CompletionList(CopilotResult):
    completions: list[Completion] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> CompletionList:
        return cls(completions=[])


# === Auth ===


class StatusResult(CopilotResult):
    """Result of checkStatus, signInConfirm, and signOut."""

    status: str
    user: str | None = None


class SignInInitiateResult(CopilotResult):
    status: str
    user_code: str | None = Field(default=None, alias="userCode")
    verification_uri: str | None = Field(default=None, alias="verificationUri")
    expires_in: int | None = Field(default=None, alias="expiresIn")
    interval: int | None = None
    user: str | None = None
