"""Tests for document synchronization."""

from __future__ import annotations

import asyncio

import pytest

from copilot_client.protocols import InMemoryVersionCache
from copilot_client.session.client import CopilotClient
from copilot_client.session.documents import apply_changes, document_uri
from copilot_client.types import Position, Range, TextDocumentContentChangeEvent
from tests.helpers import FakeAgent, RecordingSink

URI = "file:///home/user/vault/notes/a.md"


def _open(version: int = 1, text: str = "hello\n") -> dict:
    return {
        "textDocument": {"uri": URI, "languageId": "markdown", "version": version, "text": text}
    }


def _change(version: int, text: str, range_: dict | None = None) -> dict:
    change: dict = {"text": text}
    if range_ is not None:
        change["range"] = range_
    return {"textDocument": {"uri": URI, "version": version}, "contentChanges": [change]}


def _range(sl: int, sc: int, el: int, ec: int) -> dict:
    return {"start": {"line": sl, "character": sc}, "end": {"line": el, "character": ec}}


class TestDocumentUri:
    def test_joins_base_and_relative(self) -> None:
        assert document_uri("/home/user/vault", "notes/a.md") == URI

    def test_trailing_slash_and_leading_slash(self) -> None:
        assert document_uri("/home/user/vault/", "/notes/a.md") == URI

    def test_backslashes_normalized(self) -> None:
        assert document_uri("/home/user/vault", "notes\\a.md") == URI


class TestApplyChanges:
    def test_full_replacement(self) -> None:
        change = TextDocumentContentChangeEvent(text="new")
        assert apply_changes("old", [change]) == "new"

    def test_ranged_insert(self) -> None:
        change = TextDocumentContentChangeEvent(
            text=" there",
            range=Range(start=Position(line=0, character=5), end=Position(line=0, character=5)),
        )
        assert apply_changes("hello\nworld\n", [change]) == "hello there\nworld\n"

    def test_ranged_replace_across_lines(self) -> None:
        change = TextDocumentContentChangeEvent(
            text="-",
            range=Range(start=Position(line=0, character=4), end=Position(line=1, character=1)),
        )
        assert apply_changes("hello\nworld", [change]) == "hell-orld"

    def test_changes_apply_in_order(self) -> None:
        changes = [
            TextDocumentContentChangeEvent(text="abc"),
            TextDocumentContentChangeEvent(
                text="X",
                range=Range(start=Position(line=0, character=1), end=Position(line=0, character=2)),
            ),
        ]
        assert apply_changes("", changes) == "aXc"

    def test_position_past_end_clamps(self) -> None:
        change = TextDocumentContentChangeEvent(
            text="!",
            range=Range(start=Position(line=9, character=0), end=Position(line=9, character=0)),
        )
        assert apply_changes("hi", [change]) == "hi!"


class TestOpenDocument:
    @pytest.mark.asyncio
    async def test_open_sends_did_open(
        self, agent: FakeAgent, ready_client: CopilotClient, sink: RecordingSink
    ) -> None:
        assert await ready_client.open_document(_open()) is True

        await agent.wait_for("textDocument/didOpen")
        assert agent.messages_for("textDocument/didOpen")[0]["params"] == _open()
        assert "id" not in agent.messages_for("textDocument/didOpen")[0]
        mirror = ready_client.documents.mirror(URI)
        assert mirror is not None and mirror.version == 1 and mirror.text == "hello\n"
        assert sink.errors == []

    @pytest.mark.asyncio
    async def test_invalid_params_logged_not_raised(
        self, agent: FakeAgent, ready_client: CopilotClient, sink: RecordingSink
    ) -> None:
        assert await ready_client.open_document({"textDocument": {"uri": URI}}) is False

        assert len(sink.errors) == 1
        assert sink.errors[0].startswith("Error in openDocument:")
        assert agent.messages_for("textDocument/didOpen") == []

    @pytest.mark.asyncio
    async def test_transport_down_logged_not_raised(
        self, agent: FakeAgent, ready_client: CopilotClient, sink: RecordingSink
    ) -> None:
        agent.break_input()

        assert await ready_client.open_document(_open()) is False
        assert len(sink.errors) == 1
        assert sink.errors[0].startswith("Error in openDocument:")

    @pytest.mark.asyncio
    async def test_open_params_uses_cache_version(
        self, agent: FakeAgent, sink: RecordingSink
    ) -> None:
        session = agent.client(sink=sink, version_cache=InMemoryVersionCache({"notes/a.md": 7}))
        try:
            params = session.documents.open_params("notes/a.md", "text")
            assert params.text_document.version == 7
            assert params.text_document.uri == URI
        finally:
            await session.dispose()


class TestDidChange:
    @pytest.mark.asyncio
    async def test_change_updates_mirror(
        self, agent: FakeAgent, ready_client: CopilotClient, sink: RecordingSink
    ) -> None:
        await ready_client.open_document(_open())

        assert await ready_client.did_change(_change(2, " there", _range(0, 5, 0, 5))) is True

        await agent.wait_for("textDocument/didChange")
        mirror = ready_client.documents.mirror(URI)
        assert mirror is not None
        assert mirror.version == 2
        assert mirror.text == "hello there\n"
        assert sink.errors == []

    @pytest.mark.asyncio
    async def test_version_regression_rejected(
        self, agent: FakeAgent, ready_client: CopilotClient, sink: RecordingSink
    ) -> None:
        await ready_client.open_document(_open(version=5))

        assert await ready_client.did_change(_change(4, "stale")) is False

        assert len(sink.errors) == 1
        assert "older than synced version 5" in sink.errors[0]
        assert agent.messages_for("textDocument/didChange") == []
        assert ready_client.documents.mirror(URI).text == "hello\n"

    @pytest.mark.asyncio
    async def test_concurrent_changes_never_regress_mirror(
        self, agent: FakeAgent, ready_client: CopilotClient, sink: RecordingSink
    ) -> None:
        """An older change queued behind a slow newer one is rejected, not applied."""
        await ready_client.open_document(_open())
        gate = asyncio.Event()
        agent.client_writer.gate = gate

        newer = asyncio.create_task(ready_client.did_change(_change(3, "three")))
        older = asyncio.create_task(ready_client.did_change(_change(2, "two")))
        for _ in range(5):
            await asyncio.sleep(0)
        gate.set()

        assert await asyncio.gather(newer, older) == [True, False]
        mirror = ready_client.documents.mirror(URI)
        assert mirror is not None
        assert (mirror.version, mirror.text) == (3, "three")
        assert "older than synced version 3" in sink.errors[0]
        await agent.wait_for("textDocument/didChange")
        sent = agent.messages_for("textDocument/didChange")
        assert [m["params"]["textDocument"]["version"] for m in sent] == [3]

    @pytest.mark.asyncio
    async def test_change_for_unopened_document_is_forwarded(
        self, agent: FakeAgent, ready_client: CopilotClient
    ) -> None:
        assert await ready_client.did_change(_change(1, "x")) is True

        await agent.wait_for("textDocument/didChange")
        assert ready_client.documents.mirror(URI) is None

    @pytest.mark.asyncio
    async def test_malformed_change_logged(
        self, ready_client: CopilotClient, sink: RecordingSink
    ) -> None:
        assert await ready_client.did_change({"textDocument": {"uri": URI}}) is False
        assert sink.errors[0].startswith("Error in didChange:")


class TestSync:
    @pytest.mark.asyncio
    async def test_first_sync_opens_then_changes(
        self, agent: FakeAgent, ready_client: CopilotClient, sink: RecordingSink
    ) -> None:
        assert await ready_client.sync_document("notes/a.md", "one") is True
        assert await ready_client.sync_document("notes/a.md", "two") is True

        await agent.wait_for("textDocument/didChange")
        opened = agent.messages_for("textDocument/didOpen")[0]["params"]["textDocument"]
        changed = agent.messages_for("textDocument/didChange")[0]["params"]
        assert opened["version"] == 1
        assert opened["uri"] == URI
        assert changed == {
            "textDocument": {"uri": URI, "version": 2},
            "contentChanges": [{"text": "two"}],
        }
        assert ready_client.documents.mirror(URI).text == "two"
        assert sink.errors == []

    @pytest.mark.asyncio
    async def test_sync_after_dispose_degrades(
        self, agent: FakeAgent, ready_client: CopilotClient, sink: RecordingSink
    ) -> None:
        await ready_client.dispose()

        assert await ready_client.sync_document("notes/a.md", "text") is False
        assert len(sink.errors) == 1
        assert "disposed" in sink.errors[0]
