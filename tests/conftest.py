"""Root pytest configuration for all tests."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterator

import pytest
import pytest_asyncio

import copilot_client.logging as copilot_logging
from copilot_client.logging import get_logger
from copilot_client.session.client import CopilotClient
from tests.helpers import FakeAgent, RecordingSink


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest_asyncio.fixture
async def agent() -> AsyncIterator[FakeAgent]:
    """In-memory agent, serving until the test ends."""
    fake = FakeAgent()
    fake.start()
    yield fake
    await fake.stop()


@pytest_asyncio.fixture
async def client(agent: FakeAgent, sink: RecordingSink) -> AsyncIterator[CopilotClient]:
    """Client wired to the fake agent, not yet set up."""
    session = agent.client(sink=sink)
    yield session
    await session.dispose()


@pytest_asyncio.fixture
async def ready_client(client: CopilotClient) -> CopilotClient:
    """Client that has completed the handshake."""
    await client.setup()
    return client


@pytest.fixture
def package_logger(monkeypatch: pytest.MonkeyPatch) -> Iterator[logging.Logger]:
    """The copilot_client logger, with its level and handlers restored afterwards."""
    log = get_logger()
    saved_level = log.level
    saved_handlers = list(log.handlers)
    monkeypatch.setattr(copilot_logging, "_handler", None)
    yield log
    for handler in list(log.handlers):
        if handler not in saved_handlers:
            log.removeHandler(handler)
            handler.close()
    log.setLevel(saved_level)
