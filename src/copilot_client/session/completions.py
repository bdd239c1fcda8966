"""Completion requests (getCompletionsCycling)."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from copilot_client.protocols import DiagnosticSink
from copilot_client.rpc.endpoint import JsonRpcEndpoint
from copilot_client.types import CompletionList, GetCompletionsParams


class CompletionRequester:
    """Fetches ranked completions for a cursor position.

    Completion runs on every keystroke and is advisory, so failures of any
    kind come back as an empty list with a single diagnostic.
    """

    METHOD = "getCompletionsCycling"

    def __init__(
        self,
        endpoint: JsonRpcEndpoint,
        *,
        sink: DiagnosticSink,
        guard: Callable[[str], None],
    ) -> None:
        self._endpoint = endpoint
        self._sink = sink
        self._guard = guard

    async def completion(self, params: GetCompletionsParams | dict[str, Any]) -> CompletionList:
        try:
            self._guard("request completions")
            if not isinstance(params, GetCompletionsParams):
                params = GetCompletionsParams.model_validate(params)
            result = await self._endpoint.request(self.METHOD, params.to_wire())
            if result is None:
                return CompletionList.empty()
            return CompletionList.model_validate(result)
        except Exception as e:
            self._sink.log(logging.ERROR, f"Error in completion: {e}")
            return CompletionList.empty()
