"""Sign-in / sign-out sub-protocol.

These are plain request/response calls: errors propagate to the caller, who
decides how to present them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from copilot_client.protocols import DiagnosticSink
from copilot_client.rpc.endpoint import JsonRpcEndpoint
from copilot_client.session.state import AuthState
from copilot_client.types import SignInInitiateResult, StatusResult

# checkStatus / signInConfirm statuses that mean a usable sign-in
SIGNED_IN_STATUSES = frozenset({"OK", "AlreadySignedIn", "MaybeOk"})


def auth_state_from_status(result: StatusResult) -> AuthState:
    if result.status in SIGNED_IN_STATUSES:
        return AuthState.signed_in(result.user)
    return AuthState.signed_out()


class AuthFlow:
    """Device-flow sign-in against the agent.

    signed-out --initiate--> pending(userCode) --confirm--> signed-in
    any --sign_out--> signed-out
    """

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
        self.state = AuthState.signed_out()

    async def initiate_sign_in(self) -> SignInInitiateResult:
        self._guard("initiate sign-in")
        result = SignInInitiateResult.model_validate(
            await self._endpoint.request("signInInitiate", {})
        )
        if result.status == "AlreadySignedIn":
            self.state = AuthState.signed_in(result.user)
        else:
            self.state = AuthState.pending(result.user_code, result.verification_uri)
        self._sink.log(logging.INFO, f"Sign-in initiated: {result.status}")
        return result

    async def confirm_sign_in(self, code: str) -> StatusResult:
        self._guard("confirm sign-in")
        result = StatusResult.model_validate(
            await self._endpoint.request("signInConfirm", {"userCode": code})
        )
        self.state = auth_state_from_status(result)
        self._sink.log(logging.INFO, f"Sign-in confirmed: {result.status}")
        return result

    async def sign_out(self) -> StatusResult:
        try:
            self._guard("sign out")
            response = await self._endpoint.request("signOut", {})
        finally:
            self.state = AuthState.signed_out()
        return StatusResult.model_validate(response or {"status": "NotSignedIn"})

    def update_from_status(self, result: StatusResult) -> None:
        """Seed the state from a checkStatus result."""
        self.state = auth_state_from_status(result)
