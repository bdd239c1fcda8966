"""Session lifecycle and auth state."""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum

from copilot_client.errors import HandshakeOrderError, SessionNotReadyError, StaleSessionError


class SessionState(Enum):
    """Lifecycle of a session."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"  # setup() running, before `initialized` is sent
    INITIALIZED = "initialized"  # capabilities negotiated, custom methods allowed
    READY = "ready"
    FAILED = "failed"
    DISPOSED = "disposed"


class HandshakeStep(Enum):
    """The four handshake steps, in the only order the agent accepts."""

    INITIALIZE = "initialize"
    INITIALIZED = "initialized"
    CHECK_STATUS = "checkStatus"
    SET_EDITOR_INFO = "setEditorInfo"


_HANDSHAKE_ORDER = tuple(HandshakeStep)

# State entered once a step has completed
_STATE_AFTER = {
    HandshakeStep.INITIALIZE: SessionState.INITIALIZING,
    HandshakeStep.INITIALIZED: SessionState.INITIALIZED,
    HandshakeStep.CHECK_STATUS: SessionState.INITIALIZED,
    HandshakeStep.SET_EDITOR_INFO: SessionState.READY,
}


@dataclass
class HandshakeStateMachine:
    """Enforces the handshake order.

    Each step runs inside ``step()``, which refuses a step that is not the
    next one or that starts while another is still in flight. A step that
    raises moves the session to FAILED.

    Example:
        with machine.step(HandshakeStep.INITIALIZE):
            await endpoint.request("initialize", params)
    """

    state: SessionState = SessionState.UNINITIALIZED
    completed: list[HandshakeStep] = field(default_factory=list)
    _in_flight: HandshakeStep | None = None

    @property
    def next_step(self) -> HandshakeStep | None:
        if len(self.completed) == len(_HANDSHAKE_ORDER):
            return None
        return _HANDSHAKE_ORDER[len(self.completed)]

    def begin(self) -> None:
        """Leave UNINITIALIZED. Only valid once per session."""
        if self.state is SessionState.DISPOSED:
            raise StaleSessionError("Session has been disposed")
        if self.state is not SessionState.UNINITIALIZED:
            raise HandshakeOrderError(f"Handshake already started (state: {self.state.value})")
        self.state = SessionState.INITIALIZING

    @contextlib.contextmanager
    def step(self, step: HandshakeStep) -> Iterator[None]:
        if self.state not in (SessionState.INITIALIZING, SessionState.INITIALIZED):
            raise HandshakeOrderError(
                f"Cannot run {step.value} in state {self.state.value}"
            )
        if self._in_flight is not None:
            raise HandshakeOrderError(
                f"Cannot start {step.value} while {self._in_flight.value} is in flight"
            )
        expected = self.next_step
        if step is not expected:
            expected_name = expected.value if expected else "nothing"
            raise HandshakeOrderError(f"Expected {expected_name}, got {step.value}")

        self._in_flight = step
        try:
            yield
        except BaseException:
            self._in_flight = None
            self.fail()
            raise
        self._in_flight = None
        self.completed.append(step)
        if self.state is not SessionState.DISPOSED:
            self.state = _STATE_AFTER[step]

    def fail(self) -> None:
        if self.state is not SessionState.DISPOSED:
            self.state = SessionState.FAILED

    def dispose(self) -> bool:
        """Move to DISPOSED. Returns False if already disposed."""
        if self.state is SessionState.DISPOSED:
            return False
        self.state = SessionState.DISPOSED
        return True

    def require_ready(self, operation: str) -> None:
        """Raise unless steady-state operations are allowed."""
        if self.state is SessionState.DISPOSED:
            raise StaleSessionError(f"Cannot {operation}: session has been disposed")
        if self.state is not SessionState.READY:
            raise SessionNotReadyError(
                f"Cannot {operation}: session is {self.state.value}, not ready"
            )


class AuthStatus(Enum):
    SIGNED_OUT = "signed-out"
    PENDING = "pending"
    SIGNED_IN = "signed-in"


@dataclass(frozen=True, slots=True)
class AuthState:
    status: AuthStatus = AuthStatus.SIGNED_OUT
    user_code: str | None = None
    verification_uri: str | None = None
    user: str | None = None

    @classmethod
    def signed_out(cls) -> AuthState:
        return cls(AuthStatus.SIGNED_OUT)

    @classmethod
    def pending(cls, user_code: str | None, verification_uri: str | None = None) -> AuthState:
        return cls(AuthStatus.PENDING, user_code=user_code, verification_uri=verification_uri)

    @classmethod
    def signed_in(cls, user: str | None = None) -> AuthState:
        return cls(AuthStatus.SIGNED_IN, user=user)
