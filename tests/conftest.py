# pylint: disable=missing-module-docstring,missing-function-docstring

from typing import Any, Callable, Optional

import pytest

from sipdial import (
    Credentials,
    Dialer,
    MediaPolicy,
    SessionHandle,
    TransportHandle,
    TransportPolicy,
)


class FakeTransport(TransportHandle):
    pass


class FakeSession(SessionHandle):
    pass


class FakeEngine:
    """Spy engine: records every command, never fires events on its own."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.transports: list[FakeTransport] = []
        self.sessions: list[FakeSession] = []
        self.create_transport_error: Optional[Exception] = None
        self.start_error: Optional[Exception] = None
        self.outbound_error: Optional[Exception] = None
        self.invite_error: Optional[Exception] = None
        self.send_digit_error: Optional[Exception] = None
        # hooks run synchronously inside the command, to mimic re-entrant engines
        self.on_start: Optional[Callable[[FakeTransport], None]] = None
        self.on_invite: Optional[Callable[[FakeSession], None]] = None
        self.on_terminate: Optional[Callable[[FakeSession], None]] = None

    def create_transport(
        self, uri: str, credentials: Credentials, *, session_timers: bool = False
    ) -> FakeTransport:
        self.calls.append(("create_transport", uri, credentials, session_timers))
        if self.create_transport_error is not None:
            raise self.create_transport_error
        transport = FakeTransport(uri)
        self.transports.append(transport)
        return transport

    def start(self, transport: FakeTransport) -> None:
        self.calls.append(("start", transport))
        if self.start_error is not None:
            raise self.start_error
        if self.on_start is not None:
            self.on_start(transport)

    def stop(self, transport: FakeTransport) -> None:
        self.calls.append(("stop", transport))

    def create_outbound_session(
        self,
        transport: FakeTransport,
        destination: str,
        media_policy: MediaPolicy,
        transport_policy: TransportPolicy,
    ) -> FakeSession:
        self.calls.append(
            ("create_outbound_session", transport, destination, media_policy, transport_policy)
        )
        if self.outbound_error is not None:
            raise self.outbound_error
        session = FakeSession(destination)
        self.sessions.append(session)
        return session

    def invite(self, session: FakeSession) -> None:
        self.calls.append(("invite", session))
        if self.invite_error is not None:
            raise self.invite_error
        if self.on_invite is not None:
            self.on_invite(session)

    def answer(
        self,
        session: FakeSession,
        media_policy: MediaPolicy,
        transport_policy: TransportPolicy,
    ) -> None:
        self.calls.append(("answer", session, media_policy, transport_policy))

    def terminate(self, session: FakeSession) -> None:
        self.calls.append(("terminate", session))
        if self.on_terminate is not None:
            self.on_terminate(session)

    def send_digit(self, session: FakeSession, digit: str) -> None:
        self.calls.append(("send_digit", session, digit))
        if self.send_digit_error is not None:
            raise self.send_digit_error

    def names(self) -> list[str]:
        return [call[0] for call in self.calls]

    @property
    def transport(self) -> FakeTransport:
        return self.transports[-1]

    @property
    def session(self) -> FakeSession:
        return self.sessions[-1]


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(
        transport_uri="wss://x",
        identity_uri="sip:a@x",
        display_name="Agent",
        secret="p",
    )


@pytest.fixture
def dialer(engine: FakeEngine) -> Dialer:
    return Dialer(engine)


@pytest.fixture
def online(dialer: Dialer, engine: FakeEngine, credentials: Credentials) -> Dialer:
    """Dialer connected and registered on the fake engine."""
    dialer.connect(credentials)
    engine.transport.emit("up")
    engine.transport.emit("registered")
    return dialer


@pytest.fixture
def ringing(online: Dialer, engine: FakeEngine) -> Dialer:
    """Online dialer with an outbound call to 555 in progress."""
    online.dial("555")
    return online
