# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from sipdial import (
    CallState,
    ConnectionState,
    Credentials,
    Dialer,
    RegistrationFailure,
    SessionDirection,
    TransportError,
    ValidationError,
)

from conftest import FakeEngine, FakeSession


def test_connect_up_registered_sequence(
    dialer: Dialer, engine: FakeEngine, credentials: Credentials
) -> None:
    dialer.connect(credentials)
    engine.transport.emit("up")
    engine.transport.emit("registered")

    assert dialer.connection.fsm.states() == [
        ConnectionState.CONNECTING,
        ConnectionState.CONNECTED,
        ConnectionState.REGISTERED,
    ]
    assert dialer.is_usable
    assert dialer.log.messages() == [
        "Registered with SIP server.",
        "Socket connected.",
        "Connecting...",
    ]


def test_connect_passes_credentials_and_session_timers(
    dialer: Dialer, engine: FakeEngine, credentials: Credentials
) -> None:
    dialer.connect(credentials)

    assert engine.names() == ["create_transport", "start"]
    _, uri, passed, session_timers = engine.calls[0]
    assert uri == "wss://x"
    assert passed is credentials
    assert session_timers is False
    assert dialer.connection.transport is engine.transport


@pytest.mark.parametrize(
    "missing",
    [
        {"transport_uri": ""},
        {"identity_uri": ""},
        {"secret": ""},
        {"secret": "   "},
    ],
)
def test_connect_with_missing_credentials_is_rejected(
    dialer: Dialer, engine: FakeEngine, missing: dict
) -> None:
    fields = {"transport_uri": "wss://x", "identity_uri": "sip:a@x", "secret": "p"}
    fields.update(missing)

    with pytest.raises(ValidationError):
        dialer.connect(Credentials(**fields))

    assert engine.calls == []
    assert dialer.connection_state is ConnectionState.DISCONNECTED
    assert dialer.connection.fsm.history == []
    assert dialer.connection.last_error is None
    assert dialer.log.messages() == [
        "Please provide WebSocket URL, SIP URI, and password."
    ]


def test_display_name_is_optional(dialer: Dialer, engine: FakeEngine) -> None:
    dialer.connect(Credentials("wss://x", "sip:a@x", secret="p"))

    assert dialer.connection_state is ConnectionState.CONNECTING


def test_transport_construction_failure_is_absorbed(
    dialer: Dialer, engine: FakeEngine, credentials: Credentials
) -> None:
    engine.create_transport_error = ValueError("malformed URI")

    dialer.connect(credentials)

    assert dialer.connection_state is ConnectionState.DISCONNECTED
    assert dialer.connection.transport is None
    assert isinstance(dialer.connection.last_error, TransportError)
    assert dialer.log.latest.message == "Connection error: malformed URI"
    assert engine.names() == ["create_transport"]


def test_start_failure_releases_transport(
    dialer: Dialer, engine: FakeEngine, credentials: Credentials
) -> None:
    engine.start_error = RuntimeError("socket refused")

    dialer.connect(credentials)

    assert dialer.connection_state is ConnectionState.DISCONNECTED
    assert dialer.connection.transport is None
    assert engine.transport.listener_count() == 0
    assert engine.names() == ["create_transport", "start", "stop"]
    assert engine.calls[-1] == ("stop", engine.transport)
    assert dialer.log.latest.message == "Connection error: socket refused"


def test_registration_failed_without_reason_logs_unknown(
    dialer: Dialer, engine: FakeEngine, credentials: Credentials
) -> None:
    dialer.connect(credentials)
    engine.transport.emit("up")
    engine.transport.emit("registration-failed")

    assert dialer.connection_state is ConnectionState.REGISTRATION_FAILED
    assert not dialer.is_usable
    assert "unknown" in dialer.log.latest.message
    assert dialer.log.latest.message == "Registration failed: unknown"
    assert isinstance(dialer.connection.last_error, RegistrationFailure)


def test_registration_failed_with_reason(
    dialer: Dialer, engine: FakeEngine, credentials: Credentials
) -> None:
    dialer.connect(credentials)
    engine.transport.emit("registration-failed", "Forbidden")

    assert dialer.log.latest.message == "Registration failed: Forbidden"


def test_unregistered_falls_back_to_connected(online: Dialer, engine: FakeEngine) -> None:
    engine.transport.emit("unregistered")

    assert online.connection_state is ConnectionState.CONNECTED
    assert online.is_usable
    assert online.log.latest.message == "Unregistered."


def test_transport_down_terminates_call(ringing: Dialer, engine: FakeEngine) -> None:
    session = engine.session

    engine.transport.emit("down")

    assert ringing.connection_state is ConnectionState.DISCONNECTED
    assert ringing.call_state is CallState.TERMINATED
    assert ringing.calls.session is None
    assert session.listener_count() == 0
    assert "terminate" not in engine.names()
    assert ringing.log.latest.message == "Socket disconnected."
    assert isinstance(ringing.connection.last_error, TransportError)


def test_disconnect_without_transport_is_safe(dialer: Dialer, engine: FakeEngine) -> None:
    dialer.disconnect()
    dialer.disconnect()

    assert dialer.connection_state is ConnectionState.DISCONNECTED
    assert dialer.call_state is CallState.TERMINATED
    assert engine.calls == []
    assert dialer.log.messages() == [
        "Disconnected from server.",
        "Disconnected from server.",
    ]


def test_disconnect_terminates_call_then_stops_transport(
    ringing: Dialer, engine: FakeEngine
) -> None:
    session = engine.session
    transport = engine.transport

    ringing.disconnect()

    assert engine.calls[-2:] == [("terminate", session), ("stop", transport)]
    assert ringing.connection_state is ConnectionState.DISCONNECTED
    assert ringing.call_state is CallState.TERMINATED
    assert ringing.calls.session is None
    assert ringing.connection.transport is None
    assert ringing.log.messages()[:2] == ["Disconnected from server.", "Call terminated."]


def test_events_from_stopped_transport_are_ignored(online: Dialer, engine: FakeEngine) -> None:
    old = engine.transport
    online.disconnect()

    old.emit("up")
    old.emit("registered")

    assert old.listener_count() == 0
    assert online.connection_state is ConnectionState.DISCONNECTED


def test_reconnect_replaces_previous_transport(
    online: Dialer, engine: FakeEngine, credentials: Credentials
) -> None:
    first = engine.transport

    online.connect(credentials)
    second = engine.transport

    assert second is not first
    assert ("stop", first) in engine.calls
    assert online.connection.transport is second
    assert online.connection_state is ConnectionState.CONNECTING

    first.emit("registered")
    assert online.connection_state is ConnectionState.CONNECTING

    second.emit("up")
    assert online.connection_state is ConnectionState.CONNECTED


def test_retry_after_registration_failure(
    dialer: Dialer, engine: FakeEngine, credentials: Credentials
) -> None:
    dialer.connect(credentials)
    engine.transport.emit("registration-failed", "Forbidden")

    dialer.connect(credentials)
    engine.transport.emit("up")
    engine.transport.emit("registered")

    assert dialer.connection_state is ConnectionState.REGISTERED


def test_events_fired_inside_start_are_delivered_after_connect(
    dialer: Dialer, engine: FakeEngine, credentials: Credentials
) -> None:
    def start_synchronously(transport) -> None:
        transport.emit("up")
        transport.emit("registered")

    engine.on_start = start_synchronously

    dialer.connect(credentials)

    assert dialer.connection.fsm.states() == [
        ConnectionState.CONNECTING,
        ConnectionState.CONNECTED,
        ConnectionState.REGISTERED,
    ]


@pytest.mark.parametrize(
    "commands",
    [
        ["connect", "disconnect"],
        ["connect", "connect", "disconnect"],
        ["disconnect", "connect", "disconnect", "disconnect"],
        ["connect", "up", "dial", "disconnect"],
        ["connect", "up", "registered", "dial", "confirmed", "connect", "disconnect"],
    ],
)
def test_disconnect_always_ends_disconnected_without_session(
    dialer: Dialer, engine: FakeEngine, credentials: Credentials, commands: list
) -> None:
    for command in commands:
        if command == "connect":
            dialer.connect(credentials)
        elif command == "disconnect":
            dialer.disconnect()
        elif command == "dial":
            dialer.dial("555")
        elif command == "confirmed":
            engine.session.emit("confirmed")
        else:
            engine.transport.emit(command)

        if command == "disconnect":
            assert dialer.connection_state is ConnectionState.DISCONNECTED
            assert dialer.calls.session is None


def test_incoming_session_is_adopted(online: Dialer, engine: FakeEngine) -> None:
    incoming = FakeSession("sip:bob@x")

    engine.transport.emit("incoming-session", incoming)

    assert online.calls.session is incoming
    assert online.calls.direction is SessionDirection.INBOUND
    assert online.log.latest.message == "Incoming call."


def test_incoming_session_while_busy_is_rejected(ringing: Dialer, engine: FakeEngine) -> None:
    current = engine.session
    incoming = FakeSession("sip:bob@x")

    engine.transport.emit("incoming-session", incoming)

    assert ringing.calls.session is current
    assert ("terminate", incoming) in engine.calls
    assert ("terminate", current) not in engine.calls
    assert ringing.log.latest.message == "Rejected incoming call: busy."
    assert ringing.call_state is CallState.CALLING
