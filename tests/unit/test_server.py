"""Tests for the RelayServer TCP acceptor over loopback sockets."""

from __future__ import annotations

import contextlib
import socket

import pytest

from visa_relay.errors import ListenerError
from visa_relay.protocol import RelayProtocol
from visa_relay.server import MAX_LINE_BYTES, RelayServer

pytestmark = pytest.mark.network

IDN = b"TEKTRONIX,MSO24,C012345,CF:91.1CT FV:1.0.0\n"


def _exchange(address: tuple[str, int], payload: bytes) -> bytes:
    """Send raw bytes and return everything received until the server closes."""
    with socket.create_connection(address, timeout=5) as sock:
        sock.sendall(payload)
        data = b""
        while True:
            chunk = sock.recv(4096)
            if not chunk:
                break
            data += chunk
    return data


class _ExplodingProtocol(RelayProtocol):
    """Raises from relay() to exercise the handler's error boundary."""

    def relay(self, command: str) -> bytes:
        if command == "BOOM":
            raise RuntimeError("relay exploded")
        return super().relay(command)


class TestRelayServer:
    """Tests for RelayServer request handling."""

    def test_query_round_trip(self, relay_server, fake_resource) -> None:
        reply = _exchange(relay_server.address, b"*IDN?\n")
        assert reply == IDN + b"\n"
        assert fake_resource.writes == [b"*IDN?\n"]
        assert fake_resource.read_counts == [2048]

    def test_directive_is_acknowledged_without_read(self, relay_server, fake_resource) -> None:
        reply = _exchange(relay_server.address, b"OUTPUT ON\n")
        assert reply == b"Command sent\n"
        assert fake_resource.writes == [b"OUTPUT ON\n"]
        assert fake_resource.read_counts == []

    def test_crlf_terminated_query(self, relay_server, fake_resource) -> None:
        reply = _exchange(relay_server.address, b"*IDN?\r\n")
        assert reply == IDN + b"\n"
        assert fake_resource.writes == [b"*IDN?\n"]

    @pytest.mark.parametrize(
        "command",
        ["DISP:TEXT 'µV'".encode("utf-8"), b"TEMP:UNIT \xb0C"],
    )
    def test_non_ascii_bytes_forwarded_unchanged(self, relay_server, fake_resource, command) -> None:
        reply = _exchange(relay_server.address, command + b"\n")
        assert reply == b"Command sent\n"
        assert fake_resource.writes == [command + b"\n"]

    @pytest.mark.parametrize("payload", [b"\n", b"\r\n", b"   \r\n"])
    def test_empty_command_gets_no_reply(self, relay_server, fake_resource, payload) -> None:
        assert _exchange(relay_server.address, payload) == b""
        assert fake_resource.writes == []

    def test_disconnect_without_data(self, relay_server, fake_resource) -> None:
        with socket.create_connection(relay_server.address, timeout=5):
            pass
        # Connections are served in order, so this one runs after the first.
        _exchange(relay_server.address, b"OUTPUT OFF\n")
        assert fake_resource.writes == [b"OUTPUT OFF\n"]

    def test_partial_line_is_discarded(self, relay_server, fake_resource) -> None:
        with socket.create_connection(relay_server.address, timeout=5) as sock:
            sock.sendall(b"*IDN?")
            sock.shutdown(socket.SHUT_WR)
            assert sock.recv(4096) == b""
        assert fake_resource.writes == []

    def test_one_command_per_connection(self, relay_server, fake_resource) -> None:
        with socket.create_connection(relay_server.address, timeout=5) as sock:
            sock.sendall(b"*IDN?\n")
            data = b""
            while not data.endswith(b"\n\n"):
                chunk = sock.recv(4096)
                if not chunk:
                    break
                data += chunk
            assert data == IDN + b"\n"
            with contextlib.suppress(OSError):
                sock.sendall(b"OUTPUT ON\n")
                sock.recv(4096)
        relay_server.stop()
        assert fake_resource.writes == [b"*IDN?\n"]

    def test_write_failure_reply(self, relay_server, fake_resource) -> None:
        fake_resource.fail_write = True
        reply = _exchange(relay_server.address, b"*IDN?\n")
        assert reply == b"Error sending command\n"
        assert fake_resource.read_counts == []

    def test_read_failure_reply(self, relay_server, fake_resource) -> None:
        fake_resource.fail_read = True
        reply = _exchange(relay_server.address, b"*IDN?\n")
        assert reply == b"Error reading response\n"

    def test_session_reused_across_connections(self, relay_server, fake_resource, session) -> None:
        fake_resource.responses = [b"1\n", b"+5.000E+00\n"]
        assert _exchange(relay_server.address, b"*OPC?\n") == b"1\n\n"
        fake_resource.fail_write = True
        assert _exchange(relay_server.address, b"VOLT 5\n") == b"Error sending command\n"
        fake_resource.fail_write = False
        assert _exchange(relay_server.address, b"VOLT?\n") == b"+5.000E+00\n\n"
        assert session.is_open

    def test_command_too_long(self, relay_server, fake_resource) -> None:
        reply = _exchange(relay_server.address, b"A" * (MAX_LINE_BYTES + 1))
        assert reply.startswith(b"Error: ")
        assert fake_resource.writes == []


class TestHandlerErrors:
    def test_handler_failure_is_reported_and_loop_continues(self, session, fake_resource) -> None:
        server = RelayServer(
            session, host="127.0.0.1", port=0, protocol=_ExplodingProtocol(session)
        )
        server.start()
        try:
            assert _exchange(server.address, b"BOOM\n") == b"Error: relay exploded\n"
            assert _exchange(server.address, b"*IDN?\n") == IDN + b"\n"
        finally:
            server.stop()
        assert session.is_open


class TestLifecycle:
    def test_ephemeral_port(self, session) -> None:
        server = RelayServer(session, host="127.0.0.1", port=0)
        try:
            host, port = server.address
            assert host == "127.0.0.1"
            assert port > 0
        finally:
            server.stop()

    def test_default_protocol_bound_to_session(self, session) -> None:
        server = RelayServer(session, host="127.0.0.1", port=0)
        try:
            assert server.protocol.session is session
        finally:
            server.stop()

    def test_bind_failure_raises_listener_error(self, session) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", 0))
            blocker.listen(1)
            port = blocker.getsockname()[1]
            with pytest.raises(ListenerError, match=f"127.0.0.1:{port}"):
                RelayServer(session, host="127.0.0.1", port=port)

    def test_stop_leaves_session_open(self, session) -> None:
        server = RelayServer(session, host="127.0.0.1", port=0)
        server.start()
        server.stop()
        assert session.is_open

    def test_stop_without_start_releases_port(self, session) -> None:
        server = RelayServer(session, host="127.0.0.1", port=0)
        address = server.address
        server.stop()
        with pytest.raises(ConnectionRefusedError):
            socket.create_connection(address, timeout=5)
