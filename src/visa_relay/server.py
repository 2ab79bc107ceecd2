"""TCP server relaying one command per connection to the instrument.

Connections are accepted and handled one at a time: the next client is not
serviced until the current connection's single request/response cycle has
completed. A slow instrument therefore stalls every waiting client unless the
VISA timeout expires first.

Example:
    Serve an open session on the default port::

        from visa_relay import InstrumentSession, RelayServer

        session = InstrumentSession.open(rm, "USB0::0x0699::0x0105::C012345::INSTR")
        server = RelayServer(session, port=12345)
        server.serve_forever()

    From another shell::

        $ printf '*IDN?\\n' | nc localhost 12345
        TEKTRONIX,MSO24,C012345,CF:91.1CT FV:1.0.0
"""

from __future__ import annotations

import logging
import socketserver
import threading
from typing import Any

from visa_relay.config import DEFAULT_PORT
from visa_relay.errors import ListenerError
from visa_relay.protocol import RelayProtocol, error_reply, frame_reply, parse_command
from visa_relay.session import InstrumentSession

logger = logging.getLogger(__name__)

# Upper bound for one command line; longer input is rejected.
MAX_LINE_BYTES = 65536


class _RelayRequestHandler(socketserver.StreamRequestHandler):
    """Handle one TCP connection: read one line, relay it, reply once.

    The handler never reads a second command from the same connection.
    Errors are contained here so they cannot stop the accept loop.

    Attributes:
        server: Reference to the parent _RelayTcpServer for the protocol.
    """

    server: _RelayTcpServer

    def handle(self) -> None:
        """Relay a single command from the client."""
        peer = _format_address(self.client_address)
        logger.info("Connection from %s", peer)
        try:
            line = self.rfile.readline(MAX_LINE_BYTES + 1)
            if len(line) > MAX_LINE_BYTES:
                logger.warning("Command from %s exceeds %d bytes", peer, MAX_LINE_BYTES)
                self._send(error_reply(ValueError("command too long")))
                return
            if not line.endswith(b"\n"):
                logger.info("%s disconnected without sending a command", peer)
                return

            command = parse_command(line)
            if command is None:
                logger.debug("Ignoring empty command from %s", peer)
                return

            reply = self.server.protocol.relay(command)
            logger.debug("%s: %r -> %r", peer, command, reply)
            self._send(reply)
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Connection %s failed: %s", peer, exc)
            try:
                self._send(error_reply(exc))
            except Exception:  # pylint: disable=broad-except
                pass

    def _send(self, reply: bytes) -> None:
        self.wfile.write(frame_reply(reply))
        self.wfile.flush()


class _RelayTcpServer(socketserver.TCPServer):
    """TCPServer subclass that holds a reference to the relay protocol.

    Attributes:
        allow_reuse_address: Set to True to allow quick server restart.
        protocol: The relay protocol bound to the instrument session.
    """

    allow_reuse_address = True

    def __init__(
        self,
        server_address: tuple[str, int],
        protocol: RelayProtocol,
        **kwargs: Any,
    ) -> None:
        self.protocol = protocol
        super().__init__(server_address, _RelayRequestHandler, **kwargs)

    def handle_error(self, request: Any, client_address: Any) -> None:
        """Log a failure that escaped the request handler and keep serving."""
        logger.exception("Error while serving %s", _format_address(client_address))


class RelayServer:
    """Sequential TCP relay in front of one instrument session.

    The listening socket is bound on construction, so a port conflict is
    reported before any client can connect. The server does not own the
    session; the caller closes it after the server stops.

    Args:
        session: The process-wide instrument session.
        host: Bind address (default ``"0.0.0.0"``).
        port: Bind port (default ``12345``). Use ``0`` for an OS-assigned
            ephemeral port.
        protocol: Relay protocol to use. Defaults to a :class:`RelayProtocol`
            bound to ``session``.

    Raises:
        ListenerError: If the listening socket cannot be bound.
    """

    def __init__(
        self,
        session: InstrumentSession,
        host: str = "0.0.0.0",
        port: int = DEFAULT_PORT,
        *,
        protocol: RelayProtocol | None = None,
    ) -> None:
        self._protocol = protocol or RelayProtocol(session)
        try:
            self._server = _RelayTcpServer((host, port), self._protocol)
        except OSError as exc:
            raise ListenerError(f"Cannot listen on {host}:{port}: {exc}") from exc
        self._thread: threading.Thread | None = None

    @property
    def address(self) -> tuple[str, int]:
        """Return the actual bound ``(host, port)`` address."""
        addr = self._server.server_address
        return (str(addr[0]), int(addr[1]))

    @property
    def protocol(self) -> RelayProtocol:
        """The relay protocol handling each command."""
        return self._protocol

    def serve_forever(self, poll_interval: float = 0.5) -> None:
        """Accept and handle connections in the calling thread until shutdown."""
        host, port = self.address
        logger.info("Relay listening on %s:%d", host, port)
        self._server.serve_forever(poll_interval=poll_interval)

    def start(self) -> None:
        """Start serving in a daemon thread."""
        self._thread = threading.Thread(target=self.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Shut down the server and wait for the thread to exit.

        Closes the listening socket. The instrument session stays open.
        """
        if self._thread is not None:
            self._server.shutdown()
            self._thread.join()
            self._thread = None
        self._server.server_close()


def _format_address(address: Any) -> str:
    try:
        host, port = address[0], address[1]
    except (TypeError, IndexError):
        return str(address)
    return f"{host}:{port}"
