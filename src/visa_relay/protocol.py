"""Line-oriented relay protocol.

A client sends one command per connection, terminated by ``\\n``. The command
is forwarded to the instrument. Commands whose last character is ``?`` are
queries: the instrument response is read and returned verbatim. Any other
command is a directive and is acknowledged without reading.

Every reply is a single line. Success and failure share the same text
channel, so clients tell them apart by comparing against the literals below:

- :data:`ACK_REPLY` for an accepted directive
- :data:`WRITE_ERROR_REPLY` when the instrument rejected the write
- :data:`READ_ERROR_REPLY` when the query response could not be read
- ``Error: <description>`` (see :func:`error_reply`) for connection-level
  failures
"""

from __future__ import annotations

import logging

from visa_relay.errors import InstrumentIOError
from visa_relay.session import InstrumentSession

logger = logging.getLogger(__name__)

ACK_REPLY = b"Command sent"
WRITE_ERROR_REPLY = b"Error sending command"
READ_ERROR_REPLY = b"Error reading response"
REPLY_TERMINATOR = b"\n"
QUERY_SUFFIX = "?"


def parse_command(line: bytes) -> str | None:
    """Extract the command text from one received line.

    Trailing ``\\r`` and ``\\n`` are removed. Lines that are empty or only
    whitespace carry no command. Bytes that are not valid UTF-8 are kept as
    ``surrogateescape`` code points so they reach the instrument unchanged.

    Args:
        line: Raw bytes received from the client, terminator included.

    Returns:
        The command text, or None if there is nothing to relay.
    """
    command = line.decode("utf-8", errors="surrogateescape").rstrip("\r\n")
    if not command.strip():
        return None
    return command


def is_query(command: str) -> bool:
    """Return True if ``command`` expects a response from the instrument."""
    return command.endswith(QUERY_SUFFIX)


def error_reply(exc: BaseException) -> bytes:
    """Format a connection-level diagnostic reply."""
    return f"Error: {exc}".encode("utf-8", errors="replace")


def frame_reply(reply: bytes) -> bytes:
    """Append the single reply terminator."""
    return reply + REPLY_TERMINATOR


class RelayProtocol:
    """Forwards commands to the instrument session and builds the reply.

    The session lock is held for the write and, for queries, the read that
    follows it, so no other command can reach the instrument in between.

    Args:
        session: The process-wide instrument session.
        max_response_bytes: Bound for query reads. Defaults to the session's
            ``max_response_bytes``.
    """

    def __init__(self, session: InstrumentSession, *, max_response_bytes: int | None = None) -> None:
        self._session = session
        self._max_response_bytes = max_response_bytes

    @property
    def session(self) -> InstrumentSession:
        """The instrument session commands are relayed to."""
        return self._session

    def relay(self, command: str) -> bytes:
        """Relay one command and return the reply payload (unterminated).

        A write failure short-circuits: the error reply is returned and no
        read is attempted, even for queries.

        Args:
            command: Non-empty command text without its line terminator.

        Returns:
            Raw response bytes for queries, otherwise one of the reply
            literals.
        """
        with self._session.exchange() as session:
            try:
                session.write(command)
            except InstrumentIOError as exc:
                logger.warning("Command %r rejected: %s", command, exc)
                return WRITE_ERROR_REPLY

            if not is_query(command):
                return ACK_REPLY

            try:
                return session.read(self._max_response_bytes)
            except InstrumentIOError as exc:
                logger.warning("Query %r failed: %s", command, exc)
                return READ_ERROR_REPLY
