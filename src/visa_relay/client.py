"""Minimal client for the relay protocol.

Each call opens a new connection, since the relay answers exactly one command
per connection.
"""

from __future__ import annotations

import socket

from visa_relay.config import DEFAULT_PORT


def send_command(
    host: str,
    command: str,
    port: int = DEFAULT_PORT,
    *,
    timeout: float | None = 10.0,
) -> bytes:
    """Send one command and return the reply line.

    Args:
        host: Relay server host.
        command: Command text; a ``\\n`` terminator is appended.
        port: Relay server port.
        timeout: Socket timeout in seconds, or None to block.

    Returns:
        The reply without its trailing ``\\n``. Empty if the server closed
        the connection without replying (e.g. for an empty command).
    """
    with socket.create_connection((host, port), timeout=timeout) as sock:
        sock.sendall(command.encode("utf-8") + b"\n")
        data = b""
        while True:
            chunk = sock.recv(4096)
            if not chunk:
                break
            data += chunk
    if data.endswith(b"\n"):
        data = data[:-1]
    return data
