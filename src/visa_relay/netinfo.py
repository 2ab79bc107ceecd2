"""Local address discovery for the startup connection hint."""

from __future__ import annotations

import logging
import socket

logger = logging.getLogger(__name__)

_WILDCARD_HOSTS = frozenset({"", "0.0.0.0", "::"})


def local_addresses() -> list[str]:
    """Return the IPv4 addresses of this host, loopback excluded.

    Resolution failures yield an empty list; the hint is informational only.
    """
    try:
        infos = socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET, socket.SOCK_STREAM)
    except OSError as exc:
        logger.debug("Cannot resolve local addresses: %s", exc)
        return []

    addresses: list[str] = []
    for info in infos:
        address = str(info[4][0])
        if address.startswith("127.") or address in addresses:
            continue
        addresses.append(address)
    return addresses


def connection_hints(host: str, port: int) -> list[str]:
    """Return VISA socket resource strings a client could connect with.

    Args:
        host: The address the relay is bound to.
        port: The bound port.

    Returns:
        Strings like ``"TCPIP::192.168.1.20::12345::SOCKET"``.
    """
    if host in _WILDCARD_HOSTS:
        hosts = local_addresses() or ["127.0.0.1"]
    else:
        hosts = [host]
    return [f"TCPIP::{h}::{port}::SOCKET" for h in hosts]
