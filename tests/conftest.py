"""Shared fixtures: an in-memory stand-in for a PyVISA instrument resource."""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

import pytest

from visa_relay.server import RelayServer
from visa_relay.session import InstrumentSession


class FakeVisaError(Exception):
    """Mimics ``pyvisa.errors.VisaIOError`` by carrying an ``error_code``."""

    def __init__(self, message: str, error_code: int) -> None:
        super().__init__(message)
        self.error_code = error_code


class FakeVisaLib:
    """Records bounded reads the way ``resource.visalib.read`` is called."""

    def __init__(self, resource: FakeResource) -> None:
        self._resource = resource

    def read(self, session: Any, count: int) -> tuple[bytes, int]:
        res = self._resource
        res.read_counts.append(count)
        if res.fail_read:
            raise FakeVisaError("VI_ERROR_TMO (-1073807339): Timeout expired", -1073807339)
        data = res.responses.pop(0) if res.responses else b""
        return data[:count], 0


class FakeResource:
    """Message-based resource double with scripted responses.

    Attributes:
        writes: Raw payloads passed to ``write_raw``.
        read_counts: The ``count`` argument of every read.
        responses: Queue of bytes returned by successive reads.
    """

    def __init__(self, responses: list[bytes] | None = None, idn: str = "") -> None:
        self.session = 42
        self.visalib = FakeVisaLib(self)
        self.timeout: int | None = None
        self.responses = list(responses or [])
        self.idn = idn
        self.writes: list[bytes] = []
        self.read_counts: list[int] = []
        self.fail_write = False
        self.fail_read = False
        self.closed = False

    def write_raw(self, message: bytes) -> int:
        if self.fail_write:
            raise FakeVisaError("VI_ERROR_IO (-1073807298): I/O error", -1073807298)
        self.writes.append(bytes(message))
        return len(message)

    def query(self, message: str) -> str:
        return self.idn

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_resource() -> FakeResource:
    """A fake instrument that answers ``*IDN?``-style queries."""
    return FakeResource(responses=[b"TEKTRONIX,MSO24,C012345,CF:91.1CT FV:1.0.0\n"])


@pytest.fixture
def session(fake_resource: FakeResource) -> InstrumentSession:
    """An instrument session bound to ``fake_resource``."""
    return InstrumentSession(fake_resource, "USB0::0x0699::0x0105::C012345::INSTR")


@pytest.fixture
def relay_server(session: InstrumentSession) -> Generator[RelayServer, None, None]:
    """A relay server on an ephemeral loopback port, serving in a thread."""
    server = RelayServer(session, host="127.0.0.1", port=0)
    server.start()
    try:
        yield server
    finally:
        server.stop()

