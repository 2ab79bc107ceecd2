"""Long-lived session with the relayed instrument.

The server process owns exactly one :class:`InstrumentSession`. It is opened
after discovery selects an instrument and closed once at shutdown. A failed
write or read is reported to the caller and never closes or reopens the
session.

Commands against the instrument must never overlap: a second command may only
be written once the previous command's response has been read (or ruled out).
The session carries a lock for that purpose; :meth:`InstrumentSession.exchange`
holds it for one write and its optional read.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from visa_relay.config import DEFAULT_MAX_RESPONSE_BYTES
from visa_relay.errors import InstrumentIOError, InstrumentOpenError

logger = logging.getLogger(__name__)


class InstrumentSession:
    """Open handle to a single VISA instrument.

    Writes are sent raw so framing is under the session's control: exactly
    one ``write_termination`` is appended unless the caller already framed the
    command. Reads are a single bounded transfer of at most
    ``max_response_bytes``; longer responses are truncated.

    Use :meth:`open` to create a session from a resource manager.

    Args:
        resource: An open PyVISA message-based resource.
        descriptor: The VISA resource string the handle was opened with.
        write_termination: Terminator appended to each command.
        max_response_bytes: Default bound for :meth:`read`.
    """

    def __init__(
        self,
        resource: Any,
        descriptor: str,
        *,
        write_termination: str = "\n",
        max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
    ) -> None:
        self._resource = resource
        self._descriptor = descriptor
        self._termination = write_termination.encode("ascii")
        self._max_response_bytes = max_response_bytes
        self._lock = threading.Lock()

    @classmethod
    def open(
        cls,
        resource_manager: Any,
        descriptor: str,
        *,
        timeout_ms: int | None = None,
        write_termination: str = "\n",
        max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
    ) -> InstrumentSession:
        """Open a session to ``descriptor``.

        Args:
            resource_manager: An open ``pyvisa.ResourceManager``.
            descriptor: VISA resource string of the selected instrument.
            timeout_ms: VISA I/O timeout, or None to keep the backend default.
            write_termination: Terminator appended to each command.
            max_response_bytes: Default bound for :meth:`read`.

        Returns:
            The open session.

        Raises:
            InstrumentOpenError: If the resource cannot be opened.
        """
        try:
            resource = resource_manager.open_resource(descriptor)
            if timeout_ms is not None:
                resource.timeout = timeout_ms
        except Exception as exc:
            raise InstrumentOpenError(f"Failed to open VISA resource {descriptor!r}: {exc}") from exc

        logger.info("Opened instrument session %s", descriptor)
        return cls(
            resource,
            descriptor,
            write_termination=write_termination,
            max_response_bytes=max_response_bytes,
        )

    # -- Properties ----------------------------------------------------------

    @property
    def descriptor(self) -> str:
        """The VISA resource string."""
        return self._descriptor

    @property
    def is_open(self) -> bool:
        """Return True until :meth:`close` has been called."""
        return self._resource is not None

    @property
    def max_response_bytes(self) -> int:
        """Default upper bound of a single read."""
        return self._max_response_bytes

    @property
    def lock(self) -> threading.Lock:
        """Lock serializing command traffic against the instrument."""
        return self._lock

    # -- Command traffic -----------------------------------------------------

    @contextmanager
    def exchange(self) -> Iterator[InstrumentSession]:
        """Hold the session lock for one command and its optional response.

        Example:
            >>> with session.exchange() as inst:
            ...     inst.write("*IDN?")
            ...     data = inst.read()
        """
        with self._lock:
            yield self

    def frame(self, command: str | bytes) -> bytes:
        """Return ``command`` as bytes terminated by exactly one terminator.

        Text is encoded as UTF-8; ``surrogateescape`` code points from
        :func:`~visa_relay.protocol.parse_command` become their original bytes.
        """
        if isinstance(command, str):
            payload = command.encode("utf-8", errors="surrogateescape")
        else:
            payload = bytes(command)
        if not payload.endswith(self._termination):
            payload += self._termination
        return payload

    def write(self, command: str | bytes) -> None:
        """Send one command to the instrument.

        Args:
            command: The command text, with or without its terminator.

        Raises:
            InstrumentIOError: If the session is closed, the command cannot be
                encoded, or the transport rejects the write.
        """
        resource = self._require_open()
        try:
            payload = self.frame(command)
        except UnicodeEncodeError as exc:
            raise InstrumentIOError(f"Command cannot be encoded: {exc}") from exc

        try:
            resource.write_raw(payload)
        except Exception as exc:
            raise InstrumentIOError(
                f"Write to {self._descriptor} failed: {exc}",
                status=getattr(exc, "error_code", None),
            ) from exc
        logger.debug("%s << %r", self._descriptor, payload)

    def read(self, max_bytes: int | None = None) -> bytes:
        """Read one response from the instrument.

        Performs a single transfer of at most ``max_bytes`` bytes. Data beyond
        the bound is not returned.

        Args:
            max_bytes: Read bound. Defaults to ``max_response_bytes``.

        Returns:
            The raw bytes read, including any instrument-native terminator.

        Raises:
            InstrumentIOError: If the session is closed or the read fails.
        """
        resource = self._require_open()
        count = self._max_response_bytes if max_bytes is None else max_bytes
        try:
            data, status = resource.visalib.read(resource.session, count)
        except Exception as exc:
            raise InstrumentIOError(
                f"Read from {self._descriptor} failed: {exc}",
                status=getattr(exc, "error_code", None),
            ) from exc
        if int(status) < 0:
            raise InstrumentIOError(f"Read from {self._descriptor} failed", status=status)
        logger.debug("%s >> %r", self._descriptor, data)
        return bytes(data[:count])

    # -- Lifecycle -----------------------------------------------------------

    def close(self) -> None:
        """Close the instrument handle.

        Safe to call multiple times. Failures are logged, not raised.
        """
        if self._resource is None:
            return
        resource, self._resource = self._resource, None
        try:
            resource.close()
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Error closing instrument %s: %s", self._descriptor, exc)
        else:
            logger.info("Closed instrument session %s", self._descriptor)

    def _require_open(self) -> Any:
        if self._resource is None:
            raise InstrumentIOError(f"Instrument session {self._descriptor} is not open")
        return self._resource

    def __enter__(self) -> InstrumentSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
