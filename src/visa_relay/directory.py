"""Instrument discovery through PyVISA.

This module enumerates the instruments visible to a VISA resource manager and
retrieves each one's self-identification string. The ``pyvisa`` library is
imported lazily in :func:`open_resource_manager` so the rest of visa-relay can
be imported and tested without a VISA installation.

Discovery only happens at startup. Identification opens a short-lived handle
per resource, so descriptors and identification strings are not cached beyond
a single :meth:`InstrumentDirectory.discover` pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from visa_relay.config import DEFAULT_IDN_QUERY, DEFAULT_RESOURCE_PATTERN
from visa_relay.errors import DiscoveryError, ResourceManagerError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscoveredInstrument:
    """One enumerated instrument.

    Attributes:
        descriptor: VISA resource string (e.g. ``"USB0::0x0699::0x0105::C0123::INSTR"``).
        identification: ``*IDN?`` response, or an empty string if the
            instrument could not be identified.
    """

    descriptor: str
    identification: str

    @property
    def identified(self) -> bool:
        """Return True if an identification string was obtained."""
        return bool(self.identification)


def open_resource_manager(backend: str = "") -> Any:
    """Create a PyVISA resource manager.

    Args:
        backend: PyVISA backend spec (e.g. ``"@py"``). Empty selects the
            default VISA library.

    Returns:
        An open ``pyvisa.ResourceManager``.

    Raises:
        ResourceManagerError: If ``pyvisa`` is not installed or the backend
            cannot be loaded.
    """
    try:
        import pyvisa  # type: ignore[import-not-found]  # pylint: disable=import-outside-toplevel
    except ImportError as exc:
        raise ResourceManagerError(
            "pyvisa library is not installed. Install with: pip install pyvisa"
        ) from exc

    try:
        if backend:
            return pyvisa.ResourceManager(backend)
        return pyvisa.ResourceManager()
    except Exception as exc:
        raise ResourceManagerError(
            f"Failed to open VISA resource manager {backend or '<default>'}: {exc}"
        ) from exc


def close_resource_manager(resource_manager: Any) -> None:
    """Close a resource manager, logging instead of raising on failure."""
    try:
        resource_manager.close()
    except Exception as exc:  # pylint: disable=broad-except
        logger.warning("Error closing VISA resource manager: %s", exc)


class InstrumentDirectory:
    """Enumerates and identifies instruments behind a resource manager.

    The directory does not own the resource manager; the caller closes it.

    Args:
        resource_manager: An open ``pyvisa.ResourceManager`` (or compatible).
        pattern: VISA discovery pattern. Defaults to instrument-class
            resources only.
        idn_query: Self-identification query.
        timeout_ms: I/O timeout applied to each short-lived handle, or None
            to keep the backend default.

    Example:
        >>> rm = open_resource_manager()
        >>> directory = InstrumentDirectory(rm)
        >>> for inst in directory.discover():
        ...     print(inst.descriptor, inst.identification)
    """

    def __init__(
        self,
        resource_manager: Any,
        *,
        pattern: str = DEFAULT_RESOURCE_PATTERN,
        idn_query: str = DEFAULT_IDN_QUERY,
        timeout_ms: int | None = None,
    ) -> None:
        self._rm = resource_manager
        self._pattern = pattern
        self._idn_query = idn_query
        self._timeout_ms = timeout_ms

    @property
    def pattern(self) -> str:
        """The VISA discovery pattern."""
        return self._pattern

    def enumerate(self) -> tuple[str, ...]:
        """List the resource descriptors matching the discovery pattern.

        Returns:
            Descriptors in enumeration order. Empty when nothing is attached.

        Raises:
            DiscoveryError: If the backend fails to enumerate.
        """
        try:
            resources = self._rm.list_resources(self._pattern)
        except Exception as exc:
            raise DiscoveryError(f"Failed to enumerate VISA resources: {exc}") from exc
        return tuple(str(r) for r in resources)

    def identify(self, descriptor: str) -> str:
        """Return the instrument's identification string.

        Opens a short-lived handle, issues the identification query and
        closes the handle again. Failures at any step are logged and yield an
        empty string; callers treat that as "unidentifiable".

        Args:
            descriptor: VISA resource string to identify.

        Returns:
            The stripped identification text, or ``""`` on failure.
        """
        try:
            resource = self._rm.open_resource(descriptor)
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Failed to open %s: %s", descriptor, exc)
            return ""

        identification = ""
        try:
            if self._timeout_ms is not None:
                resource.timeout = self._timeout_ms
            identification = str(resource.query(self._idn_query)).strip()
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Identification query failed for %s: %s", descriptor, exc)
        finally:
            try:
                resource.close()
            except Exception as exc:  # pylint: disable=broad-except
                logger.warning("Failed to close %s: %s", descriptor, exc)
                identification = ""

        return identification

    def discover(self) -> list[DiscoveredInstrument]:
        """Enumerate and identify every matching instrument.

        Returns:
            Discovered instruments in enumeration order.

        Raises:
            DiscoveryError: If enumeration itself fails.
        """
        descriptors = self.enumerate()
        logger.info("Found %d instrument(s) matching %r", len(descriptors), self._pattern)

        found: list[DiscoveredInstrument] = []
        for index, descriptor in enumerate(descriptors, start=1):
            identification = self.identify(descriptor)
            logger.info("%d: %s, %s", index, descriptor, identification or "<unidentified>")
            found.append(DiscoveredInstrument(descriptor, identification))
        return found
