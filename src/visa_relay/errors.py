"""Exception types for visa-relay.

All visa-relay exceptions inherit from RelayError, allowing consumers to catch
every relay-specific error with a single except clause.

Exception hierarchy:
    RelayError (base)
    +-- ConfigError: Invalid or unreadable configuration
    +-- ResourceManagerError: VISA resource manager could not be created
    +-- DiscoveryError: Instrument enumeration failures
    |   +-- NoInstrumentsError: No instruments attached at all
    |   +-- InstrumentNotFoundError: No identification matched the search key
    +-- InstrumentOpenError: The selected instrument could not be opened
    +-- InstrumentIOError: A write or read against the open instrument failed
    +-- ListenerError: The TCP listening endpoint could not be bound

Startup errors terminate the process. InstrumentIOError is scoped to a single
client connection and never closes the shared session.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base exception for all visa-relay errors."""


class ConfigError(RelayError):
    """Raised when the relay configuration is invalid or cannot be loaded."""


class ResourceManagerError(RelayError):
    """Raised when the VISA resource manager cannot be created.

    Common causes are a missing ``pyvisa`` installation or an unavailable
    VISA backend library.
    """


class DiscoveryError(RelayError):
    """Raised when instrument discovery fails at startup."""


class NoInstrumentsError(DiscoveryError):
    """Raised when enumeration returned no instruments at all."""


class InstrumentNotFoundError(DiscoveryError):
    """Raised when instruments were found but none matched the search key.

    Attributes:
        key: The search key that failed to match.
    """

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"No instrument identification contains {key!r}")


class InstrumentOpenError(RelayError):
    """Raised when the selected instrument cannot be opened."""


class InstrumentIOError(RelayError):
    """Raised when a write or read against the open instrument fails.

    Attributes:
        status: Transport status reported by the VISA layer, if any.
    """

    def __init__(self, message: str, status: object = None) -> None:
        self.status = status
        super().__init__(message)


class ListenerError(RelayError):
    """Raised when the TCP listening endpoint cannot be bound."""
