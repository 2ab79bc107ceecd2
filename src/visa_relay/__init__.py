"""Network relay for a locally attached VISA instrument.

This package exposes one instrument, reached through PyVISA, as a
line-oriented TCP service: a client connects, sends one command terminated by
a newline and, for queries ending in ``?``, receives the instrument's raw
response on the same connection.

Modules:
    directory: Instrument enumeration and ``*IDN?`` identification.
    selector: First-match, case-insensitive selection by identification.
    session: The single long-lived instrument handle.
    protocol: Command parsing, query/directive branching and reply literals.
    server: Sequential TCP acceptor.
    client: One-shot client for the relay protocol.
    cli: The ``visa-relay`` command.

Example:
    Relay the first Tektronix instrument found::

        from visa_relay import (
            InstrumentDirectory, InstrumentSession, RelayServer,
            find_instrument, open_resource_manager,
        )

        rm = open_resource_manager()
        selected = find_instrument("tektronix", InstrumentDirectory(rm).discover())
        session = InstrumentSession.open(rm, selected.descriptor)
        RelayServer(session, port=12345).serve_forever()
"""

__version__ = "0.1.0"

from visa_relay.client import send_command
from visa_relay.config import RelayConfig, load_config
from visa_relay.directory import (
    DiscoveredInstrument,
    InstrumentDirectory,
    close_resource_manager,
    open_resource_manager,
)
from visa_relay.errors import (
    ConfigError,
    DiscoveryError,
    InstrumentIOError,
    InstrumentNotFoundError,
    InstrumentOpenError,
    ListenerError,
    NoInstrumentsError,
    RelayError,
    ResourceManagerError,
)
from visa_relay.protocol import (
    ACK_REPLY,
    READ_ERROR_REPLY,
    WRITE_ERROR_REPLY,
    RelayProtocol,
    is_query,
    parse_command,
)
from visa_relay.selector import find_instrument, select_instrument
from visa_relay.server import RelayServer
from visa_relay.session import InstrumentSession

__all__ = [
    "__version__",
    # Client
    "send_command",
    # Config
    "RelayConfig",
    "load_config",
    # Discovery
    "DiscoveredInstrument",
    "InstrumentDirectory",
    "close_resource_manager",
    "open_resource_manager",
    "find_instrument",
    "select_instrument",
    # Errors
    "ConfigError",
    "DiscoveryError",
    "InstrumentIOError",
    "InstrumentNotFoundError",
    "InstrumentOpenError",
    "ListenerError",
    "NoInstrumentsError",
    "RelayError",
    "ResourceManagerError",
    # Protocol
    "ACK_REPLY",
    "READ_ERROR_REPLY",
    "WRITE_ERROR_REPLY",
    "RelayProtocol",
    "is_query",
    "parse_command",
    # Server
    "RelayServer",
    # Session
    "InstrumentSession",
]
