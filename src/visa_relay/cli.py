"""Command-line interface for visa-relay.

Usage:
    # Select the first instrument whose *IDN? contains "tektronix" and serve it
    visa-relay serve --key tektronix --port 12345

    # Serve with settings from a YAML file
    visa-relay serve --config relay.yaml

    # List attached instruments and their identification strings
    visa-relay list

    # Send one command to a running relay
    visa-relay send 192.168.1.20 "*IDN?"
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from visa_relay import __version__
from visa_relay.client import send_command
from visa_relay.config import RelayConfig, load_config
from visa_relay.directory import InstrumentDirectory, close_resource_manager, open_resource_manager
from visa_relay.errors import ConfigError, RelayError
from visa_relay.netinfo import connection_hints
from visa_relay.selector import find_instrument
from visa_relay.server import RelayServer
from visa_relay.session import InstrumentSession

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_config(args: argparse.Namespace) -> RelayConfig:
    """Load the optional config file and apply command-line overrides.

    Raises:
        ConfigError: If the file or an override is invalid.
        FileNotFoundError: If ``--config`` names a missing file.
    """
    config = load_config(args.config) if args.config else RelayConfig()
    return config.with_overrides(
        host=getattr(args, "host", None),
        port=getattr(args, "port", None),
        search_key=getattr(args, "key", None),
        resource_pattern=getattr(args, "pattern", None),
        visa_backend=getattr(args, "backend", None),
        timeout_ms=getattr(args, "timeout_ms", None),
        max_response_bytes=getattr(args, "max_response_bytes", None),
    )


def serve(config: RelayConfig) -> int:
    """Discover the instrument, open it and relay commands until interrupted.

    Startup failures (no resource manager, nothing found, no match, open or
    bind failure) release whatever was opened and return 1 before any client
    is accepted.

    Args:
        config: Relay configuration.

    Returns:
        Process exit status.
    """
    try:
        rm = open_resource_manager(config.visa_backend)
    except RelayError as exc:
        logger.error("%s", exc)
        return 1

    session: InstrumentSession | None = None
    try:
        directory = InstrumentDirectory(
            rm,
            pattern=config.resource_pattern,
            idn_query=config.idn_query,
            timeout_ms=config.timeout_ms,
        )
        selected = find_instrument(config.search_key, directory.discover())
        logger.info("Selected %s (%s)", selected.descriptor, selected.identification)

        session = InstrumentSession.open(
            rm,
            selected.descriptor,
            timeout_ms=config.timeout_ms,
            write_termination=config.write_termination,
            max_response_bytes=config.max_response_bytes,
        )
        server = RelayServer(session, config.host, config.port)
        host, port = server.address

        print(f"VISA relay for {selected.descriptor} running on port {port}")
        for hint in connection_hints(host, port):
            print(f"  Connect via: {hint}")

        try:
            server.serve_forever()
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
        finally:
            server.stop()
        return 0
    except RelayError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        if session is not None:
            session.close()
        close_resource_manager(rm)


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the relay server."""
    try:
        config = build_config(args)
    except (ConfigError, FileNotFoundError) as exc:
        print(f"Error: {exc}")
        return 1
    return serve(config)


def cmd_list(args: argparse.Namespace) -> int:
    """List attached instruments with their identification strings."""
    try:
        config = build_config(args)
        rm = open_resource_manager(config.visa_backend)
    except (RelayError, FileNotFoundError) as exc:
        print(f"Error: {exc}")
        return 1

    try:
        directory = InstrumentDirectory(
            rm,
            pattern=config.resource_pattern,
            idn_query=config.idn_query,
            timeout_ms=config.timeout_ms,
        )
        instruments = directory.discover()
    except RelayError as exc:
        print(f"Error: {exc}")
        return 1
    finally:
        close_resource_manager(rm)

    print(f"Instruments found: {len(instruments)}")
    for index, inst in enumerate(instruments, start=1):
        print(f"  {index}: {inst.descriptor}, {inst.identification or '(no identification)'}")
    return 0


def cmd_send(args: argparse.Namespace) -> int:
    """Send one command to a running relay and print the reply."""
    try:
        reply = send_command(args.host, args.command, args.port, timeout=args.timeout)
    except (OSError, UnicodeEncodeError) as exc:
        print(f"Error: {exc}")
        return 1
    print(reply.decode("utf-8", errors="replace").rstrip("\r\n"))
    return 0


def _add_instrument_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", "-c", help="YAML configuration file")
    parser.add_argument("--backend", help="PyVISA backend, e.g. @py (default: VISA library default)")
    parser.add_argument("--pattern", help="VISA discovery pattern (default: ?*INSTR)")
    parser.add_argument(
        "--timeout-ms", type=int,
        help="VISA I/O timeout in milliseconds (default: 5000)"
    )


def create_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="visa-relay",
        description="Relay line-oriented commands from TCP clients to a VISA instrument",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Select an instrument and relay commands")
    _add_instrument_options(serve_parser)
    serve_parser.add_argument(
        "--key", "-k",
        help="Case-insensitive *IDN? substring selecting the instrument (default: TEKTRONIX)"
    )
    serve_parser.add_argument("--host", help="Bind address (default: 0.0.0.0)")
    serve_parser.add_argument("--port", "-p", type=int, help="TCP port (default: 12345)")
    serve_parser.add_argument(
        "--max-response-bytes", type=int,
        help="Maximum bytes read per query response (default: 2048)"
    )

    # list command
    list_parser = subparsers.add_parser("list", help="List attached instruments")
    _add_instrument_options(list_parser)

    # send command
    send_parser = subparsers.add_parser("send", help="Send one command to a running relay")
    send_parser.add_argument("host", help="Relay server host")
    send_parser.add_argument("command", help="Command text, e.g. '*IDN?'")
    send_parser.add_argument("--port", "-p", type=int, default=12345, help="TCP port (default: 12345)")
    send_parser.add_argument(
        "--timeout", type=float, default=10.0,
        help="Socket timeout in seconds (default: 10)"
    )

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    setup_logging(args.debug)

    if args.command == "serve":
        return cmd_serve(args)
    elif args.command == "list":
        return cmd_list(args)
    elif args.command == "send":
        return cmd_send(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
