"""Configuration for the VISA relay server.

The relay needs very little configuration: where to listen, which attached
instrument to select, and how to talk to it. Values come from an optional YAML
file and can be overridden from the command line.

Example YAML configuration:
    relay:
      host: "0.0.0.0"
      port: 12345

    instrument:
      search_key: "TEKTRONIX"
      resource_pattern: "?*INSTR"
      idn_query: "*IDN?"
      visa_backend: ""
      timeout_ms: 5000
      write_termination: "\\n"
      max_response_bytes: 2048
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from visa_relay.errors import ConfigError

DEFAULT_PORT = 12345
DEFAULT_SEARCH_KEY = "TEKTRONIX"
DEFAULT_RESOURCE_PATTERN = "?*INSTR"
DEFAULT_IDN_QUERY = "*IDN?"
DEFAULT_MAX_RESPONSE_BYTES = 2048


@dataclass(frozen=True)
class RelayConfig:
    """Relay server configuration.

    Attributes:
        host: Address the listening socket binds to.
        port: TCP port to listen on. ``0`` requests an ephemeral port.
        search_key: Case-insensitive substring matched against each
            instrument's ``*IDN?`` response to select the relayed instrument.
        resource_pattern: VISA discovery pattern. The default matches
            instrument-class resources only.
        idn_query: Self-identification query issued during discovery.
        visa_backend: PyVISA backend spec (e.g. ``"@py"``). Empty selects the
            PyVISA default.
        timeout_ms: VISA I/O timeout applied to every opened resource.
        write_termination: Terminator appended to each relayed command.
        max_response_bytes: Upper bound of a single instrument read.
    """

    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    search_key: str = DEFAULT_SEARCH_KEY
    resource_pattern: str = DEFAULT_RESOURCE_PATTERN
    idn_query: str = DEFAULT_IDN_QUERY
    visa_backend: str = ""
    timeout_ms: int = 5000
    write_termination: str = "\n"
    max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not 0 <= self.port <= 65535:
            raise ConfigError(f"port must be between 0 and 65535, got {self.port}")
        if not self.search_key.strip():
            raise ConfigError("search_key must not be empty")
        if not self.resource_pattern:
            raise ConfigError("resource_pattern must not be empty")
        if not self.idn_query:
            raise ConfigError("idn_query must not be empty")
        if self.timeout_ms <= 0:
            raise ConfigError("timeout_ms must be positive")
        if not self.write_termination:
            raise ConfigError("write_termination must not be empty")
        if self.max_response_bytes <= 0:
            raise ConfigError("max_response_bytes must be positive")

    def with_overrides(self, **overrides: Any) -> RelayConfig:
        """Return a copy with the given fields replaced.

        ``None`` values are ignored so unset command-line options keep the
        configured value.

        Args:
            **overrides: Field names and their new values.

        Returns:
            New RelayConfig instance.
        """
        changes = {name: value for name, value in overrides.items() if value is not None}
        return dataclasses.replace(self, **changes)


_RELAY_FIELDS = ("host", "port")
_INSTRUMENT_FIELDS = (
    "search_key",
    "resource_pattern",
    "idn_query",
    "visa_backend",
    "timeout_ms",
    "write_termination",
    "max_response_bytes",
)


def _section(data: dict[str, Any], name: str, allowed: tuple[str, ...]) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"{name} must be a mapping")
    unknown = sorted(set(section) - set(allowed))
    if unknown:
        raise ConfigError(f"Unknown field(s) in {name}: {', '.join(unknown)}")
    return section


def config_from_dict(data: dict[str, Any]) -> RelayConfig:
    """Build a RelayConfig from a parsed YAML mapping.

    Args:
        data: Mapping with optional ``relay`` and ``instrument`` sections.

    Returns:
        Validated configuration.

    Raises:
        ConfigError: If the mapping has the wrong shape or invalid values.
    """
    if not isinstance(data, dict):
        raise ConfigError("Config must be a YAML mapping")

    kwargs: dict[str, Any] = {}
    kwargs.update(_section(data, "relay", _RELAY_FIELDS))
    kwargs.update(_section(data, "instrument", _INSTRUMENT_FIELDS))

    for name in ("port", "timeout_ms", "max_response_bytes"):
        if name in kwargs and not isinstance(kwargs[name], int):
            raise ConfigError(f"{name} must be an integer")
    for name in ("host", "search_key", "resource_pattern", "idn_query", "visa_backend",
                 "write_termination"):
        if name in kwargs and not isinstance(kwargs[name], str):
            raise ConfigError(f"{name} must be a string")

    return RelayConfig(**kwargs)


def load_config(path: str | Path) -> RelayConfig:
    """Load relay configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Parsed relay configuration.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ConfigError: If the config is invalid.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if data is None:
        return RelayConfig()
    return config_from_dict(data)
