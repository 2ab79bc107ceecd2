"""Instrument selection by identification substring."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from visa_relay.directory import DiscoveredInstrument
from visa_relay.errors import InstrumentNotFoundError, NoInstrumentsError


def matches(key: str, identification: str) -> bool:
    """Return True if ``key`` occurs in ``identification``, ignoring case.

    Empty identifications never match.
    """
    if not identification:
        return False
    return key.casefold() in identification.casefold()


def select_instrument(
    key: str, instruments: Iterable[DiscoveredInstrument]
) -> DiscoveredInstrument | None:
    """Pick the first instrument whose identification contains ``key``.

    Enumeration order is the tie-break order; there is no scoring.

    Args:
        key: Case-insensitive search key (e.g. ``"tektronix"``).
        instruments: Discovered instruments in enumeration order.

    Returns:
        The first matching instrument, or None if nothing matches.
    """
    for instrument in instruments:
        if matches(key, instrument.identification):
            return instrument
    return None


def find_instrument(key: str, instruments: Sequence[DiscoveredInstrument]) -> DiscoveredInstrument:
    """Like :func:`select_instrument`, but raise when nothing is selected.

    Raises:
        NoInstrumentsError: If ``instruments`` is empty.
        InstrumentNotFoundError: If no identification contains ``key``.
    """
    if not instruments:
        raise NoInstrumentsError("No instruments found")
    selected = select_instrument(key, instruments)
    if selected is None:
        raise InstrumentNotFoundError(key)
    return selected
