"""Microwave signal generator controlled with SCPI over TCP.

Tested dialects are Keysight/Agilent (e.g. E8267D) and Rohde & Schwarz
(e.g. SMB100A, SMBV100A). Other generators work if they can emulate one of
these command sets.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .device import ScpiDevice, parse_error_list
from .errors import ScpiQueryError, ScpiUnsupportedDeviceError
from .transport import Transport

logger = logging.getLogger(__name__)


class Dialect(Enum):
    UNKNOWN = "unknown"
    ROHDE_SCHWARZ = "Rohde&Schwarz"
    KEYSIGHT = "Keysight"


# Lower-case identity substrings, checked in order.
IDN_DIALECTS: tuple[tuple[str, Dialect], ...] = (
    ("agilent", Dialect.KEYSIGHT),
    ("keysight", Dialect.KEYSIGHT),
    ("rohde&schwarz", Dialect.ROHDE_SCHWARZ),
)


@dataclass(frozen=True)
class DialectCommands:
    pulse_width: str
    pulse_period: str
    static_errors_query: str | None = None


DIALECT_COMMANDS: dict[Dialect, DialectCommands] = {
    Dialect.KEYSIGHT: DialectCommands(
        pulse_width=":PULM:INT:PWID {:.2f}uS",
        pulse_period=":PULM:INT:PER {:.2f}uS",
    ),
    Dialect.ROHDE_SCHWARZ: DialectCommands(
        pulse_width=":PULM:WIDT {:.2f}uS",
        pulse_period=":PULM:PER {:.2f}uS",
        static_errors_query="SYST:SERR?",
    ),
}


def resolve_dialect(idn: str) -> Dialect:
    """Classify an *IDN? string by case-insensitive substring match."""
    normalized = (idn or "").lower()
    for token, dialect in IDN_DIALECTS:
        if token in normalized:
            return dialect
    return Dialect.UNKNOWN


class GeneratorDevice(ScpiDevice):
    """A signal generator speaking one of the supported SCPI dialects.

    Construction connects, reads the identity and resolves the dialect. If
    any of that fails the connection is closed before the error propagates.
    """

    def __init__(self, transport: Transport):
        super().__init__(transport, auto_connect=False)
        try:
            self.connect()
            self._idn = self.idn()
            dialect = resolve_dialect(self._idn)
            if dialect is Dialect.UNKNOWN:
                raise ScpiUnsupportedDeviceError(
                    f"The generator {self._idn!r} isn't supported. Try to activate "
                    "a SCPI interpreter compatible with one of the Rohde & Schwarz "
                    "or Keysight/Agilent generators. Usually such an option is "
                    "available in the generator settings."
                )
        except Exception as e:
            logger.warning("Generator initialisation failed, disconnecting: %s", e)
            self.disconnect()
            raise
        self._dialect = dialect
        logger.info("Resolved dialect %s for %r", dialect.value, self._idn)

    @property
    def dialect(self) -> Dialect:
        return self._dialect

    @property
    def idn_string(self) -> str:
        """The identification string read at construction."""
        return self._idn

    # -- Carrier --

    def set_frequency(self, freq_hz: float) -> None:
        self.command(f":FREQ {freq_hz:.0f}Hz")

    def set_power(self, power_dbm: float) -> None:
        self.command(f":POW {power_dbm:.2f}dbm")

    def alc_off(self) -> None:
        """Turn off Automatic Level Control.

        ALC usually fails on short pulses, see the generator's documentation.
        """
        self.command(":POW:ALC OFF")

    # -- Pulse modulation --

    def set_pulse_width(self, width_us: float) -> None:
        self.command(DIALECT_COMMANDS[self._dialect].pulse_width.format(width_us))

    def set_pulse_period(self, period_us: float) -> None:
        """Set the pulse repetition interval."""
        self.command(DIALECT_COMMANDS[self._dialect].pulse_period.format(period_us))

    def pulse_modulation_on(self) -> None:
        self.command(":PULM:STAT ON")

    # -- RF output --

    def rf_on(self) -> None:
        self.command(":OUTP:STAT ON")

    def rf_off(self) -> None:
        self.command(":OUTP:STAT OFF")

    # -- Front panel --

    def display_on(self) -> None:
        self.command("SYST:DISP:UPD ON")

    def display_off(self) -> None:
        """Stop display updates; speeds up long command sequences."""
        self.command("SYST:DISP:UPD OFF")

    # -- Error lists --

    def check_static_errors(self) -> None:
        """Query the static error list. Only Rohde & Schwarz has one."""
        query = DIALECT_COMMANDS[self._dialect].static_errors_query
        if query is None:
            return
        try:
            errors = self.query(query)
        except ScpiQueryError as e:
            raise e.with_context("Unable to request the static errors list") from e
        parse_error_list(errors)
