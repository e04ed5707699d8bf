from __future__ import annotations

import logging

from .transport import Transport, TcpTransport, DEFAULT_PORT, DEFAULT_TIMEOUT_MS
from .errors import ScpiInstrumentError, ScpiProtocolError, ScpiQueryError

logger = logging.getLogger(__name__)

OPC_SUFFIX = "; *OPC?"


def parse_error_list(response: str) -> tuple[int, str]:
    """Parse a ``<code>,<description>`` error-list reply.

    Returns ``(0, description)`` when the device reports no error. A non-zero
    code raises ScpiInstrumentError carrying the full reply.
    """
    text = response.strip()
    code_text, _, description = text.partition(",")
    try:
        code = int(code_text)
    except ValueError:
        raise ScpiProtocolError(f"Malformed error list response: {text!r}")
    if code != 0:
        raise ScpiInstrumentError(text, code=code, response=text)
    return code, description


class ScpiDevice:
    """SCPI instrument interface built on a Transport.

    Every command is acknowledged: it is sent together with ``*OPC?`` in one
    query and the device must answer ``1`` once it has executed it.
    """

    def __init__(self, transport: Transport, auto_connect: bool = True):
        self._transport = transport
        if auto_connect and not transport.is_connected():
            transport.connect()

    @classmethod
    def over_tcp(
        cls,
        host: str,
        port: int = DEFAULT_PORT,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ):
        """Create the device on a TcpTransport to ``host:port``."""
        return cls(TcpTransport(host, port, timeout_ms=timeout_ms))

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def timeout_ms(self) -> int:
        return self._transport.timeout_ms

    @timeout_ms.setter
    def timeout_ms(self, value: int):
        self._transport.timeout_ms = value

    # -- Connection lifecycle --

    def connect(self):
        self._transport.connect()

    def disconnect(self):
        self._transport.disconnect()

    def is_connected(self) -> bool:
        return self._transport.is_connected()

    def __enter__(self):
        if not self._transport.is_connected():
            self._transport.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
        return False

    # -- Core SCPI operations --

    def query(self, cmd: str, timeout_ms: int | None = None) -> str:
        """Send a query and return the raw response text."""
        return self._transport.query(cmd, timeout_ms=timeout_ms)

    def command(self, cmd: str, timeout_ms: int | None = None) -> None:
        """Send a command and wait for the device to confirm its completion."""
        status = self.query(f"{cmd}{OPC_SUFFIX}", timeout_ms=timeout_ms).strip()
        try:
            ok = int(status) == 1
        except ValueError:
            ok = False
        if not ok:
            raise ScpiProtocolError(
                f"The device has returned an unexpected OPC code {status!r} "
                f"(not 1) for {cmd!r}"
            )

    # -- IEEE 488.2 common commands --

    def idn(self) -> str:
        """Query instrument identity (*IDN?)."""
        try:
            return self.query("*IDN?").strip()
        except ScpiQueryError as e:
            raise e.with_context("Unable to get an ID string") from e

    def reset(self) -> None:
        """Reset the instrument (*RST)."""
        try:
            self.command("*RST;")
        except ScpiQueryError as e:
            raise e.with_context("Unable to reset the device") from e

    def clear_status(self) -> None:
        """Clear the status registers (*CLS)."""
        try:
            self.command("*CLS;")
        except ScpiQueryError as e:
            raise e.with_context("Unable to clear the device's state register") from e

    def check_errors(self) -> None:
        """Query the system error list; raise if the device reports an error."""
        try:
            errors = self.query("SYST:ERR?")
        except ScpiQueryError as e:
            raise e.with_context("Unable to request the errors list") from e
        parse_error_list(errors)
