from __future__ import annotations

import copy


class ScpiDeviceError(Exception):
    """Base exception: invalid endpoint, connection faults, unsupported devices."""

    def with_context(self, context: str) -> ScpiDeviceError:
        """Return a copy of this error, same class, with *context* prefixed."""
        err = copy.copy(self)
        err.args = (f"{context}: {self}",)
        return err


class ScpiConnectionError(ScpiDeviceError):
    """Raised when a connection cannot be established, is lost, or is missing."""


class ScpiUnsupportedDeviceError(ScpiDeviceError):
    """Raised when the instrument identity matches no supported dialect."""


class ScpiQueryError(ScpiDeviceError):
    """Raised when a query/response exchange with the device fails."""


class ScpiTimeoutError(ScpiQueryError):
    """Raised when the send or receive phase of a query times out."""


class ScpiProtocolError(ScpiQueryError):
    """Raised when the device returns an unexpected or malformed response."""


class ScpiInstrumentError(ScpiQueryError):
    """Raised when the device's error list reports a non-zero code."""

    def __init__(self, message: str, code: int | None = None, response: str = ""):
        super().__init__(message)
        self.code = code
        self.response = response
