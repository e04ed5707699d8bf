from .transport import (
    Transport,
    TcpTransport,
    Endpoint,
    ConnectionState,
    Deadline,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT_MS,
    MAX_TIMEOUT_MS,
)
from .device import ScpiDevice, parse_error_list
from .generator import GeneratorDevice, Dialect, resolve_dialect
from .errors import (
    ScpiDeviceError,
    ScpiConnectionError,
    ScpiUnsupportedDeviceError,
    ScpiQueryError,
    ScpiTimeoutError,
    ScpiProtocolError,
    ScpiInstrumentError,
)

__all__ = [
    "Transport",
    "TcpTransport",
    "Endpoint",
    "ConnectionState",
    "Deadline",
    "DEFAULT_PORT",
    "DEFAULT_TIMEOUT_MS",
    "MAX_TIMEOUT_MS",
    "ScpiDevice",
    "parse_error_list",
    "GeneratorDevice",
    "Dialect",
    "resolve_dialect",
    "ScpiDeviceError",
    "ScpiConnectionError",
    "ScpiUnsupportedDeviceError",
    "ScpiQueryError",
    "ScpiTimeoutError",
    "ScpiProtocolError",
    "ScpiInstrumentError",
]
