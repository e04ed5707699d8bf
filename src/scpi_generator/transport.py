from __future__ import annotations

import errno
import ipaddress
import logging
import math
import os
import selectors
import socket
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from .errors import (
    ScpiConnectionError,
    ScpiDeviceError,
    ScpiTimeoutError,
)

logger = logging.getLogger(__name__)

DEFAULT_PORT = 5025
DEFAULT_TIMEOUT_MS = 1000
# Large timeouts can hang a control program; 2-3 s is usually plenty.
MAX_TIMEOUT_MS = 100_000
TERMINATOR = "\n"
RECV_BUFFER_SIZE = 65536

_CONNECT_IN_PROGRESS = {
    errno.EINPROGRESS,
    errno.EWOULDBLOCK,
    errno.EALREADY,
    getattr(errno, "WSAEWOULDBLOCK", errno.EWOULDBLOCK),
}


def check_timeout(timeout_ms: int) -> int:
    """Validate a timeout in milliseconds against the policy ceiling."""
    if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, (int, float)):
        raise ScpiDeviceError(f"Invalid SCPI timeout: {timeout_ms!r}")
    if not math.isfinite(timeout_ms):
        raise ScpiDeviceError(f"The SCPI timeout must be finite: {timeout_ms!r}")
    if timeout_ms < 0:
        raise ScpiDeviceError(f"The SCPI timeout cannot be negative: {timeout_ms}")
    if timeout_ms > MAX_TIMEOUT_MS:
        raise ScpiDeviceError(
            f"The SCPI timeout is too large: {timeout_ms} ms (max {MAX_TIMEOUT_MS})"
        )
    return timeout_ms


@dataclass(frozen=True)
class Endpoint:
    """A validated instrument address: literal IPv4/IPv6 address and TCP port."""

    address: ipaddress.IPv4Address | ipaddress.IPv6Address
    port: int

    @classmethod
    def parse(cls, host: str, port: int) -> Endpoint:
        if not isinstance(host, str):
            raise ScpiDeviceError(f"Invalid IP address: {host!r}")
        try:
            address = ipaddress.ip_address(host.strip())
        except ValueError as e:
            raise ScpiDeviceError(f"Invalid IP address: {host!r}") from e
        if isinstance(port, bool) or not isinstance(port, int) or not 1 <= port <= 65535:
            raise ScpiDeviceError(f"Invalid TCP port: {port!r}")
        return cls(address, port)

    @property
    def family(self) -> int:
        return socket.AF_INET6 if self.address.version == 6 else socket.AF_INET

    def sockaddr(self) -> tuple[str, int]:
        return (str(self.address), self.port)

    def __str__(self) -> str:
        if self.address.version == 6:
            return f"[{self.address}]:{self.port}"
        return f"{self.address}:{self.port}"


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Deadline:
    """Single-shot expiry for one wait phase, on the monotonic clock."""

    def __init__(self, timeout_ms: float):
        if not math.isfinite(timeout_ms):
            raise ScpiDeviceError(f"Deadline must be finite: {timeout_ms!r}")
        self._expires_at = time.monotonic() + timeout_ms / 1000.0

    def remaining(self) -> float:
        """Seconds left before expiry, never negative."""
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self._expires_at


def wait_for(sock: socket.socket, events: int, deadline: Deadline) -> bool:
    """Block until *sock* is ready for *events* or *deadline* expires.

    Polls at least once, so an already-ready socket succeeds even with an
    expired deadline. Returns False on expiry.
    """
    with selectors.DefaultSelector() as selector:
        selector.register(sock, events)
        while True:
            if selector.select(deadline.remaining()):
                return True
            if deadline.expired:
                return False


class Transport(ABC):
    """Abstract base for the SCPI query engine."""

    @abstractmethod
    def connect(self):
        """Open the connection."""

    @abstractmethod
    def disconnect(self):
        """Close the connection. Must never raise."""

    @abstractmethod
    def is_connected(self) -> bool:
        """Return True if the transport is currently connected."""

    @abstractmethod
    def query(self, text: str, timeout_ms: int | None = None) -> str:
        """Send one line and return the raw response text."""

    @property
    @abstractmethod
    def timeout_ms(self) -> int:
        """Per-phase timeout in milliseconds."""

    @timeout_ms.setter
    @abstractmethod
    def timeout_ms(self, value: int):
        ...


class TcpTransport(Transport):
    """SCPI over a raw TCP socket with a bounded wait for every phase.

    Each query has two phases, send and receive, each with its own deadline,
    so the worst case per query is twice the timeout. The receive phase
    returns whatever bytes are available once the socket becomes readable;
    responses split across several TCP segments are not reassembled.
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ):
        self._endpoint = Endpoint.parse(host, port)
        self._timeout_ms = check_timeout(timeout_ms)
        self._socket: socket.socket | None = None
        self._state = ConnectionState.DISCONNECTED

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    @property
    def host(self) -> str:
        return str(self._endpoint.address)

    @property
    def port(self) -> int:
        return self._endpoint.port

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def timeout_ms(self) -> int:
        return self._timeout_ms

    @timeout_ms.setter
    def timeout_ms(self, value: int):
        self._timeout_ms = check_timeout(value)

    # -- Connection lifecycle --

    def connect(self):
        self.disconnect()
        try:
            sock = socket.socket(self._endpoint.family, socket.SOCK_STREAM)
        except OSError as e:
            raise ScpiConnectionError(f"Cannot create a socket: {e}") from e
        sock.setblocking(False)
        self._state = ConnectionState.CONNECTING
        try:
            self._establish(sock, Deadline(self._timeout_ms))
        except Exception:
            sock.close()
            self._state = ConnectionState.DISCONNECTED
            raise
        self._socket = sock
        self._state = ConnectionState.CONNECTED
        logger.info("Connected to %s", self._endpoint)

    def _establish(self, sock: socket.socket, deadline: Deadline):
        try:
            err = sock.connect_ex(self._endpoint.sockaddr())
            if err in _CONNECT_IN_PROGRESS:
                if not wait_for(sock, selectors.EVENT_WRITE, deadline):
                    raise ScpiConnectionError(
                        f"Error connecting to {self._endpoint}. Timeout expired."
                    )
                err = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        except OSError as e:
            raise ScpiConnectionError(
                f"Cannot connect to {self._endpoint}: {e}"
            ) from e
        if err != 0:
            raise ScpiConnectionError(
                f"Cannot connect to {self._endpoint}: {os.strerror(err)}"
            )

    def disconnect(self):
        sock, self._socket = self._socket, None
        self._state = ConnectionState.DISCONNECTED
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            sock.close()
        except OSError:
            pass
        logger.info("Disconnected from %s", self._endpoint)

    def is_connected(self) -> bool:
        return (
            self._state is ConnectionState.CONNECTED
            and self._socket is not None
            and self._socket.fileno() != -1
        )

    # -- Query --

    def query(self, text: str, timeout_ms: int | None = None) -> str:
        if not self.is_connected():
            raise ScpiConnectionError(
                "Not connected (socket is invalid or not connected)"
            )
        timeout = self._timeout_ms if timeout_ms is None else check_timeout(timeout_ms)
        try:
            payload = f"{text}{TERMINATOR}".encode("ascii")
        except UnicodeEncodeError as e:
            raise ScpiDeviceError(f"SCPI text must be ASCII: {text!r}") from e

        logger.debug("-> %r", text)
        self._send_all(payload, Deadline(timeout), text)
        data = self._receive_available(Deadline(timeout), text)
        response = data.decode("ascii", errors="replace")
        logger.debug("<- %r", response)
        return response

    def _send_all(self, payload: bytes, deadline: Deadline, text: str):
        view = memoryview(payload)
        while view:
            if not wait_for(self._socket, selectors.EVENT_WRITE, deadline):
                # A partly written line would corrupt the next exchange.
                self.disconnect()
                raise ScpiTimeoutError(f"Sending timeout expired: {text[:80]!r}")
            try:
                sent = self._socket.send(view)
            except BlockingIOError:
                continue
            except OSError as e:
                self.disconnect()
                raise ScpiConnectionError(f"Send failed: {e}") from e
            view = view[sent:]

    def _receive_available(self, deadline: Deadline, text: str) -> bytes:
        while True:
            if not wait_for(self._socket, selectors.EVENT_READ, deadline):
                raise ScpiTimeoutError(f"Receiving timeout expired: {text[:80]!r}")
            try:
                data = self._socket.recv(RECV_BUFFER_SIZE)
            except BlockingIOError:
                continue
            except OSError as e:
                self.disconnect()
                raise ScpiConnectionError(f"Receive failed: {e}") from e
            if not data:
                self.disconnect()
                raise ScpiConnectionError("Connection closed by instrument")
            return data
