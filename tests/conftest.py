import pytest

from scpi_generator.transport import Transport, DEFAULT_TIMEOUT_MS, check_timeout
from scpi_generator.errors import ScpiConnectionError


class MockTransport(Transport):
    """In-memory transport for testing devices without sockets.

    Acknowledged commands (``...; *OPC?``) answer ``opc_reply`` unless a
    response was set for the exact query text.
    """

    def __init__(self):
        self._connected = False
        self._timeout_ms = DEFAULT_TIMEOUT_MS
        self._sent = []
        self._responses = {}
        self._errors = {}
        self.opc_reply = "1\n"
        self.connect_calls = 0
        self.disconnect_calls = 0

    @property
    def timeout_ms(self) -> int:
        return self._timeout_ms

    @timeout_ms.setter
    def timeout_ms(self, value: int):
        self._timeout_ms = check_timeout(value)

    def connect(self):
        self.connect_calls += 1
        self._connected = True

    def disconnect(self):
        self.disconnect_calls += 1
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected

    def query(self, text: str, timeout_ms: int | None = None) -> str:
        if not self._connected:
            raise ScpiConnectionError("Not connected")
        self._sent.append(text)
        if text in self._errors:
            raise self._errors[text]
        if text in self._responses:
            return self._responses[text]
        if text.endswith("*OPC?"):
            return self.opc_reply
        return ""

    def set_response(self, query: str, response: str):
        self._responses[query] = response

    def set_error(self, query: str, error: Exception):
        self._errors[query] = error

    @property
    def sent(self):
        return self._sent

    def last_sent(self):
        return self._sent[-1] if self._sent else None


@pytest.fixture
def mock_transport():
    return MockTransport()


@pytest.fixture
def transport_factory():
    return MockTransport
