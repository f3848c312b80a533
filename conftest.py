import httpx
import pytest

from tunnel_relay.forwarding import BackendForwarder

TEST_BACKEND_URL = "http://localhost:8080"


class RecordingBackend:
    """httpx transport stand-in that records every request it receives."""

    def __init__(self, handler=None):
        self.requests: list[httpx.Request] = []
        self._handler = handler or (
            lambda request: httpx.Response(
                200, headers={"content-type": "text/plain"}, text="ok"
            )
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    @property
    def called(self) -> bool:
        return bool(self.requests)

    def forwarder(self) -> BackendForwarder:
        return BackendForwarder(
            httpx.AsyncClient(transport=httpx.MockTransport(self))
        )


@pytest.fixture
def recording_backend():
    """Create a recording backend, optionally with a custom response handler."""

    def _create(handler=None) -> RecordingBackend:
        return RecordingBackend(handler)

    return _create
