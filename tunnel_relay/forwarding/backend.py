import logging
from typing import Optional

import httpx

from .errors import BackendProtocolError, BackendUnreachable, ForwardError

logger = logging.getLogger("uvicorn.error")


class BackendForwarder:
    """
    Sends translated requests to the local backend over one shared client.

    The client's connection pool is reused by every relayed request. Errors
    are left to propagate; the orchestrator classifies them.
    """

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    @classmethod
    def from_settings(
        cls,
        timeout: Optional[float] = None,
        verify_ssl: bool = False,
    ) -> "BackendForwarder":
        client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            verify=verify_ssl,
            follow_redirects=False,  # Redirects go back to the relay caller untouched
        )
        return cls(client)

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def send(self, request: httpx.Request) -> httpx.Response:
        logger.debug(f"[Backend] {request.method} {request.url}")
        return await self._client.send(request)

    async def aclose(self) -> None:
        await self._client.aclose()


def classify_backend_error(exc: Exception) -> ForwardError:
    """Map a failure raised by the backend call onto the forwarding taxonomy."""
    if isinstance(exc, ForwardError):
        return exc
    if isinstance(exc, (httpx.ProtocolError, httpx.DecodingError)):
        error: ForwardError = BackendProtocolError(
            f"Backend protocol error: {type(exc).__name__}: {exc}"
        )
    elif isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        error = BackendUnreachable(
            f"Backend unreachable: {type(exc).__name__}: {exc}"
        )
    else:
        error = BackendProtocolError(
            f"Backend call failed: {type(exc).__name__}: {exc}"
        )
    error.__cause__ = exc
    return error
