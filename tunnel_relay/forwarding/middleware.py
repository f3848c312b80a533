"""
Middleware chain applied to every relayed request and response.

A middleware unit transforms the outbound ``httpx.Request`` before it reaches
the backend and the ``httpx.Response`` before it is written back to the
relay. Units run in registration order on both sides; the chain never
reorders, skips or short-circuits them.
"""

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable

import httpx

from .errors import ForwardError, MiddlewareFailure
from .headers import append_header

logger = logging.getLogger("uvicorn.error")


class RelayMiddleware(ABC):
    """
    Base class for relay middleware.

    Both hooks may be coroutines and may mutate their argument, but must
    return a request (or response) again. Instances are shared by all
    in-flight requests, so any state they keep needs its own locking.
    """

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def transform_request(self, request: httpx.Request) -> httpx.Request:
        pass

    @abstractmethod
    async def transform_response(self, response: httpx.Response) -> httpx.Response:
        pass


def _unit_name(unit: Any) -> str:
    return getattr(unit, "name", None) or type(unit).__name__


async def _resolve(result):
    if inspect.isawaitable(result):
        return await result
    return result


class MiddlewareChain:
    """Ordered, immutable list of middleware units."""

    def __init__(self, units: Iterable[Any] = ()):
        self._units = tuple(units)

    @property
    def units(self) -> tuple:
        return self._units

    def __len__(self) -> int:
        return len(self._units)

    async def apply_request(self, request: httpx.Request) -> httpx.Request:
        for unit in self._units:
            request = await self._run(
                unit, "request", unit.transform_request, request, httpx.Request
            )
        return request

    async def apply_response(self, response: httpx.Response) -> httpx.Response:
        for unit in self._units:
            response = await self._run(
                unit, "response", unit.transform_response, response, httpx.Response
            )
        return response

    async def _run(self, unit, phase: str, hook, value, expected_type):
        name = _unit_name(unit)
        try:
            result = await _resolve(hook(value))
        except ForwardError:
            raise
        except Exception as e:
            raise MiddlewareFailure(name, phase, f"{type(e).__name__}: {e}") from e

        if not isinstance(result, expected_type):
            raise MiddlewareFailure(
                name,
                phase,
                f"expected {expected_type.__name__}, got {type(result).__name__}",
            )
        logger.debug(f"[Middleware] {name} processed {phase}")
        return result


class HeaderAdditionMiddleware(RelayMiddleware):
    """Adds the configured headers to every forwarded request."""

    def __init__(self, headers: Iterable[tuple[str, str]]):
        self.headers = list(headers)

    async def transform_request(self, request: httpx.Request) -> httpx.Request:
        for name, value in self.headers:
            request.headers = append_header(request.headers, name, value)
        return request

    async def transform_response(self, response: httpx.Response) -> httpx.Response:
        return response


class HeaderRemovalMiddleware(RelayMiddleware):
    """Strips the configured header names from every forwarded request."""

    def __init__(self, names: Iterable[str]):
        self.names = {n.lower() for n in names}

    async def transform_request(self, request: httpx.Request) -> httpx.Request:
        for name in list(request.headers.keys()):
            if name.lower() in self.names:
                del request.headers[name]
        return request

    async def transform_response(self, response: httpx.Response) -> httpx.Response:
        return response
