"""
Rebuilds an inbound relayed request as an outbound ``httpx.Request`` for the
local backend.

Relayed URLs look like ``https://<namespace>/<machine>/<actual path>``. The
first path segment identifies the tunnel and is dropped before the path is
appended to the configured backend URL.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

import httpx

from tunnel_relay.models import InboundBody, InboundRequest
from .errors import TranslationFailure, UnsupportedMethod
from .headers import split_content_headers, to_header_pairs

logger = logging.getLogger("uvicorn.error")

SUPPORTED_METHODS = ("GET", "POST", "PUT", "DELETE", "OPTIONS")

# Hop-by-hop headers that should NOT be forwarded (RFC 2616), plus the relay's own host
SKIPPED_REQUEST_HEADERS = {
    "connection",
    "host",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}


@dataclass
class TranslatedRequest:
    request: httpx.Request
    body: str


def map_method(method: str) -> str:
    """Map an inbound verb onto the supported set, case-insensitively."""
    normalized = (method or "").upper()
    if normalized not in SUPPORTED_METHODS:
        raise UnsupportedMethod(method)
    return normalized


def strip_routing_segment(uri: str) -> str:
    """
    Return the path and query of ``uri`` without its first path segment.

    ``/machineA/foo/bar?x=1`` becomes ``/foo/bar?x=1`` and ``/machineA``
    becomes ``/``.
    """
    try:
        parts = urlsplit(uri)
    except ValueError as e:
        raise TranslationFailure(f"Malformed request URI '{uri}': {e}") from e

    remainder = ""
    trimmed = parts.path.lstrip("/")
    if "/" in trimmed:
        remainder = trimmed.split("/", 1)[1]

    path = "/" + remainder
    if parts.query:
        path = f"{path}?{parts.query}"
    return path


def build_target_url(base_url: str, uri: str) -> str:
    return base_url.rstrip("/") + strip_routing_segment(uri)


async def read_body(body: Optional[InboundBody]) -> Optional[str]:
    """
    Read the whole inbound body into memory as text.

    The chain may inspect or replace the full body, so the body is buffered
    rather than streamed. Undecodable bytes are replaced.
    """
    if body is None:
        return None
    if isinstance(body, str):
        return body
    if isinstance(body, (bytes, bytearray)):
        return bytes(body).decode("utf-8", errors="replace")

    chunks = bytearray()
    async for chunk in body:
        chunks.extend(chunk)
    return bytes(chunks).decode("utf-8", errors="replace")


def _forwardable(pairs):
    return [(k, v) for k, v in pairs if k.lower() not in SKIPPED_REQUEST_HEADERS]


async def translate_request(
    inbound: InboundRequest, backend_url: str
) -> TranslatedRequest:
    """
    Build the outbound request for ``inbound``.

    Raises:
        UnsupportedMethod: The verb is outside the supported set.
        TranslationFailure: The URI or header data cannot form a request.
    """
    method = map_method(inbound.method)
    target_url = build_target_url(backend_url, inbound.uri)

    try:
        general, content = split_content_headers(to_header_pairs(inbound.headers))
    except (TypeError, ValueError) as e:
        raise TranslationFailure(f"Malformed request headers: {e}") from e

    headers = _forwardable(general)
    body = await read_body(inbound.body)
    if body is not None:
        # httpx derives content-length from the buffered body
        headers.extend(
            (k, v) for k, v in content if k.lower() != "content-length"
        )

    try:
        request = httpx.Request(
            method,
            target_url,
            headers=headers,
            content=body.encode("utf-8") if body is not None else None,
        )
    except (httpx.InvalidURL, TypeError, ValueError, UnicodeEncodeError) as e:
        raise TranslationFailure(
            f"Cannot build request for '{target_url}': {e}"
        ) from e

    logger.debug(f"[Relay] Translated {inbound.method} {inbound.uri} -> {target_url}")
    return TranslatedRequest(request=request, body=body or "")
