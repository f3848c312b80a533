from collections.abc import Mapping
from typing import Any, Iterable

import httpx

from tunnel_relay.models import HeaderPairs

# Headers describing the body rather than the message
CONTENT_HEADERS = {
    "allow",
    "content-disposition",
    "content-encoding",
    "content-language",
    "content-length",
    "content-location",
    "content-md5",
    "content-range",
    "content-type",
    "expires",
    "last-modified",
}


def is_content_header(name: str) -> bool:
    return name.lower() in CONTENT_HEADERS


def to_header_pairs(headers: Any) -> HeaderPairs:
    """
    Flatten a multi-valued header collection into ordered (name, value) pairs.

    A header carrying N values becomes N pairs. Names and values are passed
    through verbatim.
    """
    if headers is None:
        return []
    if hasattr(headers, "multi_items"):
        return [(str(k), str(v)) for k, v in headers.multi_items()]

    items = headers.items() if isinstance(headers, Mapping) else headers
    pairs: HeaderPairs = []
    for name, value in items:
        if isinstance(value, (list, tuple)):
            pairs.extend((str(name), str(v)) for v in value)
        else:
            pairs.append((str(name), str(value)))
    return pairs


def to_httpx_headers(pairs: Iterable[tuple[str, str]]) -> httpx.Headers:
    return httpx.Headers(list(pairs))


def split_content_headers(pairs: Iterable[tuple[str, str]]) -> tuple[HeaderPairs, HeaderPairs]:
    """Separate general headers from content headers, keeping relative order."""
    general: HeaderPairs = []
    content: HeaderPairs = []
    for name, value in pairs:
        (content if is_content_header(name) else general).append((name, value))
    return general, content


def append_header(headers: httpx.Headers, name: str, value: str) -> httpx.Headers:
    """Return a copy of ``headers`` with one more entry, existing values kept."""
    return httpx.Headers(headers.multi_items() + [(name, value)])
