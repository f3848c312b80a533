import httpx

from tunnel_relay.models import RelayResponse
from .headers import split_content_headers, to_header_pairs


def translate_response(response: httpx.Response) -> RelayResponse:
    """
    Map a fully read backend response onto the relay response.

    The status code is copied exactly. General headers are copied first,
    then content headers, repeated values as separate entries. The
    content type is only declared when there is a body to describe.
    """
    body = response.text if response.content else ""
    content_type = response.headers.get("content-type")
    general, content = split_content_headers(to_header_pairs(response.headers))

    return RelayResponse(
        status_code=response.status_code,
        body=body,
        content_type=content_type if body and content_type else None,
        headers=general + content,
    )
