import logging
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response

from tunnel_relay.models import (
    InboundRequest,
    RelayResponse,
    RequestHistoryResponse,
    RequestRecordView,
)
from tunnel_relay.service import RelayService
from tunnel_relay.vars import RELAY_HISTORY_PATH

router = APIRouter()
history_router = APIRouter(prefix=RELAY_HISTORY_PATH)

logger = logging.getLogger("uvicorn.error")

RELAYED_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]

# Framing headers describe the backend's encoded body, the relayed body is
# re-encoded text so the server computes them again
FRAMING_HEADERS = {
    "connection",
    "content-encoding",
    "content-length",
    "content-type",
    "transfer-encoding",
}


def get_relay_service(request: Request) -> RelayService:
    service = getattr(request.app.state, "relay_service", None)
    if service is None:
        raise HTTPException(
            status_code=503,
            detail="Relay service is not initialized. Forwarding is unavailable.",
        )
    return service


def build_inbound_request(request: Request) -> InboundRequest:
    """Describe the relayed request, attaching the body stream only when one is declared."""
    has_body = (
        "content-length" in request.headers or "transfer-encoding" in request.headers
    )
    # raw_path keeps percent-escapes that would otherwise change the path shape
    raw_path = request.scope.get("raw_path")
    uri = raw_path.decode("latin-1") if raw_path else request.url.path
    if request.url.query:
        uri = f"{uri}?{request.url.query}"
    return InboundRequest(
        method=request.method,
        uri=uri,
        headers=request.headers,
        body=request.stream() if has_body else None,
    )


def declared_charset(content_type: Optional[str]) -> Optional[str]:
    for param in (content_type or "").split(";")[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset":
            return value.strip().strip("\"'") or None
    return None


def encode_body(body: str, content_type: Optional[str]) -> Tuple[bytes, Optional[str]]:
    """
    Encode the relayed text in the charset its content type declares.

    Text the declared charset cannot carry is sent as UTF-8 and the content
    type is rewritten to say so.
    """
    charset = declared_charset(content_type)
    if charset is None:
        return body.encode("utf-8"), content_type
    try:
        return body.encode(charset), content_type
    except (LookupError, UnicodeEncodeError):
        params = [
            p
            for p in content_type.split(";")[1:]
            if p.partition("=")[0].strip().lower() != "charset"
        ]
        media_type = ";".join([content_type.split(";")[0], *params, " charset=utf-8"])
        return body.encode("utf-8"), media_type


def to_http_response(relay_response: RelayResponse) -> Response:
    content, media_type = encode_body(
        relay_response.body, relay_response.content_type
    )
    response = Response(
        content=content,
        status_code=relay_response.status_code,
        media_type=media_type,
    )
    for name, value in relay_response.headers:
        if name.lower() in FRAMING_HEADERS:
            continue
        response.headers.append(name, value)
    return response


@history_router.get("/requests", response_model=RequestHistoryResponse)
async def list_requests(service: RelayService = Depends(get_relay_service)):
    records = service.ledger.snapshot()
    return RequestHistoryResponse(
        requests=[RequestRecordView.from_record(r) for r in records],
        total=len(records),
    )


@history_router.get("/requests/{record_id}", response_model=RequestRecordView)
async def get_request(record_id: str, service: RelayService = Depends(get_relay_service)):
    record = service.ledger.get(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Request {record_id} not found")
    return RequestRecordView.from_record(record)


@router.api_route("/{path:path}", methods=RELAYED_METHODS)
async def relay_all(
    request: Request, path: str, service: RelayService = Depends(get_relay_service)
):
    """Catch-all route handing every relayed request to the forwarding engine."""
    relay_response = await service.handle(build_inbound_request(request))
    return to_http_response(relay_response)
