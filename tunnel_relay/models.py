import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterable, List, Optional, Tuple, Union

from pydantic import BaseModel

HeaderPairs = List[Tuple[str, str]]

ACTIVE = "Active"
EXCEPTION_STATUS = "Exception!!"


class RecordState(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


def _timestamp_now() -> str:
    return datetime.now().astimezone().isoformat()


def _new_record_id() -> str:
    return uuid.uuid4().hex


@dataclass
class RequestRecord:
    """
    Bookkeeping entry for one relayed request.

    Attributes:
        method: Inbound verb as received.
        url: Path and query relative to the exposed root, routing segment removed.
        timestamp_received: ISO-8601 local time the request arrived.
        request_headers: Ordered (name, value) pairs, duplicates kept.
        response_headers: Ordered (name, value) pairs, filled on completion.
        request_body: Text body forwarded to the backend, "" when absent.
        response_body: Backend body on success, diagnostic text on failure.
        status_code: "Active" while in flight, the HTTP status once complete,
            "Exception!!" when forwarding failed.
        duration: "Active" while in flight, "<n>ms" once terminal.
        elapsed_ms: Numeric duration, None while in flight.
        exception_hit: Set when forwarding failed.
        state: Lifecycle state, moves out of ACTIVE exactly once.
    """

    method: str
    url: str
    request_headers: HeaderPairs = field(default_factory=list)
    response_headers: HeaderPairs = field(default_factory=list)
    request_body: str = ""
    response_body: str = ""
    status_code: str = ACTIVE
    duration: str = ACTIVE
    elapsed_ms: Optional[float] = None
    exception_hit: bool = False
    state: RecordState = RecordState.ACTIVE
    timestamp_received: str = field(default_factory=_timestamp_now)
    record_id: str = field(default_factory=_new_record_id)

    @property
    def is_active(self) -> bool:
        return self.state is RecordState.ACTIVE


@dataclass
class RecordOutcome:
    """Terminal values written onto a RequestRecord by the ledger."""

    status_code: str
    elapsed_ms: float
    response_body: str = ""
    response_headers: HeaderPairs = field(default_factory=list)
    exception_hit: bool = False

    @property
    def state(self) -> RecordState:
        return RecordState.FAILED if self.exception_hit else RecordState.COMPLETED


InboundBody = Union[bytes, str, AsyncIterable[bytes]]


@dataclass
class InboundRequest:
    """An already-parsed request handed over by the relay transport."""

    method: str
    uri: str
    headers: Any = field(default_factory=list)
    body: Optional[InboundBody] = None


@dataclass
class RelayResponse:
    """Response written back to the relay channel."""

    status_code: int
    body: str = ""
    content_type: Optional[str] = None
    headers: HeaderPairs = field(default_factory=list)


class RequestRecordView(BaseModel):
    """Read-only view of a RequestRecord for the history API."""

    record_id: str
    method: str
    url: str
    timestamp_received: str
    request_headers: List[Tuple[str, str]]
    response_headers: List[Tuple[str, str]]
    request_body: str
    response_body: str
    status_code: str
    duration: str
    elapsed_ms: Optional[float] = None
    exception_hit: bool
    state: RecordState

    @classmethod
    def from_record(cls, record: RequestRecord) -> "RequestRecordView":
        return cls(
            record_id=record.record_id,
            method=record.method,
            url=record.url,
            timestamp_received=record.timestamp_received,
            request_headers=list(record.request_headers),
            response_headers=list(record.response_headers),
            request_body=record.request_body,
            response_body=record.response_body,
            status_code=record.status_code,
            duration=record.duration,
            elapsed_ms=record.elapsed_ms,
            exception_hit=record.exception_hit,
            state=record.state,
        )


class RequestHistoryResponse(BaseModel):
    """Ledger snapshot, most recent request first."""

    requests: List[RequestRecordView]
    total: int
