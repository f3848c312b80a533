"""
Observable log of every relayed request.

Records are kept most recent first. One lock guards the collection and the
observer notifications; it is never held while a request is being forwarded.
"""

import logging
import threading
from typing import Iterable, Optional, Protocol

from tunnel_relay.models import RecordOutcome, RequestRecord
from tunnel_relay.utils import mask_headers
from tunnel_relay.utils.exception_logging import log_exception_with_details

logger = logging.getLogger("uvicorn.error")


class LedgerError(Exception):
    pass


class LedgerObserver(Protocol):
    """
    Receives ledger changes. Called with the ledger lock held, so
    implementations must return promptly and must not call back into the
    ledger or the forwarding engine.
    """

    def on_record_added(self, record: RequestRecord) -> None:  # pragma: no cover - interface
        ...

    def on_record_updated(self, record: RequestRecord) -> None:  # pragma: no cover - interface
        ...


class LoggingLedgerObserver:
    """Writes one log line per relayed request once it reaches a terminal state."""

    def __init__(self, log: logging.Logger = logger, level: int = logging.INFO):
        self._log = log
        self._level = level

    def on_record_added(self, record: RequestRecord) -> None:
        self._log.debug(
            f"[Ledger] {record.method} {record.url} received. Headers: {mask_headers(record.request_headers)}"
        )

    def on_record_updated(self, record: RequestRecord) -> None:
        level = logging.WARNING if record.exception_hit else self._level
        self._log.log(
            level,
            f"[Ledger] {record.method} {record.url} -> {record.status_code} ({record.duration})",
        )


class RequestLedger:
    def __init__(self, observers: Iterable[LedgerObserver] = ()):
        self._lock = threading.Lock()
        self._records: list[RequestRecord] = []
        self._observers: list[LedgerObserver] = list(observers)

    def add_observer(self, observer: LedgerObserver) -> None:
        with self._lock:
            self._observers.append(observer)

    def record(self, entry: RequestRecord) -> RequestRecord:
        """Publish a new in-flight record at the head of the ledger."""
        with self._lock:
            self._records.insert(0, entry)
            self._notify("on_record_added", entry)
        return entry

    def finalize(self, entry: RequestRecord, outcome: RecordOutcome) -> RequestRecord:
        """
        Move ``entry`` to its terminal state and publish the change.

        Raises:
            LedgerError: The record was already finalized.
        """
        if not entry.is_active:
            raise LedgerError(
                f"Request record {entry.record_id} is already {entry.state.value}"
            )

        # Field updates belong to the owning request, only publication is shared
        entry.status_code = outcome.status_code
        entry.elapsed_ms = max(0.0, outcome.elapsed_ms)
        entry.duration = f"{int(entry.elapsed_ms)}ms"
        entry.response_body = outcome.response_body
        entry.response_headers = list(outcome.response_headers)
        entry.exception_hit = outcome.exception_hit
        entry.state = outcome.state

        with self._lock:
            self._notify("on_record_updated", entry)
        return entry

    def snapshot(self) -> list[RequestRecord]:
        with self._lock:
            return list(self._records)

    def get(self, record_id: str) -> Optional[RequestRecord]:
        with self._lock:
            for record in self._records:
                if record.record_id == record_id:
                    return record
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _notify(self, event: str, entry: RequestRecord) -> None:
        for observer in self._observers:
            try:
                getattr(observer, event)(entry)
            except Exception as e:
                log_exception_with_details(
                    logger, f"[Ledger] Observer {type(observer).__name__} failed.", e
                )
