import logging
import threading
from unittest.mock import Mock

import pytest

from tunnel_relay.forwarding.ledger import (
    LedgerError,
    LoggingLedgerObserver,
    RequestLedger,
)
from tunnel_relay.models import ACTIVE, RecordOutcome, RecordState, RequestRecord


class CollectingObserver:
    def __init__(self):
        self.events = []

    def on_record_added(self, record):
        self.events.append(("added", record.record_id, record.status_code))

    def on_record_updated(self, record):
        self.events.append(("updated", record.record_id, record.status_code))


class BrokenObserver:
    def on_record_added(self, record):
        raise RuntimeError("observer broke")

    def on_record_updated(self, record):
        raise RuntimeError("observer broke")


def _record(url="/foo") -> RequestRecord:
    return RequestRecord(method="GET", url=url)


class TestRequestLedger:
    def test_record_inserts_at_head_and_notifies(self):
        observer = CollectingObserver()
        ledger = RequestLedger([observer])
        first, second = _record("/1"), _record("/2")

        ledger.record(first)
        ledger.record(second)

        assert ledger.snapshot() == [second, first]
        assert observer.events == [
            ("added", first.record_id, ACTIVE),
            ("added", second.record_id, ACTIVE),
        ]

    def test_new_record_is_active(self):
        ledger = RequestLedger()
        entry = ledger.record(_record())

        assert entry.status_code == ACTIVE
        assert entry.duration == ACTIVE
        assert entry.state is RecordState.ACTIVE
        assert entry.elapsed_ms is None

    def test_finalize_mutates_in_place(self):
        observer = CollectingObserver()
        ledger = RequestLedger([observer])
        entry = ledger.record(_record())

        ledger.finalize(
            entry,
            RecordOutcome(
                status_code="200",
                elapsed_ms=12.7,
                response_body="ok",
                response_headers=[("x-a", "1")],
            ),
        )

        assert ledger.snapshot()[0] is entry
        assert entry.status_code == "200"
        assert entry.duration == "12ms"
        assert entry.elapsed_ms == 12.7
        assert entry.response_body == "ok"
        assert entry.response_headers == [("x-a", "1")]
        assert entry.state is RecordState.COMPLETED
        assert entry.exception_hit is False
        assert observer.events[-1] == ("updated", entry.record_id, "200")

    def test_finalize_failure_state(self):
        ledger = RequestLedger()
        entry = ledger.record(_record())

        ledger.finalize(
            entry,
            RecordOutcome(status_code="Exception!!", elapsed_ms=1, exception_hit=True),
        )

        assert entry.state is RecordState.FAILED
        assert entry.exception_hit is True

    def test_finalize_only_once(self):
        ledger = RequestLedger()
        entry = ledger.record(_record())
        ledger.finalize(entry, RecordOutcome(status_code="200", elapsed_ms=1))

        with pytest.raises(LedgerError):
            ledger.finalize(entry, RecordOutcome(status_code="500", elapsed_ms=2))

        assert entry.status_code == "200"

    def test_negative_elapsed_clamped(self):
        ledger = RequestLedger()
        entry = ledger.record(_record())

        ledger.finalize(entry, RecordOutcome(status_code="200", elapsed_ms=-5))

        assert entry.elapsed_ms == 0.0
        assert entry.duration == "0ms"

    def test_broken_observer_does_not_break_ledger(self):
        collecting = CollectingObserver()
        ledger = RequestLedger([BrokenObserver(), collecting])

        entry = ledger.record(_record())
        ledger.finalize(entry, RecordOutcome(status_code="200", elapsed_ms=1))

        assert len(ledger) == 1
        assert [e[0] for e in collecting.events] == ["added", "updated"]

    def test_get_by_id(self):
        ledger = RequestLedger()
        entry = ledger.record(_record())

        assert ledger.get(entry.record_id) is entry
        assert ledger.get("missing") is None

    def test_add_observer(self):
        ledger = RequestLedger()
        observer = CollectingObserver()

        ledger.add_observer(observer)
        entry = ledger.record(_record())

        assert observer.events == [("added", entry.record_id, ACTIVE)]

    def test_concurrent_record_and_finalize(self):
        observer = CollectingObserver()
        ledger = RequestLedger([observer])
        count = 50
        barrier = threading.Barrier(count)
        entries = [_record(f"/{i}") for i in range(count)]

        def worker(index):
            entry = entries[index]
            barrier.wait()
            ledger.record(entry)
            ledger.finalize(
                entry,
                RecordOutcome(
                    status_code=str(200 + index),
                    elapsed_ms=index,
                    response_body=f"body-{index}",
                ),
            )

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        snapshot = ledger.snapshot()
        assert len(snapshot) == count
        assert {r.record_id for r in snapshot} == {e.record_id for e in entries}
        for record in snapshot:
            index = int(record.url.lstrip("/"))
            assert record.status_code == str(200 + index)
            assert record.response_body == f"body-{index}"
            assert record.state is RecordState.COMPLETED
        assert len([e for e in observer.events if e[0] == "added"]) == count
        assert len([e for e in observer.events if e[0] == "updated"]) == count


class TestLoggingLedgerObserver:
    def test_logs_completion(self):
        log = Mock(spec=logging.Logger)
        observer = LoggingLedgerObserver(log)
        record = _record()
        record.status_code = "200"
        record.duration = "3ms"

        observer.on_record_updated(record)

        log.log.assert_called_once_with(logging.INFO, "[Ledger] GET /foo -> 200 (3ms)")

    def test_failures_logged_as_warning(self):
        log = Mock(spec=logging.Logger)
        observer = LoggingLedgerObserver(log)
        record = _record()
        record.exception_hit = True

        observer.on_record_updated(record)

        assert log.log.call_args[0][0] == logging.WARNING

    def test_added_masks_credentials(self):
        log = Mock(spec=logging.Logger)
        observer = LoggingLedgerObserver(log)
        record = RequestRecord(
            method="GET",
            url="/foo",
            request_headers=[("Authorization", "Bearer secret-token")],
        )

        observer.on_record_added(record)

        message = log.debug.call_args[0][0]
        assert "secret-token" not in message
        assert "Bear****" in message
