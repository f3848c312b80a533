import logging
import time

from opentelemetry import trace

from tunnel_relay.models import (
    EXCEPTION_STATUS,
    InboundRequest,
    RecordOutcome,
    RelayResponse,
    RequestRecord,
)
from tunnel_relay.utils.exception_logging import (
    format_exception_details,
    log_exception_with_details,
)
from tunnel_relay.utils.traced_requests import traced_request
from .backend import BackendForwarder, classify_backend_error
from .errors import (
    ForwardError,
    ForwardingStage,
    ForwardOutcome,
    TranslationFailure,
)
from .headers import to_header_pairs
from .ledger import RequestLedger
from .middleware import MiddlewareChain
from .request_translator import strip_routing_segment, translate_request
from .response_translator import translate_response

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)

FAILURE_CONTENT_TYPE = "text/plain; charset=utf-8"


def _relative_url(uri: str) -> str:
    try:
        return strip_routing_segment(uri)
    except TranslationFailure:
        return uri


def _safe_header_pairs(headers) -> list[tuple[str, str]]:
    try:
        return to_header_pairs(headers)
    except (TypeError, ValueError):
        return []


class ForwardingOrchestrator:
    """
    Per-request entry point and error boundary of the forwarding engine.

    ``handle`` always returns exactly one response and always finalizes the
    request's ledger entry, whatever happens in between.
    """

    def __init__(
        self,
        backend_url: str,
        forwarder: BackendForwarder,
        chain: MiddlewareChain,
        ledger: RequestLedger,
    ):
        self.backend_url = backend_url
        self.forwarder = forwarder
        self.chain = chain
        self.ledger = ledger

    async def handle(self, inbound: InboundRequest) -> RelayResponse:
        started = time.perf_counter()
        record = self.ledger.record(
            RequestRecord(
                method=inbound.method,
                url=_relative_url(inbound.uri),
                request_headers=_safe_header_pairs(inbound.headers),
            )
        )

        outcome = None
        try:
            with traced_request(
                tracer,
                operation="relay_forward",
                method=inbound.method,
                url=record.url,
                start_message=f"[Relay] Forwarding {inbound.method} {record.url}",
            ) as span:
                outcome = await self.forward(inbound, record)
                if outcome.ok:
                    span.set_attribute("relay.status_code", outcome.response.status_code)
                else:
                    span.set_attribute("relay.error", type(outcome.error).__name__)
                    span.set_attribute("relay.stage", outcome.error.stage.value)
        finally:
            if outcome is None:
                # Cancelled while in flight
                outcome = ForwardOutcome.failure(
                    ForwardError("Request was cancelled before completion.")
                )
            response = self._conclude(record, outcome, started)

        return response

    async def forward(
        self, inbound: InboundRequest, record: RequestRecord
    ) -> ForwardOutcome:
        """
        Run the stages for one request and return their outcome.

        Stage failures are captured as ``ForwardError`` values instead of
        escaping; the request body is kept on ``record`` as soon as it is read.
        """
        stage = ForwardingStage.TRANSLATING
        try:
            translated = await translate_request(inbound, self.backend_url)
            record.request_body = translated.body

            stage = ForwardingStage.PROCESSING
            request = await self.chain.apply_request(translated.request)

            stage = ForwardingStage.FORWARDING
            try:
                response = await self.forwarder.send(request)
            except Exception as e:
                raise classify_backend_error(e) from e

            stage = ForwardingStage.TRANSFORMING
            response = await self.chain.apply_response(response)
            # A unit may hand back a response whose body was never read
            await response.aread()
            return ForwardOutcome.success(translate_response(response))
        except ForwardError as e:
            return ForwardOutcome.failure(e)
        except Exception as e:
            error = ForwardError(f"{type(e).__name__}: {e}", stage)
            error.__cause__ = e
            return ForwardOutcome.failure(error)

    def _conclude(
        self, record: RequestRecord, outcome: ForwardOutcome, started: float
    ) -> RelayResponse:
        if outcome.ok:
            response = outcome.response
            record_outcome = RecordOutcome(
                status_code=str(response.status_code),
                elapsed_ms=(time.perf_counter() - started) * 1000,
                response_body=response.body,
                response_headers=response.headers,
            )
        else:
            error = outcome.error
            log_exception_with_details(
                logger,
                f"[Relay] {record.method} {record.url} failed while {error.stage.value}.",
                error,
            )
            diagnostic = format_exception_details(error)
            response = RelayResponse(
                status_code=error.status_code,
                body=diagnostic,
                content_type=FAILURE_CONTENT_TYPE,
            )
            record_outcome = RecordOutcome(
                status_code=EXCEPTION_STATUS,
                elapsed_ms=(time.perf_counter() - started) * 1000,
                response_body=diagnostic,
                exception_hit=True,
            )

        self.ledger.finalize(record, record_outcome)
        return response
