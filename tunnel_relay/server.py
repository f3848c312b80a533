from contextlib import asynccontextmanager
from typing import Sequence

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from tunnel_relay.routes import history_router, router
from tunnel_relay.service import RelayService
from tunnel_relay.vars import (
    METRICS_PATH,
    OTLP_ENDPOINT,
    OTLP_HEADERS,
    RELAY_HISTORY_PATH,
    SERVICE_NAME,
)


class FilteringSpanExporter(SpanExporter):
    """
    Wrapper exporter that filters out noisy ASGI body spans, which would
    otherwise add one span per chunk of every relayed body.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        filtered_spans = [
            span
            for span in spans
            if not (
                span.attributes
                and span.attributes.get("asgi.event.type") == "http.response.body"
            )
        ]
        if filtered_spans:
            return self.exporter.export(filtered_spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


@asynccontextmanager
async def lifespan(app: FastAPI):
    service = RelayService.from_environment()
    app.state.relay_service = service
    try:
        yield
    finally:
        await service.aclose()


app = FastAPI(
    lifespan=lifespan,
    openapi_url=f"{RELAY_HISTORY_PATH}/openapi.json" if RELAY_HISTORY_PATH else None,
    docs_url=f"{RELAY_HISTORY_PATH}/docs" if RELAY_HISTORY_PATH else None,
    swagger_ui_oauth2_redirect_url=(
        f"{RELAY_HISTORY_PATH}/docs/oauth2-redirect" if RELAY_HISTORY_PATH else None
    ),
    redoc_url=None,
)
instrumentator = Instrumentator(excluded_handlers=[METRICS_PATH])

instrumentator.instrument(app).expose(app, endpoint=METRICS_PATH)

trace.set_tracer_provider(
    TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
)
tracer_provider = trace.get_tracer_provider()
if OTLP_ENDPOINT:
    otlp_exporter = OTLPSpanExporter(
        endpoint=OTLP_ENDPOINT,
        headers=((OTLP_HEADERS).split(",") if OTLP_HEADERS else None),
    )
    tracer_provider.add_span_processor(
        BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
    )

FastAPIInstrumentor.instrument_app(app)

app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})

# History first, the relay route catches every other path
if RELAY_HISTORY_PATH:
    app.include_router(history_router)
app.include_router(router)
