import logging
from typing import Optional, Dict
from contextlib import contextmanager

from opentelemetry.trace import Tracer

logger = logging.getLogger("uvicorn.error")


@contextmanager
def traced_request(
    tracer: Tracer,
    operation: str,
    method: str,
    url: str,
    start_message: str,
    extra_attrs: Optional[Dict] = None,
):
    """Context manager to create a span, set the relay attributes, and log a start message."""
    with tracer.start_as_current_span(operation) as span:
        span.set_attribute("relay.method", method)
        span.set_attribute("relay.url", url)
        if extra_attrs:
            for k, v in extra_attrs.items():
                span.set_attribute(k, v)
        logger.debug(start_message)
        yield span
