"""Request-forwarding engine: translation, middleware, backend call and ledger."""

from .backend import BackendForwarder, classify_backend_error
from .errors import (
    BackendProtocolError,
    BackendUnreachable,
    ForwardError,
    ForwardingStage,
    ForwardOutcome,
    MiddlewareFailure,
    TranslationFailure,
    UnsupportedMethod,
)
from .ledger import LedgerError, LedgerObserver, LoggingLedgerObserver, RequestLedger
from .middleware import (
    HeaderAdditionMiddleware,
    HeaderRemovalMiddleware,
    MiddlewareChain,
    RelayMiddleware,
)
from .orchestrator import ForwardingOrchestrator

__all__ = [
    "BackendForwarder",
    "BackendProtocolError",
    "BackendUnreachable",
    "ForwardError",
    "ForwardingOrchestrator",
    "ForwardingStage",
    "ForwardOutcome",
    "HeaderAdditionMiddleware",
    "HeaderRemovalMiddleware",
    "LedgerError",
    "LedgerObserver",
    "LoggingLedgerObserver",
    "MiddlewareChain",
    "MiddlewareFailure",
    "RelayMiddleware",
    "RequestLedger",
    "TranslationFailure",
    "UnsupportedMethod",
    "classify_backend_error",
]
