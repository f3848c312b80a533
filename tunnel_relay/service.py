import logging
from typing import Iterable, Optional

from tunnel_relay.forwarding import (
    BackendForwarder,
    ForwardingOrchestrator,
    HeaderAdditionMiddleware,
    HeaderRemovalMiddleware,
    LedgerObserver,
    LoggingLedgerObserver,
    MiddlewareChain,
    RequestLedger,
)
from tunnel_relay.models import InboundRequest, RelayResponse
from tunnel_relay.vars import (
    BACKEND_TIMEOUT_SECONDS,
    BACKEND_VERIFY_SSL,
    RELAY_ADD_HEADERS,
    RELAY_BACKEND_URL,
    RELAY_REMOVE_HEADERS,
)

logger = logging.getLogger("uvicorn.error")


def default_middleware(
    add_headers: Iterable[tuple[str, str]] = RELAY_ADD_HEADERS,
    remove_headers: Iterable[str] = RELAY_REMOVE_HEADERS,
) -> list:
    """Built-in middleware, header addition before header removal."""
    return [
        HeaderAdditionMiddleware(add_headers),
        HeaderRemovalMiddleware(remove_headers),
    ]


class RelayService:
    """
    Long-lived owner of the engine state: the request ledger, the frozen
    middleware chain and the shared backend client.
    """

    def __init__(
        self,
        backend_url: str,
        forwarder: BackendForwarder,
        middleware: Iterable = (),
        observers: Iterable[LedgerObserver] = (),
    ):
        self.ledger = RequestLedger(observers)
        self.chain = MiddlewareChain(middleware)
        self.forwarder = forwarder
        self.orchestrator = ForwardingOrchestrator(
            backend_url, forwarder, self.chain, self.ledger
        )

    @classmethod
    def from_environment(
        cls,
        middleware: Optional[Iterable] = None,
        observers: Optional[Iterable[LedgerObserver]] = None,
    ) -> "RelayService":
        forwarder = BackendForwarder.from_settings(
            timeout=BACKEND_TIMEOUT_SECONDS, verify_ssl=BACKEND_VERIFY_SSL
        )
        service = cls(
            RELAY_BACKEND_URL,
            forwarder,
            middleware=default_middleware() if middleware is None else middleware,
            observers=[LoggingLedgerObserver()] if observers is None else observers,
        )
        logger.info(
            f"[Relay] Redirecting to {RELAY_BACKEND_URL} with {len(service.chain)} middleware units"
        )
        return service

    @property
    def backend_url(self) -> str:
        return self.orchestrator.backend_url

    async def handle(self, inbound: InboundRequest) -> RelayResponse:
        return await self.orchestrator.handle(inbound)

    async def aclose(self) -> None:
        await self.forwarder.aclose()
