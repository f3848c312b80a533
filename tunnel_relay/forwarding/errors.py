"""
Failure taxonomy of the forwarding pipeline.

Every stage failure is represented as a ``ForwardError`` subclass. The
orchestrator collects the outcome of the stages in a ``ForwardOutcome`` and
renders it into exactly one relay response.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from tunnel_relay.models import RelayResponse


class ForwardingStage(str, Enum):
    RECEIVED = "received"
    TRANSLATING = "translating"
    PROCESSING = "processing"
    FORWARDING = "forwarding"
    TRANSFORMING = "transforming"
    COMPLETED = "completed"
    FAILED = "failed"


class ForwardError(Exception):
    """Base class for failures raised while forwarding one request."""

    stage: ForwardingStage = ForwardingStage.RECEIVED
    status_code: int = 500

    def __init__(self, message: str, stage: Optional[ForwardingStage] = None):
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage


class UnsupportedMethod(ForwardError):
    stage = ForwardingStage.TRANSLATING

    def __init__(self, method: str):
        super().__init__(
            f"TunnelRelay does not support the HTTP method '{method}' at this time."
        )
        self.method = method


class TranslationFailure(ForwardError):
    stage = ForwardingStage.TRANSLATING


class BackendUnreachable(ForwardError):
    stage = ForwardingStage.FORWARDING


class BackendProtocolError(ForwardError):
    stage = ForwardingStage.FORWARDING


class MiddlewareFailure(ForwardError):
    def __init__(self, unit: str, phase: str, message: str):
        stage = (
            ForwardingStage.PROCESSING
            if phase == "request"
            else ForwardingStage.TRANSFORMING
        )
        super().__init__(f"Middleware '{unit}' failed on {phase}: {message}", stage)
        self.unit = unit
        self.phase = phase


@dataclass
class ForwardOutcome:
    """Result of running the stages for one request: a response or an error."""

    response: Optional[RelayResponse] = None
    error: Optional[ForwardError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, response: RelayResponse) -> "ForwardOutcome":
        return cls(response=response)

    @classmethod
    def failure(cls, error: ForwardError) -> "ForwardOutcome":
        return cls(error=error)
