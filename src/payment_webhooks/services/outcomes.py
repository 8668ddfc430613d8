"""Typed results of handling one webhook delivery."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from payment_webhooks.events import WebhookEvent
from payment_webhooks.services.policy import Decision


class OutcomeStatus(str, Enum):
    """How a delivery ended."""

    PROCESSED = "processed"
    UNSUPPORTED = "unsupported"
    FAILED = "failed"


class ErrorKind(str, Enum):
    """Why a delivery failed."""

    ENTITY_FETCH_FAILED = "entity_fetch_failed"
    METADATA_MISSING = "metadata_missing"
    ORDER_NOT_FOUND = "order_not_found"
    ORDER_TRANSACTION_NOT_FOUND = "order_transaction_not_found"
    UNIT_OF_WORK_FAILED = "unit_of_work_failed"
    SYNCHRONIZATION_FAILED = "synchronization_failed"
    INVALID_REQUEST = "invalid_request"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class WebhookError:
    """Failure detail. Logged, never sent back to the gateway."""

    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class WebhookOutcome:
    """Result of WebhookService.handle."""

    status: OutcomeStatus
    event: WebhookEvent
    error: WebhookError | None = None
    decision: Decision | None = None
    result: Any = None

    @property
    def ok(self) -> bool:
        return self.status != OutcomeStatus.FAILED

    @property
    def http_status(self) -> int:
        return 200 if self.ok else 500

    @classmethod
    def processed(
        cls,
        event: WebhookEvent,
        decision: Decision | None = None,
        result: Any = None,
    ) -> WebhookOutcome:
        return cls(OutcomeStatus.PROCESSED, event, decision=decision, result=result)

    @classmethod
    def unsupported(cls, event: WebhookEvent) -> WebhookOutcome:
        return cls(OutcomeStatus.UNSUPPORTED, event)

    @classmethod
    def failed(cls, event: WebhookEvent, kind: ErrorKind, message: str) -> WebhookOutcome:
        return cls(OutcomeStatus.FAILED, event, error=WebhookError(kind, message))

    def to_dict(self) -> dict[str, Any]:
        """Full outcome for operators (CLI replay). Not the HTTP body."""
        data: dict[str, Any] = {
            "status": self.status.value,
            "event": self.event.to_dict(),
        }
        if self.error is not None:
            data["error"] = {"kind": self.error.kind.value, "message": self.error.message}
        if self.decision is not None:
            data["decision"] = self.decision.to_dict()
        if self.result is not None:
            data["result"] = self.result
        return data
