"""Webhook reconciliation services."""

from payment_webhooks.services.locking_service import KeyedLock, OrderLockManager
from payment_webhooks.services.outcomes import (
    ErrorKind,
    OutcomeStatus,
    WebhookError,
    WebhookOutcome,
)
from payment_webhooks.services.policy import (
    Decision,
    SideEffect,
    decide_invoice,
    decide_refund,
    decide_transaction,
)
from payment_webhooks.services.state_machine import (
    InvalidTransitionError,
    OrderTransactionState,
    OrderTransactionStateMachine,
    TransitionAction,
)
from payment_webhooks.services.webhook_service import WebhookService

__all__ = [
    "KeyedLock",
    "OrderLockManager",
    "ErrorKind",
    "OutcomeStatus",
    "WebhookError",
    "WebhookOutcome",
    "Decision",
    "SideEffect",
    "decide_invoice",
    "decide_refund",
    "decide_transaction",
    "InvalidTransitionError",
    "OrderTransactionState",
    "OrderTransactionStateMachine",
    "TransitionAction",
    "WebhookService",
]
