"""Reconciliation policy: gateway state + local state → local transitions.

Every function here is pure. Given the same event type, gateway state, local
state, amounts and configuration flag it returns the same Decision, which is
what makes re-delivered webhooks safe to apply again.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from payment_webhooks.gateway.base import (
    RefundState,
    TransactionInvoiceState,
    TransactionState,
)
from payment_webhooks.services.state_machine import (
    OrderTransactionState,
    OrderTransactionStateMachine,
    TransitionAction,
)

TRANSACTION_FAILED_STATES = frozenset(
    {
        TransactionState.DECLINE,
        TransactionState.FAILED,
        TransactionState.VOIDED,
    }
)

TRANSACTION_SUCCESS_STATES = frozenset(
    {
        TransactionState.AUTHORIZED,
        TransactionState.COMPLETED,
        TransactionState.FULFILL,
    }
)

INVOICE_PAID_STATES = frozenset(
    {
        TransactionInvoiceState.NOT_APPLICABLE,
        TransactionInvoiceState.PAID,
    }
)


class SideEffect(str, Enum):
    """Best-effort follow-ups run after the state change is committed."""

    SEND_CONFIRMATION_MAIL = "send_confirmation_mail"
    UNHOLD_DELIVERY = "unhold_delivery"


@dataclass(frozen=True)
class Decision:
    """Outcome of a policy evaluation."""

    from_state: str
    actions: tuple[TransitionAction, ...] = ()
    side_effects: tuple[SideEffect, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def target_state(self) -> str:
        """State the local transaction ends in after applying all actions."""
        state = self.from_state
        for action in self.actions:
            state = OrderTransactionStateMachine.target_state(state, action)
        return state

    @property
    def changes_state(self) -> bool:
        return bool(self.actions)

    def to_dict(self) -> dict[str, object]:
        return {
            "from_state": self.from_state,
            "to_state": self.target_state,
            "actions": [a.value for a in self.actions],
            "side_effects": [s.value for s in self.side_effects],
            "warnings": list(self.warnings),
        }


def plan_actions(
    from_state: str, actions: list[TransitionAction]
) -> tuple[tuple[TransitionAction, ...], tuple[str, ...]]:
    """Keep the actions the state machine admits, in order.

    Rejected actions are dropped with a warning so that applying a plan can
    never raise InvalidTransitionError.
    """
    planned: list[TransitionAction] = []
    warnings: list[str] = []
    state = from_state
    for action in actions:
        if OrderTransactionStateMachine.can_apply(state, action):
            planned.append(action)
            state = OrderTransactionStateMachine.target_state(state, action)
        else:
            warnings.append(f"Skipped '{action.value}' from state '{state}'")
    return tuple(planned), tuple(warnings)


def decide_refund(
    local_state: str,
    refund_state: str,
    refund_amount: Decimal,
    total_amount: Decimal,
) -> Decision:
    """Decide how a gateway refund affects the local transaction."""
    if refund_state != RefundState.SUCCESSFUL:
        return Decision(from_state=local_state)
    if not OrderTransactionStateMachine.is_refundable(local_state):
        return Decision(from_state=local_state)

    if refund_amount == total_amount:
        action = TransitionAction.REFUND
    elif refund_amount < total_amount:
        action = TransitionAction.REFUND_PARTIALLY
    else:
        return Decision(
            from_state=local_state,
            warnings=(
                f"Refund amount {refund_amount} exceeds transaction total {total_amount}",
            ),
        )

    actions, warnings = plan_actions(local_state, [action])
    return Decision(from_state=local_state, actions=actions, warnings=warnings)


def decide_transaction(
    local_state: str,
    transaction_state: str,
    email_enabled: bool,
) -> Decision:
    """Decide how a gateway transaction update affects the local transaction."""
    requested: list[TransitionAction] = []
    if (
        not OrderTransactionStateMachine.is_final(local_state)
        and transaction_state in TRANSACTION_FAILED_STATES
    ):
        requested.append(TransitionAction.CANCEL)

    side_effects: tuple[SideEffect, ...] = ()
    if email_enabled and transaction_state in TRANSACTION_SUCCESS_STATES:
        side_effects = (SideEffect.SEND_CONFIRMATION_MAIL,)

    actions, warnings = plan_actions(local_state, requested)
    return Decision(
        from_state=local_state,
        actions=actions,
        side_effects=side_effects,
        warnings=warnings,
    )


def decide_invoice(local_state: str, invoice_state: str) -> Decision:
    """Decide how a gateway invoice update affects the local transaction."""
    if OrderTransactionStateMachine.is_final(local_state):
        return Decision(from_state=local_state)

    if invoice_state == TransactionInvoiceState.DERECOGNIZED:
        actions, warnings = plan_actions(local_state, [TransitionAction.CANCEL])
        return Decision(from_state=local_state, actions=actions, warnings=warnings)

    if invoice_state in INVOICE_PAID_STATES:
        requested = [TransitionAction.PAID]
        if local_state == OrderTransactionState.OPEN:
            requested.insert(0, TransitionAction.PROCESS)
        actions, warnings = plan_actions(local_state, requested)
        side_effects: tuple[SideEffect, ...] = ()
        if actions:
            side_effects = (SideEffect.UNHOLD_DELIVERY,)
        return Decision(
            from_state=local_state,
            actions=actions,
            side_effects=side_effects,
            warnings=warnings,
        )

    return Decision(from_state=local_state)
