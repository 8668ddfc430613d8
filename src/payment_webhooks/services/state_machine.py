"""Order transaction state machine with transition validation."""

from __future__ import annotations

from enum import Enum


class OrderTransactionState(str, Enum):
    """Order transaction state values."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    REFUNDED = "refunded"
    REFUNDED_PARTIALLY = "refunded_partially"
    CANCELLED = "cancelled"


class TransitionAction(str, Enum):
    """Named transitions the webhook core may request."""

    PROCESS = "process"
    PAID = "paid"
    CANCEL = "cancel"
    REFUND = "refund"
    REFUND_PARTIALLY = "refund_partially"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_state: str, action: str, reason: str | None = None):
        self.from_state = from_state
        self.action = action
        self.reason = reason
        msg = f"Invalid transition '{action}' from state '{from_state}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class OrderTransactionStateMachine:
    """State machine for order transaction transitions.

    Allowed transitions:
    - process: open → in_progress
    - paid: open | in_progress | partially_paid → paid
    - cancel: open | in_progress | partially_paid → cancelled
    - refund: paid | partially_paid → refunded
    - refund_partially: paid | partially_paid → refunded_partially
    """

    # {action: {from_state: to_state}}
    VALID_TRANSITIONS: dict[str, dict[str, str]] = {
        TransitionAction.PROCESS: {
            OrderTransactionState.OPEN: OrderTransactionState.IN_PROGRESS,
        },
        TransitionAction.PAID: {
            OrderTransactionState.OPEN: OrderTransactionState.PAID,
            OrderTransactionState.IN_PROGRESS: OrderTransactionState.PAID,
            OrderTransactionState.PARTIALLY_PAID: OrderTransactionState.PAID,
        },
        TransitionAction.CANCEL: {
            OrderTransactionState.OPEN: OrderTransactionState.CANCELLED,
            OrderTransactionState.IN_PROGRESS: OrderTransactionState.CANCELLED,
            OrderTransactionState.PARTIALLY_PAID: OrderTransactionState.CANCELLED,
        },
        TransitionAction.REFUND: {
            OrderTransactionState.PAID: OrderTransactionState.REFUNDED,
            OrderTransactionState.PARTIALLY_PAID: OrderTransactionState.REFUNDED,
        },
        TransitionAction.REFUND_PARTIALLY: {
            OrderTransactionState.PAID: OrderTransactionState.REFUNDED_PARTIALLY,
            OrderTransactionState.PARTIALLY_PAID: OrderTransactionState.REFUNDED_PARTIALLY,
        },
    }

    # Webhooks never move a transaction out of these, refunds of paid excepted
    FINAL_STATES = frozenset(
        {
            OrderTransactionState.CANCELLED,
            OrderTransactionState.PAID,
            OrderTransactionState.REFUNDED,
        }
    )

    # States from which a successful gateway refund is reflected locally
    REFUNDABLE_STATES = frozenset(
        {
            OrderTransactionState.PAID,
            OrderTransactionState.PARTIALLY_PAID,
        }
    )

    @classmethod
    def can_apply(cls, from_state: str, action: str) -> bool:
        """Check if an action is valid from a state."""
        return from_state in cls.VALID_TRANSITIONS.get(action, {})

    @classmethod
    def target_state(cls, from_state: str, action: str) -> str:
        """Return the state an action leads to, raising InvalidTransitionError if invalid."""
        targets = cls.VALID_TRANSITIONS.get(action)
        if targets is None:
            raise InvalidTransitionError(from_state, action, "unknown action")
        if from_state not in targets:
            raise InvalidTransitionError(from_state, action)
        return str(OrderTransactionState(targets[from_state]).value)

    @classmethod
    def is_final(cls, state: str) -> bool:
        """Check if a state is final for webhook-driven transitions."""
        return state in cls.FINAL_STATES

    @classmethod
    def is_refundable(cls, state: str) -> bool:
        """Check if a successful refund may be applied in this state."""
        return state in cls.REFUNDABLE_STATES

    @classmethod
    def get_available_actions(cls, state: str) -> list[str]:
        """Get list of actions valid from a state."""
        return [
            TransitionAction(action).value
            for action, targets in cls.VALID_TRANSITIONS.items()
            if state in targets
        ]
