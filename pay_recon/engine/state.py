"""Transaction state machine.

``CREATED -> PENDING -> (ACKNOWLEDGED ->)? SUCCEEDED | FAILED``

Statuses only move forward. Skipping intermediate states is allowed (a
record may go straight from ``CREATED`` to ``SUCCEEDED``); moving back, or
leaving a terminal state, is not.
"""

from pay_recon.exceptions import InvalidTransitionError
from pay_recon.models.payment import PollStatus, TransactionStatus

TERMINAL_STATES = frozenset({TransactionStatus.SUCCEEDED, TransactionStatus.FAILED})

_RANK = {
    TransactionStatus.CREATED: 0,
    TransactionStatus.PENDING: 1,
    TransactionStatus.ACKNOWLEDGED: 2,
    TransactionStatus.SUCCEEDED: 3,
    TransactionStatus.FAILED: 3,
}


def is_terminal(status: TransactionStatus) -> bool:
    return status in TERMINAL_STATES


def rank(status: TransactionStatus) -> int:
    """Position of ``status`` along the state machine."""
    return _RANK[status]


def can_transition(current: TransactionStatus, target: TransactionStatus) -> bool:
    """Whether ``current -> target`` moves strictly forward.

    Re-entering the same non-terminal status is not a transition and
    returns False as well.
    """
    if is_terminal(current):
        return False
    return rank(target) > rank(current)


def validate_transition(current: TransactionStatus, target: TransactionStatus) -> None:
    """Raise :class:`InvalidTransitionError` unless ``current -> target`` is allowed."""
    if not can_transition(current, target):
        raise InvalidTransitionError(f"Cannot move from {current.value} to {target.value}")


def poll_status(status: TransactionStatus) -> PollStatus:
    """Collapse a transaction status to the three states clients see."""
    if status == TransactionStatus.SUCCEEDED:
        return PollStatus.SUCCEEDED
    if status == TransactionStatus.FAILED:
        return PollStatus.FAILED
    return PollStatus.PENDING
