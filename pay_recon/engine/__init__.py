"""Reconciliation engine, state machine and observability hook."""

from pay_recon.engine.hooks import EventReporter
from pay_recon.engine.orphans import OrphanBuffer
from pay_recon.engine.reconciliation import ReconciliationEngine
from pay_recon.engine.state import (
    TERMINAL_STATES,
    can_transition,
    is_terminal,
    poll_status,
    rank,
    validate_transition,
)

__all__ = [
    "EventReporter",
    "OrphanBuffer",
    "ReconciliationEngine",
    "TERMINAL_STATES",
    "can_transition",
    "is_terminal",
    "poll_status",
    "rank",
    "validate_transition",
]
