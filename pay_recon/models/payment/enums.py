"""Enumeration types for payment reconciliation."""

from enum import Enum


class Provider(str, Enum):
    MOBILE_MONEY = "MOBILE_MONEY"
    CARD_WALLET = "CARD_WALLET"


class TransactionStatus(str, Enum):
    CREATED = "CREATED"
    PENDING = "PENDING"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class PollStatus(str, Enum):
    """Provider-agnostic status exposed to polling clients."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class CallbackOutcome(str, Enum):
    APPLIED = "APPLIED"
    DUPLICATE = "DUPLICATE"
    INCONSISTENT = "INCONSISTENT"
    STALE = "STALE"
    ORPHAN = "ORPHAN"
    BUFFERED = "BUFFERED"
    MALFORMED = "MALFORMED"
    ERROR = "ERROR"
