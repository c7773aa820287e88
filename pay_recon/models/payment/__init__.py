"""Payment domain models."""

from pay_recon.models.payment.callback import (
    CallbackResult,
    InitiationResult,
    NormalizedCallback,
    ProviderStatus,
)
from pay_recon.models.payment.enums import (
    CallbackOutcome,
    PollStatus,
    Provider,
    TransactionStatus,
)
from pay_recon.models.payment.transaction import TransactionRecord

__all__ = [
    "CallbackOutcome",
    "CallbackResult",
    "InitiationResult",
    "NormalizedCallback",
    "PollStatus",
    "Provider",
    "ProviderStatus",
    "TransactionRecord",
    "TransactionStatus",
]
