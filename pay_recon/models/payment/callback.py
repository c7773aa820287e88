"""Value objects exchanged with provider adapters and callback handling."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from pay_recon.models.payment.enums import CallbackOutcome, Provider
from pay_recon.models.payment.transaction import TransactionRecord


@dataclass
class InitiationResult:
    """Identifiers a provider returns when it accepts a payment request."""

    correlation_id: str
    secondary_id: str | None = None
    raw: dict = field(default_factory=dict)


@dataclass
class ProviderStatus:
    """Answer of an active status pull."""

    result_code: str | None
    result_message: str | None = None
    amount: Decimal | None = None
    receipt_ref: str | None = None
    settled_at: datetime | None = None
    raw: dict = field(default_factory=dict)


@dataclass
class NormalizedCallback:
    """Provider payload reduced to the fields the engine understands."""

    provider: Provider
    correlation_id: str | None
    secondary_id: str | None
    result_code: str | None
    result_message: str | None
    amount: Decimal | None
    currency: str | None
    receipt_ref: str | None
    raw: dict[str, Any]

    @property
    def has_identifier(self) -> bool:
        return bool(self.correlation_id or self.secondary_id)


@dataclass
class CallbackResult:
    """Outcome of ``apply_callback`` plus the acknowledgement owed to the provider."""

    outcome: CallbackOutcome
    acknowledgement: dict[str, Any]
    record: TransactionRecord | None = None
