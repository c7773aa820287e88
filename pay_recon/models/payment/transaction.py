"""Transaction record model."""

from dataclasses import dataclass, fields
from datetime import datetime
from decimal import Decimal
from typing import Any

from pay_recon.models.payment.enums import Provider, TransactionStatus
from pay_recon.sinks.serialization import serialize_value

_DATETIME_FIELDS = ("created_at", "updated_at", "terminal_at")


@dataclass(frozen=True)
class TransactionRecord:
    """One payment attempt, correlated with its provider by ``correlation_id``.

    Records are immutable snapshots. The store produces new versions through
    ``dataclasses.replace`` inside its atomic update.
    """

    transaction_id: str  # Caller-visible alias
    correlation_id: str  # Provider-issued, unique per provider
    provider: Provider
    amount: Decimal
    currency: str
    subject_id: str
    reference_id: str
    status: TransactionStatus
    created_at: datetime
    updated_at: datetime
    secondary_id: str | None = None
    status_detail: str | None = None
    receipt_ref: str | None = None
    terminal_at: datetime | None = None
    raw_provider_payload: dict | None = None

    @property
    def key(self) -> tuple[Provider, str]:
        """Store key of this record."""
        return (self.provider, self.correlation_id)

    @property
    def is_terminal(self) -> bool:
        return self.status in (TransactionStatus.SUCCEEDED, TransactionStatus.FAILED)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output (Decimal as string, ISO timestamps)."""
        return {f.name: serialize_value(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransactionRecord":
        """Rebuild a record from :meth:`to_dict` output or a database row."""
        values = dict(data)
        values["provider"] = Provider(values["provider"])
        values["status"] = TransactionStatus(values["status"])
        values["amount"] = Decimal(str(values["amount"]))
        for name in _DATETIME_FIELDS:
            value = values.get(name)
            if isinstance(value, str):
                values[name] = datetime.fromisoformat(value)
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in values.items() if k in known})
