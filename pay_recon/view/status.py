"""Unified status view across providers for client polling."""

import logging
from dataclasses import dataclass
from typing import Any

from pay_recon.engine.reconciliation import ReconciliationEngine
from pay_recon.engine.state import poll_status
from pay_recon.exceptions import TransactionNotFoundError
from pay_recon.models.payment import PollStatus, Provider, TransactionRecord, TransactionStatus

logger = logging.getLogger(__name__)

PENDING_MESSAGE = "Awaiting provider confirmation"


@dataclass(frozen=True)
class StatusSummary:
    """Provider-agnostic answer to a status poll."""

    status: PollStatus
    message: str
    raw: TransactionRecord

    @property
    def succeeded(self) -> bool:
        return self.status == PollStatus.SUCCEEDED

    @property
    def transaction_id(self) -> str:
        return self.raw.transaction_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "succeeded": self.succeeded,
            "message": self.message,
            "raw": self.raw.to_dict(),
        }

    @classmethod
    def from_record(cls, record: TransactionRecord) -> "StatusSummary":
        status = poll_status(record.status)
        if status == PollStatus.SUCCEEDED:
            message = "Payment completed"
            if record.receipt_ref:
                message = f"Payment completed, receipt {record.receipt_ref}"
        elif status == PollStatus.FAILED:
            message = record.status_detail or "Payment failed"
        else:
            message = PENDING_MESSAGE
        return cls(status=status, message=message, raw=record)


class UnifiedStatusView:
    """Resolve client-visible ids against every provider's records.

    An id is tried first as a ``transaction_id`` alias, then as a
    correlation id in each provider's namespace in ``Provider`` order. The
    first match wins; records of different providers are never merged.
    When an engine is attached, open records are refreshed through
    :meth:`ReconciliationEngine.query_status`, which may pull from the
    provider.
    """

    def __init__(self, store: Any, engine: ReconciliationEngine | None = None) -> None:
        self.store = store
        self.engine = engine

    def lookup(self, transaction_id: str) -> StatusSummary:
        """Return the summary for ``transaction_id``.

        Raises
        ------
        TransactionNotFoundError
            No provider knows the id.
        """
        record = self._resolve(transaction_id)
        if record is None:
            logger.info("Poll for unknown transaction %s", transaction_id)
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")

        if self.engine is not None and not record.is_terminal:
            record = self.engine.query_status(record.provider, record.correlation_id)
        return StatusSummary.from_record(record)

    def find(self, transaction_id: str) -> StatusSummary | None:
        """Like :meth:`lookup`, returning ``None`` instead of raising."""
        try:
            return self.lookup(transaction_id)
        except TransactionNotFoundError:
            return None

    def list(
        self,
        provider: Provider | None = None,
        status: TransactionStatus | None = None,
        subject_id: str | None = None,
    ) -> "list[StatusSummary]":
        """Summaries of stored records, newest first, without provider pulls."""
        return [
            StatusSummary.from_record(record)
            for record in self.store.list(provider=provider, status=status, subject_id=subject_id)
        ]

    def _resolve(self, transaction_id: str) -> TransactionRecord | None:
        record = self.store.find_by_transaction_id(transaction_id)
        if record is not None:
            return record
        for provider in Provider:
            try:
                return self.store.get(provider, transaction_id)
            except TransactionNotFoundError:
                continue
        return None
