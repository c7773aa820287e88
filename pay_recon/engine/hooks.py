"""Observability hook for reconciliation events.

Every notable reconciliation event is logged and published as an
:class:`~pay_recon.models.base.Event` to the configured sinks. A failing
sink is logged and skipped.
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Protocol

from pay_recon.models.base import Event
from pay_recon.models.payment import NormalizedCallback, Provider, TransactionRecord, TransactionStatus

logger = logging.getLogger(__name__)

SOURCE = "pay-recon"


class EventSink(Protocol):
    def write(self, event: Any) -> None: ...


class EventReporter:
    """Build reconciliation events, log them and fan them out to sinks."""

    def __init__(
        self,
        sinks: list[EventSink] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.sinks: list[EventSink] = list(sinks or [])
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._counts: dict[str, int] = {}

    def add_sink(self, sink: EventSink) -> None:
        self.sinks.append(sink)

    @property
    def counts(self) -> dict[str, int]:
        """Events emitted so far, per event type."""
        with self._lock:
            return dict(self._counts)

    def emit(
        self,
        event_type: str,
        provider: Provider,
        subject: str,
        data: dict[str, Any],
        level: int = logging.INFO,
    ) -> Event:
        """Log an event and publish it to every sink."""
        event = Event.create(
            event_type, provider.value, subject, data, event_time=self._clock(), producer=SOURCE
        )
        with self._lock:
            self._counts[event_type] = self._counts.get(event_type, 0) + 1

        logger.log(
            level,
            "%s %s %s",
            event_type,
            provider.value,
            subject,
            extra={"provider": provider.value, "correlation_id": subject, "event_type": event_type},
        )
        for sink in self.sinks:
            try:
                sink.write(event)
            except Exception:
                logger.exception("Sink %s failed to publish %s", type(sink).__name__, event_type)
        return event

    # Convenience builders, one per event type

    def created(self, record: TransactionRecord) -> Event:
        return self.emit(
            "transaction.created",
            record.provider,
            record.correlation_id,
            {"transaction_id": record.transaction_id, "amount": str(record.amount), "currency": record.currency},
        )

    def updated(self, record: TransactionRecord, previous: TransactionStatus, origin: str) -> Event:
        return self.emit(
            "transaction.updated",
            record.provider,
            record.correlation_id,
            {"from": previous.value, "to": record.status.value, "origin": origin},
        )

    def terminal(self, record: TransactionRecord, origin: str) -> Event:
        return self.emit(
            "transaction.terminal",
            record.provider,
            record.correlation_id,
            {
                "transaction_id": record.transaction_id,
                "status": record.status.value,
                "status_detail": record.status_detail,
                "amount": str(record.amount),
                "receipt_ref": record.receipt_ref,
                "origin": origin,
            },
        )

    def duplicate(self, record: TransactionRecord, result_code: str | None) -> Event:
        return self.emit(
            "callback.duplicate",
            record.provider,
            record.correlation_id,
            {"status": record.status.value, "result_code": result_code},
        )

    def inconsistent(
        self, record: TransactionRecord, attempted: TransactionStatus, result_code: str | None, origin: str
    ) -> Event:
        return self.emit(
            "callback.inconsistent",
            record.provider,
            record.correlation_id,
            {
                "recorded": record.status.value,
                "attempted": attempted.value,
                "result_code": result_code,
                "origin": origin,
            },
            level=logging.WARNING,
        )

    def stale(self, record: TransactionRecord, attempted: TransactionStatus) -> Event:
        return self.emit(
            "callback.stale",
            record.provider,
            record.correlation_id,
            {"recorded": record.status.value, "attempted": attempted.value},
        )

    def unmapped(self, provider: Provider, subject: str, result_code: str | None) -> Event:
        return self.emit(
            "callback.unmapped",
            provider,
            subject,
            {"result_code": result_code},
            level=logging.WARNING,
        )

    def orphan(self, callback: NormalizedCallback, reason: str = "unknown correlation id") -> Event:
        return self.emit(
            "callback.orphan",
            callback.provider,
            callback.correlation_id or callback.secondary_id or "",
            {"secondary_id": callback.secondary_id, "result_code": callback.result_code, "reason": reason},
            level=logging.WARNING,
        )

    def buffered(self, callback: NormalizedCallback) -> Event:
        return self.emit(
            "callback.buffered",
            callback.provider,
            callback.correlation_id or callback.secondary_id or "",
            {"secondary_id": callback.secondary_id, "result_code": callback.result_code},
        )

    def malformed(self, provider: Provider, payload: Any) -> Event:
        keys = sorted(payload) if isinstance(payload, dict) else []
        return self.emit(
            "callback.malformed",
            provider,
            "",
            {"payload_keys": keys},
            level=logging.WARNING,
        )

    def callback_error(self, provider: Provider, subject: str, error: Exception) -> Event:
        return self.emit(
            "callback.error",
            provider,
            subject,
            {"error": type(error).__name__, "message": str(error)},
            level=logging.ERROR,
        )

    def pull_failed(self, record: TransactionRecord, error: Exception) -> Event:
        return self.emit(
            "pull.failed",
            record.provider,
            record.correlation_id,
            {"error": type(error).__name__, "message": str(error)},
            level=logging.WARNING,
        )
