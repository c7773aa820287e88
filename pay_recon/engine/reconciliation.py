"""Reconciliation engine: correlates provider callbacks with transaction records."""

import logging
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pay_recon.config import EngineConfig
from pay_recon.engine.hooks import EventReporter
from pay_recon.engine.orphans import OrphanBuffer
from pay_recon.engine.state import can_transition, is_terminal, rank, validate_transition
from pay_recon.exceptions import (
    ConfigurationError,
    DuplicateKeyError,
    InconsistentCallbackError,
    MalformedCallbackError,
    TransactionNotFoundError,
)
from pay_recon.logging import bind
from pay_recon.models.payment import (
    CallbackOutcome,
    CallbackResult,
    NormalizedCallback,
    Provider,
    TransactionRecord,
    TransactionStatus,
)
from pay_recon.providers.base import ProviderAdapter
from pay_recon.providers.mappings import (
    acknowledgement_for,
    normalize,
    resolve_status,
    to_amount,
)

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """Register initiations, apply callbacks and answer status queries.

    The engine owns no records. Every read-modify-write goes through
    ``store.update``; provider adapters are always called outside of it, so
    no record lock is ever held across a network round trip.

    Parameters
    ----------
    store
        Transaction store (``InMemoryTransactionStore`` or
        ``PostgresTransactionStore``).
    adapters : Mapping[Provider, ProviderAdapter] | Iterable[ProviderAdapter] | None
        Provider adapters used for initiation and active pulls.
    config : EngineConfig | None
        Engine behaviour; defaults to active pulls on, orphans dropped.
    reporter : EventReporter | None
        Observability hook; a sink-less reporter (log only) by default.
    clock : Callable[[], datetime] | None
        UTC time source for record timestamps.
    """

    def __init__(
        self,
        store: Any,
        adapters: Mapping[Provider, ProviderAdapter] | Iterable[ProviderAdapter] | None = None,
        config: EngineConfig | None = None,
        reporter: EventReporter | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.config = config or EngineConfig()
        self.reporter = reporter or EventReporter()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        if adapters is None:
            self.adapters: dict[Provider, ProviderAdapter] = {}
        elif isinstance(adapters, Mapping):
            self.adapters = dict(adapters)
        else:
            self.adapters = {adapter.provider: adapter for adapter in adapters}

        self.orphans: OrphanBuffer | None = None
        if self.config.buffers_orphans:
            self.orphans = OrphanBuffer(
                self.config.orphan_grace_seconds, max_size=self.config.orphan_buffer_size
            )

    # Initiation

    def initiate(
        self,
        provider: Provider,
        amount: Decimal | int | str,
        currency: str,
        payer_ref: str,
        description: str,
        subject_id: str,
        reference_id: str,
    ) -> TransactionRecord:
        """Ask the provider to start a payment and register the resulting record.

        Raises
        ------
        ProviderRejectedError, ProviderUnavailableError
            The provider refused or could not be reached; nothing is stored.
        """
        adapter = self._adapter(provider)
        value = self._amount(amount)
        result = adapter.initiate(
            value,
            currency,
            payer_ref,
            description,
            self.config.callback_target(provider.value),
        )
        return self.register_initiation(
            provider,
            result.correlation_id,
            result.secondary_id,
            value,
            currency,
            subject_id,
            reference_id,
        )

    def register_initiation(
        self,
        provider: Provider,
        correlation_id: str,
        secondary_id: str | None,
        amount: Decimal | int | str,
        currency: str,
        subject_id: str,
        reference_id: str,
        transaction_id: str | None = None,
    ) -> TransactionRecord:
        """Create the ``CREATED`` record for an accepted provider request.

        Raises
        ------
        DuplicateKeyError
            The provider issued a correlation id that is already registered.
        """
        now = self._clock()
        record = TransactionRecord(
            transaction_id=transaction_id or uuid.uuid4().hex,
            correlation_id=correlation_id,
            provider=provider,
            secondary_id=secondary_id,
            amount=self._amount(amount),
            currency=currency,
            subject_id=subject_id,
            reference_id=reference_id,
            status=TransactionStatus.CREATED,
            created_at=now,
            updated_at=now,
        )
        try:
            self.store.put(record)
        except DuplicateKeyError:
            logger.error(
                "Provider %s issued correlation id %s twice", provider.value, correlation_id
            )
            raise
        self.reporter.created(record)

        if self.orphans is not None:
            held = self.orphans.claim(provider, correlation_id, secondary_id)
            for callback in held:
                logger.info("Replaying buffered callback for %s", correlation_id)
                self._apply(callback, origin="buffer")
            if held:
                return self.store.get(provider, correlation_id)
        return record

    # Callbacks

    def apply_callback(self, provider: Provider, payload: dict[str, Any]) -> CallbackResult:
        """Apply a provider callback and return the acknowledgement it is owed.

        Never raises: orphans, duplicates, conflicts and internal failures are
        reported through the observability hook, and the provider always gets
        its success acknowledgement so it does not retry.
        """
        acknowledgement = acknowledgement_for(provider)
        subject = ""
        try:
            callback = normalize(provider, payload)
            subject = callback.correlation_id or callback.secondary_id or ""

            if self.orphans is not None:
                self.expire_orphans()

            outcome, record = self._apply(callback, origin="callback")
            return CallbackResult(outcome, acknowledgement, record)
        except MalformedCallbackError as e:
            bind(logger, provider=provider.value).warning("Discarding malformed callback: %s", e)
            self.reporter.malformed(provider, payload)
            return CallbackResult(CallbackOutcome.MALFORMED, acknowledgement)
        except Exception as e:
            bind(logger, provider=provider.value, correlation_id=subject or None).exception(
                "Callback processing failed for %s %s", provider.value, subject
            )
            self.reporter.callback_error(provider, subject, e)
            return CallbackResult(CallbackOutcome.ERROR, acknowledgement)

    def expire_orphans(self) -> int:
        """Report buffered callbacks whose grace period elapsed; returns how many."""
        if self.orphans is None:
            return 0
        expired = self.orphans.expire()
        for callback in expired:
            self.reporter.orphan(callback, reason="grace period elapsed")
        return len(expired)

    def _apply(
        self, callback: NormalizedCallback, origin: str
    ) -> tuple[CallbackOutcome, TransactionRecord | None]:
        record = self._resolve(callback)
        if record is None:
            if self.orphans is None:
                self.reporter.orphan(callback)
                return CallbackOutcome.ORPHAN, None
            for evicted in self.orphans.hold(callback):
                self.reporter.orphan(evicted, reason="orphan buffer full")
            # The initiation may have registered and claimed between the miss and the hold
            record = self._resolve(callback)
            if record is None:
                self.reporter.buffered(callback)
                return CallbackOutcome.BUFFERED, None
            return self._replay_held(record, callback, origin)

        target, detail, mapped = resolve_status(
            callback.provider, callback.result_code, callback.result_message
        )
        if not mapped:
            self.reporter.unmapped(callback.provider, record.correlation_id, callback.result_code)

        return self._transition(
            record,
            target,
            detail=detail,
            amount=callback.amount,
            currency=callback.currency,
            receipt_ref=callback.receipt_ref,
            raw=callback.raw,
            result_code=callback.result_code,
            origin=origin,
        )

    def _replay_held(
        self, record: TransactionRecord, callback: NormalizedCallback, origin: str
    ) -> tuple[CallbackOutcome, TransactionRecord | None]:
        """Claim back callbacks held for ``record`` and apply them in arrival order.

        Returns the outcome for ``callback``, or ``BUFFERED`` when another
        thread already claimed it and is applying it.
        """
        outcome: CallbackOutcome = CallbackOutcome.BUFFERED
        result: TransactionRecord | None = None
        for held in self.orphans.claim(record.provider, record.correlation_id, record.secondary_id):
            held_outcome, held_record = self._apply(held, origin=origin if held is callback else "buffer")
            if held is callback:
                outcome, result = held_outcome, held_record
        return outcome, result

    def _resolve(self, callback: NormalizedCallback) -> TransactionRecord | None:
        if callback.correlation_id:
            try:
                return self.store.get(callback.provider, callback.correlation_id)
            except TransactionNotFoundError:
                pass
        if callback.secondary_id:
            return self.store.find_by_secondary_id(callback.provider, callback.secondary_id)
        return None

    def _transition(
        self,
        record: TransactionRecord,
        target: TransactionStatus,
        detail: str | None,
        amount: Decimal | None,
        currency: str | None,
        receipt_ref: str | None,
        raw: dict[str, Any],
        result_code: str | None,
        origin: str,
    ) -> tuple[CallbackOutcome, TransactionRecord]:
        """Move a record towards ``target`` through the store's atomic update."""
        outcome = CallbackOutcome.APPLIED
        previous = record.status

        def mutate(current: TransactionRecord) -> TransactionRecord:
            nonlocal outcome, previous
            previous = current.status

            if is_terminal(current.status):
                # First terminal write wins
                if is_terminal(target) and target != current.status:
                    raise InconsistentCallbackError(
                        f"{current.provider.value} transaction {current.correlation_id} is "
                        f"{current.status.value}, {origin} reports {target.value}"
                    )
                outcome = CallbackOutcome.DUPLICATE
                return current
            if target == current.status:
                outcome = CallbackOutcome.DUPLICATE
                return current
            if rank(target) < rank(current.status):
                outcome = CallbackOutcome.STALE
                return current

            validate_transition(current.status, target)
            now = self._clock()
            changes: dict[str, Any] = {
                "status": target,
                "updated_at": now,
                "raw_provider_payload": raw,
            }
            if amount is not None:
                changes["amount"] = amount
                if currency:
                    changes["currency"] = currency
            if receipt_ref and target == TransactionStatus.SUCCEEDED:
                changes["receipt_ref"] = receipt_ref
            if detail:
                changes["status_detail"] = detail
            if is_terminal(target):
                changes["terminal_at"] = now
            outcome = CallbackOutcome.APPLIED
            return replace(current, **changes)

        try:
            updated = self.store.update(record.provider, record.correlation_id, mutate)
        except InconsistentCallbackError as e:
            bind(
                logger,
                provider=record.provider.value,
                correlation_id=record.correlation_id,
                outcome=CallbackOutcome.INCONSISTENT.value,
            ).warning("Keeping first terminal result: %s", e)
            current = self.store.get(record.provider, record.correlation_id)
            self.reporter.inconsistent(current, target, result_code, origin)
            return CallbackOutcome.INCONSISTENT, current

        if outcome == CallbackOutcome.DUPLICATE:
            self.reporter.duplicate(updated, result_code)
        elif outcome == CallbackOutcome.STALE:
            self.reporter.stale(updated, target)
        elif updated.status != previous:
            self.reporter.updated(updated, previous, origin)
            if updated.is_terminal:
                self.reporter.terminal(updated, origin)
        return outcome, updated

    # Status queries

    def query_status(self, provider: Provider, correlation_id: str) -> TransactionRecord:
        """Return the current record, pulling from the provider if still open.

        At most one provider pull happens per call. Adapter failures are
        reported and the last stored status is returned instead.

        Raises
        ------
        TransactionNotFoundError
            No record exists for ``correlation_id``.
        """
        record = self.store.get(provider, correlation_id)
        if record.is_terminal or not self.config.active_pull:
            return record
        adapter = self.adapters.get(provider)
        if adapter is None:
            return record

        try:
            status = adapter.fetch_status(correlation_id)
        except Exception as e:
            bind(logger, provider=provider.value, correlation_id=correlation_id).warning(
                "Active pull failed: %s", e
            )
            self.reporter.pull_failed(record, e)
            return self.store.get(provider, correlation_id)

        target, detail, mapped = resolve_status(provider, status.result_code, status.result_message)
        if not mapped:
            self.reporter.unmapped(provider, correlation_id, status.result_code)
        if not is_terminal(target) and not can_transition(record.status, target):
            return record

        _, updated = self._transition(
            record,
            target,
            detail=detail,
            amount=to_amount(status.amount),
            currency=None,
            receipt_ref=status.receipt_ref,
            raw=status.raw,
            result_code=status.result_code,
            origin="pull",
        )
        return updated

    def _adapter(self, provider: Provider) -> ProviderAdapter:
        adapter = self.adapters.get(provider)
        if adapter is None:
            raise ConfigurationError(f"No adapter registered for {provider.value}")
        return adapter

    @staticmethod
    def _amount(amount: Decimal | int | str) -> Decimal:
        value = to_amount(amount)
        if value is None:
            raise ValueError(f"Amount must be numeric, got {amount!r}")
        return value
