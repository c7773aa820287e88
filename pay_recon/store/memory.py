"""In-memory transaction store with per-key locking."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

from pay_recon.exceptions import (
    DuplicateKeyError,
    InvalidTransitionError,
    TransactionNotFoundError,
)
from pay_recon.models.payment import Provider, TransactionRecord, TransactionStatus

Key = tuple[Provider, str]
Mutator = Callable[[TransactionRecord], TransactionRecord]


class RecordListing:
    """Lazy, restartable view over the records of a store.

    Nothing is read until iteration starts; every new iteration takes a
    fresh snapshot, so the listing can be consumed more than once.
    """

    def __init__(
        self,
        snapshot: Callable[[], list[TransactionRecord]],
        provider: Provider | None = None,
        status: TransactionStatus | None = None,
        subject_id: str | None = None,
    ) -> None:
        self._snapshot = snapshot
        self.provider = provider
        self.status = status
        self.subject_id = subject_id

    def matches(self, record: TransactionRecord) -> bool:
        if self.provider is not None and record.provider != self.provider:
            return False
        if self.status is not None and record.status != self.status:
            return False
        if self.subject_id is not None and record.subject_id != self.subject_id:
            return False
        return True

    def __iter__(self) -> Iterator[TransactionRecord]:
        records = sorted(self._snapshot(), key=lambda r: r.created_at, reverse=True)
        return (r for r in records if self.matches(r))


@dataclass
class InMemoryTransactionStore:
    """Dict-backed store; the canonical owner of every transaction record."""

    _records: dict[Key, TransactionRecord] = field(default_factory=dict)

    # Secondary indexes
    _by_secondary_id: dict[Key, str] = field(default_factory=dict)
    _by_transaction_id: dict[str, Key] = field(default_factory=dict)

    # Registry lock guards the dicts; key locks serialize read-modify-write
    _registry_lock: threading.Lock = field(default_factory=threading.Lock)
    _key_locks: dict[Key, threading.Lock] = field(default_factory=dict)

    def put(self, record: TransactionRecord) -> TransactionRecord:
        """Insert a new record.

        Raises ``DuplicateKeyError`` when the correlation id, transaction id
        or (per provider) secondary id is already registered.
        """
        key = record.key
        with self._registry_lock:
            if key in self._records:
                raise DuplicateKeyError(
                    f"{record.provider.value} correlation id {record.correlation_id} already registered"
                )
            if record.transaction_id in self._by_transaction_id:
                raise DuplicateKeyError(f"Transaction id {record.transaction_id} already registered")
            self._check_secondary(record)
            self._records[key] = record
            self._key_locks[key] = threading.Lock()
            self._by_transaction_id[record.transaction_id] = key
            self._index_secondary(record)
        return record

    def get(self, provider: Provider, correlation_id: str) -> TransactionRecord:
        """Return the record for a provider correlation id."""
        with self._registry_lock:
            record = self._records.get((provider, correlation_id))
        if record is None:
            raise TransactionNotFoundError(
                f"{provider.value} transaction {correlation_id} not found"
            )
        return record

    def find_by_secondary_id(
        self, provider: Provider, secondary_id: str
    ) -> TransactionRecord | None:
        """Look a record up by its secondary provider identifier."""
        with self._registry_lock:
            correlation_id = self._by_secondary_id.get((provider, secondary_id))
            if correlation_id is None:
                return None
            return self._records.get((provider, correlation_id))

    def find_by_transaction_id(self, transaction_id: str) -> TransactionRecord | None:
        """Look a record up by its caller-visible alias."""
        with self._registry_lock:
            key = self._by_transaction_id.get(transaction_id)
            return self._records.get(key) if key else None

    def update(
        self, provider: Provider, correlation_id: str, mutator: Mutator
    ) -> TransactionRecord:
        """Atomically apply ``mutator`` to the stored record.

        The key lock is held across load, transform and persist, so two
        updates of the same record never interleave. Updates of other keys
        are not blocked.
        """
        key = (provider, correlation_id)
        with self._registry_lock:
            lock = self._key_locks.get(key)
        if lock is None:
            raise TransactionNotFoundError(
                f"{provider.value} transaction {correlation_id} not found"
            )

        with lock:
            with self._registry_lock:
                current = self._records[key]
            updated = mutator(current)
            if updated is current:
                return current
            if updated.key != key or updated.transaction_id != current.transaction_id:
                raise InvalidTransitionError(
                    f"Identifiers of {provider.value} transaction {correlation_id} are immutable"
                )
            with self._registry_lock:
                self._check_secondary(updated)
                self._records[key] = updated
                self._index_secondary(updated)
        return updated

    def list(
        self,
        provider: Provider | None = None,
        status: TransactionStatus | None = None,
        subject_id: str | None = None,
    ) -> RecordListing:
        """List records matching the given filters, newest first."""
        return RecordListing(self._snapshot, provider=provider, status=status, subject_id=subject_id)

    def summary(self) -> dict[str, int]:
        """Return record counts per status."""
        counts = {status.value: 0 for status in TransactionStatus}
        for record in self._snapshot():
            counts[record.status.value] += 1
        return counts

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._records)

    def _snapshot(self) -> list[TransactionRecord]:
        with self._registry_lock:
            return list(self._records.values())

    def _check_secondary(self, record: TransactionRecord) -> None:
        # Caller holds the registry lock
        if not record.secondary_id:
            return
        owner = self._by_secondary_id.get((record.provider, record.secondary_id))
        if owner is not None and owner != record.correlation_id:
            raise DuplicateKeyError(
                f"{record.provider.value} secondary id {record.secondary_id} already registered"
            )

    def _index_secondary(self, record: TransactionRecord) -> None:
        # Caller holds the registry lock
        if record.secondary_id:
            self._by_secondary_id[(record.provider, record.secondary_id)] = record.correlation_id
