"""Transaction stores: the single source of truth for transaction records."""

from pay_recon.store.factory import build_store
from pay_recon.store.memory import InMemoryTransactionStore, RecordListing
from pay_recon.store.postgres import PostgresTransactionStore

__all__ = ["InMemoryTransactionStore", "PostgresTransactionStore", "RecordListing", "build_store"]
