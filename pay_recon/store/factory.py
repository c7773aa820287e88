"""Build the configured transaction store."""

import logging
from typing import Any

from pay_recon.config import PayReconConfig
from pay_recon.store.memory import InMemoryTransactionStore
from pay_recon.store.postgres import PostgresTransactionStore

logger = logging.getLogger(__name__)


def build_store(config: PayReconConfig) -> Any:
    """Return the store selected by ``config.store_backend``.

    A PostgreSQL store has its table created on first use.
    """
    if config.store_backend == "postgres":
        store = PostgresTransactionStore(config.postgres)
        store.ensure_schema()
        logger.info(
            "Using PostgreSQL store %s on %s:%d",
            store.table,
            config.postgres.host,
            config.postgres.port,
        )
        return store
    logger.info("Using in-memory store")
    return InMemoryTransactionStore()
