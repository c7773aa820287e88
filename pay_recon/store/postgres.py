"""PostgreSQL-backed transaction store.

Per-key atomicity comes from row locks: ``update`` reads the row with
``SELECT ... FOR UPDATE`` and writes it back inside one database
transaction, so concurrent updates of the same correlation id are
serialized by PostgreSQL while other rows stay unblocked.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from pay_recon.config import PostgresConfig
from pay_recon.exceptions import (
    DuplicateKeyError,
    InvalidTransitionError,
    TransactionNotFoundError,
)
from pay_recon.models.payment import Provider, TransactionRecord, TransactionStatus
from pay_recon.store.memory import Mutator, RecordListing

logger = logging.getLogger(__name__)

COLUMNS = (
    "provider",
    "correlation_id",
    "transaction_id",
    "secondary_id",
    "amount",
    "currency",
    "subject_id",
    "reference_id",
    "status",
    "status_detail",
    "receipt_ref",
    "created_at",
    "updated_at",
    "terminal_at",
    "raw_provider_payload",
)

DDL = """
CREATE TABLE IF NOT EXISTS {table} (
    provider             TEXT        NOT NULL,
    correlation_id       TEXT        NOT NULL,
    transaction_id       TEXT        NOT NULL UNIQUE,
    secondary_id         TEXT,
    amount               NUMERIC(15, 2) NOT NULL,
    currency             TEXT        NOT NULL,
    subject_id           TEXT        NOT NULL,
    reference_id         TEXT        NOT NULL,
    status               TEXT        NOT NULL,
    status_detail        TEXT,
    receipt_ref          TEXT,
    created_at           TIMESTAMPTZ NOT NULL,
    updated_at           TIMESTAMPTZ NOT NULL,
    terminal_at          TIMESTAMPTZ,
    raw_provider_payload JSONB,
    PRIMARY KEY (provider, correlation_id)
);
CREATE UNIQUE INDEX IF NOT EXISTS {secondary_index} ON {table} (provider, secondary_id);
"""


class PostgresTransactionStore:
    """Transaction store over a single PostgreSQL table."""

    def __init__(
        self,
        config: PostgresConfig | str,
        table: str | None = None,
        connect: Callable[..., Any] = psycopg.connect,
    ) -> None:
        """Initialize the store.

        Parameters
        ----------
        config : PostgresConfig | str
            Connection configuration or a libpq connection string.
        table : str | None
            Table name; defaults to ``config.table`` or ``payment_transactions``.
        connect : Callable
            Connection factory, ``psycopg.connect`` unless overridden.
        """
        if isinstance(config, PostgresConfig):
            self.conninfo = config.connection_string
            self.table = table or config.table
        else:
            self.conninfo = config
            self.table = table or "payment_transactions"
        self._connect = connect

    def _connection(self) -> Any:
        return self._connect(self.conninfo, row_factory=dict_row)

    def ensure_schema(self) -> None:
        """Create the transactions table and its secondary index if missing."""
        query = sql.SQL(DDL).format(
            table=sql.Identifier(self.table),
            secondary_index=sql.Identifier(f"{self.table}_secondary_idx"),
        )
        with self._connection() as conn:
            conn.execute(query)
        logger.info("Schema ready for table %s", self.table)

    def put(self, record: TransactionRecord) -> TransactionRecord:
        """Insert a new record.

        Raises ``DuplicateKeyError`` when the correlation id, transaction id
        or (per provider) secondary id is already registered.
        """
        query = sql.SQL("INSERT INTO {table} ({columns}) VALUES ({values})").format(
            table=sql.Identifier(self.table),
            columns=sql.SQL(", ").join(sql.Identifier(c) for c in COLUMNS),
            values=sql.SQL(", ").join(sql.Placeholder() * len(COLUMNS)),
        )
        try:
            with self._connection() as conn:
                conn.execute(query, self._to_params(record))
        except psycopg.errors.UniqueViolation as e:
            raise DuplicateKeyError(
                f"{record.provider.value} transaction {record.correlation_id} reuses a registered identifier"
            ) from e
        return record

    def get(self, provider: Provider, correlation_id: str) -> TransactionRecord:
        """Return the record for a provider correlation id."""
        row = self._fetch_one(
            sql.SQL("SELECT * FROM {table} WHERE provider = %s AND correlation_id = %s"),
            (provider.value, correlation_id),
        )
        if row is None:
            raise TransactionNotFoundError(
                f"{provider.value} transaction {correlation_id} not found"
            )
        return TransactionRecord.from_dict(row)

    def find_by_secondary_id(
        self, provider: Provider, secondary_id: str
    ) -> TransactionRecord | None:
        """Look a record up by its secondary provider identifier."""
        row = self._fetch_one(
            sql.SQL("SELECT * FROM {table} WHERE provider = %s AND secondary_id = %s"),
            (provider.value, secondary_id),
        )
        return TransactionRecord.from_dict(row) if row else None

    def find_by_transaction_id(self, transaction_id: str) -> TransactionRecord | None:
        """Look a record up by its caller-visible alias."""
        row = self._fetch_one(
            sql.SQL("SELECT * FROM {table} WHERE transaction_id = %s"),
            (transaction_id,),
        )
        return TransactionRecord.from_dict(row) if row else None

    def update(
        self, provider: Provider, correlation_id: str, mutator: Mutator
    ) -> TransactionRecord:
        """Atomically apply ``mutator`` to the stored record under a row lock."""
        select = sql.SQL(
            "SELECT * FROM {table} WHERE provider = %s AND correlation_id = %s FOR UPDATE"
        ).format(table=sql.Identifier(self.table))
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(c)) for c in COLUMNS[2:]
        )
        write = sql.SQL(
            "UPDATE {table} SET {assignments} WHERE provider = %s AND correlation_id = %s"
        ).format(table=sql.Identifier(self.table), assignments=assignments)

        with self._connection() as conn:
            with conn.transaction():
                row = conn.execute(select, (provider.value, correlation_id)).fetchone()
                if row is None:
                    raise TransactionNotFoundError(
                        f"{provider.value} transaction {correlation_id} not found"
                    )
                current = TransactionRecord.from_dict(row)
                updated = mutator(current)
                if updated is current:
                    return current
                if updated.key != current.key or updated.transaction_id != current.transaction_id:
                    raise InvalidTransitionError(
                        f"Identifiers of {provider.value} transaction {correlation_id} are immutable"
                    )
                params = self._to_params(updated)[2:] + [provider.value, correlation_id]
                try:
                    conn.execute(write, params)
                except psycopg.errors.UniqueViolation as e:
                    raise DuplicateKeyError(
                        f"{provider.value} secondary id {updated.secondary_id} already registered"
                    ) from e
        return updated

    def list(
        self,
        provider: Provider | None = None,
        status: TransactionStatus | None = None,
        subject_id: str | None = None,
    ) -> RecordListing:
        """List records matching the given filters, newest first."""

        def snapshot() -> list[TransactionRecord]:
            conditions = []
            params: list[Any] = []
            for column, value in (
                ("provider", provider.value if provider else None),
                ("status", status.value if status else None),
                ("subject_id", subject_id),
            ):
                if value is not None:
                    conditions.append(sql.SQL("{} = %s").format(sql.Identifier(column)))
                    params.append(value)
            query = sql.SQL("SELECT * FROM {table}").format(table=sql.Identifier(self.table))
            if conditions:
                query = query + sql.SQL(" WHERE ") + sql.SQL(" AND ").join(conditions)
            query = query + sql.SQL(" ORDER BY created_at DESC")
            with self._connection() as conn:
                rows = conn.execute(query, params).fetchall()
            return [TransactionRecord.from_dict(row) for row in rows]

        return RecordListing(snapshot, provider=provider, status=status, subject_id=subject_id)

    def summary(self) -> dict[str, int]:
        """Return record counts per status."""
        query = sql.SQL("SELECT status, COUNT(*) AS n FROM {table} GROUP BY status").format(
            table=sql.Identifier(self.table)
        )
        counts = {status.value: 0 for status in TransactionStatus}
        with self._connection() as conn:
            for row in conn.execute(query).fetchall():
                counts[row["status"]] = row["n"]
        return counts

    def _fetch_one(self, query: sql.SQL, params: tuple) -> dict | None:
        with self._connection() as conn:
            return conn.execute(
                query.format(table=sql.Identifier(self.table)), params
            ).fetchone()

    @staticmethod
    def _to_params(record: TransactionRecord) -> list[Any]:
        params: list[Any] = []
        for column in COLUMNS:
            value = getattr(record, column)
            if column in ("provider", "status"):
                value = value.value
            elif column == "raw_provider_payload" and value is not None:
                value = Jsonb(value)
            params.append(value)
        return params
