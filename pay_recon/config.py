"""Configuration management for pay-recon."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pay_recon.exceptions import ConfigurationError


@dataclass
class EngineConfig:
    """Reconciliation engine behaviour."""

    active_pull: bool = True
    orphan_grace_seconds: float = 0.0
    orphan_buffer_size: int = 1000
    callback_base_url: str = "http://localhost:8000/callbacks"

    def __post_init__(self) -> None:
        if self.orphan_grace_seconds < 0:
            raise ConfigurationError("orphan_grace_seconds must be >= 0")
        if self.orphan_buffer_size < 1:
            raise ConfigurationError("orphan_buffer_size must be >= 1")

    @property
    def buffers_orphans(self) -> bool:
        """Whether unknown-id callbacks are held instead of dropped."""
        return self.orphan_grace_seconds > 0

    def callback_target(self, provider: str) -> str:
        """Build the callback URL handed to a provider at initiation."""
        return f"{self.callback_base_url.rstrip('/')}/{provider.lower().replace('_', '-')}"


@dataclass
class KafkaConfig:
    """Kafka producer configuration for reconciliation events.

    ``anomaly_topic`` receives the ``callback.*`` and ``pull.*`` events when
    set, keeping duplicates and conflicts out of the transaction stream.
    """

    bootstrap_servers: str = "localhost:9092"
    topic: str = "payments.reconciliation-events"
    anomaly_topic: str | None = None
    schema_registry_url: str | None = None
    client_id: str = "pay-recon"
    acks: str = "all"
    idempotent: bool = True
    batch_size: int = 16384
    linger_ms: int = 5
    compression: str = "snappy"
    retries: int = 3

    def __post_init__(self) -> None:
        if self.idempotent and self.acks != "all":
            raise ConfigurationError("Idempotent producers require acks=all")

    def to_dict(self) -> dict[str, Any]:
        """Convert to confluent-kafka config dict."""
        return {
            "bootstrap.servers": self.bootstrap_servers,
            "client.id": self.client_id,
            "acks": self.acks,
            "enable.idempotence": self.idempotent,
            "batch.size": self.batch_size,
            "linger.ms": self.linger_ms,
            "compression.type": self.compression,
            "retries": self.retries,
        }


@dataclass
class PostgresConfig:
    """PostgreSQL connection configuration for the transaction store."""

    host: str = "localhost"
    port: int = 5432
    database: str = "payrecon"
    user: str = "postgres"
    password: str = "postgres"
    table: str = "payment_transactions"

    @property
    def connection_string(self) -> str:
        """Get connection string."""
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass
class OutputConfig:
    """Local event output configuration."""

    events_dir: Path = field(default_factory=lambda: Path("output"))
    pretty_json: bool = False


@dataclass
class SimulationConfig:
    """Configuration for the callback storm simulation."""

    num_transactions: int = 100
    duplicate_rate: float = 0.3
    conflict_rate: float = 0.05
    orphan_rate: float = 0.05
    poll_rate: float = 0.5
    workers: int = 8

    def __post_init__(self) -> None:
        for name in ("duplicate_rate", "conflict_rate", "orphan_rate", "poll_rate"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be between 0 and 1, got {value}")
        if self.workers < 1:
            raise ConfigurationError("workers must be >= 1")


@dataclass
class PayReconConfig:
    """Main configuration for pay-recon."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    store_backend: str = "memory"
    seed: int | None = None
    log_level: str = "INFO"
    log_format: str = "standard"

    def __post_init__(self) -> None:
        if self.store_backend not in ("memory", "postgres"):
            raise ConfigurationError(f"Unknown store backend: {self.store_backend}")

    @classmethod
    def from_env(cls) -> "PayReconConfig":
        """Create config from environment variables."""
        import os

        try:
            engine = EngineConfig(
                active_pull=os.getenv("ACTIVE_PULL", "true").lower() == "true",
                orphan_grace_seconds=float(os.getenv("ORPHAN_GRACE_SECONDS", "0")),
                orphan_buffer_size=int(os.getenv("ORPHAN_BUFFER_SIZE", "1000")),
                callback_base_url=os.getenv(
                    "CALLBACK_BASE_URL", "http://localhost:8000/callbacks"
                ),
            )

            acks = os.getenv("KAFKA_ACKS", "all")
            kafka = KafkaConfig(
                bootstrap_servers=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092"),
                topic=os.getenv("KAFKA_EVENTS_TOPIC", "payments.reconciliation-events"),
                anomaly_topic=os.getenv("KAFKA_ANOMALY_TOPIC") or None,
                schema_registry_url=os.getenv("SCHEMA_REGISTRY_URL") or None,
                acks=acks,
                idempotent=acks == "all",
            )

            postgres = PostgresConfig(
                host=os.getenv("POSTGRES_HOST", "localhost"),
                port=int(os.getenv("POSTGRES_PORT", "5432")),
                database=os.getenv("POSTGRES_DB", "payrecon"),
                user=os.getenv("POSTGRES_USER", "postgres"),
                password=os.getenv("POSTGRES_PASSWORD", "postgres"),
                table=os.getenv("POSTGRES_TABLE", "payment_transactions"),
            )

            output = OutputConfig(
                events_dir=Path(os.getenv("OUTPUT_DIR", "output")),
                pretty_json=os.getenv("PRETTY_JSON", "false").lower() == "true",
            )

            seed = os.getenv("SEED")
            return cls(
                engine=engine,
                kafka=kafka,
                postgres=postgres,
                output=output,
                store_backend=os.getenv("STORE_BACKEND", "memory"),
                seed=int(seed) if seed else None,
                log_level=os.getenv("LOG_LEVEL", "INFO"),
                log_format=os.getenv("LOG_FORMAT", "standard"),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment configuration: {e}") from e
