"""Tests for config and logging."""

import io
import json
import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from pay_recon.config import (
    EngineConfig,
    KafkaConfig,
    OutputConfig,
    PayReconConfig,
    PostgresConfig,
    SimulationConfig,
)
from pay_recon.exceptions import ConfigurationError
from pay_recon.logging import ContextAdapter, JsonFormatter, bind, setup_logging

ENV_VARS = [
    "ACTIVE_PULL",
    "ORPHAN_GRACE_SECONDS",
    "ORPHAN_BUFFER_SIZE",
    "CALLBACK_BASE_URL",
    "KAFKA_BOOTSTRAP_SERVERS",
    "KAFKA_EVENTS_TOPIC",
    "KAFKA_ACKS",
    "KAFKA_ANOMALY_TOPIC",
    "SCHEMA_REGISTRY_URL",
    "POSTGRES_HOST",
    "POSTGRES_PORT",
    "POSTGRES_DB",
    "POSTGRES_USER",
    "POSTGRES_PASSWORD",
    "POSTGRES_TABLE",
    "OUTPUT_DIR",
    "PRETTY_JSON",
    "STORE_BACKEND",
    "SEED",
    "LOG_LEVEL",
    "LOG_FORMAT",
]


@pytest.fixture
def clean_env():
    """Run with none of the pay-recon variables set."""
    saved = {k: os.environ.pop(k) for k in ENV_VARS if k in os.environ}
    with patch.dict(os.environ, {}):
        yield
    os.environ.update(saved)


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    package_level = logging.getLogger("pay_recon").level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("pay_recon").setLevel(package_level)


class TestEngineConfig:
    """Tests for EngineConfig."""

    def test_default_values(self) -> None:
        """Test engine defaults: active pulls on, orphans dropped."""
        config = EngineConfig()

        assert config.active_pull is True
        assert config.orphan_grace_seconds == 0.0
        assert config.buffers_orphans is False

    def test_buffers_orphans_with_grace(self) -> None:
        """Test a grace period switches on orphan buffering."""
        assert EngineConfig(orphan_grace_seconds=2.5).buffers_orphans is True

    def test_callback_target(self) -> None:
        """Test per-provider callback targets."""
        config = EngineConfig(callback_base_url="https://pay.example.com/hooks/")

        assert config.callback_target("MOBILE_MONEY") == "https://pay.example.com/hooks/mobile-money"

    @pytest.mark.parametrize(
        "kwargs", [{"orphan_grace_seconds": -1}, {"orphan_buffer_size": 0}]
    )
    def test_invalid_values(self, kwargs: dict) -> None:
        """Test invalid engine settings raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            EngineConfig(**kwargs)


class TestKafkaConfig:
    """Tests for KafkaConfig."""

    def test_default_values(self) -> None:
        """Test Kafka defaults."""
        config = KafkaConfig()

        assert config.bootstrap_servers == "localhost:9092"
        assert config.topic == "payments.reconciliation-events"
        assert config.acks == "all"

    def test_to_dict(self) -> None:
        """Test librdkafka keys produced by to_dict."""
        result = KafkaConfig(bootstrap_servers="kafka:9092", compression="lz4").to_dict()

        assert result["bootstrap.servers"] == "kafka:9092"
        assert result["compression.type"] == "lz4"
        assert result["retries"] == 3
        assert result["enable.idempotence"] is True
        assert result["client.id"] == "pay-recon"
        assert "topic" not in result

    def test_idempotence_requires_acks_all(self) -> None:
        """Test idempotent producers require acks=all."""
        with pytest.raises(ConfigurationError):
            KafkaConfig(acks="1")

        assert KafkaConfig(acks="1", idempotent=False).to_dict()["acks"] == "1"


class TestPostgresConfig:
    """Tests for PostgresConfig."""

    def test_default_values(self) -> None:
        """Test PostgreSQL defaults."""
        config = PostgresConfig()

        assert config.database == "payrecon"
        assert config.table == "payment_transactions"

    def test_connection_string(self) -> None:
        """Test the libpq connection string."""
        config = PostgresConfig(host="db", port=5433, database="pay", user="u", password="p")

        assert config.connection_string == "postgresql://u:p@db:5433/pay"


class TestSimulationConfig:
    """Tests for SimulationConfig."""

    def test_default_values(self) -> None:
        """Test simulation defaults."""
        config = SimulationConfig()

        assert config.num_transactions == 100
        assert config.workers == 8

    @pytest.mark.parametrize(
        "kwargs", [{"duplicate_rate": 1.5}, {"orphan_rate": -0.1}, {"poll_rate": 2}, {"workers": 0}]
    )
    def test_invalid_values(self, kwargs: dict) -> None:
        """Test invalid simulation settings raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            SimulationConfig(**kwargs)


class TestPayReconConfig:
    """Tests for PayReconConfig."""

    def test_default_values(self) -> None:
        """Test top-level defaults."""
        config = PayReconConfig()

        assert isinstance(config.engine, EngineConfig)
        assert isinstance(config.output, OutputConfig)
        assert config.store_backend == "memory"
        assert config.seed is None
        assert config.log_level == "INFO"

    def test_unknown_store_backend(self) -> None:
        """Test an unknown store backend is rejected."""
        with pytest.raises(ConfigurationError):
            PayReconConfig(store_backend="redis")

    def test_from_env_default(self, clean_env: None) -> None:
        """Test from_env with no variables set."""
        config = PayReconConfig.from_env()

        assert config.engine.active_pull is True
        assert config.kafka.bootstrap_servers == "localhost:9092"
        assert config.postgres.host == "localhost"
        assert config.output.events_dir == Path("output")
        assert config.seed is None
        assert config.log_format == "standard"

    def test_from_env_custom(self, clean_env: None) -> None:
        """Test from_env reads every supported variable."""
        env = {
            "ACTIVE_PULL": "false",
            "ORPHAN_GRACE_SECONDS": "5",
            "CALLBACK_BASE_URL": "https://pay.example.com/cb",
            "KAFKA_BOOTSTRAP_SERVERS": "kafka-cluster:9092",
            "KAFKA_EVENTS_TOPIC": "prod.payments.events",
            "KAFKA_ANOMALY_TOPIC": "prod.payments.anomalies",
            "KAFKA_ACKS": "1",
            "POSTGRES_PORT": "5433",
            "POSTGRES_TABLE": "txns",
            "OUTPUT_DIR": "/data/events",
            "PRETTY_JSON": "true",
            "STORE_BACKEND": "postgres",
            "SEED": "12345",
            "LOG_LEVEL": "DEBUG",
            "LOG_FORMAT": "json",
        }
        with patch.dict(os.environ, env):
            config = PayReconConfig.from_env()

        assert config.engine.active_pull is False
        assert config.engine.buffers_orphans is True
        assert config.engine.callback_base_url == "https://pay.example.com/cb"
        assert config.kafka.topic == "prod.payments.events"
        assert config.kafka.anomaly_topic == "prod.payments.anomalies"
        assert config.kafka.idempotent is False
        assert config.postgres.port == 5433
        assert config.postgres.table == "txns"
        assert config.output.events_dir == Path("/data/events")
        assert config.output.pretty_json is True
        assert config.store_backend == "postgres"
        assert config.seed == 12345
        assert config.log_format == "json"

    @pytest.mark.parametrize(
        "env", [{"POSTGRES_PORT": "not-a-port"}, {"ORPHAN_GRACE_SECONDS": "-3"}, {"STORE_BACKEND": "sqlite"}]
    )
    def test_from_env_invalid(self, clean_env: None, env: dict) -> None:
        """Test malformed environment values raise ConfigurationError."""
        with patch.dict(os.environ, env):
            with pytest.raises(ConfigurationError):
                PayReconConfig.from_env()


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_default(self, restore_logging: None) -> None:
        """Test the default setup installs one handler at INFO."""
        setup_logging()

        assert logging.getLogger("pay_recon").level == logging.INFO

    def test_invalid_level_defaults_to_info(self, restore_logging: None) -> None:
        """Test an unknown level name falls back to INFO."""
        setup_logging(level="INVALID")

        assert logging.getLogger().level == logging.INFO

    def test_quiets_libraries(self, restore_logging: None) -> None:
        """Test noisy library loggers are raised to WARNING."""
        setup_logging(level="DEBUG")

        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("confluent_kafka").level == logging.WARNING
        assert logging.getLogger("psycopg").level == logging.WARNING

    def test_json_format(self, restore_logging: None) -> None:
        """Test the json format installs JsonFormatter."""
        setup_logging(format_type="json")

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0].formatter, JsonFormatter)

    def test_replaces_handlers(self, restore_logging: None) -> None:
        """Test repeated setup does not stack handlers."""
        root = logging.getLogger()
        root.addHandler(logging.StreamHandler())
        root.addHandler(logging.StreamHandler())

        setup_logging()

        assert len(root.handlers) == 1


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def _record(self, **extra) -> logging.LogRecord:
        record = logging.LogRecord("pay_recon.engine", logging.WARNING, __file__, 1, "callback %s", ("x",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_basic_fields(self) -> None:
        """Test the standard JSON fields."""
        data = json.loads(JsonFormatter().format(self._record()))

        assert data["level"] == "WARNING"
        assert data["logger"] == "pay_recon.engine"
        assert data["message"] == "callback x"
        assert "timestamp" in data

    def test_context_fields(self) -> None:
        """Test reconciliation context fields are emitted."""
        data = json.loads(
            JsonFormatter().format(self._record(provider="MOBILE_MONEY", correlation_id="ws_CO_1"))
        )

        assert data["provider"] == "MOBILE_MONEY"
        assert data["correlation_id"] == "ws_CO_1"
        assert "transaction_id" not in data

    def test_extra_dict_merged(self) -> None:
        """Test an extra dict is merged into the output."""
        data = json.loads(JsonFormatter().format(self._record(extra={"attempt": 2})))

        assert data["attempt"] == 2

    def test_exception(self) -> None:
        """Test exceptions are rendered into the output."""
        try:
            raise ValueError("boom")
        except ValueError:
            import sys

            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

        data = json.loads(JsonFormatter().format(record))

        assert "ValueError: boom" in data["exception"]


class TestBind:
    """Tests for bind and ContextAdapter."""

    def test_accepts_logger_name(self) -> None:
        """Test bind accepts a logger name."""
        adapter = bind("pay_recon.test", provider="MOBILE_MONEY")

        assert isinstance(adapter, ContextAdapter)
        assert adapter.logger.name == "pay_recon.test"

    def test_drops_none_values(self) -> None:
        """Test None context values are dropped."""
        adapter = bind("pay_recon.test", provider="CARD_WALLET", correlation_id=None)

        assert adapter.extra == {"provider": "CARD_WALLET"}

    def test_context_reaches_json_output(self, restore_logging: None) -> None:
        """Test bound context appears in JSON log lines."""
        stream = io.StringIO()
        setup_logging(level="INFO", format_type="json", stream=stream)

        bind("pay_recon.test", provider="MOBILE_MONEY", correlation_id="ws_CO_1").info(
            "applied", extra={"outcome": "applied"}
        )

        data = json.loads(stream.getvalue().strip())
        assert data["provider"] == "MOBILE_MONEY"
        assert data["correlation_id"] == "ws_CO_1"
        assert data["outcome"] == "applied"
        assert data["message"] == "applied"

    def test_call_site_extra_wins(self) -> None:
        """Test call-site extra overrides bound context."""
        adapter = bind("pay_recon.test", outcome="duplicate")

        _, kwargs = adapter.process("msg", {"extra": {"outcome": "stale"}})

        assert kwargs["extra"]["outcome"] == "stale"
