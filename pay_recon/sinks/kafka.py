"""Kafka sink for reconciliation events.

Events are keyed by the correlation id they concern, so every event of one
transaction lands on the same partition and keeps its order. The event type
travels as a message header for consumers that filter without decoding.
"""

import json
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from confluent_kafka import Producer
from confluent_kafka.serialization import MessageField, SerializationContext

from pay_recon.config import KafkaConfig
from pay_recon.sinks.serialization import dumps, to_dict

logger = logging.getLogger(__name__)

SCHEMA_NAMESPACE = "com.payrecon.events"

# Events that describe the transaction lifecycle; everything else is an anomaly
LIFECYCLE_PREFIX = "transaction."

# Event payloads vary per event type, so data/metadata travel as JSON strings.
EVENT_AVRO_SCHEMA = {
    "type": "record",
    "name": "ReconciliationEvent",
    "namespace": SCHEMA_NAMESPACE,
    "fields": [
        {"name": "event_id", "type": "string"},
        {"name": "event_type", "type": "string"},
        {"name": "event_time", "type": {"type": "long", "logicalType": "timestamp-millis"}},
        {"name": "source", "type": "string"},
        {"name": "subject", "type": "string"},
        {"name": "data", "type": "string"},
        {"name": "metadata", "type": "string"},
    ],
}


@dataclass
class DeliveryStats:
    """Delivery reports received from the producer."""

    sent: int = 0
    delivered: int = 0
    failed: int = 0
    per_topic: Counter = field(default_factory=Counter)
    closed_at: float | None = None

    @property
    def pending(self) -> int:
        """Messages produced without a delivery report yet."""
        return self.sent - self.delivered - self.failed

    @property
    def success_rate(self) -> float:
        total = self.delivered + self.failed
        return self.delivered / total if total > 0 else 0.0


class KafkaSink:
    """Publish reconciliation events to Kafka.

    Parameters
    ----------
    config : KafkaConfig | str
        Producer configuration, or just the bootstrap servers.
    """

    def __init__(self, config: KafkaConfig | str) -> None:
        if isinstance(config, str):
            config = KafkaConfig(bootstrap_servers=config)

        self.config = config
        self.producer = Producer(config.to_dict())
        self.stats = DeliveryStats()
        self._avro_serializer: Any = None

        if config.schema_registry_url:
            self._init_avro_serializer()

    def _init_avro_serializer(self) -> None:
        try:
            from confluent_kafka.schema_registry import SchemaRegistryClient
            from confluent_kafka.schema_registry.avro import AvroSerializer
        except ImportError:
            logger.warning(
                "confluent-kafka[avro] not installed, publishing JSON. "
                "Install with: pip install 'pay-recon[avro]'"
            )
            return

        client = SchemaRegistryClient({"url": self.config.schema_registry_url})
        self._avro_serializer = AvroSerializer(
            client, json.dumps(EVENT_AVRO_SCHEMA), to_dict=self._to_avro_dict
        )
        logger.info("Publishing Avro events via %s", self.config.schema_registry_url)

    def topic_for(self, event: Any) -> str:
        """Lifecycle events go to the main topic, anomalies to ``anomaly_topic`` if set."""
        event_type = getattr(event, "event_type", "") or ""
        if self.config.anomaly_topic and not event_type.startswith(LIFECYCLE_PREFIX):
            return self.config.anomaly_topic
        return self.config.topic

    def write(self, event: Any) -> None:
        """Publish one event."""
        self.send(self.topic_for(event), event)

    def send(self, topic: str, record: Any, key: str | None = None) -> None:
        """Produce a record to ``topic`` without waiting for delivery."""
        if self._avro_serializer is not None:
            value = self._avro_serializer(record, SerializationContext(topic, MessageField.VALUE))
        else:
            value = dumps(record).encode("utf-8")

        key = key or self._key(record)
        event_type = getattr(record, "event_type", None)
        self.producer.produce(
            topic=topic,
            key=key.encode("utf-8") if key else None,
            value=value,
            headers=[("event_type", event_type.encode("utf-8"))] if event_type else None,
            callback=self._delivery_callback,
        )
        self.stats.sent += 1
        self.producer.poll(0)

    def flush(self, timeout: float = 30.0) -> int:
        """Wait for outstanding deliveries; returns how many are still queued."""
        remaining = self.producer.flush(timeout)
        if remaining:
            logger.warning("%d events still queued after %.1fs flush", remaining, timeout)
        return remaining

    def close(self) -> None:
        """Flush and report delivery figures."""
        self.flush()
        self.stats.closed_at = time.time()
        logger.info(
            "Kafka sink closed: sent=%d, delivered=%d, failed=%d",
            self.stats.sent,
            self.stats.delivered,
            self.stats.failed,
        )

    def _to_avro_dict(self, obj: Any, ctx: SerializationContext | None) -> dict:
        data = to_dict(obj)
        event_time = getattr(obj, "event_time", None)
        return {
            "event_id": data["event_id"],
            "event_type": data["event_type"],
            "event_time": int(event_time.timestamp() * 1000) if isinstance(event_time, datetime) else 0,
            "source": data["source"],
            "subject": data["subject"],
            "data": json.dumps(data.get("data", {}), default=str),
            "metadata": json.dumps(data.get("metadata", {}), default=str),
        }

    def _delivery_callback(self, err: Any, msg: Any) -> None:
        if err:
            self.stats.failed += 1
            logger.error("Event delivery failed: %s", err)
            return
        self.stats.delivered += 1
        self.stats.per_topic[msg.topic()] += 1
        logger.debug("Delivered to %s[%d]@%d", msg.topic(), msg.partition(), msg.offset())

    @staticmethod
    def _key(record: Any) -> str | None:
        # Events carry the correlation id as subject; records carry it directly
        if isinstance(record, dict):
            return record.get("subject") or record.get("correlation_id")
        return getattr(record, "subject", None) or getattr(record, "correlation_id", None)
