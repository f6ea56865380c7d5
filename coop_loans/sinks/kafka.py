"""Kafka sink for streaming audit events."""

import json
import logging
from dataclasses import dataclass
from typing import Any

from confluent_kafka import Producer

from coop_loans.config import KafkaConfig
from coop_loans.sinks.serialization import to_dict

logger = logging.getLogger(__name__)


@dataclass
class ProducerStats:
    """Track producer delivery statistics."""

    sent: int = 0
    delivered: int = 0
    failed: int = 0

    @property
    def success_rate(self) -> float:
        """Calculate success rate."""
        total = self.delivered + self.failed
        return self.delivered / total if total > 0 else 0.0


class KafkaSink:
    """Publish records to a Kafka topic as JSON, keyed by their subject."""

    # Entity type to key field mapping
    KEY_FIELDS = {
        "audit_events": "subject",
        "loans": "loan_id",
        "guarantor_approvals": "loan_id",
    }

    def __init__(self, config: KafkaConfig | str, topic: str | None = None) -> None:
        """Initialize Kafka sink.

        Parameters
        ----------
        config : KafkaConfig | str
            Producer configuration or bootstrap servers string.
        topic : str | None
            Topic to publish to; defaults to ``config.topic``.
        """
        if isinstance(config, str):
            config = KafkaConfig(bootstrap_servers=config)

        self.config = config
        self.topic = topic or config.topic
        self.producer = Producer(config.to_dict())
        self.stats = ProducerStats()

    def _delivery_callback(self, err: Any, msg: Any) -> None:
        """Handle delivery reports."""
        if err:
            self.stats.failed += 1
            logger.error("Delivery failed: %s", err)
        else:
            self.stats.delivered += 1
            logger.debug("Delivered to %s[%d]@%d", msg.topic(), msg.partition(), msg.offset())

    def _get_key(self, entity_type: str, data: dict) -> str | None:
        key_field = self.KEY_FIELDS.get(entity_type)
        return data.get(key_field) if key_field else None

    def send(self, entity_type: str, record: Any) -> None:
        """Send a single record."""
        data = to_dict(record)
        key = self._get_key(entity_type, data)

        self.producer.produce(
            topic=self.topic,
            key=key.encode("utf-8") if key else None,
            value=json.dumps(data, ensure_ascii=False, default=str).encode("utf-8"),
            headers={"entity_type": entity_type},
            callback=self._delivery_callback,
        )
        self.stats.sent += 1
        self.producer.poll(0)

    def write_batch(self, entity_type: str, records: list[Any]) -> None:
        """Send a batch of records and wait for delivery."""
        for record in records:
            self.send(entity_type, record)

        self.flush()
        logger.debug(
            "Batch to %s complete: sent=%d, delivered=%d, failed=%d",
            self.topic,
            self.stats.sent,
            self.stats.delivered,
            self.stats.failed,
        )

    def flush(self, timeout: float = 30.0) -> None:
        """Flush pending messages."""
        self.producer.flush(timeout)

    def close(self) -> None:
        """Flush and close the producer."""
        self.flush()
        logger.info(
            "Kafka sink closed: sent=%d, delivered=%d, failed=%d",
            self.stats.sent,
            self.stats.delivered,
            self.stats.failed,
        )
