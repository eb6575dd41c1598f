"""Kafka sink for streaming ledger events."""

import json
import logging
from dataclasses import dataclass, is_dataclass
from typing import Any

from confluent_kafka import KafkaException, Producer

from welfare_loans.config import KafkaConfig
from welfare_loans.exceptions import SinkError
from welfare_loans.models import Event
from welfare_loans.sinks.serialization import to_dict

logger = logging.getLogger(__name__)

DEFAULT_TOPIC_PREFIX = "welfare.loans"


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
    """Publish ledger events to Kafka, one topic per event type.

    ``loan.payment_allocated`` goes to ``{topic_prefix}.loan.payment_allocated``
    keyed by the loan id, so all events of a loan land on one partition in
    order.
    """

    # Fields tried, in order, for the key of exported records
    KEY_FIELDS = ("loan_id", "entity_id", "member_id")

    def __init__(
        self,
        config: KafkaConfig | str,
        topic_prefix: str = DEFAULT_TOPIC_PREFIX,
    ) -> None:
        """Initialize Kafka sink.

        Parameters
        ----------
        config : KafkaConfig | str
            Producer configuration or bootstrap servers string.
        topic_prefix : str
            Prefix of every topic written to.
        """
        if isinstance(config, str):
            config = KafkaConfig(bootstrap_servers=config)

        self.config = config
        self.topic_prefix = topic_prefix
        self.producer = Producer(config.to_dict())
        self.stats = ProducerStats()

    def topic_for(self, event_type: str) -> str:
        return f"{self.topic_prefix}.{event_type}"

    def _delivery_callback(self, err: Any, msg: Any) -> None:
        """Handle delivery reports."""
        if err:
            self.stats.failed += 1
            logger.error("Delivery failed: %s", err)
        else:
            self.stats.delivered += 1
            logger.debug("Delivered to %s[%d]@%d", msg.topic(), msg.partition(), msg.offset())

    def _get_key(self, record: Any) -> str | None:
        """Extract message key from a record."""
        for key_field in self.KEY_FIELDS:
            if is_dataclass(record):
                value = getattr(record, key_field, None)
            elif isinstance(record, dict):
                value = record.get(key_field)
            else:
                return None
            if value:
                return str(value)
        return None

    def send(self, topic: str, record: Any, key: str | None = None) -> None:
        """Send a single record to a Kafka topic as JSON.

        Raises
        ------
        SinkError
            The producer rejected the message.
        """
        value = json.dumps(to_dict(record), ensure_ascii=False).encode("utf-8")

        if key is None:
            key = self._get_key(record)

        try:
            self._produce(topic, key, value)
        except BufferError:
            # Local queue full: serve delivery reports, then retry once
            self.producer.poll(1.0)
            try:
                self._produce(topic, key, value)
            except BufferError as exc:
                raise SinkError(f"Kafka producer queue full for topic {topic}") from exc
        except KafkaException as exc:
            raise SinkError(f"Failed to produce to {topic}: {exc}") from exc

        self.stats.sent += 1
        self.producer.poll(0)

    def _produce(self, topic: str, key: str | None, value: bytes) -> None:
        self.producer.produce(
            topic=topic,
            key=key.encode("utf-8") if key else None,
            value=value,
            callback=self._delivery_callback,
        )

    def publish(self, event: Event) -> None:
        """Publish an event keyed by its subject."""
        self.send(self.topic_for(event.event_type), event, key=event.subject)

    def write_batch(self, entity_type: str, records: list[Any]) -> None:
        """Write a batch of records to ``{topic_prefix}.{entity_type}``."""
        topic = self.topic_for(entity_type)
        logger.info("Writing batch to %s: %d records", topic, len(records))

        for record in records:
            self.send(topic, record)

        self.flush()
        logger.info(
            "Batch complete: sent=%d, delivered=%d, failed=%d",
            self.stats.sent,
            self.stats.delivered,
            self.stats.failed,
        )

    def flush(self, timeout: float = 30.0) -> int:
        """Flush pending messages, returning how many are still queued."""
        remaining = self.producer.flush(timeout)
        if remaining:
            logger.warning("%d messages still queued after %.1fs flush", remaining, timeout)
        return remaining

    def close(self) -> None:
        """Flush and close the producer."""
        self.flush()
        logger.info(
            "Kafka sink closed: sent=%d, delivered=%d, failed=%d",
            self.stats.sent,
            self.stats.delivered,
            self.stats.failed,
        )
