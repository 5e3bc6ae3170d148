import logging
from dataclasses import dataclass, field

from confluent_kafka import Consumer, KafkaError, KafkaException, Producer

from errors import TransportFailure

logger = logging.getLogger(__name__)


@dataclass
class Message:
    topic: str
    key: bytes
    value: bytes
    headers: dict = field(default_factory=dict)

    @property
    def order_id(self):
        if self.key is None:
            return None
        return self.key.decode("utf-8", errors="replace")


def headers_to_dict(headers):
    """Convert Kafka's ``[(name, bytes)]`` headers into a str -> str dict."""
    result = {}
    for name, value in headers or []:
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="replace")
        result[name] = "" if value is None else str(value)
    return result


def headers_to_list(headers):
    return [(name, str(value).encode("utf-8")) for name, value in (headers or {}).items()]


class KafkaChannel:
    def __init__(self, kafka_config, group_id=None, producer=None, consumer=None,
                 poll_timeout=1.0):
        self.kafka_config = dict(kafka_config)
        self.group_id = group_id
        self.poll_timeout = poll_timeout
        self.running = True
        self._closed = False
        self._current = None

        self.producer = producer if producer is not None else Producer({
            **self.kafka_config,
            "enable.idempotence": True,
            "linger.ms": 50,
            "logger": logger,
        })

        self.consumer = consumer
        if self.consumer is None and group_id is not None:
            self.consumer = Consumer({
                **self.kafka_config,
                "group.id": group_id,
                "auto.offset.reset": "earliest",
                "enable.auto.commit": False,
                "logger": logger,
            })

    def connect(self, timeout=10.0):
        """Fail fast when the broker cannot be reached."""
        try:
            metadata = self.producer.list_topics(timeout=timeout)
        except KafkaException as e:
            raise TransportFailure(f"Cannot reach Kafka at "
                                   f"{self.kafka_config.get('bootstrap.servers')}: {e}") from e
        logger.info("Connected to Kafka (%d brokers)", len(metadata.brokers))
        return metadata

    def delivery_report(self, err, msg):
        if err:
            logger.error("[PRODUCER_ERROR] Delivery to %s failed: %s", msg.topic(), err)
        else:
            logger.debug("Delivered %s to %s [%s]", msg.key(), msg.topic(), msg.partition())

    def publish(self, topic, key, value, headers=None):
        if isinstance(key, str):
            key = key.encode("utf-8")
        try:
            self.producer.produce(
                topic,
                key=key,
                value=value,
                headers=headers_to_list(headers),
                on_delivery=self.delivery_report,
            )
            self.producer.poll(0)
        except (KafkaException, BufferError) as e:
            raise TransportFailure(f"Publish to {topic} failed: {e}", topic=topic) from e

    def subscribe(self, topics):
        """Yield messages from ``topics`` until ``stop()`` is called."""
        if self.consumer is None:
            raise TransportFailure("Channel was created without a consumer group")

        try:
            self.consumer.subscribe(list(topics))
        except KafkaException as e:
            raise TransportFailure(f"Subscribe to {topics} failed: {e}") from e

        while self.running:
            msg = self.consumer.poll(self.poll_timeout)
            if msg is None:
                continue
            if msg.error():
                if msg.error().code() == KafkaError._PARTITION_EOF:
                    continue
                logger.error("Consumer error: %s", msg.error())
                if msg.error().fatal():
                    raise TransportFailure(f"Fatal consumer error: {msg.error()}")
                continue

            self._current = msg
            yield Message(
                topic=msg.topic(),
                key=msg.key(),
                value=msg.value(),
                headers=headers_to_dict(msg.headers()),
            )

    def commit(self):
        """Commit the offset of the last message yielded by ``subscribe``."""
        if self._current is None or self.consumer is None:
            return
        try:
            self.consumer.commit(message=self._current, asynchronous=False)
        except KafkaException as e:
            logger.warning("Offset commit failed: %s", e)

    def stop(self):
        self.running = False

    def close(self, flush_timeout=10.0):
        if self._closed:
            return
        self._closed = True
        self.running = False

        remaining = self.producer.flush(flush_timeout)
        if remaining:
            logger.warning("%d messages still undelivered after flush", remaining)

        if self.consumer is not None:
            self.consumer.close()
        logger.info("Channel closed")
