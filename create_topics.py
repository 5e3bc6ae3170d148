import logging
import sys

from confluent_kafka import KafkaError, KafkaException
from confluent_kafka.admin import AdminClient, NewTopic

from config import load_settings, setup_logging
from errors import TransportFailure

logger = logging.getLogger(__name__)


def ensure_topics(admin_client, topics, num_partitions=1, replication_factor=1, timeout=10.0):
    """Create any of ``topics`` that do not exist yet. Returns the names created."""
    try:
        existing = set(admin_client.list_topics(timeout=timeout).topics)
    except KafkaException as e:
        raise TransportFailure(f"Could not list topics: {e}") from e

    missing = [t for t in topics if t not in existing]
    if not missing:
        logger.info("All topics already exist")
        return []

    topic_list = [
        NewTopic(t, num_partitions=num_partitions, replication_factor=replication_factor)
        for t in missing
    ]
    fs = admin_client.create_topics(topic_list)

    created = []
    for topic, f in fs.items():
        try:
            f.result()
            created.append(topic)
            logger.info("Topic %s created", topic)
        except KafkaException as e:
            error = e.args[0] if e.args else None
            if isinstance(error, KafkaError) and error.code() == KafkaError.TOPIC_ALREADY_EXISTS:
                logger.info("Topic %s already exists", topic)
                continue
            raise TransportFailure(f"Failed to create topic {topic}: {e}", topic=topic) from e

    return created


def main():
    settings = load_settings()
    setup_logging(settings.log_level)

    admin_client = AdminClient(settings.kafka_config())
    try:
        ensure_topics(admin_client, list(settings.topics.values()))
    except TransportFailure as e:
        logger.error("Topic setup failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
