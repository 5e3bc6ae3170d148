import logging
import random
import signal
import sys
import threading
import time

from confluent_kafka import KafkaException
from confluent_kafka.admin import AdminClient

from channels import KafkaChannel
from config import load_settings, setup_logging
from create_topics import ensure_topics
from errors import TransportFailure
from serialization import CONTENT_TYPE, OrderCodec

logger = logging.getLogger(__name__)

PRODUCTS = ["Laptop", "Mouse", "Keyboard", "Monitor", "Headphones"]
PRICE_RANGE = (10.0, 110.0)


def generate_order(counter, rng=random):
    return {
        "orderId": f"ORD{counter:06d}",
        "product": rng.choice(PRODUCTS),
        "price": round(rng.uniform(*PRICE_RANGE), 2),
    }


class OrderProducer:
    def __init__(self, channel, topic, codec=None, interval=2.0, start_counter=1,
                 rng=None, clock=time.time):
        self.channel = channel
        self.topic = topic
        self.codec = codec or OrderCodec()
        self.interval = interval
        self.counter = start_counter
        self.rng = rng or random.Random()
        self.clock = clock
        self._stop = threading.Event()

    @property
    def running(self):
        return not self._stop.is_set()

    def stop(self, *args):
        logger.info("Shutting down producer gracefully...")
        self._stop.set()

    def produce_one(self):
        order = generate_order(self.counter, self.rng)
        payload = self.codec.encode(order)
        headers = {
            "content-type": CONTENT_TYPE,
            "timestamp": str(int(self.clock() * 1000)),
        }

        try:
            self.channel.publish(self.topic, order["orderId"], payload, headers)
        except TransportFailure as e:
            logger.error("[PRODUCER_ERROR] %s: %s", order["orderId"], e)
            return None

        self.counter += 1
        logger.info("[PRODUCED] %s | %s | $%.2f", order["orderId"], order["product"], order["price"])
        return order

    def run(self):
        logger.info("Producer started, one order every %ss", self.interval)
        try:
            while self.running:
                self.produce_one()
                self._stop.wait(self.interval)
        finally:
            self.channel.close()
            logger.info("Producer shutdown complete.")


def main():
    settings = load_settings()
    setup_logging(settings.log_level)

    channel = None
    try:
        channel = KafkaChannel(settings.kafka_config())
        ensure_topics(AdminClient(settings.kafka_config()), list(settings.topics.values()))
        channel.connect()
    except (TransportFailure, KafkaException) as e:
        logger.critical("Producer startup failed: %s", e)
        if channel is not None:
            channel.close()
        return 1

    producer = OrderProducer(
        channel,
        settings.topics["main"],
        codec=OrderCodec(settings.schema_file),
        interval=settings.produce_interval,
    )
    signal.signal(signal.SIGINT, producer.stop)
    signal.signal(signal.SIGTERM, producer.stop)

    producer.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
