import enum
import logging
import signal
import sys
import threading
import time

from confluent_kafka import KafkaException

from channels import KafkaChannel
from config import load_settings, setup_logging
from consumer.aggregation import RunningAverage
from consumer.failures import RandomFailurePolicy
from consumer.retry import RetryLedger, RetryScheduler, backoff_delay
from dashboard.app import serve_in_background
from errors import DecodeError, TransientProcessingFailure, TransportFailure
from serialization import OrderCodec

logger = logging.getLogger(__name__)


class DeliveryOutcome(str, enum.Enum):
    SUCCEEDED = "succeeded"
    RETRY_SCHEDULED = "retry_scheduled"
    DEAD_LETTERED = "dead_lettered"
    DROPPED = "dropped"


class DeliveryStats:
    def __init__(self):
        self._lock = threading.Lock()
        self.success_count = 0
        self.retry_count = 0
        self.dlq_count = 0
        self.dropped_count = 0

    def record(self, outcome):
        with self._lock:
            if outcome is DeliveryOutcome.SUCCEEDED:
                self.success_count += 1
            elif outcome is DeliveryOutcome.RETRY_SCHEDULED:
                self.retry_count += 1
            elif outcome is DeliveryOutcome.DEAD_LETTERED:
                self.dlq_count += 1
            elif outcome is DeliveryOutcome.DROPPED:
                self.dropped_count += 1

    def snapshot(self):
        with self._lock:
            finished = self.success_count + self.dlq_count
            success_rate = (self.success_count / finished) * 100 if finished > 0 else 0.0
            return {
                "success_count": self.success_count,
                "retry_count": self.retry_count,
                "dlq_count": self.dlq_count,
                "dropped_count": self.dropped_count,
                "success_rate": success_rate,
            }


class OrderConsumer:
    def __init__(self, channel, topics, codec=None, failure_policy=None, max_retries=3,
                 backoff_unit=1.0, ledger=None, scheduler=None, aggregator=None,
                 shutdown_grace=10.0, clock=time.time):
        self.channel = channel
        self.topics = topics
        self.codec = codec or OrderCodec()
        self.failure_policy = failure_policy or RandomFailurePolicy()
        self.max_retries = max_retries
        self.backoff_unit = backoff_unit
        self.ledger = ledger if ledger is not None else RetryLedger()
        self.scheduler = scheduler or RetryScheduler()
        self.aggregator = aggregator or RunningAverage()
        self.stats = DeliveryStats()
        self.shutdown_grace = shutdown_grace
        self.clock = clock
        self._shut_down = False

    def _timestamp(self):
        return str(int(self.clock() * 1000))

    def process_order(self, order):
        order_id = order["orderId"]
        if self.failure_policy.should_fail(order):
            raise TransientProcessingFailure(order_id)

        average = self.aggregator.record(order["price"])
        logger.info(
            "Processed order %s, Product: %s, Price: $%.2f, Running average: $%.2f, Total orders: %d",
            order_id, order["product"], order["price"], average, self.aggregator.order_count,
        )
        return average

    def handle_message(self, message):
        try:
            order = self.codec.decode(message.value)
        except DecodeError as e:
            logger.error("[DROPPED] Undecodable message on %s (key=%s): %s",
                         message.topic, message.order_id, e)
            self.stats.record(DeliveryOutcome.DROPPED)
            return DeliveryOutcome.DROPPED

        order_id = order["orderId"]
        logger.info("Received order %s from %s", order_id, message.topic)

        try:
            self.process_order(order)
        except TransientProcessingFailure as e:
            logger.warning("Temporary failure for order %s: %s", order_id, e)
            outcome = self.handle_failure(message, order_id, e)
        else:
            self.ledger.delete(order_id)
            outcome = DeliveryOutcome.SUCCEEDED

        self.stats.record(outcome)
        return outcome

    def handle_failure(self, message, order_id, error):
        attempts, retry_allowed = self.ledger.claim_attempt(order_id, self.max_retries)
        if retry_allowed:
            self.schedule_retry(message, order_id, attempts)
            return DeliveryOutcome.RETRY_SCHEDULED

        self.send_to_dlq(message, order_id, error)
        return DeliveryOutcome.DEAD_LETTERED

    def schedule_retry(self, message, order_id, attempts):
        next_attempt = attempts + 1
        delay = backoff_delay(attempts, self.backoff_unit)
        logger.info("[RETRY] %d/%d for order %s (delay: %ss)",
                    next_attempt, self.max_retries, order_id, delay)
        self.scheduler.schedule(delay, self.publish_retry, message, order_id, next_attempt)

    def publish_retry(self, message, order_id, attempt):
        headers = dict(message.headers)
        headers["retry-attempt"] = str(attempt)
        headers["retry-timestamp"] = self._timestamp()
        try:
            self.channel.publish(self.topics["retry"], order_id, message.value, headers)
        except TransportFailure as e:
            logger.error("Error sending order %s to retry topic: %s", order_id, e)
            return False
        logger.info("Sent to retry queue: %s", order_id)
        return True

    def send_to_dlq(self, message, order_id, error):
        logger.warning("[DLQ] Sending order %s after %d retries", order_id, self.max_retries)
        headers = dict(message.headers)
        headers["error-message"] = str(error)
        headers["dlq-timestamp"] = self._timestamp()
        headers["retry-attempts"] = str(self.max_retries)
        try:
            self.channel.publish(self.topics["dead_letter"], order_id, message.value, headers)
        except TransportFailure as e:
            logger.error("Error sending order %s to DLQ: %s", order_id, e)
            return False
        logger.info("[DLQ] Order %s moved to DLQ", order_id)
        return True

    def log_metrics(self):
        s = self.stats.snapshot()
        logger.info(
            "Metrics -> Success Count: %d, Retries: %d, DLQ Count: %d, Dropped: %d, Success Rate: %.2f%%",
            s["success_count"], s["retry_count"], s["dlq_count"], s["dropped_count"], s["success_rate"],
        )

    def consume_orders(self):
        logger.info("Starting order consumer...")
        try:
            for message in self.channel.subscribe([self.topics["main"], self.topics["retry"]]):
                try:
                    self.handle_message(message)
                except Exception:
                    logger.exception("Unexpected error handling message from %s", message.topic)
                self.channel.commit()
                self.log_metrics()
        finally:
            self.shutdown()

    def stop(self, *args):
        logger.info("Stopping consumer...")
        self.channel.stop()

    def shutdown(self):
        if self._shut_down:
            return
        self._shut_down = True
        self.scheduler.shutdown(self.shutdown_grace)
        self.channel.close()
        logger.info("Consumer disconnected")


def main():
    settings = load_settings()
    setup_logging(settings.log_level)

    channel = None
    try:
        channel = KafkaChannel(settings.kafka_config(), group_id=settings.group_id)
        channel.connect()
    except (TransportFailure, KafkaException) as e:
        logger.critical("Consumer startup failed: %s", e)
        if channel is not None:
            channel.close()
        return 1

    consumer = OrderConsumer(
        channel,
        settings.topics,
        codec=OrderCodec(settings.schema_file),
        failure_policy=RandomFailurePolicy(settings.failure_rate),
        max_retries=settings.max_retries,
        backoff_unit=settings.backoff_unit,
        shutdown_grace=settings.shutdown_grace,
    )
    signal.signal(signal.SIGINT, consumer.stop)
    signal.signal(signal.SIGTERM, consumer.stop)

    if settings.dashboard_port:
        serve_in_background(consumer.aggregator, consumer.stats, settings.dashboard_port)

    try:
        consumer.consume_orders()
    except TransportFailure as e:
        logger.critical("Consumer stopped: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
