"""
Shared fixtures for the order pipeline tests.

The Kafka transport is replaced by in-memory fakes so the consumer's
retry and dead-letter routing can be driven deterministically.
"""

import pytest

from channels import Message
from errors import TransportFailure
from serialization import OrderCodec

TOPICS = {"main": "orders", "retry": "orders-retry", "dead_letter": "orders-dlq"}


class FakeChannel:
    """Records publishes and replays a fixed list of inbound messages."""

    def __init__(self, inbound=None):
        self.inbound = list(inbound or [])
        self.published = []
        self.fail_topics = set()
        self.running = True
        self.commits = 0
        self.closed = False
        self.subscribed = None

    def publish(self, topic, key, value, headers=None):
        if topic in self.fail_topics:
            raise TransportFailure(f"broker unavailable for {topic}", topic=topic)
        self.published.append(Message(topic, key.encode() if isinstance(key, str) else key,
                                      value, dict(headers or {})))

    def on(self, topic):
        return [m for m in self.published if m.topic == topic]

    def subscribe(self, topics):
        self.subscribed = list(topics)
        while self.running and self.inbound:
            yield self.inbound.pop(0)

    def commit(self):
        self.commits += 1

    def stop(self):
        self.running = False

    def close(self, flush_timeout=10.0):
        self.closed = True


class RecordingScheduler:
    """Captures scheduled callbacks instead of starting timers."""

    def __init__(self):
        self.calls = []
        self.shutdown_called = False

    def schedule(self, delay, fn, *args):
        self.calls.append((delay, fn, args))

    @property
    def delays(self):
        return [delay for delay, _, _ in self.calls]

    def run_pending(self):
        calls, self.calls = self.calls, []
        for _, fn, args in calls:
            fn(*args)
        return len(calls)

    def shutdown(self, grace=10.0):
        self.shutdown_called = True
        return len(self.calls)


class ScriptedFailures:
    """Fails or succeeds according to a list; succeeds once exhausted."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)

    def should_fail(self, order):
        return self.outcomes.pop(0) if self.outcomes else False


class AlwaysFail:
    def should_fail(self, order):
        return True


class NeverFail:
    def should_fail(self, order):
        return False


@pytest.fixture
def codec():
    return OrderCodec()


@pytest.fixture
def sample_order():
    return {"orderId": "ORD000001", "product": "Laptop", "price": 42.5}


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def make_message(codec):
    def _make(order, topic="orders", headers=None):
        return Message(
            topic=topic,
            key=order["orderId"].encode(),
            value=codec.encode(order),
            headers=dict(headers or {"content-type": "application/avro"}),
        )
    return _make
