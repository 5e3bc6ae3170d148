"""Exception hierarchy shared by the producer, consumer and topic setup."""


class OrderPipelineError(Exception):
    """Base class for every error raised by the order pipeline."""


class ConfigurationError(OrderPipelineError):
    """An environment setting is missing or cannot be parsed."""


class SchemaViolation(OrderPipelineError):
    """An order does not conform to the record definition at encode time."""


class DecodeError(OrderPipelineError):
    """Inbound bytes cannot be parsed into a valid order. Never retried."""


class TransientProcessingFailure(OrderPipelineError):
    """Processing failed in a way that may succeed on a later attempt."""

    def __init__(self, order_id, reason=None):
        self.order_id = order_id
        message = f"Temporary processing failure for order {order_id}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class TransportFailure(OrderPipelineError):
    """A publish, subscribe or admin call against the broker failed."""

    def __init__(self, message, topic=None):
        self.topic = topic
        super().__init__(message)
