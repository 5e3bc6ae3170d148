import logging
import os
from dataclasses import dataclass
from pathlib import Path

from errors import ConfigurationError

DEFAULT_SCHEMA_FILE = str(Path(__file__).resolve().parent / "schemas" / "order.avsc")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Settings:
    bootstrap_servers: str = "localhost:9092"
    group_id: str = "order-processing-group"
    client_id: str = "order-processing-system"
    orders_topic: str = "orders"
    retry_topic: str = "orders-retry"
    dlq_topic: str = "orders-dlq"
    max_retries: int = 3
    failure_rate: float = 0.2
    produce_interval: float = 2.0
    backoff_unit: float = 1.0
    shutdown_grace: float = 10.0
    schema_file: str = DEFAULT_SCHEMA_FILE
    dashboard_port: int = 0
    log_level: str = "INFO"

    @property
    def topics(self):
        return {
            "main": self.orders_topic,
            "retry": self.retry_topic,
            "dead_letter": self.dlq_topic,
        }

    def kafka_config(self):
        return {
            "bootstrap.servers": self.bootstrap_servers,
            "client.id": self.client_id,
        }


def _get(environ, name, default, cast):
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r} ({e})") from e


def load_settings(environ=None):
    """Build Settings from environment variables, falling back to defaults."""
    env = os.environ if environ is None else environ
    defaults = Settings()

    settings = Settings(
        bootstrap_servers=_get(env, "KAFKA_BROKER", defaults.bootstrap_servers, str),
        group_id=_get(env, "KAFKA_GROUP_ID", defaults.group_id, str),
        client_id=_get(env, "KAFKA_CLIENT_ID", defaults.client_id, str),
        orders_topic=_get(env, "ORDERS_TOPIC", defaults.orders_topic, str),
        retry_topic=_get(env, "ORDERS_RETRY_TOPIC", defaults.retry_topic, str),
        dlq_topic=_get(env, "ORDERS_DLQ_TOPIC", defaults.dlq_topic, str),
        max_retries=_get(env, "MAX_RETRIES", defaults.max_retries, int),
        failure_rate=_get(env, "FAILURE_RATE", defaults.failure_rate, float),
        produce_interval=_get(env, "PRODUCE_INTERVAL_SECONDS", defaults.produce_interval, float),
        backoff_unit=_get(env, "RETRY_BACKOFF_UNIT_SECONDS", defaults.backoff_unit, float),
        shutdown_grace=_get(env, "SHUTDOWN_GRACE_SECONDS", defaults.shutdown_grace, float),
        schema_file=_get(env, "AVRO_SCHEMA_FILE", defaults.schema_file, str),
        dashboard_port=_get(env, "DASHBOARD_PORT", defaults.dashboard_port, int),
        log_level=_get(env, "LOG_LEVEL", defaults.log_level, str).upper(),
    )

    if settings.max_retries < 0:
        raise ConfigurationError("MAX_RETRIES must be >= 0")
    if not 0.0 <= settings.failure_rate <= 1.0:
        raise ConfigurationError("FAILURE_RATE must be between 0 and 1")
    if settings.produce_interval <= 0:
        raise ConfigurationError("PRODUCE_INTERVAL_SECONDS must be positive")
    if settings.backoff_unit < 0:
        raise ConfigurationError("RETRY_BACKOFF_UNIT_SECONDS must be >= 0")
    if settings.log_level not in LOG_LEVELS:
        raise ConfigurationError(f"Unknown LOG_LEVEL: {settings.log_level}")

    return settings


def setup_logging(level="INFO"):
    root = logging.getLogger()
    root.setLevel(level)
    if not any(getattr(h, "_order_pipeline", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._order_pipeline = True
        root.addHandler(handler)

