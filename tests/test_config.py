"""Tests for environment-driven settings."""

import pytest

from config import DEFAULT_SCHEMA_FILE, Settings, load_settings
from errors import ConfigurationError


def test_defaults():
    settings = load_settings({})

    assert settings == Settings()
    assert settings.bootstrap_servers == "localhost:9092"
    assert settings.max_retries == 3
    assert settings.failure_rate == 0.2
    assert settings.produce_interval == 2.0
    assert settings.schema_file == DEFAULT_SCHEMA_FILE
    assert settings.topics == {"main": "orders", "retry": "orders-retry", "dead_letter": "orders-dlq"}


def test_overrides():
    settings = load_settings({
        "KAFKA_BROKER": "k1:9092,k2:9092",
        "KAFKA_GROUP_ID": "test-group",
        "MAX_RETRIES": "5",
        "FAILURE_RATE": "0",
        "PRODUCE_INTERVAL_SECONDS": "0.5",
        "ORDERS_DLQ_TOPIC": "orders-dead",
        "DASHBOARD_PORT": "5000",
        "LOG_LEVEL": "debug",
    })

    assert settings.bootstrap_servers == "k1:9092,k2:9092"
    assert settings.group_id == "test-group"
    assert settings.max_retries == 5
    assert settings.failure_rate == 0.0
    assert settings.produce_interval == 0.5
    assert settings.topics["dead_letter"] == "orders-dead"
    assert settings.dashboard_port == 5000
    assert settings.log_level == "DEBUG"


def test_reads_process_environment(monkeypatch):
    monkeypatch.setenv("MAX_RETRIES", "1")
    assert load_settings().max_retries == 1


def test_blank_values_fall_back_to_defaults():
    assert load_settings({"MAX_RETRIES": "  "}).max_retries == 3


def test_kafka_config():
    settings = load_settings({"KAFKA_BROKER": "broker:9092", "KAFKA_CLIENT_ID": "svc"})
    assert settings.kafka_config() == {"bootstrap.servers": "broker:9092", "client.id": "svc"}


@pytest.mark.parametrize("env,name", [
    ({"MAX_RETRIES": "three"}, "MAX_RETRIES"),
    ({"MAX_RETRIES": "-1"}, "MAX_RETRIES"),
    ({"FAILURE_RATE": "1.5"}, "FAILURE_RATE"),
    ({"PRODUCE_INTERVAL_SECONDS": "0"}, "PRODUCE_INTERVAL_SECONDS"),
    ({"RETRY_BACKOFF_UNIT_SECONDS": "-2"}, "RETRY_BACKOFF_UNIT_SECONDS"),
    ({"LOG_LEVEL": "LOUD"}, "LOG_LEVEL"),
])
def test_invalid_values(env, name):
    with pytest.raises(ConfigurationError, match=name):
        load_settings(env)
