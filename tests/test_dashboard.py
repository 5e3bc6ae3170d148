"""Tests for the metrics dashboard endpoints."""

import pytest

from consumer.aggregation import RunningAverage
from consumer.consumer import DeliveryOutcome, DeliveryStats
from dashboard.app import create_app


@pytest.fixture
def reporter():
    reporter = RunningAverage()
    for price in (10.0, 20.0, 30.0):
        reporter.record(price)
    return reporter


def test_health(reporter):
    client = create_app(reporter).test_client()

    response = client.get("/health")

    assert response.status_code == 200
    assert response.get_json()["status"] == "healthy"


def test_metrics_reports_running_average(reporter):
    client = create_app(reporter).test_client()

    data = client.get("/metrics").get_json()

    assert data["total_orders"] == 3
    assert data["running_average"] == 20.0
    assert data["total_price"] == 60.0
    assert "success_rate" not in data


def test_metrics_includes_delivery_stats(reporter):
    stats = DeliveryStats()
    for outcome in (DeliveryOutcome.SUCCEEDED, DeliveryOutcome.SUCCEEDED, DeliveryOutcome.SUCCEEDED,
                    DeliveryOutcome.DEAD_LETTERED, DeliveryOutcome.RETRY_SCHEDULED,
                    DeliveryOutcome.DROPPED):
        stats.record(outcome)
    client = create_app(reporter, stats).test_client()

    data = client.get("/metrics").get_json()

    assert data["success_count"] == 3
    assert data["dlq_count"] == 1
    assert data["retry_count"] == 1
    assert data["dropped_count"] == 1
    assert data["success_rate"] == 75.0


def test_empty_metrics():
    data = create_app(RunningAverage()).test_client().get("/metrics").get_json()
    assert data["total_orders"] == 0
    assert data["running_average"] == 0.0
