import random
from typing import Protocol


class FailurePolicy(Protocol):
    def should_fail(self, order):
        ...


class RandomFailurePolicy:
    """Fails a fixed fraction of orders to simulate a flaky downstream."""

    def __init__(self, probability=0.2, rng=None):
        if not 0.0 <= probability <= 1.0:
            raise ValueError(f"probability must be between 0 and 1, got {probability}")
        self.probability = probability
        self.rng = rng or random.Random()

    def should_fail(self, order):
        return self.rng.random() < self.probability
