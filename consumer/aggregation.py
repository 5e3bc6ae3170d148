import threading


class RunningAverage:
    """Running count and average price of successfully processed orders."""

    def __init__(self):
        self._lock = threading.Lock()
        self._total_price = 0.0
        self._order_count = 0

    def record(self, price):
        with self._lock:
            self._total_price += price
            self._order_count += 1
            return self._total_price / self._order_count

    @property
    def order_count(self):
        with self._lock:
            return self._order_count

    @property
    def total_price(self):
        with self._lock:
            return self._total_price

    @property
    def average(self):
        with self._lock:
            if self._order_count == 0:
                return 0.0
            return self._total_price / self._order_count

    def snapshot(self):
        with self._lock:
            count = self._order_count
            total = self._total_price
        return {
            "order_count": count,
            "total_price": round(total, 2),
            "running_average": round(total / count, 2) if count else 0.0,
        }
