import logging
import threading
import time

logger = logging.getLogger(__name__)


def backoff_delay(attempt, unit=1.0):
    """Delay before retry ``attempt + 1``: 1, 2, 4, ... units."""
    return unit * (2 ** attempt)


class RetryLedger:
    """Attempt counts per orderId. In memory only, so a restart forgets them."""

    def __init__(self):
        self._attempts = {}
        self._lock = threading.Lock()

    def get(self, order_id):
        with self._lock:
            return self._attempts.get(order_id, 0)

    def set(self, order_id, attempts):
        with self._lock:
            self._attempts[order_id] = attempts

    def delete(self, order_id):
        with self._lock:
            return self._attempts.pop(order_id, None) is not None

    def claim_attempt(self, order_id, max_retries):
        """Record a failure for ``order_id``.

        Returns ``(previous_attempts, retry_allowed)``. When a retry is
        allowed the count is bumped, otherwise the entry is removed. Both
        happen under one lock so concurrent failures for the same order
        never see the same count.
        """
        with self._lock:
            attempts = self._attempts.get(order_id, 0)
            if attempts < max_retries:
                self._attempts[order_id] = attempts + 1
                return attempts, True
            self._attempts.pop(order_id, None)
            return attempts, False

    def __contains__(self, order_id):
        with self._lock:
            return order_id in self._attempts

    def __len__(self):
        with self._lock:
            return len(self._attempts)


class RetryScheduler:
    """Runs deferred callbacks on timer threads.

    Scheduled work cannot be cancelled individually. ``shutdown`` gives
    pending timers a grace period, abandons those that have not fired yet
    and waits for callbacks that already started.
    """

    def __init__(self):
        self._waiting = set()
        self._running = set()
        self._closed = False
        self._lock = threading.Lock()

    def schedule(self, delay, fn, *args):
        timer = None

        def fire():
            with self._lock:
                if self._closed or timer not in self._waiting:
                    return
                self._waiting.discard(timer)
                self._running.add(timer)
            try:
                fn(*args)
            except Exception:
                logger.exception("Scheduled retry callback failed")
            finally:
                with self._lock:
                    self._running.discard(timer)

        timer = threading.Timer(delay, fire)
        timer.daemon = True
        with self._lock:
            if self._closed:
                logger.warning("Scheduler is shut down, dropping retry scheduled in %ss", delay)
                return None
            self._waiting.add(timer)
        timer.start()
        return timer

    @property
    def pending(self):
        with self._lock:
            return len(self._waiting) + len(self._running)

    def shutdown(self, grace=10.0):
        """Wait up to ``grace`` seconds for timers, then drop the rest.

        Callbacks already running are always waited for. Returns the
        number of abandoned callbacks.
        """
        with self._lock:
            timers = list(self._waiting | self._running)

        remaining = grace
        for timer in timers:
            if remaining <= 0:
                break
            started = time.monotonic()
            timer.join(remaining)
            remaining -= time.monotonic() - started

        with self._lock:
            self._closed = True
            abandoned = list(self._waiting)
            self._waiting.clear()
            running = list(self._running)

        for timer in abandoned:
            timer.cancel()
        if abandoned:
            logger.warning("Abandoning %d scheduled retries still waiting at shutdown", len(abandoned))

        for timer in running:
            timer.join()
        return len(abandoned)
