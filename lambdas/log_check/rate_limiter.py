# lambdas/log_check/rate_limiter.py
"""
Token bucket limiter for the CloudWatch Logs API calls.

CloudWatch Logs documents a per-second ceiling for each API, see
https://docs.aws.amazon.com/AmazonCloudWatch/latest/logs/cloudwatch_limits_cwl.html
"""
import threading
import time
from typing import Callable, Optional

DESCRIBE_LOG_GROUPS_PER_SECOND = 10
FILTER_LOG_EVENTS_PER_SECOND = 25


class RateLimiter:
    """Token bucket with a sustained rate (tokens per second) and a burst capacity."""

    def __init__(
        self,
        rate: float,
        burst: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if rate <= 0 or burst < 1:
            raise ValueError("rate must be positive and burst at least 1")
        self.rate = rate
        self.burst = burst
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(burst)
        self._last_refill = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        self._tokens = min(self.burst, self._tokens + elapsed * self.rate)
        self._last_refill = now

    def _reserve(self) -> float:
        """
        Takes a token, going into debt when none is left, and returns the seconds
        until the taken token is covered by the refill (0 when it already is).
        """
        with self._lock:
            self._refill()
            self._tokens -= 1
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self.rate

    def _release(self) -> None:
        with self._lock:
            self._tokens = min(self.burst, self._tokens + 1)

    def acquire(self, cancel_event: Optional[threading.Event] = None) -> bool:
        """
        Blocks until a token is available. Waits at most once per call.

        Returns:
            True when a token was taken, False when cancel_event was set first.
        """
        if cancel_event is not None and cancel_event.is_set():
            return False
        wait = self._reserve()
        if wait <= 0:
            return True
        if cancel_event is None:
            self._sleep(wait)
        elif cancel_event.wait(wait):
            # the reserved token goes back to the bucket
            self._release()
            return False
        return True


def log_groups_limiter() -> RateLimiter:
    """Limiter for DescribeLogGroups calls."""
    return RateLimiter(DESCRIBE_LOG_GROUPS_PER_SECOND, DESCRIBE_LOG_GROUPS_PER_SECOND)


def events_limiter() -> RateLimiter:
    """Limiter for FilterLogEvents calls."""
    return RateLimiter(FILTER_LOG_EVENTS_PER_SECOND, FILTER_LOG_EVENTS_PER_SECOND)
