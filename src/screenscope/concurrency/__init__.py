"""Concurrency: rate-limit tracking, timeouts and request coalescing."""

from screenscope.concurrency.rate_limiter import RateLimitTracker
from screenscope.concurrency.single_flight import SingleFlight
from screenscope.concurrency.timeout import run_with_timeout

__all__ = ["RateLimitTracker", "SingleFlight", "run_with_timeout"]
