"""Graph API access — rate limiting, retries, pagination."""

from pulse_core.graph.client import GraphApiClient
from pulse_core.graph.ratelimit import RateLimiterRegistry, SlidingWindowRateLimiter

__all__ = [
    "GraphApiClient",
    "RateLimiterRegistry",
    "SlidingWindowRateLimiter",
]
