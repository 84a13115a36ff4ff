"""Shared utilities: configuration, logging, retries and rate limiting"""

from .config import Config, get_config, get_config_manager, get_settings
from .rate_limiter import RateLimiter, SlidingWindowLimiter, get_rate_limiter
from .retry import with_retry

__all__ = [
    "Config",
    "get_config",
    "get_config_manager",
    "get_settings",
    "RateLimiter",
    "SlidingWindowLimiter",
    "get_rate_limiter",
    "with_retry",
]
