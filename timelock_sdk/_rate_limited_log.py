"""
Thread-safe rate-limited logging utilities.

Degraded fee quotes and resource estimates are logged on every attempt; when
the fee endpoint is down that would repeat the same warning for every
submission. This module keeps visibility without the log spam.
"""
import logging
import threading
from typing import Optional

from cachetools import TTLCache

# Configure logger
logger = logging.getLogger(__name__)

# Global rate limiting cache with thread safety
_log_cache = TTLCache(maxsize=100, ttl=60)
_log_cache_lock = threading.RLock()


def rate_limited_log(
    message: str,
    level: str = "warning",
    key: Optional[str] = None,
    logger_instance: Optional[logging.Logger] = None
) -> bool:
    """
    Log a message at most once per cache TTL, in a thread-safe manner.

    Args:
        message: Message to log
        level: Log level (debug, info, warning, error, critical)
        key: Rate limiting key (defaults to level and message)
        logger_instance: Logger to use (defaults to module logger)

    Returns:
        True if the message was logged, False if it was suppressed
    """
    log_instance = logger_instance or logger
    log_method = getattr(log_instance, level.lower(), log_instance.warning)
    cache_key = key or f"{level}:{message}"

    with _log_cache_lock:
        # If the key is in the cache, we've logged it recently
        if cache_key in _log_cache:
            return False
        log_method(message)
        _log_cache[cache_key] = True  # Value doesn't matter, TTL handles expiry
    return True


def reset_rate_limits() -> None:
    """Forget every suppressed key."""
    with _log_cache_lock:
        _log_cache.clear()
