"""
Redis-backed per-IP rate limiting.
Fixed windows with graceful degradation: if Redis is unreachable, requests are allowed.
"""

import logging
import time
from dataclasses import dataclass
from functools import wraps
from typing import Any, Dict, Optional

import redis
from redis.exceptions import RedisError, ConnectionError, TimeoutError
from flask import Flask, g, request

from onam_api.exceptions import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass
class RateLimitStatus:
    limit: int
    remaining: int
    reset: int  # seconds until the window closes
    allowed: bool


class RateLimiter:
    """
    Fixed-window request counters in Redis.

    Keys pattern: {prefix}:{limit_class}:{client_ip}:{window_index}
    """

    def __init__(self, app: Optional[Flask] = None, client: Any = None):
        self.client = client
        self._enabled: bool = False
        self._prefix: str = ""
        self._limits: Dict[str, Dict[str, Any]] = {}

        if app:
            self.init_app(app, client)

    def init_app(self, app: Flask, client: Any = None) -> None:
        """Initialize the Redis client from Flask app config."""
        self._enabled = app.config.get('RATELIMIT_ENABLED', True)
        self._prefix = app.config.get('RATELIMIT_KEY_PREFIX', 'onam:ratelimit')
        self._limits = dict(app.config.get('RATELIMITS', {}))

        if not self._enabled:
            logger.info("[RATELIMIT] Rate limiting is DISABLED via config")
            return

        if client is not None:
            self.client = client
            return

        redis_url = app.config.get('REDIS_URL', 'redis://localhost:6379/0')
        self.client = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=3,
            socket_keepalive=True,
            max_connections=50,
            retry_on_timeout=True,
            health_check_interval=30
        )
        try:
            self.client.ping()
            logger.info(f"[RATELIMIT] ✓ Redis connected: {redis_url}")
        except (ConnectionError, TimeoutError, RedisError) as e:
            # Keep the client; requests are allowed until Redis comes back
            logger.warning(f"[RATELIMIT] ⚠ Redis connection failed: {e}. Requests will not be limited.")

    @property
    def enabled(self) -> bool:
        return self._enabled and self.client is not None

    def is_available(self) -> bool:
        """Check if Redis is reachable."""
        if not self.enabled:
            return False
        try:
            self.client.ping()
            return True
        except (ConnectionError, RedisError):
            return False

    def rule(self, limit_class: str) -> Optional[Dict[str, Any]]:
        return self._limits.get(limit_class)

    def _build_key(self, limit_class: str, identity: str, window_index: int) -> str:
        return f"{self._prefix}:{limit_class}:{identity}:{window_index}"

    def hit(self, limit_class: str, identity: str, now: Optional[float] = None) -> Optional[RateLimitStatus]:
        """
        Count one request for ``identity`` in ``limit_class``.

        Returns None when limiting does not apply (disabled, unknown class or
        Redis unavailable).
        """
        rule = self.rule(limit_class)
        if not self.enabled or rule is None:
            return None

        now = int(now if now is not None else time.time())
        window = int(rule['window'])
        window_index = now // window
        key = self._build_key(limit_class, identity, window_index)

        try:
            count = int(self.client.incr(key))
            if count == 1:
                self.client.expire(key, window)
        except RedisError as e:
            logger.warning(f"[RATELIMIT] ✗ Redis error, allowing request: {e}")
            return None

        limit = int(rule['limit'])
        return RateLimitStatus(
            limit=limit,
            remaining=max(limit - count, 0),
            reset=window - (now % window),
            allowed=count <= limit,
        )

    def check(self, limit_class: str) -> Optional[RateLimitStatus]:
        """
        Apply ``limit_class`` to the current request's client address.

        Raises:
            RateLimitExceeded: when the client is over the limit
        """
        identity = request.remote_addr or 'unknown'
        status = self.hit(limit_class, identity)
        if status is None:
            return None

        # Report the most restrictive class that applied to this request
        current = g.get('rate_limit_status')
        if current is None or status.remaining <= current.remaining:
            g.rate_limit_status = status

        if not status.allowed:
            logger.warning(f"[RATELIMIT] {limit_class} limit exceeded for {identity} on {request.path}")
            raise RateLimitExceeded(self.rule(limit_class).get('message') or RateLimitExceeded().message, status)
        return status


def apply_rate_limit_headers(response, status: Optional[RateLimitStatus]):
    if status is None:
        return response
    response.headers['RateLimit-Limit'] = str(status.limit)
    response.headers['RateLimit-Remaining'] = str(status.remaining)
    response.headers['RateLimit-Reset'] = str(status.reset)
    if not status.allowed:
        response.headers['Retry-After'] = str(status.reset)
    return response


_rate_limiter: Optional[RateLimiter] = None


def init_rate_limiter(app: Flask, client: Any = None) -> None:
    """Initialize the rate limiter singleton and its request hooks."""
    global _rate_limiter
    _rate_limiter = RateLimiter(app, client)
    app.extensions['rate_limiter'] = _rate_limiter

    @app.before_request
    def apply_default_rate_limit():
        if request.path.startswith('/api/'):
            _rate_limiter.check('default')

    @app.after_request
    def add_rate_limit_headers(response):
        return apply_rate_limit_headers(response, g.get('rate_limit_status'))


def get_rate_limiter() -> RateLimiter:
    """Get rate limiter instance."""
    if _rate_limiter is None:
        raise RuntimeError("Rate limiter not initialized.")
    return _rate_limiter


def rate_limit(limit_class: str):
    """Decorator: apply a named limit class to a route."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            get_rate_limiter().check(limit_class)
            return f(*args, **kwargs)
        return decorated_function
    return decorator
