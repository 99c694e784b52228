"""
Shared Rate Limiter - Cross-process request budget for the marketplace.

HttpClient paces requests per instance only, so N worker processes multiply
the request rate by N. When SCRAPER_SHARED_RATE_LIMIT is on, every client
also waits on this limiter, which keeps a sliding window of request
timestamps in Redis shared by all processes.

Without a Redis client it falls back to an in-process window (development).

Key format: scrape:{domain}:{route_group}:{minute|hour}
"""
import logging
import time
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_LIMITS = {
    "requests_per_minute": 20,
    "requests_per_hour": 600,
}

# Give up after this many sleeps rather than blocking a worker forever
MAX_WAIT_ROUNDS = 60


class RateLimitTimeout(RuntimeError):
    pass


class SharedRateLimiter:
    """Sliding-window limiter keyed by domain and route group."""

    def __init__(self, redis_client=None, config_path: Optional[str] = None):
        """
        Args:
            redis_client: redis.Redis instance shared by all workers, or None
                          for an in-process window.
            config_path: YAML limits file. Defaults to scrapers/rate_limits.yaml.
        """
        self.config_path = config_path or str(Path(__file__).parent / "rate_limits.yaml")
        self._config = None
        self._redis = redis_client
        self._memory_store: Dict[str, list] = defaultdict(list)

    @property
    def config(self) -> Dict[str, Any]:
        if self._config is None:
            self._config = self._load_config()
        return self._config

    def _load_config(self) -> Dict[str, Any]:
        try:
            with open(self.config_path, "r") as f:
                config = yaml.safe_load(f) or {}
                logger.info("rate_limits_loaded path=%s", self.config_path)
                return config
        except FileNotFoundError:
            logger.warning("rate_limits_missing path=%s using defaults", self.config_path)
            return {"defaults": dict(DEFAULT_LIMITS), "domains": {}}

    def get_limits(self, domain: str, route_group: str = "default") -> Dict[str, int]:
        """Defaults, then domain overrides, then route overrides."""
        defaults = self.config.get("defaults", {})
        domain_config = self.config.get("domains", {}).get(domain, {}) or {}
        route_config = domain_config.get("routes", {}).get(route_group, {}) or {}

        limits = {key: defaults.get(key, value) for key, value in DEFAULT_LIMITS.items()}
        for layer in (domain_config, route_config):
            for key in limits:
                if key in layer:
                    limits[key] = layer[key]
        return limits

    def wait(self, domain: str, route_group: str = "default") -> None:
        """Block until a request fits in the window, then record it."""
        limits = self.get_limits(domain, route_group)
        key = f"scrape:{domain}:{route_group}"

        for _ in range(MAX_WAIT_ROUNDS):
            now = time.time()
            if self._redis is not None:
                admitted = self._try_admit_redis(key, now, limits)
            else:
                admitted = self._try_admit_memory(key, now, limits)
            if admitted:
                return

            wait_s = 60 / limits["requests_per_minute"]
            logger.debug("shared_rate_limited domain=%s route=%s wait_s=%.1f", domain, route_group, wait_s)
            time.sleep(wait_s)

        raise RateLimitTimeout(f"Rate limit wait timeout for {domain}:{route_group}")

    def _try_admit_redis(self, key: str, now: float, limits: Dict[str, int]) -> bool:
        minute_key = f"{key}:minute"
        hour_key = f"{key}:hour"

        self._redis.zremrangebyscore(minute_key, 0, now - 60)
        self._redis.zremrangebyscore(hour_key, 0, now - 3600)
        if (
            self._redis.zcard(minute_key) >= limits["requests_per_minute"]
            or self._redis.zcard(hour_key) >= limits["requests_per_hour"]
        ):
            return False

        member = f"{now:.6f}"
        self._redis.zadd(minute_key, {member: now})
        self._redis.zadd(hour_key, {member: now})
        self._redis.expire(minute_key, 120)
        self._redis.expire(hour_key, 7200)
        return True

    def _try_admit_memory(self, key: str, now: float, limits: Dict[str, int]) -> bool:
        window = [t for t in self._memory_store[key] if now - t < 3600]
        self._memory_store[key] = window
        last_minute = [t for t in window if now - t < 60]
        if len(last_minute) >= limits["requests_per_minute"] or len(window) >= limits["requests_per_hour"]:
            return False
        window.append(now)
        return True
