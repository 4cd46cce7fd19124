"""
Rate limiting configuration settings.

Centralizes the limits applied to enumeration-sensitive endpoints and the
sweep cadence of the in-process limiter.
"""

import os


class RateLimitSettings:
    """Rate limiting configuration with dynamic environment variable support."""

    def __init__(self):
        self._cache = {}

    def _get_env_int(self, key: str, default: int) -> int:
        """Get integer value from environment with caching."""
        if key not in self._cache:
            env_value = os.getenv(key)
            if env_value is not None:
                try:
                    self._cache[key] = int(env_value)
                except ValueError:
                    self._cache[key] = default
            else:
                self._cache[key] = default
        return self._cache[key]

    def clear_cache(self):
        """Clear cached values - useful for testing."""
        self._cache.clear()

    def set_test_config(self, **kwargs):
        """Set test configuration values - for testing only."""
        for key, value in kwargs.items():
            self._cache[key] = value

    def reset_test_config(self):
        """Reset test configuration to environment defaults."""
        self.clear_cache()

    @property
    def email_check_limit(self) -> int:
        """Email-existence probes allowed per window per client IP."""
        return self._get_env_int("EMAIL_CHECK_LIMIT", 5)

    @property
    def email_check_window_s(self) -> int:
        """Email-existence probe window in seconds."""
        return self._get_env_int("EMAIL_CHECK_WINDOW_S", 60 * 60)

    @property
    def sweep_interval_s(self) -> int:
        """Seconds between sweeps of lapsed limiter entries."""
        return self._get_env_int("RATE_LIMIT_SWEEP_INTERVAL_S", 300)


# Global instance for application use
rate_limit_settings = RateLimitSettings()
