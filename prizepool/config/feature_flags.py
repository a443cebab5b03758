"""
Feature Flags Configuration

Centralized feature flag management for the settlement core.
All feature flags are loaded from environment variables.
"""
import os


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


class FeatureFlags:
    """
    Feature flags for the application.

    To add a new feature flag:
    1. Add it here as a class property
    2. Load it from environment variable
    3. Use it in your code
    """

    # Settlement jobs go through the Celery queue instead of running in-process
    FEATURE_ASYNC_SETTLEMENT: bool = get_bool_env('FEATURE_ASYNC_SETTLEMENT', False)

    # Redis sorted-set mirror of the leaderboard table
    FEATURE_LEADERBOARD_CACHE: bool = get_bool_env('FEATURE_LEADERBOARD_CACHE', True)

    # Match results only accepted while the tournament is LIVE
    FEATURE_RESULT_REQUIRES_LIVE: bool = get_bool_env('FEATURE_RESULT_REQUIRES_LIVE', True)

    @classmethod
    def is_enabled(cls, flag_name: str) -> bool:
        """Check if a feature flag is enabled by name."""
        return getattr(cls, flag_name, False)

    @classmethod
    def get_all_flags(cls) -> dict:
        """Get all feature flags as a dictionary."""
        return {
            key: value
            for key, value in cls.__dict__.items()
            if not key.startswith('_') and isinstance(value, bool)
        }


# Singleton instance for easy importing
feature_flags = FeatureFlags()
