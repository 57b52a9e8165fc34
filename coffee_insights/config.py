"""
Centralized configuration for the customer analytics engines.

This module provides a single source of truth for all configuration values.
Configuration is loaded from environment variables with sensible defaults.

Usage:
    from coffee_insights.config import config

    ttl = config.cache.ttl_seconds
    weights = config.recommendations.strategy_weights
"""

import os
from dataclasses import dataclass, field
from typing import Dict

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


@dataclass(frozen=True)
class DatabaseConfig:
    """DuckDB storage configuration."""

    path: str = field(
        default_factory=lambda: os.getenv("INSIGHTS_DB_PATH", "data/insights.duckdb")
    )

    @property
    def in_memory(self) -> bool:
        """True when the store lives only in process memory."""
        return self.path == ":memory:"


@dataclass(frozen=True)
class CacheConfig:
    """Caching configuration."""

    backend: str = field(default_factory=lambda: os.getenv("CACHE_BACKEND", "memory").lower())
    redis_url: str = field(
        default_factory=lambda: os.getenv("REDIS_URL", "redis://localhost:6379/0")
    )
    enabled: bool = field(
        default_factory=lambda: os.getenv("CACHE_ENABLED", "true").lower() == "true"
    )
    ttl_seconds: int = 3600  # 1 hour


@dataclass(frozen=True)
class RecommendationConfig:
    """Recommendation engine tuning."""

    # Weights used when merging the candidate strategies
    strategy_weights: Dict[str, float] = field(default_factory=lambda: {
        "collaborative": 0.4,
        "content_based": 0.3,
        "popular": 0.2,
        "time_based": 0.1,
    })

    neighbor_limit: int = 20
    favorite_category_limit: int = 3
    popularity_window_days: int = 30
    default_limit: int = 5
    max_limit: int = 20

    # Homepage widget sizes
    homepage_product_limit: int = 4
    homepage_bean_limit: int = 3


@dataclass(frozen=True)
class InsightsConfig:
    """Customer insights tuning."""

    engagement_window_days: int = 90
    interaction_score: float = 50.0  # Placeholder until interaction tracking exists
    market_spend_multiplier: float = 10.0
    long_gap_days: int = 60


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""

    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    json_format: bool = field(
        default_factory=lambda: os.getenv("LOG_JSON", "false").lower() == "true"
    )


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""

    version: str = "1.0.0"
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    recommendations: RecommendationConfig = field(default_factory=RecommendationConfig)
    insights: InsightsConfig = field(default_factory=InsightsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# Global config instance
config = AppConfig()


# ─── Convenience Exports ──────────────────────────────────────────────────────
VERSION = config.version
CACHE_TTL_SECONDS = config.cache.ttl_seconds
STRATEGY_WEIGHTS = config.recommendations.strategy_weights


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def validate_config(app_config: AppConfig = config) -> None:
    """
    Validate configuration values.

    Call this on application startup to fail fast with clear error messages
    instead of cryptic runtime failures.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    errors = []

    if app_config.cache.backend not in ("memory", "redis"):
        errors.append(f"CACHE_BACKEND must be 'memory' or 'redis', got '{app_config.cache.backend}'")

    if app_config.cache.backend == "redis" and not app_config.cache.redis_url:
        errors.append("REDIS_URL is required when CACHE_BACKEND=redis")

    if app_config.cache.ttl_seconds <= 0:
        errors.append("Cache TTL must be positive")

    weights = app_config.recommendations.strategy_weights
    if abs(sum(weights.values()) - 1.0) > 1e-9:
        errors.append(f"Strategy weights must sum to 1.0, got {sum(weights.values())}")

    if not 1 <= app_config.recommendations.default_limit <= app_config.recommendations.max_limit:
        errors.append("Default recommendation limit must be within [1, max_limit]")

    if not app_config.database.path:
        errors.append("INSIGHTS_DB_PATH must not be empty")

    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ConfigurationError(error_msg)
