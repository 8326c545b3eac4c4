"""Configuration and constants for the calculation engine."""

from calcengine.config.settings import (
    DB_URL,
    DEFAULT_CATALOG_FILE,
    DEFAULT_PAGE_LIMIT,
    STATS_TEMPLATE_CAP,
    RECOMMENDATION_LIMIT,
    SIMILAR_LIMIT,
    HISTORY_LIMIT,
    TRENDING_LIMIT,
    MAX_COMPARISON_SIZE,
    MIN_COMPARISON_SIZE,
    LOG_LEVEL,
)

__all__ = [
    "DB_URL",
    "DEFAULT_CATALOG_FILE",
    "DEFAULT_PAGE_LIMIT",
    "STATS_TEMPLATE_CAP",
    "RECOMMENDATION_LIMIT",
    "SIMILAR_LIMIT",
    "HISTORY_LIMIT",
    "TRENDING_LIMIT",
    "MAX_COMPARISON_SIZE",
    "MIN_COMPARISON_SIZE",
    "LOG_LEVEL",
]
