"""Domain models, data transfer objects and errors."""

from calcengine.models.entities import (
    COMPARISON_TAGS,
    COMPLIANCE_STATUSES,
    PARAMETER_TYPES,
    AggregatedStats,
    CalculationResult,
    CalculationTemplate,
    Compliance,
    ExecutionStats,
    FavoriteStats,
    PaginatedResult,
    Pagination,
    ParameterDefinition,
    PrimaryMetric,
    SecondaryMetric,
    TemplateFilters,
    TemplateStats,
    UsageStats,
    ValidationResult,
    is_new,
    is_popular,
    is_trending,
    template_flags,
    utcnow,
)
from calcengine.models.errors import (
    CalcEngineError,
    ComputationError,
    NotFoundError,
    RepositoryError,
    TemplateInactiveError,
    ValidationFailedError,
)

__all__ = [
    "COMPARISON_TAGS",
    "COMPLIANCE_STATUSES",
    "PARAMETER_TYPES",
    "AggregatedStats",
    "CalculationResult",
    "CalculationTemplate",
    "Compliance",
    "ExecutionStats",
    "FavoriteStats",
    "PaginatedResult",
    "Pagination",
    "ParameterDefinition",
    "PrimaryMetric",
    "SecondaryMetric",
    "TemplateFilters",
    "TemplateStats",
    "UsageStats",
    "ValidationResult",
    "is_new",
    "is_popular",
    "is_trending",
    "template_flags",
    "utcnow",
    "CalcEngineError",
    "ComputationError",
    "NotFoundError",
    "RepositoryError",
    "TemplateInactiveError",
    "ValidationFailedError",
]
