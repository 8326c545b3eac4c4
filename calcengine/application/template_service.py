"""
Application entry point for template catalog queries, calculation
execution, favorites and statistics.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Mapping, Optional

from calcengine.analytics.executor import FormulaExecutor
from calcengine.analytics.stats import StatsAggregator
from calcengine.analytics.validator import ParameterValidator
from calcengine.config import (
    HISTORY_LIMIT,
    RECOMMENDATION_LIMIT,
    SIMILAR_LIMIT,
    STATS_TEMPLATE_CAP,
)
from calcengine.db.contracts import (
    ExecutionRepository,
    FavoritesRepository,
    TemplateRepository,
)
from calcengine.models import (
    AggregatedStats,
    CalculationResult,
    CalculationTemplate,
    NotFoundError,
    PaginatedResult,
    TemplateFilters,
    TemplateInactiveError,
    TemplateStats,
    ValidationFailedError,
    ValidationResult,
    utcnow,
)

logger = logging.getLogger(__name__)


def _require(value: Optional[str], what: str) -> None:
    if not value:
        raise ValueError(f"{what} is required")


class TemplateService:
    """
    Coordinates lookup, validation, execution and the usage/persistence
    side effects against the repository boundary.

    Side effects are not transactional: the usage increment and the
    execution record are two independent calls, and favorite toggling is
    read-then-write. Nothing is retried here.
    """

    def __init__(
        self,
        templates: TemplateRepository,
        executions: ExecutionRepository,
        favorites: FavoritesRepository,
        validator: Optional[ParameterValidator] = None,
        executor: Optional[FormulaExecutor] = None,
        stats: Optional[StatsAggregator] = None,
    ) -> None:
        self._templates = templates
        self._executions = executions
        self._favorites = favorites
        self._validator = validator or ParameterValidator()
        self._executor = executor or FormulaExecutor()
        self._stats = stats or StatsAggregator()

    # --- catalog ---

    async def get_templates(
        self, filters: Optional[TemplateFilters] = None
    ) -> PaginatedResult:
        return await self._templates.find_all(filters)

    async def get_template_by_id(self, template_id: str) -> Optional[CalculationTemplate]:
        _require(template_id, "Template ID")
        return await self._templates.find_by_id(template_id)

    async def get_verified_templates(self) -> list[CalculationTemplate]:
        return await self._templates.find_verified()

    async def get_featured_templates(self) -> list[CalculationTemplate]:
        return await self._templates.find_featured()

    async def get_trending_templates(self) -> list[CalculationTemplate]:
        return await self._templates.find_trending()

    async def search_templates(
        self, query: str, filters: Optional[TemplateFilters] = None
    ) -> PaginatedResult:
        if not query or not query.strip():
            return await self.get_templates(filters)
        return await self._templates.search(query.strip(), filters)

    async def get_recommendations(
        self,
        user_id: Optional[str] = None,
        template_id: Optional[str] = None,
        profession: Optional[str] = None,
    ) -> list[CalculationTemplate]:
        return await self._templates.get_recommendations(
            user_id, template_id, profession, RECOMMENDATION_LIMIT
        )

    async def get_similar_templates(self, template_id: str) -> list[CalculationTemplate]:
        _require(template_id, "Template ID")
        return await self._templates.find_similar(template_id, SIMILAR_LIMIT)

    # --- execution ---

    async def validate_parameters(
        self, template_id: str, parameters: Mapping[str, Any]
    ) -> ValidationResult:
        """Preview validation for a template without executing it."""
        template = await self._get_template(template_id)
        return self._validator.validate(template, parameters)

    async def execute_calculation(
        self,
        template_id: str,
        parameters: Mapping[str, Any],
        user_id: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> CalculationResult:
        template = await self._get_template(template_id)
        if not template.is_active:
            raise TemplateInactiveError(template_id)

        validation = self._validator.validate(template, parameters)
        if not validation.is_valid:
            raise ValidationFailedError(validation.errors)

        result = self._executor.execute(template, parameters).with_changes(
            user_id=user_id,
            project_id=project_id,
            created_date=utcnow(),
        )

        # Counted per call: a retried request increments again.
        await self._templates.increment_usage(template_id)
        try:
            execution_id = await self._executions.save_execution(result)
        except Exception:
            logger.error(
                "Execution of template %s was counted but could not be persisted",
                template_id,
            )
            raise

        logger.info(
            "Executed template %s (%s) -> execution %s",
            template_id,
            result.compliance.status,
            execution_id,
        )
        return result.with_changes(execution_id=execution_id)

    async def save_calculation_result(
        self,
        result: CalculationResult,
        name: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> str:
        enriched = replace(
            result, saved_name=name, saved_notes=notes, saved_at=utcnow()
        )
        return await self._executions.save_execution(enriched)

    async def get_user_calculation_history(
        self, user_id: str, limit: int = HISTORY_LIMIT
    ) -> list[CalculationResult]:
        _require(user_id, "User ID")
        return await self._executions.get_execution_history(user_id, None, limit)

    # --- favorites and ratings ---

    async def toggle_favorite(self, user_id: str, template_id: str) -> bool:
        """Flip the favorite state and return the new one."""
        _require(user_id, "User ID")
        _require(template_id, "Template ID")
        if await self._favorites.is_favorite(user_id, template_id):
            await self._favorites.remove_favorite(user_id, template_id)
            return False
        await self._favorites.add_favorite(user_id, template_id)
        return True

    async def get_user_favorites(self, user_id: str) -> list[CalculationTemplate]:
        """Favorites that no longer resolve to a template are left out."""
        _require(user_id, "User ID")
        favorite_ids = await self._favorites.get_favorites(user_id)
        templates = []
        for template_id in favorite_ids:
            template = await self._templates.find_by_id(template_id)
            if template is None:
                logger.debug(
                    "Dropping stale favorite %s for user %s", template_id, user_id
                )
                continue
            templates.append(template)
        return templates

    async def rate_template(self, template_id: str, rating: float) -> None:
        _require(template_id, "Template ID")
        if not 1 <= rating <= 5:
            raise ValueError("rating must be between 1 and 5.")
        await self._templates.add_rating(template_id, rating)

    # --- statistics ---

    async def get_template_stats(self, template_id: str) -> TemplateStats:
        _require(template_id, "Template ID")
        usage, executions, favorites = await asyncio.gather(
            self._templates.get_usage_stats(template_id),
            self._executions.get_execution_stats(template_id),
            self._favorites.get_favorite_stats(template_id),
        )
        return self._stats.aggregate(usage, executions, favorites)

    async def get_aggregated_stats(self) -> AggregatedStats:
        """
        Totals over the first STATS_TEMPLATE_CAP templates only; larger
        catalogs get an approximation.
        """
        page = await self._templates.find_all(
            TemplateFilters(limit=STATS_TEMPLATE_CAP)
        )
        return self._stats.summarize_templates(page.data)

    async def _get_template(self, template_id: str) -> CalculationTemplate:
        _require(template_id, "Template ID")
        template = await self._templates.find_by_id(template_id)
        if template is None:
            raise NotFoundError("Template", template_id)
        return template


def create_template_service(database=None) -> TemplateService:
    """Wire a TemplateService to the SQL repositories (default DB_URL)."""
    from calcengine.db import CalculationDatabase

    database = database or CalculationDatabase()
    return TemplateService(
        templates=database.templates,
        executions=database.executions,
        favorites=database.favorites,
    )
