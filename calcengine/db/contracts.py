"""
Persistence boundary consumed by the template service.
"""

from __future__ import annotations

from typing import Optional, Protocol

from calcengine.models import (
    CalculationResult,
    CalculationTemplate,
    ExecutionStats,
    FavoriteStats,
    PaginatedResult,
    TemplateFilters,
    UsageStats,
)


class TemplateRepository(Protocol):
    async def find_by_id(self, template_id: str) -> Optional[CalculationTemplate]: ...

    async def find_all(self, filters: Optional[TemplateFilters] = None) -> PaginatedResult: ...

    async def search(
        self, query: str, filters: Optional[TemplateFilters] = None
    ) -> PaginatedResult: ...

    async def create(self, template: CalculationTemplate) -> CalculationTemplate: ...

    async def update(self, template: CalculationTemplate) -> CalculationTemplate: ...

    async def delete(self, template_id: str) -> bool: ...

    async def find_verified(self) -> list[CalculationTemplate]: ...

    async def find_featured(self) -> list[CalculationTemplate]: ...

    async def find_trending(self) -> list[CalculationTemplate]: ...

    async def find_similar(
        self, template_id: str, limit: int = 5
    ) -> list[CalculationTemplate]: ...

    async def get_recommendations(
        self,
        user_id: Optional[str] = None,
        template_id: Optional[str] = None,
        profession: Optional[str] = None,
        limit: int = 5,
    ) -> list[CalculationTemplate]: ...

    async def get_usage_stats(self, template_id: str) -> UsageStats: ...

    async def increment_usage(self, template_id: str) -> None: ...

    async def add_rating(self, template_id: str, rating: float) -> None: ...


class ExecutionRepository(Protocol):
    async def save_execution(self, result: CalculationResult) -> str: ...

    async def get_execution_history(
        self,
        user_id: Optional[str] = None,
        template_id: Optional[str] = None,
        limit: int = 10,
    ) -> list[CalculationResult]: ...

    async def get_execution(self, execution_id: str) -> Optional[CalculationResult]: ...

    async def delete_execution(self, execution_id: str) -> bool: ...

    async def get_execution_stats(self, template_id: str) -> ExecutionStats: ...


class FavoritesRepository(Protocol):
    async def is_favorite(self, user_id: str, template_id: str) -> bool: ...

    async def add_favorite(self, user_id: str, template_id: str) -> None: ...

    async def remove_favorite(self, user_id: str, template_id: str) -> None: ...

    async def get_favorites(self, user_id: str) -> list[str]: ...

    async def get_favorite_stats(self, template_id: str) -> FavoriteStats: ...
