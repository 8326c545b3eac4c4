"""Persistence boundary and its SQLAlchemy implementation."""

from calcengine.db.contracts import (
    ExecutionRepository,
    FavoritesRepository,
    TemplateRepository,
)
from calcengine.db.repository import (
    CalculationDatabase,
    SqlExecutionRepository,
    SqlFavoritesRepository,
    SqlTemplateRepository,
)
from calcengine.db.schema import create_tables

__all__ = [
    "ExecutionRepository",
    "FavoritesRepository",
    "TemplateRepository",
    "CalculationDatabase",
    "SqlExecutionRepository",
    "SqlFavoritesRepository",
    "SqlTemplateRepository",
    "create_tables",
]
