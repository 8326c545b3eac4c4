"""
Orchestrates reading, validation, and persistence of a template catalog.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from calcengine.analytics.formulas import get_formula
from calcengine.db import CalculationDatabase, SqlTemplateRepository
from calcengine.ingestion.catalog_reader import CatalogReader
from calcengine.models import CalculationTemplate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportResult:
    """Result of a catalog import."""

    templates_count: int
    parameters_count: int
    template_ids: list[str] = field(default_factory=list)


class CatalogImporter:
    """
    Full import pipeline:
    read file -> build templates -> check formulas -> upsert.
    """

    def __init__(
        self,
        reader: Optional[CatalogReader] = None,
        repository: Optional[SqlTemplateRepository] = None,
    ) -> None:
        self._reader = reader or CatalogReader()
        self._repository = repository or CalculationDatabase().templates

    async def import_file(self, filepath: str) -> ImportResult:
        if not os.path.exists(filepath):
            raise FileNotFoundError(f"File not found: {filepath}")

        records = self._reader.read(filepath)
        templates = [self._build(record) for record in records]

        ids = []
        for template in templates:
            await self._repository.upsert(template)
            ids.append(template.id)

        result = ImportResult(
            templates_count=len(templates),
            parameters_count=sum(len(t.parameters) for t in templates),
            template_ids=ids,
        )
        logger.info(
            "Imported %d templates (%d parameters) from %s",
            result.templates_count,
            result.parameters_count,
            filepath,
        )
        return result

    def _build(self, record: dict) -> CalculationTemplate:
        try:
            template = CalculationTemplate.from_dict(record)
        except KeyError as e:
            raise ValueError(
                f"Template record is missing {e}: {record.get('id', '<no id>')}"
            ) from e
        if get_formula(template.formula) is None:
            raise ValueError(
                f"Template '{template.id}' references unknown formula '{template.formula}'."
            )
        return template
