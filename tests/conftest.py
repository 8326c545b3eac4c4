"""
Shared fixtures: sample templates, a throwaway SQLite database and a
service wired to it.
"""

from datetime import datetime, timezone

import pytest

from calcengine.application import create_template_service
from calcengine.config import DEFAULT_CATALOG_FILE
from calcengine.db import CalculationDatabase
from calcengine.ingestion import CatalogReader
from calcengine.models import (
    CalculationResult,
    CalculationTemplate,
    Compliance,
    ParameterDefinition,
    PrimaryMetric,
    SecondaryMetric,
)


@pytest.fixture
def area_template():
    """Single required numeric parameter, 0-10000."""
    return CalculationTemplate(
        id="tpl-area",
        name="Area check",
        formula="electrical_load",
        parameters=[
            ParameterDefinition(
                name="area", label="Construction area", type="numeric", min=0, max=10000
            )
        ],
    )


@pytest.fixture
def catalog():
    """Templates from the shipped default catalog, keyed by id."""
    records = CatalogReader().read(DEFAULT_CATALOG_FILE)
    return {r["id"]: CalculationTemplate.from_dict(r) for r in records}


@pytest.fixture
def electrical(catalog):
    return catalog["tpl-electrical-load"]


@pytest.fixture
def database(tmp_path):
    db = CalculationDatabase(f"sqlite:///{tmp_path / 'calc.db'}")
    yield db
    db.dispose()


@pytest.fixture
def service(database):
    return create_template_service(database)


@pytest.fixture
def seed(database):
    async def _seed(*templates):
        for template in templates:
            await database.templates.create(template)

    return _seed


def make_result(
    primary_value="8,450",
    unit="W",
    secondary=(),
    status="compliant",
    params=None,
    execution_id=None,
):
    return CalculationResult(
        primary=PrimaryMetric(label="Demand load", value=primary_value, unit=unit),
        secondary=tuple(SecondaryMetric(*m) for m in secondary),
        compliance=Compliance(status=status),
        input_parameters=params or {},
        execution_id=execution_id,
        template_id="tpl-electrical-load",
        template_name="Residential electrical demand load",
        created_date=datetime(2026, 1, 15, tzinfo=timezone.utc),
    )


@pytest.fixture
def result_factory():
    return make_result
