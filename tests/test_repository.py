"""
Tests for the SQLAlchemy repositories on a throwaway SQLite file.
"""

from datetime import datetime, timedelta, timezone

import pytest

from calcengine.db import CalculationDatabase
from calcengine.models import CalculationTemplate, NotFoundError, TemplateFilters
from tests.conftest import make_result

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _template(id, name, **kwargs):
    kwargs.setdefault("formula", "water_demand")
    return CalculationTemplate(id=id, name=name, **kwargs)


@pytest.fixture
def catalog_templates():
    return [
        _template(
            "t1",
            "Beam deflection",
            category="structural",
            target_profession="civil_engineer",
            is_verified=True,
            usage_count=80,
            average_rating=4.6,
            tags=["structural", "beam"],
            created_at=BASE_TIME,
        ),
        _template(
            "t2",
            "Column load",
            category="structural",
            target_profession="civil_engineer",
            usage_count=20,
            average_rating=3.9,
            tags=["structural"],
            created_at=BASE_TIME + timedelta(days=1),
        ),
        _template(
            "t3",
            "Lighting layout",
            description="Luminaires per room",
            category="electrical",
            target_profession="electrical_engineer",
            is_featured=True,
            usage_count=120,
            average_rating=4.1,
            tags=["electrical"],
            created_at=BASE_TIME + timedelta(days=2),
        ),
        _template(
            "t4",
            "Archived slab",
            category="structural",
            is_active=False,
            created_at=BASE_TIME + timedelta(days=3),
        ),
    ]


class TestTemplateRepository:
    @pytest.mark.asyncio
    async def test_round_trip(self, database, catalog):
        slab = catalog["tpl-concrete-slab"]
        await database.templates.create(slab)

        loaded = await database.templates.find_by_id(slab.id)

        assert loaded.parameters == slab.parameters
        assert loaded.tags == sorted(slab.tags)
        assert loaded.created_at.tzinfo is not None
        assert await database.templates.find_by_id("missing") is None

    @pytest.mark.asyncio
    async def test_find_all_defaults(self, database, seed, catalog_templates):
        await seed(*catalog_templates)

        page = await database.templates.find_all()

        # active only, name ascending
        assert [t.id for t in page.data] == ["t1", "t2", "t3"]
        assert page.pagination.total == 3
        assert page.pagination.pages == 1

    @pytest.mark.asyncio
    async def test_filters(self, database, seed, catalog_templates):
        await seed(*catalog_templates)
        repo = database.templates

        page = await repo.find_all(TemplateFilters(category="structural"))
        assert [t.id for t in page.data] == ["t1", "t2"]

        page = await repo.find_all(TemplateFilters(show_only_verified=True))
        assert [t.id for t in page.data] == ["t1"]

        page = await repo.find_all(TemplateFilters(tags=["beam", "electrical"]))
        assert [t.id for t in page.data] == ["t1", "t3"]

        page = await repo.find_all(TemplateFilters(is_active=None, category="structural"))
        assert {t.id for t in page.data} == {"t1", "t2", "t4"}

    @pytest.mark.asyncio
    async def test_sort_and_paginate(self, database, seed, catalog_templates):
        await seed(*catalog_templates)

        page = await database.templates.find_all(
            TemplateFilters(sort_by="usage_count", page=1, limit=2)
        )
        assert [t.id for t in page.data] == ["t3", "t1"]
        assert page.pagination.pages == 2

        page = await database.templates.find_all(
            TemplateFilters(sort_by="created_at", sort_order="ASC", page=2, limit=2)
        )
        assert [t.id for t in page.data] == ["t3"]

    @pytest.mark.asyncio
    async def test_invalid_query(self, database):
        with pytest.raises(ValueError):
            await database.templates.find_all(TemplateFilters(sort_by="formula"))
        with pytest.raises(ValueError):
            await database.templates.find_all(TemplateFilters(page=0))

    @pytest.mark.asyncio
    async def test_search(self, database, seed, catalog_templates):
        await seed(*catalog_templates)

        page = await database.templates.search("luminaires")
        assert [t.id for t in page.data] == ["t3"]

        page = await database.templates.search("STRUCT")
        assert [t.id for t in page.data] == ["t1", "t2"]

    @pytest.mark.asyncio
    async def test_curated_lists(self, database, seed, catalog_templates):
        await seed(*catalog_templates)
        repo = database.templates

        assert [t.id for t in await repo.find_verified()] == ["t1"]
        assert [t.id for t in await repo.find_featured()] == ["t3"]
        # usage > 50 and rating > 4.0
        assert [t.id for t in await repo.find_trending()] == ["t3", "t1"]

    @pytest.mark.asyncio
    async def test_similar(self, database, seed, catalog_templates):
        await seed(*catalog_templates)
        similar = await database.templates.find_similar("t1")
        assert [t.id for t in similar] == ["t2"]
        assert await database.templates.find_similar("missing") == []

    @pytest.mark.asyncio
    async def test_recommendations(self, database, seed, catalog_templates):
        await seed(*catalog_templates)
        repo = database.templates

        by_profession = await repo.get_recommendations(profession="electrical_engineer")
        assert [t.id for t in by_profession] == ["t3"]

        await database.favorites.add_favorite("u1", "t2")
        from_favorites = await repo.get_recommendations(user_id="u1")
        assert [t.id for t in from_favorites] == ["t1"]

        fallback = await repo.get_recommendations(user_id="nobody")
        assert [t.id for t in fallback] == ["t1", "t3"]

    @pytest.mark.asyncio
    async def test_usage_and_rating(self, database, seed, catalog_templates):
        await seed(*catalog_templates)
        repo = database.templates

        await repo.increment_usage("t2")
        await repo.add_rating("t2", 5)
        stats = await repo.get_usage_stats("t2")

        assert stats.usage_count == 21
        assert stats.rating_count == 1
        assert stats.average_rating == pytest.approx(5.0)

        with pytest.raises(NotFoundError):
            await repo.increment_usage("missing")
        with pytest.raises(NotFoundError):
            await repo.get_usage_stats("missing")

    @pytest.mark.asyncio
    async def test_update_and_delete(self, database, seed, catalog_templates):
        await seed(*catalog_templates)
        repo = database.templates

        t2 = await repo.find_by_id("t2")
        t2.name = "Column axial load"
        t2.tags = ["columns"]
        updated = await repo.update(t2)
        assert updated.name == "Column axial load"
        assert updated.tags == ["columns"]

        assert await repo.delete("t2") is True
        assert await repo.delete("t2") is False
        with pytest.raises(NotFoundError):
            await repo.update(t2)


class TestExecutionRepository:
    @pytest.mark.asyncio
    async def test_history_is_newest_first(self, database):
        repo = database.executions
        older = make_result("1,000").with_changes(
            user_id="u1", created_date=BASE_TIME
        )
        newer = make_result("2,000").with_changes(
            user_id="u1", created_date=BASE_TIME + timedelta(hours=1)
        )
        other = make_result("3,000").with_changes(user_id="u2")
        for result in (older, newer, other):
            await repo.save_execution(result)

        history = await repo.get_execution_history("u1")

        assert [r.primary.value for r in history] == ["2,000", "1,000"]
        assert all(r.execution_id for r in history)
        assert len(await repo.get_execution_history("u1", limit=1)) == 1

    @pytest.mark.asyncio
    async def test_get_and_delete(self, database):
        repo = database.executions
        execution_id = await repo.save_execution(make_result(params={"area": 150}))

        loaded = await repo.get_execution(execution_id)
        assert loaded.execution_id == execution_id
        assert loaded.input_parameters == {"area": 150}

        assert await repo.delete_execution(execution_id) is True
        assert await repo.get_execution(execution_id) is None

    @pytest.mark.asyncio
    async def test_stats(self, database):
        repo = database.executions
        for area, status, ms in ((150, "compliant", 1.0), (150, "warning", 3.0), (90, "compliant", None)):
            result = make_result(status=status, params={"area": area}).with_changes(
                execution_time_ms=ms
            )
            await repo.save_execution(result)

        stats = await repo.get_execution_stats("tpl-electrical-load")

        assert stats.total_executions == 3
        assert stats.average_execution_time == pytest.approx(2.0)
        assert stats.compliance_breakdown == {
            "compliant": 2,
            "warning": 1,
            "non-compliant": 0,
        }
        assert stats.most_used_parameters == {"area": "150"}

    @pytest.mark.asyncio
    async def test_stats_without_executions(self, database):
        stats = await database.executions.get_execution_stats("nothing")
        assert stats.total_executions == 0
        assert stats.average_execution_time == 0.0
        assert stats.compliance_breakdown["non-compliant"] == 0


class TestFavoritesRepository:
    @pytest.mark.asyncio
    async def test_add_is_idempotent(self, database, seed, catalog_templates):
        await seed(*catalog_templates)
        repo = database.favorites

        await repo.add_favorite("u1", "t1")
        await repo.add_favorite("u1", "t1")
        await repo.add_favorite("u2", "t1")

        stats = await repo.get_favorite_stats("t1")
        assert stats.count == 2
        assert stats.users == ["u1", "u2"]

    @pytest.mark.asyncio
    async def test_remove(self, database, seed, catalog_templates):
        await seed(*catalog_templates)
        repo = database.favorites
        await repo.add_favorite("u1", "t1")
        await repo.add_favorite("u1", "t3")

        await repo.remove_favorite("u1", "t1")

        assert await repo.get_favorites("u1") == ["t3"]
        assert not await repo.is_favorite("u1", "t1")


@pytest.mark.asyncio
async def test_in_memory_database_is_shared_across_threads(catalog):
    db = CalculationDatabase("sqlite://")
    try:
        await db.templates.create(catalog["tpl-water-demand"])
        assert await db.templates.find_by_id("tpl-water-demand") is not None
    finally:
        db.dispose()
