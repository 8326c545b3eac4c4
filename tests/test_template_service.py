"""
Tests for TemplateService: orchestration against mocked repositories and
end-to-end against a SQLite database.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from calcengine.application import TemplateService
from calcengine.models import (
    AggregatedStats,
    CalculationTemplate,
    ComputationError,
    ExecutionStats,
    FavoriteStats,
    NotFoundError,
    PaginatedResult,
    Pagination,
    RepositoryError,
    TemplateFilters,
    TemplateInactiveError,
    UsageStats,
    ValidationFailedError,
)


@pytest.fixture
def templates_repo():
    repo = MagicMock()
    for name in (
        "find_by_id",
        "find_all",
        "search",
        "increment_usage",
        "add_rating",
        "get_usage_stats",
        "find_similar",
        "get_recommendations",
    ):
        setattr(repo, name, AsyncMock())
    return repo


@pytest.fixture
def executions_repo():
    repo = MagicMock()
    repo.save_execution = AsyncMock(return_value="exec-1")
    repo.get_execution_history = AsyncMock(return_value=[])
    repo.get_execution_stats = AsyncMock()
    return repo


@pytest.fixture
def favorites_repo():
    repo = MagicMock()
    for name in (
        "is_favorite",
        "add_favorite",
        "remove_favorite",
        "get_favorites",
        "get_favorite_stats",
    ):
        setattr(repo, name, AsyncMock())
    return repo


@pytest.fixture
def mocked_service(templates_repo, executions_repo, favorites_repo):
    return TemplateService(templates_repo, executions_repo, favorites_repo)


class TestExecuteCalculation:
    @pytest.mark.asyncio
    async def test_inactive_template_is_never_counted(
        self, mocked_service, templates_repo, executions_repo, electrical
    ):
        electrical.is_active = False
        templates_repo.find_by_id.return_value = electrical

        with pytest.raises(TemplateInactiveError):
            await mocked_service.execute_calculation(electrical.id, {"area": 150})

        templates_repo.increment_usage.assert_not_awaited()
        executions_repo.save_execution.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_template(self, mocked_service, templates_repo):
        templates_repo.find_by_id.return_value = None
        with pytest.raises(NotFoundError):
            await mocked_service.execute_calculation("nope", {})
        templates_repo.increment_usage.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_parameters_have_no_side_effects(
        self, mocked_service, templates_repo, executions_repo, electrical
    ):
        templates_repo.find_by_id.return_value = electrical

        with pytest.raises(ValidationFailedError) as exc:
            await mocked_service.execute_calculation(electrical.id, {"area": -5})

        assert exc.value.errors == {"Construction area": "Minimum value is 1"}
        templates_repo.increment_usage.assert_not_awaited()
        executions_repo.save_execution.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_success_counts_and_persists(
        self, mocked_service, templates_repo, executions_repo, electrical
    ):
        templates_repo.find_by_id.return_value = electrical

        result = await mocked_service.execute_calculation(
            electrical.id, {"area": 150}, user_id="u1", project_id="p1"
        )

        templates_repo.increment_usage.assert_awaited_once_with(electrical.id)
        executions_repo.save_execution.assert_awaited_once()
        saved = executions_repo.save_execution.await_args.args[0]
        assert saved.execution_id is None
        assert saved.user_id == "u1"
        assert result.execution_id == "exec-1"
        assert result.project_id == "p1"
        assert result.created_date is not None
        assert result.primary.value == "4,680"

    @pytest.mark.asyncio
    async def test_computation_failure_has_no_side_effects(
        self, mocked_service, templates_repo, executions_repo, area_template
    ):
        # area_template declares no voltage, so the electrical formula fails
        templates_repo.find_by_id.return_value = area_template

        with pytest.raises(ComputationError) as exc:
            await mocked_service.execute_calculation(area_template.id, {"area": 150})

        assert exc.value.parameters == ("voltage",)
        templates_repo.increment_usage.assert_not_awaited()
        executions_repo.save_execution.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_executor_failure_is_propagated(
        self, templates_repo, executions_repo, favorites_repo, electrical
    ):
        templates_repo.find_by_id.return_value = electrical
        executor = MagicMock()
        executor.execute.side_effect = ComputationError("boom", ["area"])
        service = TemplateService(
            templates_repo, executions_repo, favorites_repo, executor=executor
        )

        with pytest.raises(ComputationError):
            await service.execute_calculation(electrical.id, {"area": 150})

        executor.execute.assert_called_once()
        templates_repo.increment_usage.assert_not_awaited()
        executions_repo.save_execution.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_persist_failure_keeps_usage_increment(
        self, mocked_service, templates_repo, executions_repo, electrical
    ):
        templates_repo.find_by_id.return_value = electrical
        executions_repo.save_execution.side_effect = RepositoryError("disk full")

        with pytest.raises(RepositoryError):
            await mocked_service.execute_calculation(electrical.id, {"area": 150})

        templates_repo.increment_usage.assert_awaited_once()


@pytest.mark.asyncio
async def test_validate_parameters_is_read_only(
    mocked_service, templates_repo, executions_repo, area_template
):
    templates_repo.find_by_id.return_value = area_template
    result = await mocked_service.validate_parameters("tpl-area", {})
    assert result.errors == {"Construction area": "This field is required"}
    templates_repo.increment_usage.assert_not_awaited()
    executions_repo.save_execution.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_template_by_id_requires_id(mocked_service):
    with pytest.raises(ValueError):
        await mocked_service.get_template_by_id("")


@pytest.mark.asyncio
async def test_blank_search_falls_back_to_listing(mocked_service, templates_repo):
    page = PaginatedResult(data=[], pagination=Pagination.build(0, 1, 50))
    templates_repo.find_all.return_value = page

    assert await mocked_service.search_templates("   ") is page
    templates_repo.search.assert_not_awaited()

    await mocked_service.search_templates(" slab ")
    templates_repo.search.assert_awaited_once_with("slab", None)


@pytest.mark.parametrize("rating", [0, 5.5])
@pytest.mark.asyncio
async def test_rating_out_of_range(mocked_service, templates_repo, rating):
    with pytest.raises(ValueError):
        await mocked_service.rate_template("tpl-1", rating)
    templates_repo.add_rating.assert_not_awaited()


@pytest.mark.asyncio
async def test_stale_favorites_are_dropped(
    mocked_service, templates_repo, favorites_repo, electrical
):
    favorites_repo.get_favorites.return_value = ["gone", electrical.id]
    templates_repo.find_by_id.side_effect = lambda tid: (
        electrical if tid == electrical.id else None
    )

    favorites = await mocked_service.get_user_favorites("u1")

    assert [t.id for t in favorites] == [electrical.id]


@pytest.mark.asyncio
async def test_template_stats_merges_three_sources(
    mocked_service, templates_repo, executions_repo, favorites_repo
):
    templates_repo.get_usage_stats.return_value = UsageStats(12, 4.5, 2)
    executions_repo.get_execution_stats.return_value = ExecutionStats(12, 0.8)
    favorites_repo.get_favorite_stats.return_value = FavoriteStats(1, ["u1"])

    stats = await mocked_service.get_template_stats("tpl-1")

    assert stats.usage.usage_count == 12
    assert stats.executions.average_execution_time == 0.8
    assert stats.favorites.users == ["u1"]


@pytest.mark.asyncio
async def test_template_stats_fails_when_any_source_fails(
    templates_repo, executions_repo, favorites_repo
):
    templates_repo.get_usage_stats.return_value = UsageStats(12, 4.5, 2)
    executions_repo.get_execution_stats.return_value = ExecutionStats(12, 0.8)
    favorites_repo.get_favorite_stats.side_effect = RepositoryError("favorites down")
    aggregator = MagicMock()
    service = TemplateService(
        templates_repo, executions_repo, favorites_repo, stats=aggregator
    )

    with pytest.raises(RepositoryError, match="favorites down"):
        await service.get_template_stats("tpl-1")

    aggregator.aggregate.assert_not_called()


@pytest.mark.asyncio
async def test_aggregated_stats_empty_catalog(mocked_service, templates_repo):
    templates_repo.find_all.return_value = PaginatedResult(
        data=[], pagination=Pagination.build(0, 1, 1000)
    )

    stats = await mocked_service.get_aggregated_stats()

    assert stats == AggregatedStats(0, 0, 0, 0.0)
    filters = templates_repo.find_all.await_args.args[0]
    assert isinstance(filters, TemplateFilters)
    assert filters.limit == 1000


# --- against SQLite ---


class TestWithDatabase:
    @pytest.mark.asyncio
    async def test_toggle_favorite(self, service, database, seed, electrical):
        await seed(electrical)

        assert await service.toggle_favorite("u1", electrical.id) is True
        assert await database.favorites.is_favorite("u1", electrical.id)

        assert await service.toggle_favorite("u1", electrical.id) is False
        assert not await database.favorites.is_favorite("u1", electrical.id)

    @pytest.mark.asyncio
    async def test_execute_then_history(self, service, database, seed, electrical):
        await seed(electrical)

        result = await service.execute_calculation(
            electrical.id, {"area": 150}, user_id="u1"
        )

        history = await service.get_user_calculation_history("u1")
        assert [r.execution_id for r in history] == [result.execution_id]
        assert history[0].primary.value == "4,680"
        usage = await database.templates.get_usage_stats(electrical.id)
        assert usage.usage_count == 1

    @pytest.mark.asyncio
    async def test_save_calculation_result(self, service, database, result_factory):
        execution_id = await service.save_calculation_result(
            result_factory(), "Option A", "first pass"
        )
        saved = await database.executions.get_execution(execution_id)
        assert saved.saved_name == "Option A"
        assert saved.saved_notes == "first pass"
        assert saved.saved_at is not None

    @pytest.mark.asyncio
    async def test_rating_updates_average(self, service, database, seed, electrical):
        await seed(electrical)
        await service.rate_template(electrical.id, 5)
        await service.rate_template(electrical.id, 4)

        stats = await service.get_template_stats(electrical.id)
        assert stats.usage.rating_count == 2
        assert stats.usage.average_rating == pytest.approx(4.5)

    @pytest.mark.asyncio
    async def test_rating_unknown_template(self, service):
        with pytest.raises(NotFoundError):
            await service.rate_template("missing", 3)

    @pytest.mark.asyncio
    async def test_aggregated_stats(self, service, seed, catalog):
        await seed(*catalog.values())
        stats = await service.get_aggregated_stats()
        assert stats.total_templates == 4
        assert stats.verified_templates == 2
        assert stats.total_executions == 0

    @pytest.mark.asyncio
    async def test_inactive_template_excluded_from_listing(self, service, seed):
        await seed(
            CalculationTemplate(id="a", name="Active", formula="water_demand"),
            CalculationTemplate(
                id="b", name="Retired", formula="water_demand", is_active=False
            ),
        )
        page = await service.get_templates()
        assert [t.id for t in page.data] == ["a"]
        with pytest.raises(TemplateInactiveError):
            await service.execute_calculation("b", {})
