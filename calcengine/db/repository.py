"""
SQLAlchemy implementation of the template, execution and favorites
repositories. Queries run on a synchronous engine inside the event loop's
default executor, so independent calls can be awaited concurrently.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import uuid
from dataclasses import replace
from typing import Optional

import pandas as pd
from sqlalchemy import (
    MetaData,
    Table,
    and_,
    create_engine,
    delete,
    func,
    insert,
    or_,
    select,
    true,
    update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from calcengine.config import (
    DB_URL,
    DEFAULT_PAGE_LIMIT,
    TRENDING_LIMIT,
)
from calcengine.db.schema import create_tables
from calcengine.models import (
    COMPLIANCE_STATUSES,
    CalculationResult,
    CalculationTemplate,
    ExecutionStats,
    FavoriteStats,
    NotFoundError,
    PaginatedResult,
    Pagination,
    RepositoryError,
    TemplateFilters,
    UsageStats,
    utcnow,
)
from calcengine.models.entities import TRENDING_MIN_RATING, TRENDING_MIN_USAGE

logger = logging.getLogger(__name__)

SORT_COLUMNS = ("name", "usage_count", "average_rating", "created_at", "updated_at")


def _build_engine(db_url: str) -> Engine:
    if db_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every thread sees an empty database
            kwargs["poolclass"] = StaticPool
        return create_engine(db_url, **kwargs)
    return create_engine(db_url)


class CalculationDatabase:
    """
    Owns the engine and schema, and hands out the three repositories
    that share it.
    """

    def __init__(self, db_url: str = DB_URL) -> None:
        self._engine = _build_engine(db_url)
        create_tables(self._engine)
        self._metadata = MetaData()
        self._metadata.reflect(bind=self._engine)
        self.templates = SqlTemplateRepository(self)
        self.executions = SqlExecutionRepository(self)
        self.favorites = SqlFavoritesRepository(self)

    @property
    def engine(self) -> Engine:
        return self._engine

    def get_table(self, name: str) -> Table:
        return self._metadata.tables[name]

    def dispose(self) -> None:
        self._engine.dispose()


class _SqlRepository:
    def __init__(self, database: CalculationDatabase) -> None:
        self._db = database

    @property
    def _engine(self) -> Engine:
        return self._db.engine

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(fn, *args))
        except SQLAlchemyError as e:
            raise RepositoryError(f"{fn.__name__.lstrip('_')} failed: {e}") from e


class SqlTemplateRepository(_SqlRepository):
    """Catalog queries, usage counters and ratings."""

    # --- async boundary ---

    async def find_by_id(self, template_id: str) -> Optional[CalculationTemplate]:
        return await self._run(self._find_by_id, template_id)

    async def find_all(self, filters: Optional[TemplateFilters] = None) -> PaginatedResult:
        return await self._run(self._find_all, filters or TemplateFilters())

    async def search(
        self, query: str, filters: Optional[TemplateFilters] = None
    ) -> PaginatedResult:
        filters = replace(filters or TemplateFilters(), search_term=query)
        return await self._run(self._find_all, filters)

    async def create(self, template: CalculationTemplate) -> CalculationTemplate:
        return await self._run(self._create, template)

    async def update(self, template: CalculationTemplate) -> CalculationTemplate:
        return await self._run(self._update, template)

    async def upsert(self, template: CalculationTemplate) -> CalculationTemplate:
        return await self._run(self._upsert, template)

    async def delete(self, template_id: str) -> bool:
        return await self._run(self._delete, template_id)

    async def find_verified(self) -> list[CalculationTemplate]:
        tbl = self._db.get_table("calculation_templates")
        return await self._run(
            self._query,
            [tbl.c.is_active.is_(True), tbl.c.is_verified.is_(True)],
            [tbl.c.average_rating.desc(), tbl.c.name],
            DEFAULT_PAGE_LIMIT,
        )

    async def find_featured(self) -> list[CalculationTemplate]:
        tbl = self._db.get_table("calculation_templates")
        return await self._run(
            self._query,
            [tbl.c.is_active.is_(True), tbl.c.is_featured.is_(True)],
            [tbl.c.usage_count.desc(), tbl.c.name],
            DEFAULT_PAGE_LIMIT,
        )

    async def find_trending(self) -> list[CalculationTemplate]:
        tbl = self._db.get_table("calculation_templates")
        return await self._run(
            self._query,
            [
                tbl.c.is_active.is_(True),
                tbl.c.usage_count > TRENDING_MIN_USAGE,
                tbl.c.average_rating > TRENDING_MIN_RATING,
            ],
            [tbl.c.usage_count.desc(), tbl.c.name],
            TRENDING_LIMIT,
        )

    async def find_similar(
        self, template_id: str, limit: int = 5
    ) -> list[CalculationTemplate]:
        return await self._run(self._find_similar, template_id, limit)

    async def get_recommendations(
        self,
        user_id: Optional[str] = None,
        template_id: Optional[str] = None,
        profession: Optional[str] = None,
        limit: int = 5,
    ) -> list[CalculationTemplate]:
        return await self._run(
            self._get_recommendations, user_id, template_id, profession, limit
        )

    async def get_usage_stats(self, template_id: str) -> UsageStats:
        return await self._run(self._get_usage_stats, template_id)

    async def increment_usage(self, template_id: str) -> None:
        await self._run(self._increment_usage, template_id)

    async def add_rating(self, template_id: str, rating: float) -> None:
        await self._run(self._add_rating, template_id, rating)

    # --- queries ---

    def _find_by_id(self, template_id: str) -> Optional[CalculationTemplate]:
        tbl = self._db.get_table("calculation_templates")
        with self._engine.connect() as conn:
            row = conn.execute(select(tbl).where(tbl.c.id == template_id)).mappings().first()
            if row is None:
                return None
            return self._hydrate(conn, [row])[0]

    def _find_all(self, filters: TemplateFilters) -> PaginatedResult:
        if filters.page < 1 or filters.limit < 1:
            raise ValueError("page and limit must be positive.")
        tbl = self._db.get_table("calculation_templates")
        where = and_(true(), *self._conditions(tbl, filters))
        with self._engine.connect() as conn:
            total = conn.execute(
                select(func.count()).select_from(tbl).where(where)
            ).scalar_one()
            rows = conn.execute(
                select(tbl)
                .where(where)
                .order_by(*self._order_by(tbl, filters))
                .limit(filters.limit)
                .offset((filters.page - 1) * filters.limit)
            ).mappings().all()
            templates = self._hydrate(conn, rows)
        return PaginatedResult(
            data=templates,
            pagination=Pagination.build(total, filters.page, filters.limit),
        )

    def _query(self, conditions, order_by, limit: int) -> list[CalculationTemplate]:
        tbl = self._db.get_table("calculation_templates")
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(tbl)
                .where(and_(true(), *conditions))
                .order_by(*order_by, tbl.c.id)
                .limit(limit)
            ).mappings().all()
            return self._hydrate(conn, rows)

    def _find_similar(self, template_id: str, limit: int) -> list[CalculationTemplate]:
        base = self._find_by_id(template_id)
        if base is None:
            return []
        tbl = self._db.get_table("calculation_templates")
        related = []
        if base.category:
            related.append(tbl.c.category == base.category)
        if base.target_profession:
            related.append(tbl.c.target_profession == base.target_profession)
        if not related:
            return []
        return self._query(
            [tbl.c.id != template_id, tbl.c.is_active.is_(True), or_(*related)],
            [tbl.c.average_rating.desc(), tbl.c.usage_count.desc()],
            limit,
        )

    def _get_recommendations(
        self,
        user_id: Optional[str],
        template_id: Optional[str],
        profession: Optional[str],
        limit: int,
    ) -> list[CalculationTemplate]:
        tbl = self._db.get_table("calculation_templates")
        active = tbl.c.is_active.is_(True)
        by_quality = [tbl.c.average_rating.desc(), tbl.c.usage_count.desc()]

        if profession:
            return self._query([active, tbl.c.target_profession == profession], by_quality, limit)
        if template_id:
            return self._find_similar(template_id, limit)
        if user_id:
            fav = self._db.get_table("user_favorites")
            favorite_ids = select(fav.c.template_id).where(fav.c.user_id == user_id)
            categories = select(tbl.c.category).where(tbl.c.id.in_(favorite_ids))
            picks = self._query(
                [active, tbl.c.category.in_(categories), tbl.c.id.not_in(favorite_ids)],
                by_quality,
                limit,
            )
            if picks:
                return picks
        return self._query([active, or_(tbl.c.is_featured.is_(True), tbl.c.is_verified.is_(True))], by_quality, limit)

    def _get_usage_stats(self, template_id: str) -> UsageStats:
        tbl = self._db.get_table("calculation_templates")
        with self._engine.connect() as conn:
            row = conn.execute(
                select(tbl.c.usage_count, tbl.c.average_rating, tbl.c.rating_count)
                .where(tbl.c.id == template_id)
            ).first()
        if row is None:
            raise NotFoundError("Template", template_id)
        return UsageStats(
            usage_count=row[0], average_rating=float(row[1]), rating_count=row[2]
        )

    # --- writes ---

    def _create(self, template: CalculationTemplate) -> CalculationTemplate:
        tbl = self._db.get_table("calculation_templates")
        with self._engine.begin() as conn:
            conn.execute(insert(tbl).values(**self._to_row(template)))
            self._replace_tags(conn, template.id, template.tags)
        return self._find_by_id(template.id)

    def _update(self, template: CalculationTemplate) -> CalculationTemplate:
        tbl = self._db.get_table("calculation_templates")
        values = self._to_row(template)
        values.pop("id")
        values["updated_at"] = utcnow()
        with self._engine.begin() as conn:
            res = conn.execute(update(tbl).where(tbl.c.id == template.id).values(**values))
            if res.rowcount == 0:
                raise NotFoundError("Template", template.id)
            self._replace_tags(conn, template.id, template.tags)
        return self._find_by_id(template.id)

    def _upsert(self, template: CalculationTemplate) -> CalculationTemplate:
        if self._find_by_id(template.id) is None:
            return self._create(template)
        return self._update(template)

    def _delete(self, template_id: str) -> bool:
        tbl = self._db.get_table("calculation_templates")
        tags = self._db.get_table("template_tags")
        fav = self._db.get_table("user_favorites")
        with self._engine.begin() as conn:
            conn.execute(delete(tags).where(tags.c.template_id == template_id))
            conn.execute(delete(fav).where(fav.c.template_id == template_id))
            res = conn.execute(delete(tbl).where(tbl.c.id == template_id))
        return res.rowcount > 0

    def _increment_usage(self, template_id: str) -> None:
        tbl = self._db.get_table("calculation_templates")
        with self._engine.begin() as conn:
            res = conn.execute(
                update(tbl)
                .where(tbl.c.id == template_id)
                .values(usage_count=tbl.c.usage_count + 1)
            )
        if res.rowcount == 0:
            raise NotFoundError("Template", template_id)

    def _add_rating(self, template_id: str, rating: float) -> None:
        tbl = self._db.get_table("calculation_templates")
        with self._engine.begin() as conn:
            res = conn.execute(
                update(tbl)
                .where(tbl.c.id == template_id)
                .values(
                    average_rating=(
                        tbl.c.average_rating * tbl.c.rating_count + float(rating)
                    )
                    / (tbl.c.rating_count + 1),
                    rating_count=tbl.c.rating_count + 1,
                )
            )
        if res.rowcount == 0:
            raise NotFoundError("Template", template_id)

    # --- helpers ---

    def _conditions(self, tbl: Table, filters: TemplateFilters) -> list:
        conditions = []
        if filters.is_active is not None:
            conditions.append(tbl.c.is_active.is_(filters.is_active))
        if filters.category:
            conditions.append(tbl.c.category == filters.category)
        if filters.target_profession:
            conditions.append(tbl.c.target_profession == filters.target_profession)
        if filters.show_only_verified:
            conditions.append(tbl.c.is_verified.is_(True))
        if filters.show_only_featured:
            conditions.append(tbl.c.is_featured.is_(True))
        if filters.search_term and filters.search_term.strip():
            term = f"%{filters.search_term.strip()}%"
            conditions.append(
                or_(
                    tbl.c.name.ilike(term),
                    tbl.c.description.ilike(term),
                    tbl.c.category.ilike(term),
                )
            )
        if filters.tags:
            tags = self._db.get_table("template_tags")
            conditions.append(
                tbl.c.id.in_(
                    select(tags.c.template_id).where(tags.c.tag.in_(filters.tags))
                )
            )
        return conditions

    def _order_by(self, tbl: Table, filters: TemplateFilters) -> list:
        sort_by = filters.sort_by or "name"
        if sort_by not in SORT_COLUMNS:
            raise ValueError(f"Unknown sort key: {sort_by}. Use one of {SORT_COLUMNS}.")
        column = tbl.c[sort_by]
        if filters.sort_by is None or filters.sort_order.upper() == "ASC":
            return [column.asc(), tbl.c.id]
        return [column.desc(), tbl.c.id]

    def _hydrate(self, conn: Connection, rows) -> list[CalculationTemplate]:
        if not rows:
            return []
        tags = self._db.get_table("template_tags")
        ids = [row["id"] for row in rows]
        tag_map: dict[str, list[str]] = {i: [] for i in ids}
        for template_id, tag in conn.execute(
            select(tags.c.template_id, tags.c.tag)
            .where(tags.c.template_id.in_(ids))
            .order_by(tags.c.tag)
        ):
            tag_map[template_id].append(tag)
        return [
            CalculationTemplate.from_dict({**dict(row), "tags": tag_map[row["id"]]})
            for row in rows
        ]

    def _replace_tags(self, conn: Connection, template_id: str, tag_list: list[str]) -> None:
        tags = self._db.get_table("template_tags")
        conn.execute(delete(tags).where(tags.c.template_id == template_id))
        for tag in dict.fromkeys(tag_list):
            conn.execute(insert(tags).values(template_id=template_id, tag=tag))

    @staticmethod
    def _to_row(template: CalculationTemplate) -> dict:
        row = template.to_dict()
        row.pop("tags")
        row["created_at"] = template.created_at
        row["updated_at"] = template.updated_at
        return row


class SqlExecutionRepository(_SqlRepository):
    """Persisted calculation results."""

    async def save_execution(self, result: CalculationResult) -> str:
        return await self._run(self._save_execution, result)

    async def get_execution_history(
        self,
        user_id: Optional[str] = None,
        template_id: Optional[str] = None,
        limit: int = 10,
    ) -> list[CalculationResult]:
        return await self._run(self._get_execution_history, user_id, template_id, limit)

    async def get_execution(self, execution_id: str) -> Optional[CalculationResult]:
        return await self._run(self._get_execution, execution_id)

    async def delete_execution(self, execution_id: str) -> bool:
        return await self._run(self._delete_execution, execution_id)

    async def get_execution_stats(self, template_id: str) -> ExecutionStats:
        return await self._run(self._get_execution_stats, template_id)

    def _save_execution(self, result: CalculationResult) -> str:
        tbl = self._db.get_table("calculation_executions")
        execution_id = uuid.uuid4().hex
        created = result.created_date or utcnow()
        with self._engine.begin() as conn:
            conn.execute(
                insert(tbl).values(
                    id=execution_id,
                    template_id=result.template_id,
                    template_name=result.template_name,
                    user_id=result.user_id,
                    project_id=result.project_id,
                    compliance_status=result.compliance.status,
                    execution_time_ms=result.execution_time_ms,
                    payload=result.to_dict(),
                    saved_name=result.saved_name,
                    saved_notes=result.saved_notes,
                    saved_at=result.saved_at,
                    created_date=created,
                )
            )
        return execution_id

    def _get_execution_history(
        self, user_id: Optional[str], template_id: Optional[str], limit: int
    ) -> list[CalculationResult]:
        tbl = self._db.get_table("calculation_executions")
        conditions = []
        if user_id:
            conditions.append(tbl.c.user_id == user_id)
        if template_id:
            conditions.append(tbl.c.template_id == template_id)
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(tbl.c.id, tbl.c.created_date, tbl.c.payload)
                .where(and_(true(), *conditions))
                .order_by(tbl.c.created_date.desc(), tbl.c.id)
                .limit(limit)
            ).all()
        return [self._to_result(*row) for row in rows]

    def _get_execution(self, execution_id: str) -> Optional[CalculationResult]:
        tbl = self._db.get_table("calculation_executions")
        with self._engine.connect() as conn:
            row = conn.execute(
                select(tbl.c.id, tbl.c.created_date, tbl.c.payload).where(
                    tbl.c.id == execution_id
                )
            ).first()
        return self._to_result(*row) if row else None

    def _delete_execution(self, execution_id: str) -> bool:
        tbl = self._db.get_table("calculation_executions")
        with self._engine.begin() as conn:
            res = conn.execute(delete(tbl).where(tbl.c.id == execution_id))
        return res.rowcount > 0

    def _get_execution_stats(self, template_id: str) -> ExecutionStats:
        tbl = self._db.get_table("calculation_executions")
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(tbl.c.compliance_status, tbl.c.execution_time_ms, tbl.c.payload)
                .where(tbl.c.template_id == template_id)
            ).all()
        df = pd.DataFrame(
            [tuple(r) for r in rows],
            columns=["compliance_status", "execution_time_ms", "payload"],
        )
        breakdown = {status: 0 for status in COMPLIANCE_STATUSES}
        if df.empty:
            return ExecutionStats(
                total_executions=0,
                average_execution_time=0.0,
                compliance_breakdown=breakdown,
            )
        breakdown.update(
            {str(k): int(v) for k, v in df["compliance_status"].value_counts().items()}
        )
        avg_time = pd.to_numeric(df["execution_time_ms"], errors="coerce").mean()
        return ExecutionStats(
            total_executions=len(df),
            average_execution_time=0.0 if pd.isna(avg_time) else round(float(avg_time), 3),
            compliance_breakdown=breakdown,
            most_used_parameters=self._most_used_parameters(df["payload"]),
        )

    @staticmethod
    def _most_used_parameters(payloads: pd.Series) -> dict:
        params = pd.DataFrame(
            [(p or {}).get("input_parameters") or {} for p in payloads]
        )
        out = {}
        for col in params.columns:
            counts = params[col].dropna().astype(str).value_counts()
            if not counts.empty:
                out[str(col)] = counts.index[0]
        return out

    @staticmethod
    def _to_result(execution_id: str, created_date, payload) -> CalculationResult:
        result = CalculationResult.from_dict(payload)
        return result.with_changes(
            execution_id=execution_id,
            created_date=result.created_date or created_date,
        )


class SqlFavoritesRepository(_SqlRepository):
    """Per-user favorite templates."""

    async def is_favorite(self, user_id: str, template_id: str) -> bool:
        return await self._run(self._is_favorite, user_id, template_id)

    async def add_favorite(self, user_id: str, template_id: str) -> None:
        await self._run(self._add_favorite, user_id, template_id)

    async def remove_favorite(self, user_id: str, template_id: str) -> None:
        await self._run(self._remove_favorite, user_id, template_id)

    async def get_favorites(self, user_id: str) -> list[str]:
        return await self._run(self._get_favorites, user_id)

    async def get_favorite_stats(self, template_id: str) -> FavoriteStats:
        return await self._run(self._get_favorite_stats, template_id)

    def _is_favorite(self, user_id: str, template_id: str) -> bool:
        fav = self._db.get_table("user_favorites")
        with self._engine.connect() as conn:
            row = conn.execute(
                select(fav.c.user_id).where(
                    fav.c.user_id == user_id, fav.c.template_id == template_id
                )
            ).first()
        return row is not None

    def _add_favorite(self, user_id: str, template_id: str) -> None:
        fav = self._db.get_table("user_favorites")
        with self._engine.begin() as conn:
            exists = conn.execute(
                select(fav.c.user_id).where(
                    fav.c.user_id == user_id, fav.c.template_id == template_id
                )
            ).first()
            if not exists:
                conn.execute(
                    insert(fav).values(
                        user_id=user_id, template_id=template_id, created_at=utcnow()
                    )
                )

    def _remove_favorite(self, user_id: str, template_id: str) -> None:
        fav = self._db.get_table("user_favorites")
        with self._engine.begin() as conn:
            conn.execute(
                delete(fav).where(
                    fav.c.user_id == user_id, fav.c.template_id == template_id
                )
            )

    def _get_favorites(self, user_id: str) -> list[str]:
        fav = self._db.get_table("user_favorites")
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(fav.c.template_id)
                .where(fav.c.user_id == user_id)
                .order_by(fav.c.created_at, fav.c.template_id)
            ).all()
        return [r[0] for r in rows]

    def _get_favorite_stats(self, template_id: str) -> FavoriteStats:
        fav = self._db.get_table("user_favorites")
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(fav.c.user_id)
                .where(fav.c.template_id == template_id)
                .order_by(fav.c.user_id)
            ).all()
        users = [r[0] for r in rows]
        return FavoriteStats(count=len(users), users=users)
