"""
FastAPI application for the calculation template catalog, execution,
favorites and result comparison.
"""

import logging
from dataclasses import asdict
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from calcengine.analytics import ComparisonEngine
from calcengine.application import TemplateService, create_template_service
from calcengine.config import LOG_LEVEL
from calcengine.models import (
    CalcEngineError,
    CalculationResult,
    CalculationTemplate,
    ComputationError,
    NotFoundError,
    PaginatedResult,
    RepositoryError,
    TemplateFilters,
    TemplateInactiveError,
    ValidationFailedError,
    template_flags,
)

logging.basicConfig(
    level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

app = FastAPI(
    title="Calculation Templates API",
    description="Execute construction calculation templates and compare results.",
    version="1.0.0",
)

# Shared instances (initialized on first use)
_service: Optional[TemplateService] = None
_comparison = ComparisonEngine()


def get_service() -> TemplateService:
    global _service
    if _service is None:
        _service = create_template_service()
    return _service


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, TemplateInactiveError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ValidationFailedError):
        return HTTPException(status_code=422, detail={"errors": e.errors})
    if isinstance(e, ComputationError):
        return HTTPException(
            status_code=422,
            detail={"message": str(e), "parameters": list(e.parameters)},
        )
    if isinstance(e, RepositoryError):
        return HTTPException(status_code=503, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


def _template_out(template: CalculationTemplate) -> dict:
    return {**template.to_dict(), **template_flags(template)}


def _page_out(page: PaginatedResult) -> dict:
    return {
        "data": [_template_out(t) for t in page.data],
        "pagination": asdict(page.pagination),
    }


# --- Request models ---


class ExecuteRequest(BaseModel):
    """Request body for executing a template."""

    parameters: dict[str, Any] = Field(
        default_factory=dict,
        description="Parameter values keyed by parameter name.",
    )
    user_id: Optional[str] = None
    project_id: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "parameters": {"area": 150, "special_loads": 4500},
                    "user_id": "u-1",
                }
            ]
        }
    }


class ValidateRequest(BaseModel):
    parameters: dict[str, Any] = Field(default_factory=dict)


class SaveResultRequest(BaseModel):
    """A previously computed result plus optional user metadata."""

    result: dict[str, Any]
    name: Optional[str] = None
    notes: Optional[str] = None


class RatingRequest(BaseModel):
    rating: float = Field(..., ge=1, le=5)


class ComparisonRequest(BaseModel):
    results: list[dict[str, Any]] = Field(
        ..., description="Between 2 and 4 calculation results."
    )


# --- Catalog ---


@app.get("/templates")
async def list_templates(
    search: Optional[str] = None,
    category: Optional[str] = None,
    profession: Optional[str] = None,
    verified: bool = False,
    featured: bool = False,
    tags: list[str] = Query(default=[]),
    sort_by: Optional[str] = None,
    sort_order: str = "DESC",
    page: int = 1,
    limit: int = 50,
):
    filters = TemplateFilters(
        search_term=search,
        category=category,
        target_profession=profession,
        show_only_verified=verified,
        show_only_featured=featured,
        tags=tags,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    try:
        return _page_out(await get_service().get_templates(filters))
    except (CalcEngineError, ValueError) as e:
        raise _http_error(e)


@app.get("/templates/search")
async def search_templates(q: str = "", page: int = 1, limit: int = 50):
    try:
        page_result = await get_service().search_templates(
            q, TemplateFilters(page=page, limit=limit)
        )
    except (CalcEngineError, ValueError) as e:
        raise _http_error(e)
    return _page_out(page_result)


@app.get("/templates/verified")
async def verified_templates():
    try:
        templates = await get_service().get_verified_templates()
    except (CalcEngineError, ValueError) as e:
        raise _http_error(e)
    return {"data": [_template_out(t) for t in templates]}


@app.get("/templates/featured")
async def featured_templates():
    try:
        templates = await get_service().get_featured_templates()
    except (CalcEngineError, ValueError) as e:
        raise _http_error(e)
    return {"data": [_template_out(t) for t in templates]}


@app.get("/templates/trending")
async def trending_templates():
    try:
        templates = await get_service().get_trending_templates()
    except (CalcEngineError, ValueError) as e:
        raise _http_error(e)
    return {"data": [_template_out(t) for t in templates]}


@app.get("/templates/{template_id}")
async def get_template(template_id: str):
    try:
        template = await get_service().get_template_by_id(template_id)
    except (CalcEngineError, ValueError) as e:
        raise _http_error(e)
    if template is None:
        raise HTTPException(status_code=404, detail=f"Template '{template_id}' not found.")
    return _template_out(template)


@app.get("/templates/{template_id}/similar")
async def similar_templates(template_id: str):
    try:
        templates = await get_service().get_similar_templates(template_id)
    except (CalcEngineError, ValueError) as e:
        raise _http_error(e)
    return {"data": [_template_out(t) for t in templates]}


@app.get("/templates/{template_id}/stats")
async def template_stats(template_id: str):
    try:
        stats = await get_service().get_template_stats(template_id)
    except (CalcEngineError, ValueError) as e:
        raise _http_error(e)
    return asdict(stats)


@app.post("/templates/{template_id}/rating")
async def rate_template(template_id: str, request: RatingRequest):
    try:
        await get_service().rate_template(template_id, request.rating)
    except (CalcEngineError, ValueError) as e:
        raise _http_error(e)
    return {"success": True, "template_id": template_id}


@app.get("/recommendations")
async def recommendations(
    user_id: Optional[str] = None,
    template_id: Optional[str] = None,
    profession: Optional[str] = None,
):
    try:
        templates = await get_service().get_recommendations(
            user_id, template_id, profession
        )
    except (CalcEngineError, ValueError) as e:
        raise _http_error(e)
    return {"data": [_template_out(t) for t in templates]}


# --- Execution ---


@app.post("/templates/{template_id}/validate")
async def validate_parameters(template_id: str, request: ValidateRequest):
    """Check parameters without executing or recording anything."""
    try:
        validation = await get_service().validate_parameters(template_id, request.parameters)
    except (CalcEngineError, ValueError) as e:
        raise _http_error(e)
    return asdict(validation)


@app.post("/templates/{template_id}/execute")
async def execute_template(template_id: str, request: ExecuteRequest):
    try:
        result = await get_service().execute_calculation(
            template_id,
            request.parameters,
            user_id=request.user_id,
            project_id=request.project_id,
        )
    except (CalcEngineError, ValueError) as e:
        raise _http_error(e)
    return result.to_dict()


@app.post("/executions")
async def save_result(request: SaveResultRequest):
    try:
        result = CalculationResult.from_dict(request.result)
    except (KeyError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid result: {e}")
    try:
        execution_id = await get_service().save_calculation_result(
            result, request.name, request.notes
        )
    except CalcEngineError as e:
        raise _http_error(e)
    return {"success": True, "execution_id": execution_id}


@app.get("/users/{user_id}/history")
async def user_history(user_id: str, limit: int = 10):
    try:
        results = await get_service().get_user_calculation_history(user_id, limit)
    except (CalcEngineError, ValueError) as e:
        raise _http_error(e)
    return {"data": [r.to_dict() for r in results]}


# --- Favorites ---


@app.post("/users/{user_id}/favorites/{template_id}")
async def toggle_favorite(user_id: str, template_id: str):
    try:
        is_favorite = await get_service().toggle_favorite(user_id, template_id)
    except (CalcEngineError, ValueError) as e:
        raise _http_error(e)
    return {"template_id": template_id, "is_favorite": is_favorite}


@app.get("/users/{user_id}/favorites")
async def user_favorites(user_id: str):
    try:
        templates = await get_service().get_user_favorites(user_id)
    except (CalcEngineError, ValueError) as e:
        raise _http_error(e)
    return {"data": [_template_out(t) for t in templates]}


# --- Stats and comparison ---


@app.get("/stats")
async def aggregated_stats():
    try:
        stats = await get_service().get_aggregated_stats()
    except CalcEngineError as e:
        raise _http_error(e)
    return asdict(stats)


@app.post("/comparisons")
async def compare_results(request: ComparisonRequest):
    """
    Rank primary and secondary metrics across results.
    Primary values are only ranked when all results share a unit.
    """
    try:
        results = [CalculationResult.from_dict(r) for r in request.results]
        report = _comparison.compare(results)
    except (KeyError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return asdict(report)
