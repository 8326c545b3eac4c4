"""
Domain entities and data transfer objects.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

PARAMETER_TYPES = ("numeric", "text", "enum", "boolean")
COMPLIANCE_STATUSES = ("compliant", "warning", "non-compliant")
COMPARISON_TAGS = ("highest", "lowest", "equal")

TRENDING_MIN_USAGE = 50
TRENDING_MIN_RATING = 4.0
POPULAR_MIN_USAGE = 100
NEW_TEMPLATE_DAYS = 30


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _parse_datetime(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _as_aware(value)
    return _as_aware(datetime.fromisoformat(str(value).replace("Z", "+00:00")))


def _pick(data: dict, snake: str, camel: str, default=None):
    """Read a key that may come in snake_case or camelCase."""
    if snake in data and data[snake] is not None:
        return data[snake]
    if camel in data and data[camel] is not None:
        return data[camel]
    return default


# --- Templates ---


@dataclass(frozen=True)
class ParameterDefinition:
    """One entry of a template's parameter schema."""

    name: str
    label: str
    type: str = "numeric"  # one of PARAMETER_TYPES
    required: bool = True
    min: Optional[float] = None
    max: Optional[float] = None
    allowed_values: Optional[tuple[str, ...]] = None
    unit: Optional[str] = None
    default: Any = None
    pattern: Optional[str] = None
    pattern_message: Optional[str] = None

    def __post_init__(self) -> None:
        if self.type not in PARAMETER_TYPES:
            raise ValueError(
                f"Unknown parameter type: {self.type}. Use one of {PARAMETER_TYPES}."
            )

    @classmethod
    def from_dict(cls, data: dict) -> "ParameterDefinition":
        allowed = _pick(data, "allowed_values", "allowedValues") or data.get("options")
        return cls(
            name=data["name"],
            label=data.get("label") or data["name"],
            type=data.get("type", "numeric"),
            required=bool(data.get("required", True)),
            min=data.get("min"),
            max=data.get("max"),
            allowed_values=tuple(str(v) for v in allowed) if allowed else None,
            unit=data.get("unit"),
            default=_pick(data, "default", "defaultValue"),
            pattern=data.get("pattern"),
            pattern_message=_pick(data, "pattern_message", "patternMessage"),
        )

    def to_dict(self) -> dict:
        out = asdict(self)
        if self.allowed_values is not None:
            out["allowed_values"] = list(self.allowed_values)
        return out


@dataclass
class CalculationTemplate:
    """
    A named, versioned parameterized calculation.
    `formula` is the key of a registered computation (see analytics.formulas).
    """

    id: str
    name: str
    formula: str
    parameters: list[ParameterDefinition] = field(default_factory=list)
    description: str = ""
    category: str = ""
    target_profession: str = ""
    nec_reference: str = ""
    version: str = "1.0"
    is_active: bool = True
    is_verified: bool = False
    is_featured: bool = False
    usage_count: int = 0
    average_rating: float = 0.0
    rating_count: int = 0
    tags: list[str] = field(default_factory=list)
    created_by: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        # Validation errors are keyed by label, names key the parameter map.
        for attr in ("name", "label"):
            seen = set()
            for param in self.parameters:
                value = getattr(param, attr)
                if value in seen:
                    raise ValueError(
                        f"Template '{self.id}' has duplicate parameter {attr} '{value}'."
                    )
                seen.add(value)

    def get_parameter(self, name: str) -> Optional[ParameterDefinition]:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    @classmethod
    def from_dict(cls, data: dict) -> "CalculationTemplate":
        now = utcnow()
        return cls(
            id=str(data["id"]),
            name=data["name"],
            formula=data["formula"],
            parameters=[
                p if isinstance(p, ParameterDefinition) else ParameterDefinition.from_dict(p)
                for p in data.get("parameters") or []
            ],
            description=data.get("description") or "",
            category=data.get("category") or data.get("type") or "",
            target_profession=_pick(data, "target_profession", "targetProfession", ""),
            nec_reference=_pick(data, "nec_reference", "necReference", ""),
            version=str(data.get("version") or "1.0"),
            is_active=bool(_pick(data, "is_active", "isActive", True)),
            is_verified=bool(_pick(data, "is_verified", "isVerified", False)),
            is_featured=bool(_pick(data, "is_featured", "isFeatured", False)),
            usage_count=int(_pick(data, "usage_count", "usageCount", 0)),
            average_rating=float(_pick(data, "average_rating", "averageRating", 0.0)),
            rating_count=int(_pick(data, "rating_count", "ratingCount", 0)),
            tags=list(data.get("tags") or []),
            created_by=_pick(data, "created_by", "createdBy"),
            created_at=_parse_datetime(_pick(data, "created_at", "createdAt")) or now,
            updated_at=_parse_datetime(_pick(data, "updated_at", "updatedAt")) or now,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "formula": self.formula,
            "parameters": [p.to_dict() for p in self.parameters],
            "description": self.description,
            "category": self.category,
            "target_profession": self.target_profession,
            "nec_reference": self.nec_reference,
            "version": self.version,
            "is_active": self.is_active,
            "is_verified": self.is_verified,
            "is_featured": self.is_featured,
            "usage_count": self.usage_count,
            "average_rating": self.average_rating,
            "rating_count": self.rating_count,
            "tags": list(self.tags),
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


# Read-model flags. Computed on every read, never persisted.


def is_trending(usage_count: int, average_rating: float) -> bool:
    return usage_count > TRENDING_MIN_USAGE and average_rating > TRENDING_MIN_RATING


def is_popular(usage_count: int) -> bool:
    return usage_count > POPULAR_MIN_USAGE


def is_new(created_at: datetime, now: Optional[datetime] = None) -> bool:
    now = _as_aware(now or utcnow())
    return _as_aware(created_at) > now - timedelta(days=NEW_TEMPLATE_DAYS)


def template_flags(
    template: CalculationTemplate, now: Optional[datetime] = None
) -> dict[str, bool]:
    return {
        "trending": is_trending(template.usage_count, template.average_rating),
        "popular": is_popular(template.usage_count),
        "is_new": is_new(template.created_at, now),
    }


# --- Results ---


@dataclass(frozen=True)
class PrimaryMetric:
    label: str
    value: str
    unit: str


@dataclass(frozen=True)
class SecondaryMetric:
    label: str
    value: str
    unit: Optional[str] = None


@dataclass(frozen=True)
class Compliance:
    status: str
    notes: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.status not in COMPLIANCE_STATUSES:
            raise ValueError(
                f"Invalid compliance status: {self.status}. "
                f"Use one of {COMPLIANCE_STATUSES}."
            )


@dataclass(frozen=True)
class CalculationResult:
    """
    Output of one execution. Read-only: persistence and saving produce
    enriched copies through `replace`, never in-place updates.
    """

    primary: PrimaryMetric
    secondary: tuple[SecondaryMetric, ...] = ()
    compliance: Compliance = Compliance("compliant")
    input_parameters: dict[str, Any] = field(default_factory=dict)
    execution_id: Optional[str] = None
    template_id: Optional[str] = None
    template_name: Optional[str] = None
    user_id: Optional[str] = None
    project_id: Optional[str] = None
    created_date: Optional[datetime] = None
    execution_time_ms: Optional[float] = None
    saved_name: Optional[str] = None
    saved_notes: Optional[str] = None
    saved_at: Optional[datetime] = None

    def with_changes(self, **changes) -> "CalculationResult":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "primary": asdict(self.primary),
            "secondary": [asdict(m) for m in self.secondary],
            "compliance": {
                "status": self.compliance.status,
                "notes": list(self.compliance.notes),
            },
            "input_parameters": dict(self.input_parameters),
            "execution_id": self.execution_id,
            "template_id": self.template_id,
            "template_name": self.template_name,
            "user_id": self.user_id,
            "project_id": self.project_id,
            "created_date": self.created_date.isoformat() if self.created_date else None,
            "execution_time_ms": self.execution_time_ms,
            "saved_name": self.saved_name,
            "saved_notes": self.saved_notes,
            "saved_at": self.saved_at.isoformat() if self.saved_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CalculationResult":
        primary = data["primary"]
        compliance = data.get("compliance") or {"status": "compliant"}
        return cls(
            primary=PrimaryMetric(
                label=primary["label"],
                value=str(primary["value"]),
                unit=primary.get("unit") or "",
            ),
            secondary=tuple(
                SecondaryMetric(
                    label=m["label"], value=str(m["value"]), unit=m.get("unit")
                )
                for m in data.get("secondary") or []
            ),
            compliance=Compliance(
                status=compliance["status"], notes=tuple(compliance.get("notes") or ())
            ),
            input_parameters=dict(
                _pick(data, "input_parameters", "inputParameters", {}) or {}
            ),
            execution_id=_pick(data, "execution_id", "executionId"),
            template_id=_pick(data, "template_id", "templateId"),
            template_name=_pick(data, "template_name", "templateName"),
            user_id=_pick(data, "user_id", "userId"),
            project_id=_pick(data, "project_id", "projectId"),
            created_date=_parse_datetime(_pick(data, "created_date", "createdDate")),
            execution_time_ms=_pick(data, "execution_time_ms", "executionTimeMs"),
            saved_name=_pick(data, "saved_name", "savedName"),
            saved_notes=_pick(data, "saved_notes", "savedNotes"),
            saved_at=_parse_datetime(_pick(data, "saved_at", "savedAt")),
        )


@dataclass(frozen=True)
class ValidationResult:
    """Errors are keyed by parameter label, in declared parameter order."""

    is_valid: bool
    errors: dict[str, str] = field(default_factory=dict)


# --- Catalog queries ---


@dataclass
class TemplateFilters:
    """Catalog query. Unset fields do not filter."""

    search_term: Optional[str] = None
    category: Optional[str] = None
    target_profession: Optional[str] = None
    show_only_verified: bool = False
    show_only_featured: bool = False
    tags: list[str] = field(default_factory=list)
    sort_by: Optional[str] = None  # name, usage_count, average_rating, created_at, updated_at
    sort_order: str = "DESC"
    is_active: Optional[bool] = True
    page: int = 1
    limit: int = 50


@dataclass(frozen=True)
class Pagination:
    total: int
    page: int
    limit: int
    pages: int

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "Pagination":
        pages = math.ceil(total / limit) if limit > 0 else 0
        return cls(total=total, page=page, limit=limit, pages=pages)


@dataclass
class PaginatedResult:
    data: list
    pagination: Pagination


# --- Statistics ---


@dataclass(frozen=True)
class UsageStats:
    usage_count: int
    average_rating: float
    rating_count: int


@dataclass(frozen=True)
class ExecutionStats:
    total_executions: int
    average_execution_time: float
    compliance_breakdown: dict[str, int] = field(default_factory=dict)
    most_used_parameters: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FavoriteStats:
    count: int
    users: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class TemplateStats:
    usage: UsageStats
    executions: ExecutionStats
    favorites: FavoriteStats


@dataclass(frozen=True)
class AggregatedStats:
    total_templates: int
    verified_templates: int
    total_executions: int
    average_rating: float
