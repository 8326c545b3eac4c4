"""
SQLAlchemy table definitions and database initialization.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.engine import Engine


def create_tables(engine: Engine) -> None:
    """Create all tables if they do not exist."""
    metadata = MetaData()

    Table(
        "calculation_templates",
        metadata,
        Column("id", String, primary_key=True),
        Column("name", String, nullable=False),
        Column("description", Text, nullable=False, default=""),
        Column("category", String, nullable=False, default=""),
        Column("target_profession", String, nullable=False, default=""),
        Column("nec_reference", String, nullable=False, default=""),
        Column("formula", String, nullable=False),
        Column("version", String, nullable=False, default="1.0"),
        Column("parameters", JSON, nullable=False),
        Column("is_active", Boolean, nullable=False, default=True),
        Column("is_verified", Boolean, nullable=False, default=False),
        Column("is_featured", Boolean, nullable=False, default=False),
        Column("usage_count", Integer, nullable=False, default=0),
        Column("average_rating", Float, nullable=False, default=0.0),
        Column("rating_count", Integer, nullable=False, default=0),
        Column("created_by", String, nullable=True),
        Column("created_at", DateTime(timezone=True), nullable=False),
        Column("updated_at", DateTime(timezone=True), nullable=False),
    )

    Table(
        "template_tags",
        metadata,
        Column(
            "template_id",
            String,
            ForeignKey("calculation_templates.id"),
            nullable=False,
        ),
        Column("tag", String, nullable=False),
        UniqueConstraint("template_id", "tag"),
    )

    Table(
        "calculation_executions",
        metadata,
        Column("id", String, primary_key=True),
        Column("template_id", String, nullable=True),
        Column("template_name", String, nullable=True),
        Column("user_id", String, nullable=True),
        Column("project_id", String, nullable=True),
        Column("compliance_status", String, nullable=False),
        Column("execution_time_ms", Float, nullable=True),
        Column("payload", JSON, nullable=False),
        Column("saved_name", String, nullable=True),
        Column("saved_notes", Text, nullable=True),
        Column("saved_at", DateTime(timezone=True), nullable=True),
        Column("created_date", DateTime(timezone=True), nullable=False),
    )

    Table(
        "user_favorites",
        metadata,
        Column("user_id", String, nullable=False),
        Column(
            "template_id",
            String,
            ForeignKey("calculation_templates.id"),
            nullable=False,
        ),
        Column("created_at", DateTime(timezone=True), nullable=False),
        UniqueConstraint("user_id", "template_id"),
    )

    metadata.create_all(engine)
