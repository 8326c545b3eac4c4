"""Application services: template catalog, execution, favorites, stats."""

from calcengine.application.template_service import (
    TemplateService,
    create_template_service,
)

__all__ = ["TemplateService", "create_template_service"]
