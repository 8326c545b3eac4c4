"""
Summary counters over templates and per-template statistics.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

import pandas as pd

from calcengine.models import (
    AggregatedStats,
    CalculationTemplate,
    ExecutionStats,
    FavoriteStats,
    TemplateStats,
    UsageStats,
)


def _round_half_up(value: float, places: str = "0.01") -> float:
    return float(Decimal(str(value)).quantize(Decimal(places), rounding=ROUND_HALF_UP))


class StatsAggregator:
    """Pure folds; fetching the inputs is the caller's job."""

    def aggregate(
        self,
        usage: UsageStats,
        executions: ExecutionStats,
        favorites: FavoriteStats,
    ) -> TemplateStats:
        return TemplateStats(usage=usage, executions=executions, favorites=favorites)

    def summarize_templates(
        self, templates: Sequence[CalculationTemplate]
    ) -> AggregatedStats:
        """
        Totals over the given templates. The average rating is the plain
        mean of per-template averages, rounded half-up to 2 decimals; 0 when empty.
        """
        if not templates:
            return AggregatedStats(
                total_templates=0,
                verified_templates=0,
                total_executions=0,
                average_rating=0.0,
            )
        df = pd.DataFrame(
            {
                "is_verified": [t.is_verified for t in templates],
                "usage_count": [t.usage_count for t in templates],
                "average_rating": [t.average_rating for t in templates],
            }
        )
        return AggregatedStats(
            total_templates=len(df),
            verified_templates=int(df["is_verified"].sum()),
            total_executions=int(df["usage_count"].sum()),
            average_rating=_round_half_up(float(df["average_rating"].mean())),
        )
