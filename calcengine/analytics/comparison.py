"""
Side-by-side comparison of calculation results: per-metric rankings,
unit compatibility and compliance summaries.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd

from calcengine.config import MAX_COMPARISON_SIZE, MIN_COMPARISON_SIZE
from calcengine.models import COMPLIANCE_STATUSES, CalculationResult

PLACEHOLDER = "-"
METRIC_SOURCES = ("parameters", "secondary")

_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER = re.compile(r"-?(\d+\.?\d*|\.\d+)")


def coerce_numeric(value: Union[str, int, float]) -> float:
    """
    Lossy, locale-naive number extraction used only for relative ordering:
    '8,450 W' -> 8450.0. Returns NaN when nothing numeric is left.
    """
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = _NON_NUMERIC.sub("", str(value))
    match = _LEADING_NUMBER.match(cleaned)
    return float(match.group(0)) if match else float("nan")


@dataclass(frozen=True)
class ComparisonCell:
    value: str
    unit: Optional[str] = None
    tag: Optional[str] = None  # None when the result lacks the metric

    @property
    def present(self) -> bool:
        return self.value != PLACEHOLDER


@dataclass(frozen=True)
class ComparisonRow:
    key: str
    label: str
    cells: tuple[ComparisonCell, ...]


@dataclass(frozen=True)
class PrimaryRanking:
    compatible: bool
    unit: Optional[str]
    tags: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ComplianceSummary:
    statuses: list[dict]
    counts: dict[str, int]


@dataclass(frozen=True)
class ComparisonReport:
    primary: PrimaryRanking
    parameters: list[ComparisonRow]
    secondary: list[ComparisonRow]
    compliance: ComplianceSummary


class ComparisonEngine:
    """
    Stateless. Which results are being compared is owned by the caller;
    `compare` enforces the selection bounds.
    """

    def __init__(
        self,
        min_results: int = MIN_COMPARISON_SIZE,
        max_results: int = MAX_COMPARISON_SIZE,
    ) -> None:
        self.min_results = min_results
        self.max_results = max_results

    def compare_values(self, values: Sequence[Union[str, int, float]]) -> list[str]:
        """Tag each value as highest, lowest or equal within the set."""
        if len(values) < 2:
            return []
        numbers = np.array([coerce_numeric(v) for v in values], dtype="float64")
        # NaN propagates through max/min so a single unparseable value
        # makes every element compare as equal.
        top, bottom = np.max(numbers), np.min(numbers)
        tags = []
        for n in numbers:
            if n == top and top != bottom:
                tags.append("highest")
            elif n == bottom and top != bottom:
                tags.append("lowest")
            else:
                tags.append("equal")
        return tags

    def build_comparison_table(
        self, results: Sequence[CalculationResult], metric_source: str = "parameters"
    ) -> list[ComparisonRow]:
        if metric_source not in METRIC_SOURCES:
            raise ValueError(
                f"Unknown metric source: {metric_source}. Use one of {METRIC_SOURCES}."
            )
        if len(results) < 2:
            return []

        per_result = [self._metrics(r, metric_source) for r in results]
        keys: list[str] = []
        for metrics in per_result:
            for key in metrics:
                if key not in keys:
                    keys.append(key)

        rows = []
        for key in keys:
            present = [i for i, m in enumerate(per_result) if key in m]
            tags = self.compare_values([per_result[i][key][0] for i in present])
            tag_by_index = dict(zip(present, tags))
            cells = []
            for i, metrics in enumerate(per_result):
                if key in metrics:
                    value, unit = metrics[key]
                    cells.append(ComparisonCell(value, unit, tag_by_index.get(i)))
                else:
                    cells.append(ComparisonCell(PLACEHOLDER))
            rows.append(ComparisonRow(key=key, label=key, cells=tuple(cells)))
        return rows

    def check_unit_compatibility(self, results: Sequence[CalculationResult]) -> bool:
        return len({r.primary.unit for r in results}) <= 1

    def rank_primary(self, results: Sequence[CalculationResult]) -> PrimaryRanking:
        """Rank headline values; refuses to mix units."""
        if not self.check_unit_compatibility(results):
            return PrimaryRanking(compatible=False, unit=None)
        unit = results[0].primary.unit if results else None
        tags = self.compare_values([r.primary.value for r in results])
        return PrimaryRanking(compatible=True, unit=unit, tags=tags)

    def aggregate_compliance(
        self, results: Sequence[CalculationResult]
    ) -> ComplianceSummary:
        statuses = [
            {
                "execution_id": r.execution_id,
                "template_name": r.template_name,
                "status": r.compliance.status,
                "notes": list(r.compliance.notes),
            }
            for r in results
        ]
        counts = {status: 0 for status in COMPLIANCE_STATUSES}
        for r in results:
            counts[r.compliance.status] += 1
        return ComplianceSummary(statuses=statuses, counts=counts)

    def compare(self, results: Sequence[CalculationResult]) -> ComparisonReport:
        if len(results) > self.max_results:
            raise ValueError(
                f"At most {self.max_results} results can be compared; got {len(results)}."
            )
        if len(results) < self.min_results:
            return ComparisonReport(
                primary=PrimaryRanking(compatible=True, unit=None),
                parameters=[],
                secondary=[],
                compliance=ComplianceSummary(
                    statuses=[], counts={s: 0 for s in COMPLIANCE_STATUSES}
                ),
            )
        return ComparisonReport(
            primary=self.rank_primary(results),
            parameters=self.build_comparison_table(results, "parameters"),
            secondary=self.build_comparison_table(results, "secondary"),
            compliance=self.aggregate_compliance(results),
        )

    @staticmethod
    def _metrics(
        result: CalculationResult, metric_source: str
    ) -> dict[str, tuple[str, Optional[str]]]:
        if metric_source == "parameters":
            return {
                name: (str(value), None)
                for name, value in result.input_parameters.items()
                if value is not None and value != ""
            }
        return {m.label: (m.value, m.unit) for m in result.secondary if m.value != ""}


def to_frame(rows: Sequence[ComparisonRow], columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """One row per metric, one column per compared result (value plus unit)."""
    if not rows:
        return pd.DataFrame()
    n = len(rows[0].cells)
    columns = list(columns) if columns else [f"Result {i + 1}" for i in range(n)]
    data = {
        col: [
            f"{row.cells[i].value} {row.cells[i].unit}".strip()
            if row.cells[i].unit
            else row.cells[i].value
            for row in rows
        ]
        for i, col in enumerate(columns)
    }
    return pd.DataFrame(data, index=pd.Index([row.label for row in rows], name="Metric"))


def export_to_excel(
    df: pd.DataFrame, filepath: str, index: bool = True
) -> None:
    """Export DataFrame to Excel file."""
    df.to_excel(filepath, index=index)
