"""
Formula execution: runs a template's registered computation and packages
its raw output as a CalculationResult.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Mapping, Optional

from calcengine.analytics.formulas import FORMULAS, Computable, RawMetric, RawOutput
from calcengine.analytics.validator import coerce_values
from calcengine.models import (
    CalculationResult,
    CalculationTemplate,
    Compliance,
    ComputationError,
    PrimaryMetric,
    SecondaryMetric,
)

logger = logging.getLogger(__name__)


def format_quantity(value: Any, decimals: int = 2) -> str:
    """Thousands separator with fixed decimals, e.g. 8450 -> '8,450'."""
    if isinstance(value, str):
        return value
    return f"{value:,.{decimals}f}"


class FormulaExecutor:
    """
    Executes validated parameter maps. Callers must run ParameterValidator
    first; the executor only guards against failures of the computation.
    """

    def __init__(self, formulas: Optional[Mapping[str, Computable]] = None) -> None:
        self._formulas = FORMULAS if formulas is None else formulas

    def execute(
        self, template: CalculationTemplate, values: Mapping[str, Any]
    ) -> CalculationResult:
        formula = self._formulas.get(template.formula)
        if formula is None:
            raise ComputationError(
                f"No formula registered under '{template.formula}' "
                f"for template '{template.id}'"
            )

        params = coerce_values(template, values)
        start = time.perf_counter()
        try:
            raw = formula.evaluate(params)
        except ComputationError:
            raise
        except (ArithmeticError, KeyError, TypeError, ValueError) as e:
            raise ComputationError(
                f"Formula '{template.formula}' failed: {e}",
                [p.name for p in template.parameters],
            ) from e
        elapsed_ms = (time.perf_counter() - start) * 1000.0

        self._assert_finite(raw, template)
        logger.debug(
            "Formula %s evaluated in %.3f ms", template.formula, elapsed_ms
        )
        return CalculationResult(
            primary=PrimaryMetric(
                label=raw.primary.label,
                value=format_quantity(raw.primary.value, raw.primary.decimals),
                unit=raw.primary.unit or "",
            ),
            secondary=tuple(
                SecondaryMetric(
                    label=m.label,
                    value=format_quantity(m.value, m.decimals),
                    unit=m.unit,
                )
                for m in raw.secondary
            ),
            compliance=Compliance(status=raw.status, notes=tuple(raw.notes)),
            input_parameters=dict(values),
            template_id=template.id,
            template_name=template.name,
            execution_time_ms=elapsed_ms,
        )

    def _assert_finite(self, raw: RawOutput, template: CalculationTemplate) -> None:
        metrics: list[RawMetric] = [raw.primary, *raw.secondary]
        bad = [
            m.label
            for m in metrics
            if not isinstance(m.value, str) and not math.isfinite(m.value)
        ]
        if bad:
            raise ComputationError(
                f"Formula '{template.formula}' produced non-finite values for "
                f"{', '.join(bad)}",
                [p.name for p in template.parameters],
            )
