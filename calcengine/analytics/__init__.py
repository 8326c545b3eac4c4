"""Analytics: validation, formula execution, comparison and stats."""

from calcengine.analytics.comparison import ComparisonEngine, export_to_excel, to_frame
from calcengine.analytics.executor import FormulaExecutor
from calcengine.analytics.formulas import FORMULAS, get_formula, register_formula
from calcengine.analytics.stats import StatsAggregator
from calcengine.analytics.validator import ParameterValidator, coerce_values

__all__ = [
    "ComparisonEngine",
    "export_to_excel",
    "to_frame",
    "FormulaExecutor",
    "FORMULAS",
    "get_formula",
    "register_formula",
    "StatsAggregator",
    "ParameterValidator",
    "coerce_values",
]
