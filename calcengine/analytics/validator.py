"""
Parameter validation against a template's declared schema.
"""

from __future__ import annotations

import math
import re
from typing import Any, Mapping, Optional

from calcengine.models import CalculationTemplate, ParameterDefinition, ValidationResult

_TRUE_STRINGS = {"true", "yes", "1"}
_FALSE_STRINGS = {"false", "no", "0"}


def is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def to_number(value: Any) -> Optional[float]:
    """Parse a finite number. Booleans are not numbers here."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def to_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        s = value.strip().lower()
        if s in _TRUE_STRINGS:
            return True
        if s in _FALSE_STRINGS:
            return False
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    return None


def _format_bound(bound: float) -> str:
    return f"{bound:g}"


class ParameterValidator:
    """
    Validates parameter maps. Never raises on bad input: every problem
    is reported in the returned ValidationResult.
    """

    def validate(
        self, template: CalculationTemplate, values: Mapping[str, Any]
    ) -> ValidationResult:
        errors: dict[str, str] = {}
        for param in template.parameters:
            message = self.validate_parameter(param, values.get(param.name))
            if message is not None:
                errors[param.label] = message
        return ValidationResult(is_valid=not errors, errors=errors)

    def validate_parameter(
        self, param: ParameterDefinition, value: Any
    ) -> Optional[str]:
        """Return an error message, or None when the value is acceptable."""
        if is_empty(value):
            return "This field is required" if param.required else None

        if param.type == "numeric":
            number = to_number(value)
            if number is None:
                return "Must be a valid number"
            if param.min is not None and number < param.min:
                return f"Minimum value is {_format_bound(param.min)}"
            if param.max is not None and number > param.max:
                return f"Maximum value is {_format_bound(param.max)}"
        elif param.type == "enum":
            if param.allowed_values is not None and str(value) not in param.allowed_values:
                return "Please select a valid option"
        elif param.type == "text":
            if param.pattern and not re.search(param.pattern, str(value)):
                return param.pattern_message or "Invalid format"
        elif param.type == "boolean":
            if to_bool(value) is None:
                return "Must be true or false"
        return None


def coerce_values(
    template: CalculationTemplate, values: Mapping[str, Any]
) -> dict[str, Any]:
    """
    Typed copy of a validated parameter map: numbers as float, booleans as
    bool, enum/text as str. Declared defaults fill absent optional values.
    Keys the template does not declare are dropped.
    """
    out: dict[str, Any] = {}
    for param in template.parameters:
        value = values.get(param.name)
        if is_empty(value):
            value = param.default
        if is_empty(value):
            out[param.name] = None
        elif param.type == "numeric":
            out[param.name] = to_number(value)
        elif param.type == "boolean":
            out[param.name] = to_bool(value)
        else:
            out[param.name] = str(value)
    return out
