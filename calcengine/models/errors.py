"""
Exception taxonomy for template lookup, validation, execution and persistence.
"""

from __future__ import annotations

from typing import Iterable, Mapping


class CalcEngineError(Exception):
    """Base class for all engine failures."""


class NotFoundError(CalcEngineError):
    """A template or execution id does not resolve."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} '{identifier}' not found.")
        self.kind = kind
        self.identifier = identifier


class TemplateInactiveError(CalcEngineError):
    """Execution attempted against a deactivated template."""

    def __init__(self, template_id: str) -> None:
        super().__init__(f"Template '{template_id}' is not active.")
        self.template_id = template_id


class ValidationFailedError(CalcEngineError):
    """
    Parameter validation rejected the request.
    Raised before any side effect, so it is always safe to retry
    after correcting the input.
    """

    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors = dict(errors)
        details = ", ".join(f"{k}: {v}" for k, v in self.errors.items())
        super().__init__(f"Parameter validation failed: {details}")


class ComputationError(CalcEngineError):
    """The formula could not produce a result for otherwise valid inputs."""

    def __init__(self, message: str, parameters: Iterable[str] = ()) -> None:
        self.parameters = tuple(parameters)
        if self.parameters:
            message = f"{message} (parameters: {', '.join(self.parameters)})"
        super().__init__(message)


class RepositoryError(CalcEngineError):
    """Any failure reported by the persistence boundary."""
