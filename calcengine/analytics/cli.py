"""
Interactive CLI for executing calculation templates and comparing results.
"""

import asyncio
from typing import Optional

from calcengine.analytics.comparison import ComparisonEngine, export_to_excel, to_frame
from calcengine.application import TemplateService, create_template_service
from calcengine.config import DB_URL, MAX_COMPARISON_SIZE
from calcengine.db import CalculationDatabase
from calcengine.models import (
    CalculationResult,
    CalculationTemplate,
    ComputationError,
    ValidationFailedError,
)


def _prompt_non_empty(prompt: str) -> str:
    value = input(prompt).strip()
    while not value:
        value = input("Required. Try again: ").strip()
    return value


def _prompt_parameters(template: CalculationTemplate) -> dict:
    print("\nEnter parameters (ENTER = default / skip optional):")
    values = {}
    for param in template.parameters:
        hints = []
        if param.unit:
            hints.append(param.unit)
        if param.allowed_values:
            hints.append("/".join(param.allowed_values))
        if param.default is not None:
            hints.append(f"default {param.default}")
        suffix = f" [{', '.join(hints)}]" if hints else ""
        marker = "*" if param.required else ""
        raw = input(f"  {param.label}{marker}{suffix}: ").strip()
        if raw:
            values[param.name] = raw
    return values


def _comparison_candidates(
    history: list[CalculationResult],
    template_id: str,
    superseded_id: Optional[str] = None,
) -> list[CalculationResult]:
    """
    Recent results of one template, newest first, capped at MAX_COMPARISON_SIZE.
    A named save stores a second row for the same run; `superseded_id` is the
    unnamed row it replaces.
    """
    candidates = [
        r
        for r in history
        if r.template_id == template_id and r.execution_id != superseded_id
    ]
    return candidates[:MAX_COMPARISON_SIZE]


def _print_result(result: CalculationResult) -> None:
    print(f"\n{result.primary.label}: {result.primary.value} {result.primary.unit}")
    for metric in result.secondary:
        print(f"  - {metric.label}: {metric.value} {metric.unit or ''}".rstrip())
    print(f"Compliance: {result.compliance.status}")
    for note in result.compliance.notes:
        print(f"  * {note}")


async def _run(service: TemplateService, user_id: Optional[str]) -> None:
    page = await service.get_templates()
    if not page.data:
        print("No templates available. Import a catalog first (run_import.py).")
        return

    print("Available templates:")
    for i, template in enumerate(page.data, start=1):
        print(f"  {i}) {template.name} ({template.nec_reference})")

    choice = _prompt_non_empty("Select a template number: ")
    try:
        template = page.data[int(choice) - 1]
    except (ValueError, IndexError):
        print(f"Error: invalid selection '{choice}'.")
        return

    values = _prompt_parameters(template)
    try:
        result = await service.execute_calculation(template.id, values, user_id=user_id)
    except ValidationFailedError as e:
        print("\nInvalid parameters:")
        for label, message in e.errors.items():
            print(f"  - {label}: {message}")
        return
    except ComputationError as e:
        print(f"\nError computing result: {e}")
        return

    _print_result(result)

    superseded_id = None
    name = input("\nSave as (ENTER = skip): ").strip()
    if name:
        notes = input("Notes: ").strip() or None
        execution_id = await service.save_calculation_result(result, name, notes)
        print(f"Saved as execution {execution_id}")
        superseded_id = result.execution_id

    if not user_id:
        return
    history = await service.get_user_calculation_history(
        user_id, MAX_COMPARISON_SIZE + 1
    )
    same_template = _comparison_candidates(history, template.id, superseded_id)
    if len(same_template) < 2:
        return
    if input("\nExport comparison with recent results? (y/N): ").strip().lower() != "y":
        return
    engine = ComparisonEngine()
    report = engine.compare(same_template)
    if not report.primary.compatible:
        print("Primary units differ; headline values are not ranked.")
    df = to_frame(report.secondary)
    filename = f"Comparison_{template.id}.xlsx"
    export_to_excel(df, filename, index=True)
    print(f"\nComparison saved to: {filename}")
    print(df.head())


def main(
    db_url: Optional[str] = None,
) -> None:
    """Run interactive calculation CLI."""
    database = CalculationDatabase(db_url or DB_URL)
    service = create_template_service(database)

    print("=== Construction Calculations (CLI) ===")
    user_id = input("User id (empty = anonymous): ").strip() or None
    asyncio.run(_run(service, user_id))


if __name__ == "__main__":
    main()
