"""
Reader for template catalog files (JSON or Excel).
"""

import json
import os

import numpy as np
import pandas as pd

REQUIRED_TEMPLATE_COLUMNS = ["id", "name", "formula"]
REQUIRED_PARAMETER_COLUMNS = ["template_id", "name", "label", "type"]


def _clean(value):
    """NaN cells from Excel become None."""
    if isinstance(value, float) and pd.isna(value):
        return None
    if isinstance(value, np.generic):
        return value.item()
    return value


def _split_list(value) -> list[str]:
    value = _clean(value)
    if value is None:
        return []
    return [v.strip() for v in str(value).split(",") if v.strip()]


class CatalogReader:
    """
    Reads template definitions as plain dicts.

    JSON files hold a list of template objects (or {"templates": [...]}).
    Excel workbooks hold a `templates` sheet and a `parameters` sheet whose
    rows reference their template through `template_id`; list-valued cells
    (tags, allowed_values) are comma separated.
    """

    def __init__(
        self, templates_sheet: str = "templates", parameters_sheet: str = "parameters"
    ) -> None:
        self.templates_sheet = templates_sheet
        self.parameters_sheet = parameters_sheet

    def read(self, filepath: str) -> list[dict]:
        ext = os.path.splitext(filepath)[1].lower()
        if ext == ".json":
            return self._read_json(filepath)
        if ext in (".xlsx", ".xls"):
            return self._read_excel(filepath)
        raise ValueError(f"Unsupported catalog format: {ext or filepath}")

    def _read_json(self, filepath: str) -> list[dict]:
        with open(filepath, encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data.get("templates")
        if not isinstance(data, list):
            raise ValueError("Catalog JSON must be a list of templates.")
        return data

    def _read_excel(self, filepath: str) -> list[dict]:
        try:
            sheets = pd.read_excel(
                filepath, sheet_name=[self.templates_sheet, self.parameters_sheet]
            )
        except ValueError as e:
            raise ValueError(
                f"Catalog workbook needs '{self.templates_sheet}' and "
                f"'{self.parameters_sheet}' sheets: {e}"
            ) from e
        df_templates = sheets[self.templates_sheet]
        df_params = sheets[self.parameters_sheet]
        self._validate_columns(df_templates, REQUIRED_TEMPLATE_COLUMNS, self.templates_sheet)
        self._validate_columns(df_params, REQUIRED_PARAMETER_COLUMNS, self.parameters_sheet)

        params_by_template: dict[str, list[dict]] = {}
        for _, row in df_params.iterrows():
            param = {k: _clean(v) for k, v in row.items() if k != "template_id"}
            if "allowed_values" in param:
                param["allowed_values"] = _split_list(param["allowed_values"]) or None
            if "required" in param and param["required"] is not None:
                param["required"] = bool(param["required"])
            params_by_template.setdefault(str(row["template_id"]), []).append(
                {k: v for k, v in param.items() if v is not None}
            )

        templates = []
        for _, row in df_templates.iterrows():
            data = {k: _clean(v) for k, v in row.items()}
            data["id"] = str(data["id"])
            data["tags"] = _split_list(data.get("tags"))
            data["parameters"] = params_by_template.get(data["id"], [])
            templates.append({k: v for k, v in data.items() if v is not None})
        return templates

    def _validate_columns(self, df: pd.DataFrame, required: list[str], sheet: str) -> None:
        missing = [c for c in required if c not in df.columns]
        if missing:
            raise ValueError(
                f"Missing required columns in '{sheet}': {missing}. "
                f"Found: {list(df.columns)}"
            )
