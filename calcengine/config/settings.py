"""
Application settings loaded from config.json.
"""

import json
from pathlib import Path

_CONFIG_PATH = Path(__file__).parent / "config.json"


def _load_config() -> dict:
    with open(_CONFIG_PATH, encoding="utf-8") as f:
        return json.load(f)


_config = _load_config()

# Expose as module-level constants (snake_case in JSON → UPPER for Python)
DB_URL = _config["db_url"]
# null in JSON falls back to the catalog shipped with the package
DEFAULT_CATALOG_FILE = _config["default_catalog_file"] or str(
    Path(__file__).parent.parent / "ingestion" / "default_catalog.json"
)
DEFAULT_PAGE_LIMIT = _config["default_page_limit"]
STATS_TEMPLATE_CAP = _config["stats_template_cap"]
RECOMMENDATION_LIMIT = _config["recommendation_limit"]
SIMILAR_LIMIT = _config["similar_limit"]
HISTORY_LIMIT = _config["history_limit"]
TRENDING_LIMIT = _config["trending_limit"]
MAX_COMPARISON_SIZE = _config["max_comparison_size"]
MIN_COMPARISON_SIZE = _config["min_comparison_size"]
LOG_LEVEL = _config["log_level"]
