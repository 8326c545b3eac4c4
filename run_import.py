#!/usr/bin/env python
"""
Entry point for importing a template catalog from JSON/Excel.
Usage: python run_import.py [filepath]
       python run_import.py          # uses default catalog from config
"""

import asyncio
import logging
import sys

from calcengine.config import DEFAULT_CATALOG_FILE, LOG_LEVEL
from calcengine.ingestion import CatalogImporter


def main() -> None:
    logging.basicConfig(level=LOG_LEVEL)
    filepath = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_CATALOG_FILE
    importer = CatalogImporter()

    try:
        result = asyncio.run(importer.import_file(filepath))
    except Exception as e:
        print("\n--- ERROR ---")
        print(e)
        print("-------------")
        sys.exit(1)

    print(
        f"Success! Imported {result.templates_count} templates "
        f"with {result.parameters_count} parameters."
    )


if __name__ == "__main__":
    main()
