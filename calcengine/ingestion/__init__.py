"""Template catalog ingestion from JSON/Excel files."""

from calcengine.ingestion.catalog_reader import CatalogReader
from calcengine.ingestion.importer import CatalogImporter, ImportResult

__all__ = ["CatalogReader", "CatalogImporter", "ImportResult"]
