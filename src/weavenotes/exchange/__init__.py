"""Export documents and the import merge."""

from .exporter import ExpositionExporter, NoContentFound, build_export_document
from .importer import InvalidFormat, MergeReport, SuggestionImporter, load_export_document, parse_export_document

__all__ = [
    "ExpositionExporter",
    "InvalidFormat",
    "MergeReport",
    "NoContentFound",
    "SuggestionImporter",
    "build_export_document",
    "load_export_document",
    "parse_export_document",
]
