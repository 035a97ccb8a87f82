"""Export and import of the complete data set."""

from piggybank.transfer.exporter import ExportAssembler, default_export_filename
from piggybank.transfer.importer import ImportOrchestrator

__all__ = [
    "ExportAssembler",
    "ImportOrchestrator",
    "default_export_filename",
]
