"""I/O utilities for CSV import/export."""

from .import_csv import import_program_types_csv, import_staff_csv
from .export_csv import export_assignments_csv, export_fairness_csv

__all__ = [
    "import_staff_csv",
    "import_program_types_csv",
    "export_assignments_csv",
    "export_fairness_csv",
]
