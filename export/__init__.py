"""
EXPORT - Tabular exports of aligned agent series
"""

from export.csv_export import (
    export_csv,
    write_csv,
    DEFAULT_EXPORT_NAME,
)


__all__ = [
    'export_csv',
    'write_csv',
    'DEFAULT_EXPORT_NAME',
]
