"""Run context for one table export.

Holds the intermediate artifacts a single pipeline execution produces. A
context is created per execution and is never shared between executions.
"""

import csv
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, List, Optional, Set

from table_export.domain.models import FileDownloadSummary


@dataclass(frozen=True)
class TableColumnInfo:
    """Column roles derived from a CSV header row.

    Attributes:
        health_code_column_index: Index of the ``healthCode`` column, if present
        file_handle_column_index_set: Indices of columns declared with an attachment type
    """

    health_code_column_index: Optional[int] = None
    file_handle_column_index_set: FrozenSet[int] = frozenset()


@dataclass
class DownloadFromTableContext:
    """Mutable state threaded through the export stages.

    Each field stays None (or empty) until the stage producing it has run.
    """

    csv_file: Optional[Path] = None
    bulk_download_file: Optional[Path] = None
    edited_csv_file: Optional[Path] = None
    column_info: Optional[TableColumnInfo] = None
    file_handle_id_set: Set[str] = field(default_factory=set)
    file_summary_list: List[FileDownloadSummary] = field(default_factory=list)
    # Quoting style of the downloaded CSV, reused when rewriting it.
    csv_quoting: int = csv.QUOTE_MINIMAL

    def add_file_handle_ids(self, *file_handle_ids: str) -> None:
        self.file_handle_id_set.update(file_handle_ids)

    def registered_files(self) -> List[Path]:
        """Files this context currently points at: CSV, zip, edited CSV."""
        return [
            f for f in (self.csv_file, self.bulk_download_file, self.edited_csv_file)
            if f is not None
        ]
