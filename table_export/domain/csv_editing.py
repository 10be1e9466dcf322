"""CSV introspection and editing for table exports.

These functions work on rows as produced by ``csv.reader`` and know nothing
about files or remote calls, so the export stages stay thin.

Security Impact:
    - ``edit_row`` clears the health code column before a CSV leaves the pipeline
    - Attachment references are replaced with archive entry names, never left as
      raw file handle IDs

Note:
    Rows shorter than a classified column index raise ``IndexError``. Such rows
    mean the remote CSV is corrupt, and the pipeline does not try to repair it.
"""

import csv
import io
from typing import Dict, Iterable, List, Optional, Sequence, Set, TextIO

from table_export.domain.context import TableColumnInfo
from table_export.domain.models import FileDownloadSummary, UploadSchema

HEALTH_CODE_COLUMN_NAME = "healthCode"
ERROR_DOWNLOADING_ATTACHMENT = "Error downloading attachment"

# Text cells can be far larger than the csv module default of 128 KiB.
# The limit is a C long, which is 32 bits on some platforms.
csv.field_size_limit(2**31 - 1)


def new_csv_writer(writer: TextIO, quoting: int = csv.QUOTE_MINIMAL):
    """CSV writer with the given quoting style and ``\\n`` line endings."""
    return csv.writer(writer, quoting=quoting, lineterminator="\n")


def detect_quoting(header_line: str) -> int:
    """Return ``csv.QUOTE_ALL`` if every field of the header line is quoted.

    Otherwise ``csv.QUOTE_MINIMAL``. Rewriting with the detected style keeps
    an unedited CSV byte-identical apart from line endings.
    """
    line = header_line.rstrip("\r\n")
    fields = next(csv.reader([line]), [])
    if fields:
        buffer = io.StringIO()
        csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="").writerow(fields)
        if buffer.getvalue() == line:
            return csv.QUOTE_ALL
    return csv.QUOTE_MINIMAL


def classify_columns(header_row: Sequence[str], schema: UploadSchema) -> TableColumnInfo:
    """Find the health code column and the attachment columns of a header row.

    Parameters:
        header_row: Field names, in column order
        schema: Upload schema holding the field type map and attachment types

    Returns:
        TableColumnInfo: Column roles for the rest of the export
    """
    health_code_idx: Optional[int] = None
    file_handle_col_idx_set: Set[int] = set()

    for idx, field_name in enumerate(header_row):
        if field_name == HEALTH_CODE_COLUMN_NAME:
            # Health code is never a file handle column, whatever its declared type.
            health_code_idx = idx
        elif schema.is_attachment_field(field_name):
            file_handle_col_idx_set.add(idx)

    return TableColumnInfo(
        health_code_column_index=health_code_idx,
        file_handle_column_index_set=frozenset(file_handle_col_idx_set),
    )


def extract_file_handle_ids(rows: Iterable[Sequence[str]], column_info: TableColumnInfo) -> Set[str]:
    """Collect the distinct, non-empty file handle IDs in the attachment columns.

    ``rows`` must not include the header row.
    """
    file_handle_ids: Set[str] = set()
    for row in rows:
        for col_idx in column_info.file_handle_column_index_set:
            file_handle_id = row[col_idx]
            if file_handle_id:
                file_handle_ids.add(file_handle_id)
    return file_handle_ids


def build_zip_entry_map(file_summary_list: Optional[Iterable[FileDownloadSummary]]) -> Dict[str, str]:
    """Map file handle ID to zip entry name, skipping summaries missing either."""
    zip_entry_map: Dict[str, str] = {}
    for summary in file_summary_list or ():
        if summary.file_handle_id and summary.zip_entry_name:
            zip_entry_map[summary.file_handle_id] = summary.zip_entry_name
    return zip_entry_map


def edit_row(
    row: Sequence[str],
    column_info: TableColumnInfo,
    zip_entry_map: Dict[str, str]
) -> List[str]:
    """Return a copy of ``row`` with the health code cleared and attachments renamed.

    File handle IDs without a zip entry get ``ERROR_DOWNLOADING_ATTACHMENT``.
    Blank attachment cells stay blank.
    """
    edited = list(row)

    if column_info.health_code_column_index is not None:
        edited[column_info.health_code_column_index] = ""

    for col_idx in column_info.file_handle_column_index_set:
        file_handle_id = edited[col_idx]
        if not file_handle_id:
            continue
        edited[col_idx] = zip_entry_map.get(file_handle_id) or ERROR_DOWNLOADING_ATTACHMENT

    return edited
