"""Download From Table Task - One-Shot Table Export Pipeline.

This module queries a remote health data table for one subject and date range,
downloads the result CSV, bulk downloads the attachments the CSV references,
and rewrites the CSV so it is safe to hand to the subject.

Security Impact:
    - Health codes are cleared from every data row of the exported CSV
    - File handle IDs are replaced with archive entry names
    - Health codes are never written to the logs
    - On failure no intermediate file is left behind

Architecture:
    - Depends only on ports (FileSystemPort, RemoteTablePort), never on adapters
    - Stages run strictly in sequence; each one takes the run context explicitly
    - One task instance per export; helpers may be shared across worker threads

Pipeline:
    1. download_csv: run the table query and download the result CSV
    2. filter_no_data_csv: stop early if the CSV has no data rows
    3. get_column_info_from_csv: classify header columns
    4. extract_file_handle_ids_from_csv: collect referenced attachments
    5. bulk_download_file_handles: download all attachments as one zip
    6. edit_csv: clear health codes, replace file handle IDs, swap the file in
"""

import csv
import logging
import time
from contextlib import contextmanager
from typing import Iterator

from table_export.domain.context import DownloadFromTableContext
from table_export.domain.csv_editing import (
    build_zip_entry_map,
    classify_columns,
    detect_quoting,
    edit_row,
    extract_file_handle_ids,
    new_csv_writer,
)
from table_export.domain.models import DownloadFromTableParameters, ExportResult
from table_export.domain.ports import (
    AsyncTaskExecutionError,
    AsyncTimeoutError,
    FileSystemPort,
    RemoteServiceError,
    RemoteTablePort,
)

logger = logging.getLogger(__name__)

QUERY_TEMPLATE = "SELECT * FROM %s WHERE healthCode = '%s' AND uploadDate >= '%s' AND uploadDate <= '%s'"


@contextmanager
def _timed(description: str) -> Iterator[None]:
    """Log how long the wrapped block took, whether or not it raised."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"{description} took {elapsed_ms:.0f} ms")


class DownloadFromTableTask:
    """One-shot export of a subject's rows from a remote table.

    Calling the task runs the whole pipeline and returns an ``ExportResult``:
    empty when the query matched no rows, otherwise the edited CSV and, if any
    attachments were referenced, the zip of attachments.

    Any failure deletes every file the run created and is raised as
    ``AsyncTaskExecutionError``.

    Example Usage:
        ```python
        task = DownloadFromTableTask(params, file_system=LocalFileSystem(), remote=client)
        result = task()
        for path in result.files:
            upload(path)
        ```
    """

    def __init__(
        self,
        params: DownloadFromTableParameters,
        file_system: FileSystemPort,
        remote: RemoteTablePort
    ):
        """Initialize the task.

        Parameters:
            params: Export parameters
            file_system: File system helper
            remote: Remote table and file store client
        """
        self.params = params
        self.file_system = file_system
        self.remote = remote

    def __call__(self) -> ExportResult:
        return self.run()

    def run(self) -> ExportResult:
        """Run the export pipeline.

        Returns:
            ExportResult: Produced files, or an empty result if there was no data

        Raises:
            AsyncTaskExecutionError: If any stage fails
        """
        ctx = DownloadFromTableContext()
        try:
            self.download_csv(ctx)
            if self.filter_no_data_csv(ctx):
                return ExportResult.empty()
            self.get_column_info_from_csv(ctx)

            if not ctx.column_info.file_handle_column_index_set:
                logger.info(
                    f"No file handle columns in file {ctx.csv_file}. "
                    "Skipping extracting and downloading file handles."
                )
            else:
                self.extract_file_handle_ids_from_csv(ctx)

                if not ctx.file_handle_id_set:
                    # Rare, but attachment columns can be blank in every row.
                    logger.info(
                        f"No file handles to download for file {ctx.csv_file}. "
                        "Skipping downloading file handles."
                    )
                else:
                    self.bulk_download_file_handles(ctx)

            self.edit_csv(ctx)

            return ExportResult(csv_file=ctx.csv_file, bulk_download_file=ctx.bulk_download_file)
        except AsyncTaskExecutionError:
            self.cleanup_files(ctx)
            raise
        except Exception as e:
            self.cleanup_files(ctx)
            raise AsyncTaskExecutionError(
                f"Error exporting synapse table {self.params.synapse_table_id}: {e}"
            ) from e

    def _file_name(self, suffix: str) -> str:
        return f"{self.params.upload_schema.key}{suffix}"

    def download_csv(self, ctx: DownloadFromTableContext) -> None:
        """Query the table for this subject and date range, and download the CSV."""
        table_id = self.params.synapse_table_id
        csv_file = self.file_system.new_file(self.params.temp_dir, self._file_name(".csv"))

        with _timed(f"Downloading from synapse table {table_id} to file {csv_file}"):
            try:
                query = QUERY_TEMPLATE % (
                    table_id,
                    self.params.health_code,
                    self.params.start_date.isoformat(),
                    self.params.end_date.isoformat(),
                )
                csv_file_handle_id = self.remote.generate_file_handle_from_table_query(query, table_id)

                # Register before downloading, so a partial download is cleaned up on failure.
                ctx.csv_file = csv_file
                self.remote.download_file_handle(csv_file_handle_id, csv_file)
            except (AsyncTimeoutError, RemoteServiceError) as e:
                raise AsyncTaskExecutionError(
                    f"Error downloading synapse table {table_id} to file {csv_file}: {e}"
                ) from e

    def filter_no_data_csv(self, ctx: DownloadFromTableContext) -> bool:
        """Return True, after cleaning up, if the CSV has no data rows.

        An empty CSV is a normal outcome, not an error.
        """
        try:
            line_list = self.file_system.read_lines(ctx.csv_file)
        except OSError as e:
            raise AsyncTaskExecutionError(
                f"Error counting lines for file {ctx.csv_file}: {e}"
            ) from e

        # Need 1 header line and at least 1 data line.
        if len(line_list) < 2:
            logger.info(f"No user data found for file {ctx.csv_file}. Short-circuiting.")
            self.cleanup_files(ctx)
            return True
        return False

    def get_column_info_from_csv(self, ctx: DownloadFromTableContext) -> None:
        """Classify the header columns: health code column and attachment columns."""
        try:
            with self.file_system.get_reader(ctx.csv_file) as reader:
                # The no-data filter guarantees a header row.
                header_line = reader.readline()
            header_row = next(csv.reader([header_line]))
        except (OSError, csv.Error) as e:
            raise AsyncTaskExecutionError(
                f"Error getting column indices from headers from file {ctx.csv_file}: {e}"
            ) from e

        ctx.column_info = classify_columns(header_row, self.params.upload_schema)
        ctx.csv_quoting = detect_quoting(header_line)

    def extract_file_handle_ids_from_csv(self, ctx: DownloadFromTableContext) -> None:
        """Collect the distinct file handle IDs referenced by the data rows."""
        with _timed(f"Extracting file handle IDs from file {ctx.csv_file}"):
            try:
                with self.file_system.get_reader(ctx.csv_file) as reader:
                    csv_reader = csv.reader(reader)
                    next(csv_reader, None)
                    ctx.add_file_handle_ids(*extract_file_handle_ids(csv_reader, ctx.column_info))
            except (OSError, csv.Error) as e:
                raise AsyncTaskExecutionError(
                    f"Error extracting file handle IDs from file {ctx.csv_file}: {e}"
                ) from e

    def bulk_download_file_handles(self, ctx: DownloadFromTableContext) -> None:
        """Package the referenced attachments remotely and download the zip."""
        bulk_download_file = self.file_system.new_file(self.params.temp_dir, self._file_name(".zip"))

        with _timed(f"Bulk downloading file handles to file {bulk_download_file}"):
            try:
                response = self.remote.generate_bulk_download_file_handle(
                    self.params.synapse_table_id,
                    sorted(ctx.file_handle_id_set),
                )
                ctx.file_summary_list = list(response.file_summary)

                ctx.bulk_download_file = bulk_download_file
                self.remote.download_file_handle(response.result_zip_file_handle_id, bulk_download_file)
            except (AsyncTimeoutError, RemoteServiceError) as e:
                raise AsyncTaskExecutionError(
                    f"Error bulk downloading file handles to file {bulk_download_file}: {e}"
                ) from e

    def edit_csv(self, ctx: DownloadFromTableContext) -> None:
        """Clear health codes and replace file handle IDs with zip entry names.

        The edited CSV is written to a temporary file, which then replaces the
        original CSV.
        """
        zip_entry_map = build_zip_entry_map(ctx.file_summary_list)
        edited_csv_file = self.file_system.new_file(self.params.temp_dir, self._file_name("-edited.csv"))
        ctx.edited_csv_file = edited_csv_file

        with _timed(f"Updating attachment file paths in file {edited_csv_file}"):
            try:
                with self.file_system.get_reader(ctx.csv_file) as reader, \
                        self.file_system.get_writer(edited_csv_file) as writer:
                    csv_reader = csv.reader(reader)
                    csv_writer = new_csv_writer(writer, quoting=ctx.csv_quoting)

                    # Copy headers.
                    csv_writer.writerow(next(csv_reader))
                    for row in csv_reader:
                        csv_writer.writerow(edit_row(row, ctx.column_info, zip_entry_map))
            except (OSError, csv.Error) as e:
                raise AsyncTaskExecutionError(
                    f"Error updating attachment file paths in file {edited_csv_file}: {e}"
                ) from e

        try:
            self.file_system.move(edited_csv_file, ctx.csv_file)
        except OSError as e:
            raise AsyncTaskExecutionError(
                f"Error moving (replacing) file from {edited_csv_file} to {ctx.csv_file}: {e}"
            ) from e
        ctx.edited_csv_file = None

    def cleanup_files(self, ctx: DownloadFromTableContext) -> None:
        """Delete every file the run context points at. Never raises."""
        for path in ctx.registered_files():
            try:
                if self.file_system.exists(path):
                    self.file_system.delete_file(path)
            except OSError as e:
                logger.warning(f"Error cleaning up file {path}: {e}", exc_info=True)
