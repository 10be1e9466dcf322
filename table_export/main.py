"""Main entry points for the Table-Export pipeline.

This module wires the export task to its adapters and runs independent export
requests on a bounded worker pool.

Security Impact:
    - Each export has its own run context; only the helpers are shared
    - A failed export never leaves intermediate files behind

Architecture:
    - Follows Hexagonal Architecture principles
    - The remote client is configured via configuration manager
    - File system and remote client are thread-safe and shared by all workers
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from table_export.adapters.filesystem import LocalFileSystem
from table_export.adapters.remote import SynapseRestClient
from table_export.domain.models import DownloadFromTableParameters, ExportResult
from table_export.domain.ports import FileSystemPort, RemoteTablePort, Result
from table_export.domain.services import DownloadFromTableTask
from table_export.infrastructure.config_manager import RemoteClientConfig
from table_export.infrastructure.settings import settings

logger = logging.getLogger(__name__)


def create_remote_client(
    file_system: FileSystemPort,
    config: Optional[RemoteClientConfig] = None
) -> RemoteTablePort:
    """Create the remote table client from configuration.

    Parameters:
        file_system: File system the client writes downloads to
        config: Remote configuration (default: loaded from environment)
    """
    config = config or settings.remote_config
    logger.info(f"Initializing Synapse client with endpoint: {config.endpoint}")
    return SynapseRestClient(config, file_system=file_system)


def process_export(
    params: DownloadFromTableParameters,
    file_system: FileSystemPort,
    remote: RemoteTablePort
) -> ExportResult:
    """Run one export.

    Returns:
        ExportResult: Produced files, empty if the table had no matching rows

    Raises:
        AsyncTaskExecutionError: If the export fails
    """
    logger.info(
        f"Exporting table {params.synapse_table_id} for schema {params.upload_schema.key} "
        f"from {params.start_date} to {params.end_date}"
    )
    result = DownloadFromTableTask(params, file_system=file_system, remote=remote).run()
    if result.is_empty:
        logger.info(f"No data in table {params.synapse_table_id} for this request")
    else:
        logger.info(f"Exported table {params.synapse_table_id} to {len(result.files)} file(s)")
    return result


def run_exports(
    params_list: Sequence[DownloadFromTableParameters],
    file_system: Optional[FileSystemPort] = None,
    remote: Optional[RemoteTablePort] = None,
    max_workers: Optional[int] = None
) -> List[Result[ExportResult]]:
    """Run independent exports concurrently on a bounded pool.

    Parameters:
        params_list: Export requests
        file_system: File system helper (default: LocalFileSystem)
        remote: Remote client (default: created from configuration)
        max_workers: Pool size (default: settings.worker_pool_size)

    Returns:
        List[Result[ExportResult]]: One result per request, in request order.
            A failed export becomes a failure result.
    """
    file_system = file_system or LocalFileSystem()
    remote = remote or create_remote_client(file_system)
    max_workers = max_workers or settings.worker_pool_size

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="table-export") as executor:
        futures = [
            executor.submit(process_export, params, file_system, remote)
            for params in params_list
        ]

        results: List[Result[ExportResult]] = []
        for index, (params, future) in enumerate(zip(params_list, futures)):
            try:
                results.append(Result.success_result(future.result()))
            except Exception as e:
                logger.error(f"Export {index} of table {params.synapse_table_id} failed: {e}", exc_info=True)
                results.append(Result.failure_result(
                    e,
                    error_details={
                        "request_index": index,
                        "synapse_table_id": params.synapse_table_id,
                        "schema_key": str(params.upload_schema.key),
                    },
                ))

    succeeded = sum(1 for r in results if r.is_success())
    logger.info(f"Completed {len(results)} export(s): {succeeded} succeeded, {len(results) - succeeded} failed")
    return results
