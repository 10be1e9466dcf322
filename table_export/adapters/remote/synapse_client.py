"""Synapse REST Adapter.

This adapter implements the RemoteTablePort contract against the Synapse REST
API: table queries exported as CSV, bulk zip packaging of file handles, and
file handle downloads.

Security Impact:
    - The bearer token is sent only to the configured API endpoint, never to
      pre-signed download URLs
    - Queries are logged without their text, since they contain health codes

Architecture:
    - Implements RemoteTablePort (Hexagonal Architecture)
    - Async jobs are started, then polled until done or until max_polls is reached
    - Transient HTTP failures are retried by urllib3 Retry on the session
    - One requests.Session per thread, so one client can serve a worker pool
"""

import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from table_export.domain.models import BulkFileDownloadResponse
from table_export.domain.ports import (
    AsyncTimeoutError,
    FileSystemPort,
    RemoteServiceError,
    RemoteTablePort,
)
from table_export.infrastructure.config_manager import RemoteClientConfig

logger = logging.getLogger(__name__)

REPO_PATH = "/repo/v1"
FILE_PATH = "/file/v1"

DOWNLOAD_FROM_TABLE_REQUEST_TYPE = "org.sagebionetworks.repo.model.table.DownloadFromTableRequest"
BULK_FILE_DOWNLOAD_REQUEST_TYPE = "org.sagebionetworks.repo.model.file.BulkFileDownloadRequest"
TABLE_ENTITY_ASSOCIATION = "TableEntity"

# Job still running.
HTTP_ACCEPTED = 202

DOWNLOAD_CHUNK_SIZE = 1024 * 1024


class SynapseRestClient(RemoteTablePort):
    """RemoteTablePort backed by the Synapse REST API.

    Example Usage:
        ```python
        client = SynapseRestClient(config, file_system=LocalFileSystem())
        file_handle_id = client.generate_file_handle_from_table_query(query, "syn123")
        client.download_file_handle(file_handle_id, Path("/tmp/export.csv"))
        ```
    """

    def __init__(
        self,
        config: RemoteClientConfig,
        file_system: FileSystemPort,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize Synapse client.

        Parameters:
            config: Remote client configuration
            file_system: File system used to write downloaded files
            sleep: Function used to wait between job polls (injectable for tests)
        """
        self.config = config
        self.file_system = file_system
        self._sleep = sleep
        self._local = threading.local()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            retry_strategy = Retry(
                total=self.config.max_retries,
                backoff_factor=1.0,
                status_forcelist=[429, 500, 502, 503, 504],
                # Starting an async job is not idempotent, so POST is never retried.
                allowed_methods=["GET"],
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
            self._local.session = session
        return session

    def _auth_headers(self) -> Dict[str, str]:
        if self.config.auth_token is None:
            return {}
        return {"Authorization": f"Bearer {self.config.auth_token.get_secret_value()}"}

    def _api_request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Call the REST API and raise RemoteServiceError on transport or HTTP errors."""
        url = f"{self.config.endpoint}{path}"
        headers = {"Accept": "application/json", **self._auth_headers()}
        try:
            response = self._session().request(
                method,
                url,
                headers=headers,
                timeout=self.config.request_timeout_seconds,
                **kwargs,
            )
        except requests.RequestException as e:
            raise RemoteServiceError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            raise RemoteServiceError(
                f"{method} {path} returned HTTP {response.status_code}: {_error_reason(response)}",
                status_code=response.status_code,
            )
        return response

    def _start_job(self, path: str, body: Dict[str, Any]) -> str:
        response = self._api_request("POST", path, json=body)
        token = response.json().get("token")
        if not token:
            raise RemoteServiceError(f"POST {path} returned no job token")
        return token

    def _wait_for_job(self, path: str, token: str) -> Dict[str, Any]:
        """Poll a job until it completes, or raise AsyncTimeoutError."""
        for _ in range(self.config.max_polls):
            response = self._api_request("GET", path)
            if response.status_code != HTTP_ACCEPTED:
                return response.json()
            self._sleep(self.config.poll_interval_seconds)

        raise AsyncTimeoutError(
            f"Async job {token} did not complete within {self.config.max_wait_seconds:.0f} seconds",
            job_token=token,
        )

    def generate_file_handle_from_table_query(self, query: str, table_id: str) -> str:
        """Run the query as a CSV download job and return the CSV file handle ID."""
        job_path = f"{REPO_PATH}/entity/{table_id}/table/download/csv/async"
        token = self._start_job(f"{job_path}/start", {
            "concreteType": DOWNLOAD_FROM_TABLE_REQUEST_TYPE,
            "entityId": table_id,
            "sql": query,
            "writeHeader": True,
            "includeRowIdAndRowVersion": False,
        })
        logger.debug(f"Started table download job {token} for table {table_id}")

        result = self._wait_for_job(f"{job_path}/get/{token}", token)
        file_handle_id = result.get("resultsFileHandleId")
        if not file_handle_id:
            raise RemoteServiceError(f"Table download job {token} returned no results file handle")
        return str(file_handle_id)

    def generate_bulk_download_file_handle(
        self,
        table_id: str,
        file_handle_ids: Iterable[str]
    ) -> BulkFileDownloadResponse:
        """Package the file handles, as attachments of the table, into one zip."""
        job_path = f"{FILE_PATH}/file/bulk/async"
        requested_files = [
            {
                "fileHandleId": file_handle_id,
                "associateObjectId": table_id,
                "associateObjectType": TABLE_ENTITY_ASSOCIATION,
            }
            for file_handle_id in file_handle_ids
        ]
        token = self._start_job(f"{job_path}/start", {
            "concreteType": BULK_FILE_DOWNLOAD_REQUEST_TYPE,
            "requestedFiles": requested_files,
        })
        logger.debug(f"Started bulk download job {token} for {len(requested_files)} file handles")

        result = self._wait_for_job(f"{job_path}/get/{token}", token)
        response = BulkFileDownloadResponse.model_validate(result)
        if not response.result_zip_file_handle_id:
            raise RemoteServiceError(f"Bulk download job {token} returned no zip file handle")
        return response

    def download_file_handle(self, file_handle_id: str, destination: Path) -> None:
        """Resolve the file handle to a pre-signed URL and stream it to ``destination``."""
        response = self._api_request(
            "GET",
            f"{FILE_PATH}/fileHandle/{file_handle_id}/url",
            params={"redirect": "false"},
        )
        presigned_url = response.text.strip()

        try:
            # No auth header: pre-signed URLs carry their own credentials.
            with self._session().get(
                presigned_url,
                stream=True,
                timeout=self.config.request_timeout_seconds,
            ) as download:
                if download.status_code >= 400:
                    raise RemoteServiceError(
                        f"Download of file handle {file_handle_id} returned HTTP {download.status_code}",
                        status_code=download.status_code,
                    )
                with self.file_system.get_output_stream(destination) as out:
                    for chunk in download.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        out.write(chunk)
        except requests.RequestException as e:
            raise RemoteServiceError(f"Download of file handle {file_handle_id} failed: {e}") from e


def _error_reason(response: requests.Response) -> Optional[str]:
    """Best-effort extraction of the error reason from a Synapse error body."""
    try:
        return response.json().get("reason")
    except ValueError:
        return response.text[:200] or None
