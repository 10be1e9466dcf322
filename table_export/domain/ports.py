"""Domain Ports - Abstract Contracts for Table Export.

This module defines the Port interfaces (abstract contracts) that Adapters must implement.
Following Hexagonal Architecture, the export pipeline defines what it needs from the
file system and the remote table store, not how it's provided.

Security Impact:
    - File access goes through one narrow interface, so every file the pipeline
      creates can be tracked and cleaned up
    - Remote failures surface as typed exceptions, never as partial results

Architecture:
    - Pure abstract interfaces with zero infrastructure dependencies
    - Adapters (local disk, in-memory, Synapse REST, etc.) implement these ports
    - File paths are plain ``Path`` values so the file system can be faked
"""

import io
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Generic, Iterable, List, Optional, TextIO, TypeVar, Union

from table_export.domain.models import BulkFileDownloadResponse

# Type variable for Result generic
T = TypeVar('T')


# ============================================================================
# Result Type for Success/Failure Communication
# ============================================================================

@dataclass(frozen=True)
class Result(Generic[T]):
    """Result type for communicating success or failure without exceptions.

    The batch runner uses this to report one outcome per export request, so a
    single failing export does not abort its siblings.

    Attributes:
        success: True if the operation succeeded, False otherwise
        value: The successful result value (only present if success=True)
        error: Error information (only present if success=False)
        error_type: Type of error (AsyncTaskExecutionError, ValidationError, etc.)
        error_details: Additional error context (table id, request index, etc.)

    Example:
        ```python
        result = Result.success_result(export_result)
        if result.success:
            deliver(result.value.files)

        result = Result.failure_result(
            AsyncTaskExecutionError("Error downloading synapse table"),
            error_details={"synapse_table_id": "syn123", "request_index": 5}
        )
        if not result.success:
            log_error(result.error, result.error_details)
        ```
    """

    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_details: Optional[dict] = None

    @classmethod
    def success_result(cls, value: T) -> 'Result[T]':
        """Create a successful result."""
        return cls(
            success=True,
            value=value,
            error=None,
            error_type=None,
            error_details=None
        )

    @classmethod
    def failure_result(
        cls,
        error: Union[str, Exception],
        error_type: Optional[str] = None,
        error_details: Optional[dict] = None
    ) -> 'Result[T]':
        """Create a failure result.

        Parameters:
            error: Error message or exception
            error_type: Type of error (defaults to the exception class name)
            error_details: Additional context

        Returns:
            Result: Failure result with error information
        """
        error_message = str(error) if isinstance(error, Exception) else error
        error_type_name = error_type or (type(error).__name__ if isinstance(error, Exception) else "UnknownError")

        return cls(
            success=False,
            value=None,
            error=error_message,
            error_type=error_type_name,
            error_details=error_details or {}
        )

    def is_success(self) -> bool:
        """Check if result is successful."""
        return self.success

    def is_failure(self) -> bool:
        """Check if result is a failure."""
        return not self.success


# ============================================================================
# Custom Exception Hierarchy
# ============================================================================

class ExportError(Exception):
    """Base exception for all export-related errors."""
    pass


class AsyncTaskExecutionError(ExportError):
    """Raised when an export task fails.

    Every stage failure is wrapped into this exception before it leaves the
    pipeline. The underlying exception is chained as ``__cause__``.
    """
    pass


class AsyncTimeoutError(ExportError):
    """Raised when a remote asynchronous job does not finish within its allotted wait.

    Attributes:
        job_token: Token of the remote job that timed out
    """

    def __init__(self, message: str, job_token: Optional[str] = None):
        super().__init__(message)
        self.job_token = job_token


class RemoteServiceError(ExportError):
    """Raised when the remote service rejects or fails a request.

    Attributes:
        status_code: HTTP status code, if the failure came from an HTTP response
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


# ============================================================================
# File System Port
# ============================================================================

class FileSystemPort(ABC):
    """Abstract contract for file system access.

    The abstract methods are primitive operations and are what fakes override.
    The concrete helpers at the bottom are built from the primitives and
    should not be overridden.

    Example Usage:
        ```python
        fs = LocalFileSystem()
        csv_file = fs.new_file(temp_dir, "export.csv")
        with fs.get_writer(csv_file) as writer:
            writer.write("a,b\\n")
        lines = fs.read_lines(csv_file)
        ```
    """

    # CREATE

    @abstractmethod
    def create_temp_dir(self) -> Path:
        """Create a new, empty temporary directory and return its path."""
        pass

    @abstractmethod
    def new_file(self, parent: Path, filename: str) -> Path:
        """Construct the path of a file under ``parent``. Does not create the file."""
        pass

    # READ

    @abstractmethod
    def get_input_stream(self, path: Path) -> BinaryIO:
        """Open a binary read stream.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        pass

    # WRITE

    @abstractmethod
    def get_output_stream(self, path: Path) -> BinaryIO:
        """Open a binary write stream, truncating any existing file."""
        pass

    # DELETE

    @abstractmethod
    def delete_dir(self, path: Path) -> None:
        """Delete the specified (empty) directory."""
        pass

    @abstractmethod
    def delete_file(self, path: Path) -> None:
        """Delete the specified file.

        Raises:
            OSError: If the file cannot be deleted
        """
        pass

    # MISC

    @abstractmethod
    def exists(self, path: Path) -> bool:
        """Check if a file exists. Only used for files, not directories."""
        pass

    @abstractmethod
    def move(self, source: Path, destination: Path) -> None:
        """Move ``source`` to ``destination``, atomically replacing the destination."""
        pass

    #
    # Helpers built from the primitives above.
    #

    def get_reader(self, path: Path) -> TextIO:
        """UTF-8 text reader suitable for ``csv.reader``."""
        return io.TextIOWrapper(self.get_input_stream(path), encoding="utf-8", newline="")

    def get_writer(self, path: Path) -> TextIO:
        """UTF-8 text writer suitable for ``csv.writer``."""
        return io.TextIOWrapper(self.get_output_stream(path), encoding="utf-8", newline="")

    def read_lines(self, path: Path) -> List[str]:
        """Read all lines of a text file, without line terminators.

        Only ``\\n``, ``\\r`` and ``\\r\\n`` end a line.
        """
        with self.get_reader(path) as reader:
            text = io.StringIO(reader.read(), newline=None)
        return [line.rstrip("\n") for line in text]


# ============================================================================
# Remote Table Port
# ============================================================================

class RemoteTablePort(ABC):
    """Abstract contract for the remote table and file store.

    Query and bulk download operations are long-running server-side jobs.
    Implementations block until the job completes and raise
    ``AsyncTimeoutError`` once their bounded wait elapses.
    Implementations must be safe to share between worker threads.
    """

    @abstractmethod
    def generate_file_handle_from_table_query(self, query: str, table_id: str) -> str:
        """Run a query against a table and return the file handle ID of the result CSV.

        Raises:
            AsyncTimeoutError: If the query job does not finish in time
            RemoteServiceError: If the remote service rejects the request
        """
        pass

    @abstractmethod
    def download_file_handle(self, file_handle_id: str, destination: Path) -> None:
        """Download the contents of a file handle to ``destination``.

        Raises:
            RemoteServiceError: If the file handle cannot be resolved or downloaded
        """
        pass

    @abstractmethod
    def generate_bulk_download_file_handle(
        self,
        table_id: str,
        file_handle_ids: Iterable[str]
    ) -> BulkFileDownloadResponse:
        """Package the given attachments, associated with a table, into one zip file.

        Raises:
            AsyncTimeoutError: If the bulk download job does not finish in time
            RemoteServiceError: If the remote service rejects the request
        """
        pass
