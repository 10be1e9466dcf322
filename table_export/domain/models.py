"""Domain Models - Export Requests, Upload Schemas and Remote Responses.

This module defines the immutable value objects that flow through the table
export pipeline: the upload schema describing a table's columns, the task
parameters for one export, the bulk download response returned by the remote
store, and the result handed back to the caller.

Security Impact:
    - Task parameters are validated before any remote call is made
    - The health code is treated as a trusted, pre-validated identifier
    - The export result never exposes intermediate (temporary) files

Architecture:
    - Pure Pydantic models with no infrastructure dependencies
    - Frozen models so one request can be shared safely across threads
"""

from datetime import date
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Field types whose cell values are file handle IDs pointing at attachments.
ATTACHMENT_TYPE_SET: FrozenSet[str] = frozenset({
    "attachment_blob",
    "attachment_csv",
    "attachment_json_blob",
    "attachment_json_table",
    "attachment_v2",
})


class UploadSchemaKey(BaseModel):
    """Identifies one revision of an upload schema within a study.

    The string form (``<studyId>-<schemaId>-v<revision>``) is used to name the
    files produced by an export.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    study_id: str = Field(..., min_length=1, alias="studyId")
    schema_id: str = Field(..., min_length=1, alias="schemaId")
    revision: int = Field(..., ge=1)

    def __str__(self) -> str:
        return f"{self.study_id}-{self.schema_id}-v{self.revision}"


class UploadSchema(BaseModel):
    """Column layout of a health data table.

    Attributes:
        key: Schema key, used for file naming
        field_type_map: Maps field (column) name to its declared field type
        attachment_types: Field types treated as attachment references
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    key: UploadSchemaKey
    field_type_map: Dict[str, str] = Field(default_factory=dict, alias="fieldTypeMap")
    attachment_types: FrozenSet[str] = Field(default=ATTACHMENT_TYPE_SET, alias="attachmentTypes")

    def is_attachment_field(self, field_name: str) -> bool:
        """Check if the named field is declared with an attachment type."""
        field_type = self.field_type_map.get(field_name)
        return field_type is not None and field_type in self.attachment_types


class DownloadFromTableParameters(BaseModel):
    """Parameters for one table export.

    The table ID and health code are substituted verbatim into the table
    query. Callers must only pass identifiers that were validated upstream.

    Attributes:
        synapse_table_id: Remote table to query
        health_code: Subject whose rows are exported
        start_date: First upload date to include (inclusive)
        end_date: Last upload date to include (inclusive)
        upload_schema: Upload schema of the table
        temp_dir: Working directory for downloaded and intermediate files
    """

    model_config = ConfigDict(frozen=True)

    synapse_table_id: str = Field(..., min_length=1)
    health_code: str = Field(..., min_length=1)
    start_date: date
    end_date: date
    upload_schema: UploadSchema
    temp_dir: Path

    @field_validator("synapse_table_id", "health_code")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject whitespace-only identifiers."""
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @model_validator(mode="after")
    def validate_date_range(self) -> "DownloadFromTableParameters":
        """Ensure the date range is not inverted."""
        if self.start_date > self.end_date:
            raise ValueError(
                f"start_date {self.start_date} is after end_date {self.end_date}"
            )
        return self


class FileDownloadSummary(BaseModel):
    """Per-file outcome of a bulk download job."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    file_handle_id: Optional[str] = Field(None, alias="fileHandleId")
    zip_entry_name: Optional[str] = Field(None, alias="zipEntryName")
    status: Optional[str] = None
    failure_message: Optional[str] = Field(None, alias="failureMessage")


class BulkFileDownloadResponse(BaseModel):
    """Result of a bulk download job: the zip file handle plus a summary per requested file."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    result_zip_file_handle_id: Optional[str] = Field(None, alias="resultZipFileHandleId")
    file_summary: List[FileDownloadSummary] = Field(default_factory=list, alias="fileSummary")


class ExportResult(BaseModel):
    """Files produced by one export.

    ``csv_file`` is None only for the "no data" outcome. ``bulk_download_file``
    is None whenever no attachments were referenced.
    """

    model_config = ConfigDict(frozen=True)

    csv_file: Optional[Path] = None
    bulk_download_file: Optional[Path] = None

    @classmethod
    def empty(cls) -> "ExportResult":
        """Result for an export that found no data."""
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.csv_file is None

    @property
    def files(self) -> List[Path]:
        """Produced files, CSV first. Empty when there was no data."""
        return [f for f in (self.csv_file, self.bulk_download_file) if f is not None]
