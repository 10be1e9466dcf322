"""Domain layer for Table-Export.

This module contains the export pipeline, its models and the ports it depends on.
Domain code has no infrastructure dependencies beyond Pydantic.
"""

from .models import (
    ATTACHMENT_TYPE_SET,
    BulkFileDownloadResponse,
    DownloadFromTableParameters,
    ExportResult,
    FileDownloadSummary,
    UploadSchema,
    UploadSchemaKey,
)

__all__ = [
    "ATTACHMENT_TYPE_SET",
    "BulkFileDownloadResponse",
    "DownloadFromTableParameters",
    "ExportResult",
    "FileDownloadSummary",
    "UploadSchema",
    "UploadSchemaKey",
]
