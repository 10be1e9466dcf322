"""Domain services for Table-Export."""

from table_export.domain.services.download_from_table import DownloadFromTableTask

__all__ = ["DownloadFromTableTask"]
