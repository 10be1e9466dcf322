"""Local disk implementation of the FileSystemPort."""

import logging
import os
import tempfile
from pathlib import Path
from typing import BinaryIO, Optional

from table_export.domain.ports import FileSystemPort

logger = logging.getLogger(__name__)


class LocalFileSystem(FileSystemPort):
    """FileSystemPort backed by the real file system.

    Holds no mutable state, so one instance can be shared by all workers.
    """

    def __init__(self, temp_root: Optional[Path] = None):
        """Initialize local file system.

        Parameters:
            temp_root: Directory under which temp dirs are created (default: system temp dir)
        """
        self.temp_root = temp_root

    def create_temp_dir(self) -> Path:
        return Path(tempfile.mkdtemp(prefix="table-export-", dir=self.temp_root))

    def new_file(self, parent: Path, filename: str) -> Path:
        return Path(parent) / filename

    def get_input_stream(self, path: Path) -> BinaryIO:
        return open(path, "rb")

    def get_output_stream(self, path: Path) -> BinaryIO:
        return open(path, "wb")

    def delete_dir(self, path: Path) -> None:
        Path(path).rmdir()

    def delete_file(self, path: Path) -> None:
        Path(path).unlink()

    def exists(self, path: Path) -> bool:
        return Path(path).is_file()

    def move(self, source: Path, destination: Path) -> None:
        # os.replace is atomic when both paths are on the same file system.
        os.replace(source, destination)
        logger.debug(f"Moved {source} to {destination}")
