"""In-memory implementation of the FileSystemPort.

Tracks files and directories in dictionaries so tests can assert exactly which
files a pipeline created, replaced and deleted, without touching the disk.
"""

import io
import threading
from pathlib import Path
from typing import BinaryIO, Dict, List, Set

from table_export.domain.ports import FileSystemPort


class _CommittingBytesIO(io.BytesIO):
    """BytesIO that stores its contents in the owning file system when closed."""

    def __init__(self, fs: "InMemoryFileSystem", path: Path):
        super().__init__()
        self._fs = fs
        self._path = path

    def close(self) -> None:
        if not self.closed:
            self._fs._commit(self._path, self.getvalue())
        super().close()


class InMemoryFileSystem(FileSystemPort):
    """FileSystemPort that keeps file contents in memory.

    Attributes:
        deleted_files: Every path passed to ``delete_file``, in call order,
                       including calls that failed
    """

    def __init__(self):
        self._files: Dict[Path, bytes] = {}
        self._dirs: Set[Path] = set()
        self._fail_on_delete: Set[Path] = set()
        self._temp_dir_count = 0
        self._lock = threading.Lock()
        self.deleted_files: List[Path] = []

    # Test helpers

    def write_text(self, path: Path, text: str) -> None:
        self._commit(Path(path), text.encode("utf-8"))

    def read_text(self, path: Path) -> str:
        return self._files[Path(path)].decode("utf-8")

    def read_bytes(self, path: Path) -> bytes:
        return self._files[Path(path)]

    def file_paths(self) -> List[Path]:
        return sorted(self._files)

    def dir_paths(self) -> List[Path]:
        return sorted(self._dirs)

    def fail_on_delete(self, path: Path) -> None:
        """Make ``delete_file`` raise OSError for ``path``."""
        self._fail_on_delete.add(Path(path))

    def _commit(self, path: Path, data: bytes) -> None:
        with self._lock:
            self._files[path] = data

    # FileSystemPort

    def create_temp_dir(self) -> Path:
        with self._lock:
            self._temp_dir_count += 1
            temp_dir = Path(f"/in-memory/tmp{self._temp_dir_count}")
            self._dirs.add(temp_dir)
        return temp_dir

    def new_file(self, parent: Path, filename: str) -> Path:
        return Path(parent) / filename

    def get_input_stream(self, path: Path) -> BinaryIO:
        path = Path(path)
        with self._lock:
            if path not in self._files:
                raise FileNotFoundError(f"No such file: {path}")
            return io.BytesIO(self._files[path])

    def get_output_stream(self, path: Path) -> BinaryIO:
        return _CommittingBytesIO(self, Path(path))

    def delete_dir(self, path: Path) -> None:
        path = Path(path)
        with self._lock:
            if path not in self._dirs:
                raise FileNotFoundError(f"No such directory: {path}")
            if any(f.parent == path for f in self._files):
                raise OSError(f"Directory not empty: {path}")
            self._dirs.remove(path)

    def delete_file(self, path: Path) -> None:
        path = Path(path)
        with self._lock:
            self.deleted_files.append(path)
            if path in self._fail_on_delete:
                raise OSError(f"Simulated failure deleting {path}")
            if path not in self._files:
                raise FileNotFoundError(f"No such file: {path}")
            del self._files[path]

    def exists(self, path: Path) -> bool:
        return Path(path) in self._files

    def move(self, source: Path, destination: Path) -> None:
        source, destination = Path(source), Path(destination)
        with self._lock:
            if source not in self._files:
                raise FileNotFoundError(f"No such file: {source}")
            self._files[destination] = self._files.pop(source)
