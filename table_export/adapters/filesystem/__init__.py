"""File system adapters for Table-Export.

This module contains adapters that implement the FileSystemPort interface.
"""

from table_export.adapters.filesystem.in_memory import InMemoryFileSystem
from table_export.adapters.filesystem.local import LocalFileSystem

__all__ = ["InMemoryFileSystem", "LocalFileSystem"]
