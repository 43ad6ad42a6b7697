"""Built-in generators shipped with genbridge."""

from .files import (
    MAX_FILE_SIZE,
    DeleteFileGenerator,
    ListDirectoryGenerator,
    ReadFileGenerator,
    RollbackGenerator,
    WriteFileGenerator,
    file_generators,
    resolve_project_path,
)

__all__ = [
    "ReadFileGenerator", "WriteFileGenerator", "DeleteFileGenerator", "ListDirectoryGenerator",
    "RollbackGenerator", "file_generators", "resolve_project_path", "MAX_FILE_SIZE",
]
