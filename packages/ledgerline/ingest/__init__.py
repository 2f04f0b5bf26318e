"""File decoding for bank exports (bytes on disk → row matrix)."""

from __future__ import annotations

from .rows import UnsupportedFileError, read_file_to_rows

__all__ = ["UnsupportedFileError", "read_file_to_rows"]
