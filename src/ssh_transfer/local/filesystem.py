"""Local filesystem collaborator."""

from __future__ import annotations

import os
from typing import IO, Optional

from ..models import FileMetadata


class LocalFilesystem:
    """
    Local byte I/O used on the local side of a transfer.

    Mirrors the remote primitives of the transport so the transfer engine can
    treat both sides alike.
    """

    def stat(self, path: str) -> Optional[FileMetadata]:
        """Return metadata for ``path``, or None when missing or not readable."""
        try:
            return FileMetadata.from_stat(os.stat(path))
        except OSError:
            return None

    def open_read(self, path: str) -> IO[bytes]:
        return open(path, "rb")

    def open_write(self, path: str) -> IO[bytes]:
        return open(path, "wb")

    def basename(self, path: str) -> str:
        return os.path.basename(path)
