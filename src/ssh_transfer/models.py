"""Value types shared by the local and remote filesystem collaborators."""

from __future__ import annotations

import stat as stat_module
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class FileMetadata:
    """Result of a stat call, local or remote."""

    size: int
    mode: Optional[int] = None
    mtime: Optional[int] = None
    atime: Optional[int] = None
    uid: Optional[int] = None
    gid: Optional[int] = None

    @property
    def is_dir(self) -> bool:
        return self.mode is not None and stat_module.S_ISDIR(self.mode)

    @property
    def is_file(self) -> bool:
        return self.mode is not None and stat_module.S_ISREG(self.mode)

    @classmethod
    def from_stat(cls, result: Any) -> "FileMetadata":
        """Build from an ``os.stat_result`` or ``paramiko.SFTPAttributes``."""
        atime = getattr(result, "st_atime", None)
        mtime = getattr(result, "st_mtime", None)
        return cls(
            size=int(getattr(result, "st_size", None) or 0),
            mode=getattr(result, "st_mode", None),
            mtime=int(mtime) if mtime is not None else None,
            atime=int(atime) if atime is not None else None,
            uid=getattr(result, "st_uid", None),
            gid=getattr(result, "st_gid", None),
        )

    def to_payload(self) -> dict:
        return {
            "size": self.size,
            "mode": self.mode,
            "mtime": self.mtime,
            "atime": self.atime,
            "uid": self.uid,
            "gid": self.gid,
        }
