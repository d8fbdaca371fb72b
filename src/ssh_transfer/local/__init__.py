"""Local filesystem access for the transfer engine."""

from .filesystem import LocalFilesystem

__all__ = ["LocalFilesystem"]
