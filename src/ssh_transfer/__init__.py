"""Authenticated SFTP/SCP file transfer over SSH."""

from .config import AppConfig, ConnectionConfig, TransferConfig, load_config
from .models import FileMetadata
from .ssh import AuthMode, Credentials, ShortReadPolicy, SftpClient

__version__ = "0.3.1"

__all__ = [
    "AppConfig",
    "ConnectionConfig",
    "TransferConfig",
    "load_config",
    "FileMetadata",
    "AuthMode",
    "Credentials",
    "ShortReadPolicy",
    "SftpClient",
]
