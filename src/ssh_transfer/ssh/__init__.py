"""SSH authentication, session and transfer components."""

from .auth import AuthMode, TryThenFallback
from .client import SftpClient
from .credentials import Credentials
from .errors import (
    AuthError,
    CapabilityError,
    ConfigError,
    ConnectError,
    IncompleteTransferError,
    InvalidHandleError,
    MkdirError,
    NotConnectedError,
    NotFoundError,
    OpenDirError,
    RemoveError,
    RenameError,
    RmdirError,
    SftpClientError,
    SizeMismatchError,
    StreamOpenError,
    TransferError,
    ValidationError,
    WriteError,
)
from .probe import TransportCapabilities, TransportProbe
from .scp import ScpError
from .session import Connected, Disconnected, Session
from .transfer import ShortReadPolicy, TransferResult, copy_stream
from .transport import TRANSPORT_ERRORS, ParamikoTransport, RemoteDirectory, Transport

__all__ = [
    "AuthMode",
    "TryThenFallback",
    "SftpClient",
    "Credentials",
    "AuthError",
    "CapabilityError",
    "ConfigError",
    "ConnectError",
    "IncompleteTransferError",
    "InvalidHandleError",
    "MkdirError",
    "NotConnectedError",
    "NotFoundError",
    "OpenDirError",
    "RemoveError",
    "RenameError",
    "RmdirError",
    "SftpClientError",
    "SizeMismatchError",
    "StreamOpenError",
    "TransferError",
    "ValidationError",
    "WriteError",
    "TransportCapabilities",
    "TransportProbe",
    "ScpError",
    "Connected",
    "Disconnected",
    "Session",
    "ShortReadPolicy",
    "TransferResult",
    "copy_stream",
    "TRANSPORT_ERRORS",
    "ParamikoTransport",
    "RemoteDirectory",
    "Transport",
]
