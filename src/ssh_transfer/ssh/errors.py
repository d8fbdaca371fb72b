"""Error kinds raised by the SFTP client."""

from __future__ import annotations

from typing import Optional


class SftpClientError(RuntimeError):
    """Base class for every error raised by this package."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class ValidationError(SftpClientError, ValueError):
    """Credentials are malformed or incomplete for their mode."""


class InvalidHandleError(SftpClientError):
    """A transport handle is missing or unusable."""


class CapabilityError(SftpClientError):
    """The transport collaborator cannot provide the required primitives."""


class ConfigError(SftpClientError):
    """The client is not configured for the requested operation."""


class ConnectError(SftpClientError):
    """Raised when an SSH connection cannot be established."""


class AuthError(SftpClientError):
    """The remote host rejected the credentials."""


class NotConnectedError(SftpClientError):
    """An operation was attempted without a live session."""


class NotFoundError(SftpClientError):
    """A path does not exist or cannot be read."""


class StreamOpenError(SftpClientError):
    """A source or destination stream could not be opened."""

    def __init__(self, message: str, *, side: str, path: Optional[str] = None) -> None:
        super().__init__(message, path=path)
        self.side = side


class WriteError(SftpClientError):
    """Writing a chunk to the destination stream failed."""


class IncompleteTransferError(SftpClientError):
    """The source stream ended before the expected number of bytes."""

    def __init__(
        self, message: str, *, expected: int, received: int, path: Optional[str] = None
    ) -> None:
        super().__init__(message, path=path)
        self.expected = expected
        self.received = received


class SizeMismatchError(SftpClientError):
    """Destination size differs from the source size after a transfer."""

    def __init__(
        self, message: str, *, expected: int, actual: Optional[int], path: Optional[str] = None
    ) -> None:
        super().__init__(message, path=path)
        self.expected = expected
        self.actual = actual


class TransferError(SftpClientError):
    """The whole-file SCP copy failed."""


class RemoveError(SftpClientError):
    pass


class RenameError(SftpClientError):
    pass


class MkdirError(SftpClientError):
    pass


class RmdirError(SftpClientError):
    pass


class OpenDirError(SftpClientError):
    pass
