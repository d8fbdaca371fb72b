"""SFTP/SCP client built on a transport collaborator."""

from __future__ import annotations

import posixpath
from contextlib import ExitStack
from typing import IO, TYPE_CHECKING, Callable, List, Optional

from ..local.filesystem import LocalFilesystem
from ..models import FileMetadata
from ..utils.logging import get_logger
from .credentials import Credentials
from .errors import (
    AuthError,
    ConfigError,
    ConnectError,
    MkdirError,
    NotConnectedError,
    NotFoundError,
    OpenDirError,
    RemoveError,
    RenameError,
    RmdirError,
    SizeMismatchError,
    StreamOpenError,
    TransferError,
    WriteError,
)
from .probe import TransportProbe
from .session import DISCONNECTED, Connected, Session
from .transfer import ShortReadPolicy, TransferResult, copy_stream
from .transport import TRANSPORT_ERRORS, ParamikoTransport, Transport

if TYPE_CHECKING:
    from ..config import AppConfig

logger = get_logger(__name__)


class SftpClient:
    """Authenticated SSH session with SFTP and SCP file operations.

    Transfers keep the source path exactly as given and build the destination
    from the matching prefix: downloads write ``local_prefix + name`` and
    uploads write ``remote_prefix + name``, where ``name`` defaults to the
    source basename. Not thread-safe; use one client per thread.
    """

    def __init__(
        self,
        verify_size: bool = False,
        *,
        transport: Optional[Transport] = None,
        local_filesystem: Optional[LocalFilesystem] = None,
        short_read: ShortReadPolicy | str = ShortReadPolicy.RAISE,
    ) -> None:
        self.transport = transport if transport is not None else ParamikoTransport()
        TransportProbe().require(self.transport)
        self.local = local_filesystem if local_filesystem is not None else LocalFilesystem()
        self.verify_size = verify_size
        self.short_read = ShortReadPolicy(short_read)
        self._credentials: Optional[Credentials] = None
        self._local_prefix = ""
        self._remote_prefix = ""
        self._session: Session = DISCONNECTED

    @classmethod
    def from_config(cls, config: "AppConfig") -> "SftpClient":
        """Build a client with transport, transfer and credential settings from ``config``."""
        client = cls(
            config.transfer.verify_size,
            transport=ParamikoTransport(timeout=config.connection.timeout),
            short_read=config.transfer.short_read,
        )
        client.local_prefix = config.transfer.local_prefix
        client.remote_prefix = config.transfer.remote_prefix
        client.credentials = config.connection.to_credentials()
        return client

    def __enter__(self) -> "SftpClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    # -- configuration ----------------------------------------------------

    @property
    def credentials(self) -> Optional[Credentials]:
        return self._credentials

    @credentials.setter
    def credentials(self, credentials: Credentials) -> None:
        self._credentials = credentials

    def set_credentials(self, credentials: Credentials) -> "SftpClient":
        self.credentials = credentials
        return self

    @property
    def local_prefix(self) -> str:
        return self._local_prefix

    @local_prefix.setter
    def local_prefix(self, prefix: Optional[str]) -> None:
        self._local_prefix = prefix or ""

    @property
    def remote_prefix(self) -> str:
        return self._remote_prefix

    @remote_prefix.setter
    def remote_prefix(self, prefix: Optional[str]) -> None:
        self._remote_prefix = prefix or ""

    def enable_size_verification(self) -> "SftpClient":
        self.verify_size = True
        return self

    def disable_size_verification(self) -> "SftpClient":
        self.verify_size = False
        return self

    # -- session ----------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def is_connected(self) -> bool:
        return self._session.is_connected

    @property
    def host(self) -> Optional[str]:
        return self._session.host if isinstance(self._session, Connected) else None

    @property
    def port(self) -> Optional[int]:
        return self._session.port if isinstance(self._session, Connected) else None

    def connect(self, host: str, port: int = 22) -> "SftpClient":
        """Open, authenticate and start SFTP on a connection to ``host:port``.

        Either the client ends up connected or an error is raised and no
        handle is kept.
        """
        credentials = self._credentials
        if credentials is None:
            raise ConfigError("Valid credentials must be set before connecting")
        if self.is_connected:
            self.close()

        try:
            handle = self.transport.connect(host, port)
        except TRANSPORT_ERRORS as exc:
            raise ConnectError(f"Could not connect to {host}:{port}: {exc}") from exc
        if not handle:
            raise ConnectError(f"Could not connect to {host}:{port}")

        try:
            try:
                authorized = credentials.authorize(handle, self.transport)
            except TRANSPORT_ERRORS as exc:
                raise AuthError(f"Could not authenticate with {host}:{port}: {exc}") from exc
            if not authorized:
                raise AuthError(f"Could not authenticate with {host}:{port}")
            try:
                fs = self.transport.open_filesystem(handle)
            except TRANSPORT_ERRORS as exc:
                raise ConnectError(f"Could not start sftp on {host}:{port}: {exc}") from exc
        except Exception:
            self._release(handle, None)
            raise

        self._session = Connected(raw=handle, fs=fs, host=host, port=port)
        logger.info("Session established with %s:%s as %s", host, port, credentials.username)
        return self

    def close(self) -> "SftpClient":
        """End the session. Safe to call repeatedly; never raises."""
        session = self._session
        if not isinstance(session, Connected):
            return self
        self._session = DISCONNECTED
        self._release(session.raw, session.fs)
        return self

    def _release(self, handle, fs) -> None:
        try:
            self.transport.disconnect(handle, fs)
        except Exception as exc:
            logger.warning("Ignoring error while disconnecting: %s", exc)

    def _require_session(self) -> Connected:
        session = self._session
        if not isinstance(session, Connected):
            raise NotConnectedError("Not connected; call connect() first")
        return session

    # -- streaming transfers ----------------------------------------------

    def download(self, remote_path: str, local_name: Optional[str] = None) -> str:
        """Stream ``remote_path`` to ``local_prefix + (local_name or basename)``."""
        session = self._require_session()
        local_path = self._local_prefix + (local_name or posixpath.basename(remote_path))

        source = self.transport.stat(session.fs, remote_path)
        if source is None:
            raise NotFoundError(
                f"Remote file does not exist or is not readable: {remote_path}", path=remote_path
            )
        logger.debug("Downloading %s -> %s (%d bytes)", remote_path, local_path, source.size)
        self._copy(
            source_name=remote_path,
            destination_name=local_path,
            size=source.size,
            open_source=lambda: self.transport.open_read(session.fs, remote_path),
            open_destination=lambda: self.local.open_write(local_path),
            stat_destination=lambda: self.local.stat(local_path),
        )
        return local_path

    def upload(self, local_path: str, remote_name: Optional[str] = None) -> str:
        """Stream ``local_path`` to ``remote_prefix + (remote_name or basename)``."""
        session = self._require_session()
        source = self.local.stat(local_path)
        if source is None:
            raise NotFoundError(
                f"Local file does not exist or is not readable: {local_path}", path=local_path
            )
        remote_path = self._remote_prefix + (remote_name or self.local.basename(local_path))

        logger.debug("Uploading %s -> %s (%d bytes)", local_path, remote_path, source.size)
        self._copy(
            source_name=local_path,
            destination_name=remote_path,
            size=source.size,
            open_source=lambda: self.local.open_read(local_path),
            open_destination=lambda: self.transport.open_write(session.fs, remote_path),
            stat_destination=lambda: self.transport.stat(session.fs, remote_path),
        )
        return remote_path

    def _copy(
        self,
        *,
        source_name: str,
        destination_name: str,
        size: int,
        open_source: Callable[[], IO[bytes]],
        open_destination: Callable[[], IO[bytes]],
        stat_destination: Callable[[], Optional[FileMetadata]],
    ) -> TransferResult:
        with ExitStack() as stack:
            try:
                source = open_source()
            except TRANSPORT_ERRORS as exc:
                raise StreamOpenError(
                    f"Unable to open source for reading: {source_name}",
                    side="source",
                    path=source_name,
                ) from exc
            stack.callback(self._close_source, source, source_name)

            try:
                destination = open_destination()
            except TRANSPORT_ERRORS as exc:
                raise StreamOpenError(
                    f"Unable to open destination for writing: {destination_name}",
                    side="destination",
                    path=destination_name,
                ) from exc
            stack.callback(self._close_destination, destination, destination_name)

            result = copy_stream(
                source,
                destination,
                size,
                source_name=source_name,
                destination_name=destination_name,
                short_read=self.short_read,
            )

        if self.verify_size:
            written = stat_destination()
            actual = written.size if written is not None else None
            if actual != size:
                raise SizeMismatchError(
                    f"Different file size for {destination_name}: expected {size}, got {actual}",
                    expected=size,
                    actual=actual,
                    path=destination_name,
                )
        return result

    @staticmethod
    def _close_source(stream: IO[bytes], name: str) -> None:
        try:
            stream.close()
        except TRANSPORT_ERRORS as exc:
            logger.warning("Error closing %s: %s", name, exc)

    @staticmethod
    def _close_destination(stream: IO[bytes], name: str) -> None:
        # Buffered and pipelined writes surface their errors on close.
        try:
            stream.close()
        except TRANSPORT_ERRORS as exc:
            raise WriteError(f"Unable to finish writing {name}: {exc}", path=name) from exc

    # -- scp ----------------------------------------------------------------

    def scp_download(self, remote_path: str, local_name: Optional[str] = None) -> str:
        """Copy ``remote_path`` in one SCP exchange; returns the local path."""
        session = self._require_session()
        if self.transport.stat(session.fs, remote_path) is None:
            raise NotFoundError(
                f"Remote file does not exist or is not readable: {remote_path}", path=remote_path
            )
        local_path = self._local_prefix + (local_name or posixpath.basename(remote_path))
        try:
            self.transport.scp_recv(session.raw, remote_path, local_path)
        except TRANSPORT_ERRORS as exc:
            raise TransferError(
                f"Could not download {remote_path}: {exc}", path=remote_path
            ) from exc
        return local_path

    def scp_upload(self, local_path: str, remote_name: Optional[str] = None) -> str:
        """Copy ``local_path`` in one SCP exchange; returns the remote path."""
        session = self._require_session()
        if self.local.stat(local_path) is None:
            raise NotFoundError(
                f"Local file does not exist or is not readable: {local_path}", path=local_path
            )
        remote_path = self._remote_prefix + (remote_name or self.local.basename(local_path))
        try:
            self.transport.scp_send(session.raw, local_path, remote_path)
        except TRANSPORT_ERRORS as exc:
            raise TransferError(f"Could not upload {local_path}: {exc}", path=local_path) from exc
        return remote_path

    # -- metadata -----------------------------------------------------------

    def remove(self, remote_path: str) -> None:
        session = self._require_session()
        target = self._remote_prefix + remote_path
        self._require_remote(session, target)
        try:
            self.transport.unlink(session.fs, target)
        except TRANSPORT_ERRORS as exc:
            raise RemoveError(f"Unable to remove remote file {target}: {exc}", path=target) from exc
        logger.debug("Removed %s", target)

    def rename(self, remote_path: str, new_remote_path: str) -> None:
        """Rename ``remote_prefix + remote_path`` to ``new_remote_path`` (not prefixed)."""
        session = self._require_session()
        source = self._remote_prefix + remote_path
        self._require_remote(session, source)
        try:
            self.transport.rename(session.fs, source, new_remote_path)
        except TRANSPORT_ERRORS as exc:
            raise RenameError(
                f"Unable to rename remote file {source} to {new_remote_path}: {exc}", path=source
            ) from exc
        logger.debug("Renamed %s -> %s", source, new_remote_path)

    def get_file_list(self, remote_path: str) -> List[str]:
        """List a remote directory in server order, including ``.`` and ``..``."""
        session = self._require_session()
        self._require_remote(session, remote_path)
        try:
            directory = self.transport.open_dir(session.fs, remote_path)
        except TRANSPORT_ERRORS as exc:
            raise OpenDirError(
                f"Unable to open remote directory {remote_path}: {exc}", path=remote_path
            ) from exc

        entries: List[str] = []
        try:
            while True:
                entry = self.transport.read_dir_entry(directory)
                if entry is None:
                    break
                entries.append(entry)
        except TRANSPORT_ERRORS as exc:
            raise OpenDirError(
                f"Unable to read remote directory {remote_path}: {exc}", path=remote_path
            ) from exc
        finally:
            self.transport.close_dir(directory)
        return entries

    def stat(self, remote_path: str) -> Optional[FileMetadata]:
        session = self._require_session()
        return self.transport.stat(session.fs, remote_path)

    def make_directory(self, remote_path: str, mode: int = 0o777, recursive: bool = False) -> None:
        session = self._require_session()
        try:
            self.transport.mkdir(session.fs, remote_path, mode, recursive)
        except TRANSPORT_ERRORS as exc:
            raise MkdirError(
                f"Unable to create remote directory {remote_path}: {exc}", path=remote_path
            ) from exc

    def remove_directory(self, remote_path: str) -> None:
        """Remove an empty remote directory."""
        session = self._require_session()
        try:
            self.transport.rmdir(session.fs, remote_path)
        except TRANSPORT_ERRORS as exc:
            raise RmdirError(
                f"Unable to delete remote directory {remote_path}: {exc}", path=remote_path
            ) from exc

    def file_exists(self, remote_path: str) -> bool:
        """False when the path is missing or cannot be stat'ed; the two are not told apart."""
        session = self._require_session()
        try:
            return self.transport.stat(session.fs, remote_path) is not None
        except OSError:
            return False

    def _require_remote(self, session: Connected, path: str) -> FileMetadata:
        metadata = self.transport.stat(session.fs, path)
        if metadata is None:
            raise NotFoundError(f"Remote path does not exist or is not readable: {path}", path=path)
        return metadata
