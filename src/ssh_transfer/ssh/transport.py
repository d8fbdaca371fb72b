"""Transport collaborator: the SSH/SFTP primitives the client is built on."""

from __future__ import annotations

import posixpath
import socket
from abc import ABC, abstractmethod
from typing import IO, Iterator, List, Optional

import paramiko

from ..models import FileMetadata
from ..utils.logging import get_logger
from .errors import ConnectError
from . import scp

logger = get_logger(__name__)

# Failing primitives raise one of these; the client maps them to its own errors.
TRANSPORT_ERRORS = (OSError, paramiko.SSHException)

_CERT_SUFFIX = "-cert-v01@openssh.com"


class Transport(ABC):
    """Primitives consumed by :class:`~ssh_transfer.ssh.client.SftpClient`.

    ``handle`` is the raw, authenticated connection and ``fs`` the SFTP
    handle derived from it. Primitives that fail raise ``OSError`` or
    ``paramiko.SSHException``; :meth:`connect` raises ``ConnectError``.
    """

    REQUIRED_CAPABILITIES = (
        "connect",
        "authenticate_none",
        "authenticate_password",
        "authenticate_public_key",
        "open_filesystem",
        "disconnect",
        "stat",
        "open_read",
        "open_write",
        "scp_send",
        "scp_recv",
        "mkdir",
        "rmdir",
        "unlink",
        "rename",
        "open_dir",
        "read_dir_entry",
        "close_dir",
    )

    def is_available(self) -> bool:
        return True

    @abstractmethod
    def connect(self, host: str, port: int): ...

    @abstractmethod
    def authenticate_none(self, handle, username: str) -> bool: ...

    @abstractmethod
    def authenticate_password(self, handle, username: str, password: str) -> bool: ...

    @abstractmethod
    def authenticate_public_key(
        self,
        handle,
        username: str,
        public_key_path: str,
        private_key_path: str,
        passphrase: Optional[str] = None,
    ) -> bool: ...

    @abstractmethod
    def open_filesystem(self, handle): ...

    @abstractmethod
    def disconnect(self, handle, fs=None) -> None: ...

    @abstractmethod
    def stat(self, fs, path: str) -> Optional[FileMetadata]: ...

    @abstractmethod
    def open_read(self, fs, path: str) -> IO[bytes]: ...

    @abstractmethod
    def open_write(self, fs, path: str) -> IO[bytes]: ...

    @abstractmethod
    def scp_send(self, handle, local_path: str, remote_path: str) -> None: ...

    @abstractmethod
    def scp_recv(self, handle, remote_path: str, local_path: str) -> None: ...

    @abstractmethod
    def mkdir(self, fs, path: str, mode: int = 0o777, recursive: bool = False) -> None: ...

    @abstractmethod
    def rmdir(self, fs, path: str) -> None: ...

    @abstractmethod
    def unlink(self, fs, path: str) -> None: ...

    @abstractmethod
    def rename(self, fs, old_path: str, new_path: str) -> None: ...

    @abstractmethod
    def open_dir(self, fs, path: str): ...

    @abstractmethod
    def read_dir_entry(self, directory) -> Optional[str]: ...

    @abstractmethod
    def close_dir(self, directory) -> None: ...


class RemoteDirectory:
    """Open directory listing, drained one entry at a time.

    paramiko strips ``.`` and ``..`` from listings; they are put back at the
    front so callers see the usual readdir sequence.
    """

    def __init__(self, path: str, names: List[str]) -> None:
        self.path = path
        self._entries: Iterator[str] = iter([".", ".."] + names)
        self.closed = False

    def read(self) -> Optional[str]:
        if self.closed:
            return None
        return next(self._entries, None)

    def close(self) -> None:
        self.closed = True


class ParamikoTransport(Transport):
    """Transport built on ``paramiko.Transport`` and ``paramiko.SFTPClient``.

    ``timeout`` bounds the TCP connect, the SSH banner and auth exchanges, and
    every SFTP request. ``None`` blocks indefinitely.
    """

    def __init__(self, *, timeout: Optional[float] = 20.0, keepalive: int = 0) -> None:
        self.timeout = timeout
        self.keepalive = keepalive

    def is_available(self) -> bool:
        return hasattr(paramiko, "Transport") and hasattr(paramiko, "SFTPClient")

    # -- connection -----------------------------------------------------

    def connect(self, host: str, port: int) -> paramiko.Transport:
        try:
            sock = socket.create_connection((host, port), timeout=self.timeout)
        except OSError as exc:
            raise ConnectError(f"Could not connect to {host}:{port}: {exc}") from exc

        try:
            transport = paramiko.Transport(sock)
        except (paramiko.SSHException, OSError) as exc:
            sock.close()
            raise ConnectError(f"Could not start SSH transport to {host}:{port}: {exc}") from exc
        if self.timeout is not None:
            transport.banner_timeout = self.timeout
            transport.auth_timeout = self.timeout
        try:
            transport.start_client(timeout=self.timeout)
        except (paramiko.SSHException, OSError) as exc:
            transport.close()
            raise ConnectError(f"SSH negotiation with {host}:{port} failed: {exc}") from exc
        if self.keepalive:
            transport.set_keepalive(self.keepalive)
        logger.info("Connected to %s:%s", host, port)
        return transport

    def authenticate_none(self, handle: paramiko.Transport, username: str) -> bool:
        try:
            handle.auth_none(username)
        except (paramiko.BadAuthenticationType, paramiko.AuthenticationException) as exc:
            logger.info("'none' authentication refused for %s: %s", username, exc)
            return False
        return handle.is_authenticated()

    def authenticate_password(self, handle: paramiko.Transport, username: str, password: str) -> bool:
        try:
            handle.auth_password(username, password)
        except paramiko.AuthenticationException as exc:
            logger.info("Password authentication refused for %s: %s", username, exc)
            return False
        return handle.is_authenticated()

    def authenticate_public_key(
        self,
        handle: paramiko.Transport,
        username: str,
        public_key_path: str,
        private_key_path: str,
        passphrase: Optional[str] = None,
    ) -> bool:
        try:
            # Positional: the keyword was renamed between paramiko releases.
            pkey = paramiko.PKey.from_path(private_key_path, _as_bytes(passphrase))
        except (paramiko.SSHException, OSError, ValueError, TypeError) as exc:
            # TypeError: encrypted key without a passphrase.
            logger.warning("Could not load private key %s: %s", private_key_path, exc)
            return False
        if not self._attach_public_key(pkey, public_key_path):
            return False
        try:
            handle.auth_publickey(username, pkey)
        except paramiko.AuthenticationException as exc:
            logger.info("Public key authentication refused for %s: %s", username, exc)
            return False
        return handle.is_authenticated()

    @staticmethod
    def _attach_public_key(pkey: paramiko.PKey, public_key_path: str) -> bool:
        """Check the public half against ``pkey``; certificates are loaded onto it."""
        try:
            with open(public_key_path, "r", encoding="utf-8") as handle:
                fields = handle.read().split()
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read public key %s: %s", public_key_path, exc)
            return False
        if len(fields) < 2:
            logger.warning("Malformed public key file: %s", public_key_path)
            return False
        key_type, blob = fields[0], fields[1]
        if key_type.endswith(_CERT_SUFFIX):
            try:
                pkey.load_certificate(public_key_path)
            except (paramiko.SSHException, ValueError) as exc:
                logger.warning("Certificate %s does not match the private key: %s", public_key_path, exc)
                return False
            return True
        if blob != pkey.get_base64():
            logger.warning("Public key %s does not match the private key", public_key_path)
            return False
        return True

    def open_filesystem(self, handle: paramiko.Transport) -> paramiko.SFTPClient:
        sftp = paramiko.SFTPClient.from_transport(handle)
        if sftp is None:
            raise paramiko.SSHException("Server refused the sftp subsystem")
        if self.timeout is not None:
            sftp.get_channel().settimeout(self.timeout)
        return sftp

    def disconnect(self, handle: paramiko.Transport, fs: Optional[paramiko.SFTPClient] = None) -> None:
        try:
            if fs is not None:
                fs.close()
        finally:
            handle.close()
        logger.info("Disconnected")

    # -- files ------------------------------------------------------------

    def stat(self, fs: paramiko.SFTPClient, path: str) -> Optional[FileMetadata]:
        try:
            return FileMetadata.from_stat(fs.stat(path))
        except OSError:
            return None

    def open_read(self, fs: paramiko.SFTPClient, path: str) -> paramiko.SFTPFile:
        remote = fs.open(path, "rb")
        remote.prefetch()
        return remote

    def open_write(self, fs: paramiko.SFTPClient, path: str) -> paramiko.SFTPFile:
        remote = fs.open(path, "wb")
        remote.set_pipelined(True)
        return remote

    def scp_send(self, handle: paramiko.Transport, local_path: str, remote_path: str) -> None:
        scp.send_file(handle, local_path, remote_path, timeout=self.timeout)

    def scp_recv(self, handle: paramiko.Transport, remote_path: str, local_path: str) -> None:
        scp.receive_file(handle, remote_path, local_path, timeout=self.timeout)

    # -- directories ------------------------------------------------------

    def mkdir(self, fs: paramiko.SFTPClient, path: str, mode: int = 0o777, recursive: bool = False) -> None:
        if not recursive:
            fs.mkdir(path, mode)
            return
        absolute = path.startswith("/")
        current = "/" if absolute else ""
        for segment in [seg for seg in path.split("/") if seg]:
            current = posixpath.join(current, segment) if current else segment
            if self.stat(fs, current) is None:
                fs.mkdir(current, mode)

    def rmdir(self, fs: paramiko.SFTPClient, path: str) -> None:
        fs.rmdir(path)

    def unlink(self, fs: paramiko.SFTPClient, path: str) -> None:
        fs.remove(path)

    def rename(self, fs: paramiko.SFTPClient, old_path: str, new_path: str) -> None:
        fs.rename(old_path, new_path)

    def open_dir(self, fs: paramiko.SFTPClient, path: str) -> RemoteDirectory:
        return RemoteDirectory(path, fs.listdir(path))

    def read_dir_entry(self, directory: RemoteDirectory) -> Optional[str]:
        return directory.read()

    def close_dir(self, directory: RemoteDirectory) -> None:
        directory.close()


def _as_bytes(passphrase: Optional[str]) -> Optional[bytes]:
    if passphrase is None or isinstance(passphrase, bytes):
        return passphrase
    return passphrase.encode("utf-8")
