import io
import os
import posixpath
import stat
import tempfile
import unittest

from ssh_transfer.config import AppConfig
from ssh_transfer.models import FileMetadata
from ssh_transfer.ssh import (
    AuthError,
    CapabilityError,
    ConfigError,
    ConnectError,
    Connected,
    Credentials,
    IncompleteTransferError,
    MkdirError,
    NotConnectedError,
    NotFoundError,
    OpenDirError,
    ParamikoTransport,
    RemoteDirectory,
    RemoveError,
    RenameError,
    RmdirError,
    ScpError,
    SftpClient,
    ShortReadPolicy,
    SizeMismatchError,
    StreamOpenError,
    TransferError,
    Transport,
)


class FakeHandle:
    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port


class RemoteWriter(io.BytesIO):
    """Stores its bytes in the fake server on close, optionally truncated."""

    def __init__(self, server: "FakeTransport", path: str) -> None:
        super().__init__()
        self._server = server
        self._path = path

    def close(self) -> None:
        if not self.closed:
            data = self.getvalue()
            keep = self._server.truncate_writes.get(self._path)
            self._server.files[self._path] = data if keep is None else data[:keep]
        super().close()


class FakeTransport(Transport):
    """In-memory SFTP server."""

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.dirs: set[str] = {"/"}
        self.unreadable: set[str] = set()
        self.truncate_writes: dict[str, int] = {}
        self.size_overrides: dict[str, int] = {}
        self.auth_result = True
        self.refuse_connect = False
        self.refuse_sftp = False
        self.fail_disconnect = False
        self.fail_unlink = False
        self.fail_rename = False
        self.fail_open_dir = False
        self.fail_scp = False
        self.connections: list[FakeHandle] = []
        self.disconnected: list[FakeHandle] = []

    def connect(self, host, port):
        if self.refuse_connect:
            raise ConnectError(f"Could not connect to {host}:{port}")
        handle = FakeHandle(host, port)
        self.connections.append(handle)
        return handle

    def authenticate_none(self, handle, username):
        return self.auth_result

    def authenticate_password(self, handle, username, password):
        return self.auth_result

    def authenticate_public_key(self, handle, username, public_key_path, private_key_path, passphrase=None):
        return self.auth_result

    def open_filesystem(self, handle):
        if self.refuse_sftp:
            raise OSError("sftp subsystem refused")
        return ("sftp", handle)

    def disconnect(self, handle, fs=None):
        self.disconnected.append(handle)
        if self.fail_disconnect:
            raise OSError("socket already closed")

    def stat(self, fs, path):
        if path in self.unreadable:
            return None
        if path in self.files:
            size = self.size_overrides.get(path, len(self.files[path]))
            return FileMetadata(size=size, mode=stat.S_IFREG | 0o644)
        if path in self.dirs:
            return FileMetadata(size=0, mode=stat.S_IFDIR | 0o755)
        return None

    def open_read(self, fs, path):
        if path not in self.files:
            raise FileNotFoundError(path)
        return io.BytesIO(self.files[path])

    def open_write(self, fs, path):
        if posixpath.dirname(path) not in self.dirs:
            raise FileNotFoundError(path)
        return RemoteWriter(self, path)

    def scp_send(self, handle, local_path, remote_path):
        if self.fail_scp:
            raise ScpError("scp: permission denied")
        with open(local_path, "rb") as source:
            self.files[remote_path] = source.read()

    def scp_recv(self, handle, remote_path, local_path):
        if self.fail_scp:
            raise ScpError("scp: permission denied")
        with open(local_path, "wb") as target:
            target.write(self.files[remote_path])

    def mkdir(self, fs, path, mode=0o777, recursive=False):
        if path in self.dirs or path in self.files:
            raise OSError(f"{path} exists")
        parent = posixpath.dirname(path)
        if parent not in self.dirs:
            if not recursive:
                raise FileNotFoundError(parent)
            self.mkdir(fs, parent, mode, recursive)
        self.dirs.add(path)

    def rmdir(self, fs, path):
        if path not in self.dirs:
            raise FileNotFoundError(path)
        if self._children(path):
            raise OSError(f"{path} is not empty")
        self.dirs.remove(path)

    def unlink(self, fs, path):
        if self.fail_unlink:
            raise PermissionError(path)
        del self.files[path]

    def rename(self, fs, old_path, new_path):
        if self.fail_rename:
            raise PermissionError(old_path)
        self.files[new_path] = self.files.pop(old_path)

    def open_dir(self, fs, path):
        if self.fail_open_dir:
            raise PermissionError(path)
        return RemoteDirectory(path, self._children(path))

    def read_dir_entry(self, directory):
        return directory.read()

    def close_dir(self, directory):
        directory.close()

    def _children(self, path):
        names = [p for p in list(self.files) + sorted(self.dirs) if p != path]
        return [posixpath.basename(p) for p in names if posixpath.dirname(p) == path]


class ClientTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.local_dir = self._tmp.name
        self.transport = FakeTransport()
        self.client = SftpClient(transport=self.transport)
        self.client.credentials = Credentials.with_password("deploy", "secret")

    def connected(self) -> SftpClient:
        return self.client.connect("files.example.com", 2222)

    def local(self, *parts: str) -> str:
        return os.path.join(self.local_dir, *parts)

    def write_local(self, name: str, data: bytes) -> str:
        path = self.local(name)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as handle:
            handle.write(data)
        return path

    def read_local(self, name: str) -> bytes:
        with open(self.local(name), "rb") as handle:
            return handle.read()


class ConstructionTests(ClientTestCase):
    def test_defaults_to_paramiko_transport(self) -> None:
        client = SftpClient(verify_size=True)
        self.assertIsInstance(client.transport, ParamikoTransport)
        self.assertTrue(client.verify_size)
        self.assertFalse(client.is_connected)

    def test_transport_missing_capabilities_fails_fast(self) -> None:
        class Partial:
            def is_available(self):
                return True

            def connect(self, host, port):
                return object()

        with self.assertRaises(CapabilityError) as ctx:
            SftpClient(transport=Partial())  # type: ignore[arg-type]
        self.assertIn("open_filesystem", str(ctx.exception))

    def test_unavailable_transport_fails_fast(self) -> None:
        class Unavailable(FakeTransport):
            def is_available(self):
                return False

        with self.assertRaises(CapabilityError):
            SftpClient(transport=Unavailable())

    def test_prefixes_default_to_empty_and_none_resets(self) -> None:
        self.assertEqual(self.client.local_prefix, "")
        self.assertEqual(self.client.remote_prefix, "")
        self.client.local_prefix = "test"
        self.client.remote_prefix = "test"
        self.assertEqual(self.client.local_prefix, "test")
        self.assertEqual(self.client.remote_prefix, "test")
        self.client.local_prefix = None
        self.client.remote_prefix = None
        self.assertEqual(self.client.local_prefix, "")
        self.assertEqual(self.client.remote_prefix, "")

    def test_size_verification_toggles(self) -> None:
        self.client.enable_size_verification()
        self.assertTrue(self.client.verify_size)
        self.client.disable_size_verification()
        self.assertFalse(self.client.verify_size)

    def test_from_config(self) -> None:
        config = AppConfig.from_dict(
            {
                "connection": {"username": "deploy", "password": "secret", "timeout": 5},
                "transfer": {
                    "verify_size": True,
                    "local_prefix": "in/",
                    "remote_prefix": "/out/",
                    "short_read": "accept",
                },
            }
        )
        client = SftpClient.from_config(config)
        self.assertTrue(client.verify_size)
        self.assertEqual(client.local_prefix, "in/")
        self.assertEqual(client.remote_prefix, "/out/")
        self.assertIs(client.short_read, ShortReadPolicy.ACCEPT)
        self.assertEqual(client.transport.timeout, 5)
        self.assertEqual(client.credentials.username, "deploy")


class ConnectionTests(ClientTestCase):
    def test_connect_requires_credentials(self) -> None:
        client = SftpClient(transport=self.transport)
        with self.assertRaises(ConfigError):
            client.connect("files.example.com")
        self.assertEqual(self.transport.connections, [])

    def test_connect_stores_both_handles(self) -> None:
        self.connected()
        session = self.client.session
        self.assertIsInstance(session, Connected)
        self.assertIs(session.raw, self.transport.connections[0])
        self.assertEqual(session.fs, ("sftp", session.raw))
        self.assertEqual(self.client.host, "files.example.com")
        self.assertEqual(self.client.port, 2222)

    def test_connect_failure_raises_connect_error(self) -> None:
        self.transport.refuse_connect = True
        with self.assertRaises(ConnectError):
            self.connected()
        self.assertFalse(self.client.is_connected)

    def test_rejected_authorization_leaves_no_handles(self) -> None:
        self.transport.auth_result = False
        with self.assertRaises(AuthError):
            self.connected()
        self.assertFalse(self.client.is_connected)
        self.assertIsNone(self.client.host)
        self.assertEqual(self.transport.disconnected, self.transport.connections)

        self.transport.auth_result = True
        self.connected()
        self.assertTrue(self.client.is_connected)
        self.assertIs(self.client.session.raw, self.transport.connections[1])

    def test_validation_error_releases_raw_handle(self) -> None:
        self.client.credentials = Credentials().set_username("deploy")
        with self.assertRaises(ValueError):
            self.connected()
        self.assertFalse(self.client.is_connected)
        self.assertEqual(len(self.transport.disconnected), 1)

    def test_sftp_failure_releases_raw_handle(self) -> None:
        self.transport.refuse_sftp = True
        with self.assertRaises(ConnectError):
            self.connected()
        self.assertFalse(self.client.is_connected)
        self.assertEqual(self.transport.disconnected, self.transport.connections)

    def test_reconnect_closes_previous_session(self) -> None:
        self.connected()
        first = self.client.session.raw
        self.connected()
        self.assertIn(first, self.transport.disconnected)
        self.assertIsNot(self.client.session.raw, first)

    def test_close_is_idempotent(self) -> None:
        self.client.close()
        self.connected()
        self.client.close()
        self.client.close()
        self.assertFalse(self.client.is_connected)
        self.assertEqual(len(self.transport.disconnected), 1)

    def test_close_never_raises(self) -> None:
        self.connected()
        self.transport.fail_disconnect = True
        with self.assertLogs("ssh_transfer.ssh.client", level="WARNING"):
            self.client.close()
        self.assertFalse(self.client.is_connected)

    def test_context_manager_closes(self) -> None:
        with self.client as client:
            client.connect("files.example.com")
            self.assertTrue(client.is_connected)
        self.assertFalse(self.client.is_connected)

    def test_operations_after_close_raise_not_connected(self) -> None:
        self.connected()
        self.client.close()
        operations = {
            "download": lambda: self.client.download("/r.txt"),
            "upload": lambda: self.client.upload(self.local("a.txt")),
            "scp_download": lambda: self.client.scp_download("/r.txt"),
            "scp_upload": lambda: self.client.scp_upload(self.local("a.txt")),
            "remove": lambda: self.client.remove("/r.txt"),
            "rename": lambda: self.client.rename("/r.txt", "/s.txt"),
            "get_file_list": lambda: self.client.get_file_list("/"),
            "stat": lambda: self.client.stat("/"),
            "make_directory": lambda: self.client.make_directory("/d"),
            "remove_directory": lambda: self.client.remove_directory("/d"),
            "file_exists": lambda: self.client.file_exists("/"),
        }
        for name, operation in operations.items():
            with self.subTest(operation=name):
                with self.assertRaises(NotConnectedError):
                    operation()


class StreamingTransferTests(ClientTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.connected()

    def test_upload_then_download_round_trip(self) -> None:
        payload = os.urandom(70_000)
        source = self.write_local("payload.bin", payload)
        self.client.enable_size_verification()
        self.client.remote_prefix = "/"

        remote = self.client.upload(source)
        self.assertEqual(remote, "/payload.bin")
        self.assertEqual(self.transport.files["/payload.bin"], payload)

        self.client.local_prefix = self.local_dir + os.sep
        local = self.client.download("/payload.bin", "copy.bin")
        self.assertEqual(local, self.local("copy.bin"))
        self.assertEqual(self.read_local("copy.bin"), payload)

    def test_empty_file_round_trip(self) -> None:
        self.transport.files["/empty"] = b""
        self.client.local_prefix = self.local_dir + os.sep
        self.client.enable_size_verification()
        self.client.download("/empty")
        self.assertEqual(self.read_local("empty"), b"")

    def test_short_write_detected_when_verifying(self) -> None:
        source = self.write_local("data.txt", b"0123456789")
        self.client.remote_prefix = "/"
        self.transport.truncate_writes["/data.txt"] = 4
        self.client.enable_size_verification()
        with self.assertRaises(SizeMismatchError) as ctx:
            self.client.upload(source)
        self.assertEqual(ctx.exception.expected, 10)
        self.assertEqual(ctx.exception.actual, 4)

    def test_short_write_accepted_without_verification(self) -> None:
        source = self.write_local("data.txt", b"0123456789")
        self.client.remote_prefix = "/"
        self.transport.truncate_writes["/data.txt"] = 4
        self.client.upload(source)
        self.assertEqual(self.transport.files["/data.txt"], b"0123")

    def test_upload_uses_remote_prefix_and_basename(self) -> None:
        self.transport.dirs.add("/x")
        source = self.write_local(os.path.join("a", "b.txt"), b"hello")
        self.client.remote_prefix = "/x/"
        self.assertEqual(self.client.upload(source), "/x/b.txt")
        self.assertEqual(self.transport.files["/x/b.txt"], b"hello")
        self.assertEqual(self.client.upload(source, "renamed.txt"), "/x/renamed.txt")

    def test_download_uses_local_prefix(self) -> None:
        self.transport.files["r.txt"] = b"remote"
        os.makedirs(self.local("y"))
        self.client.local_prefix = self.local("y") + os.sep

        self.assertEqual(self.client.download("r.txt", "out.txt"), self.local("y", "out.txt"))
        self.assertEqual(self.read_local(os.path.join("y", "out.txt")), b"remote")
        self.assertEqual(self.client.download("r.txt"), self.local("y", "r.txt"))
        self.assertEqual(self.read_local(os.path.join("y", "r.txt")), b"remote")

    def test_source_path_is_not_prefixed(self) -> None:
        self.transport.files["/srv/r.txt"] = b"remote"
        self.client.remote_prefix = "/ignored/"
        self.client.local_prefix = self.local_dir + os.sep
        self.client.download("/srv/r.txt")
        self.assertEqual(self.read_local("r.txt"), b"remote")

    def test_download_missing_source(self) -> None:
        self.client.local_prefix = self.local_dir + os.sep
        with self.assertRaises(NotFoundError):
            self.client.download("/missing.txt")
        self.assertFalse(os.path.exists(self.local("missing.txt")))

    def test_upload_missing_source(self) -> None:
        with self.assertRaises(NotFoundError):
            self.client.upload(self.local("missing.txt"))

    def test_unopenable_destination_names_side(self) -> None:
        self.transport.files["/r.txt"] = b"remote"
        self.client.local_prefix = self.local("no-such-dir") + os.sep
        with self.assertRaises(StreamOpenError) as ctx:
            self.client.download("/r.txt")
        self.assertEqual(ctx.exception.side, "destination")

        source = self.write_local("a.txt", b"data")
        self.client.remote_prefix = "/no-such-dir/"
        with self.assertRaises(StreamOpenError) as ctx:
            self.client.upload(source)
        self.assertEqual(ctx.exception.side, "destination")

    def test_short_read_raises_by_default(self) -> None:
        self.transport.files["/r.txt"] = b"abc"
        self.transport.size_overrides["/r.txt"] = 10
        self.client.local_prefix = self.local_dir + os.sep
        with self.assertRaises(IncompleteTransferError) as ctx:
            self.client.download("/r.txt")
        self.assertEqual((ctx.exception.expected, ctx.exception.received), (10, 3))

    def test_short_read_accepted_when_configured(self) -> None:
        self.client.short_read = ShortReadPolicy.ACCEPT
        self.transport.files["/r.txt"] = b"abc"
        self.transport.size_overrides["/r.txt"] = 10
        self.client.local_prefix = self.local_dir + os.sep
        with self.assertLogs("ssh_transfer.ssh.transfer", level="WARNING"):
            self.client.download("/r.txt")
        self.assertEqual(self.read_local("r.txt"), b"abc")

    def test_prefix_change_applies_to_next_operation(self) -> None:
        source = self.write_local("a.txt", b"data")
        self.client.remote_prefix = "/"
        self.client.upload(source)
        self.transport.dirs.add("/next")
        self.client.remote_prefix = "/next/"
        self.client.upload(source)
        self.assertIn("/a.txt", self.transport.files)
        self.assertIn("/next/a.txt", self.transport.files)


class ScpTransferTests(ClientTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.connected()

    def test_scp_upload_and_download(self) -> None:
        source = self.write_local("report.csv", b"a,b\n1,2\n")
        self.client.remote_prefix = "/inbox/"
        self.assertEqual(self.client.scp_upload(source), "/inbox/report.csv")

        self.client.local_prefix = self.local_dir + os.sep
        local = self.client.scp_download("/inbox/report.csv", "back.csv")
        self.assertEqual(local, self.local("back.csv"))
        self.assertEqual(self.read_local("back.csv"), b"a,b\n1,2\n")

    def test_scp_missing_source(self) -> None:
        with self.assertRaises(NotFoundError):
            self.client.scp_download("/missing")
        with self.assertRaises(NotFoundError):
            self.client.scp_upload(self.local("missing"))

    def test_scp_failure_raises_transfer_error(self) -> None:
        self.transport.fail_scp = True
        self.transport.files["/r.txt"] = b"x"
        self.client.local_prefix = self.local_dir + os.sep
        with self.assertRaises(TransferError):
            self.client.scp_download("/r.txt")
        source = self.write_local("a.txt", b"x")
        with self.assertRaises(TransferError):
            self.client.scp_upload(source)


class MetadataTests(ClientTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.connected()
        self.transport.dirs.update({"/data", "/data/empty"})
        self.transport.files.update({"/data/one.txt": b"1", "/data/two.txt": b"22"})

    def test_remove_applies_remote_prefix(self) -> None:
        self.client.remote_prefix = "/data/"
        self.client.remove("one.txt")
        self.assertNotIn("/data/one.txt", self.transport.files)

    def test_remove_missing_and_failing(self) -> None:
        with self.assertRaises(NotFoundError):
            self.client.remove("/data/none.txt")
        self.transport.fail_unlink = True
        with self.assertRaises(RemoveError):
            self.client.remove("/data/one.txt")

    def test_rename(self) -> None:
        self.client.remote_prefix = "/data/"
        self.client.rename("one.txt", "/data/uno.txt")
        self.assertIn("/data/uno.txt", self.transport.files)
        with self.assertRaises(NotFoundError):
            self.client.rename("one.txt", "/data/again.txt")
        self.transport.fail_rename = True
        with self.assertRaises(RenameError):
            self.client.rename("two.txt", "/data/dos.txt")

    def test_get_file_list_includes_convention_entries(self) -> None:
        entries = self.client.get_file_list("/data/empty")
        self.assertEqual(entries, [".", ".."])
        entries = self.client.get_file_list("/data")
        self.assertGreaterEqual(len(entries), 2)
        self.assertIn("one.txt", entries)
        self.assertIn("two.txt", entries)
        self.assertEqual(entries[:2], [".", ".."])

    def test_get_file_list_errors(self) -> None:
        with self.assertRaises(NotFoundError):
            self.client.get_file_list("/nope")
        self.transport.fail_open_dir = True
        with self.assertRaises(OpenDirError):
            self.client.get_file_list("/data")

    def test_stat(self) -> None:
        metadata = self.client.stat("/data/two.txt")
        self.assertEqual(metadata.size, 2)
        self.assertTrue(metadata.is_file)
        self.assertTrue(self.client.stat("/data").is_dir)
        self.assertIsNone(self.client.stat("/nope"))

    def test_make_directory(self) -> None:
        self.client.make_directory("/data/new")
        self.assertIn("/data/new", self.transport.dirs)
        with self.assertRaises(MkdirError):
            self.client.make_directory("/a/b/c")
        self.client.make_directory("/a/b/c", recursive=True)
        self.assertTrue({"/a", "/a/b", "/a/b/c"} <= self.transport.dirs)
        with self.assertRaises(MkdirError):
            self.client.make_directory("/data")

    def test_remove_directory_requires_empty(self) -> None:
        self.client.remove_directory("/data/empty")
        self.assertNotIn("/data/empty", self.transport.dirs)
        with self.assertRaises(RmdirError):
            self.client.remove_directory("/data")
        with self.assertRaises(RmdirError):
            self.client.remove_directory("/nope")

    def test_file_exists(self) -> None:
        self.assertTrue(self.client.file_exists("/data/one.txt"))
        self.assertTrue(self.client.file_exists("/data"))
        self.assertFalse(self.client.file_exists("/never"))
        self.transport.unreadable.add("/data/two.txt")
        self.assertFalse(self.client.file_exists("/data/two.txt"))


if __name__ == "__main__":
    unittest.main()
