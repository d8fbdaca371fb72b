"""Single-file SCP over a paramiko exec channel.

The remote side runs ``scp -t <path>`` when we send and ``scp -f <path>``
when we receive. A file travels as a ``C<mode> <size> <name>\\n`` header
followed by ``size`` raw bytes. Every header and every payload is
acknowledged with a single byte:

* ``\\0``: ok
* ``\\1``: soft error, message up to ``\\n``
* ``\\2``: hard error, message up to ``\\n``

Any other byte is treated as a hard error.
"""

from __future__ import annotations

import os
import shlex
from typing import Optional

import paramiko

from ..utils.logging import get_logger

logger = get_logger(__name__)

CHUNK_SIZE = 32768

_OK = b"\x00"
_ERRORS = (b"\x01", b"\x02")


class ScpError(OSError):
    """The remote scp process reported an error or broke the protocol."""


def send_file(
    transport: paramiko.Transport,
    local_path: str,
    remote_path: str,
    *,
    timeout: Optional[float] = None,
) -> None:
    info = os.stat(local_path)
    channel = transport.open_session(timeout=timeout)
    try:
        channel.settimeout(timeout)
        channel.exec_command(f"scp -t {shlex.quote(remote_path)}")
        _expect_ok(channel)

        name = os.path.basename(local_path).replace("\n", "")
        header = f"C{info.st_mode & 0o7777:04o} {info.st_size} {name}\n"
        channel.sendall(header.encode("utf-8"))
        _expect_ok(channel)

        with open(local_path, "rb") as source:
            while True:
                chunk = source.read(CHUNK_SIZE)
                if not chunk:
                    break
                channel.sendall(chunk)
        channel.sendall(_OK)
        _expect_ok(channel)
        logger.debug("scp sent %s -> %s (%d bytes)", local_path, remote_path, info.st_size)
    finally:
        channel.close()


def receive_file(
    transport: paramiko.Transport,
    remote_path: str,
    local_path: str,
    *,
    timeout: Optional[float] = None,
) -> None:
    channel = transport.open_session(timeout=timeout)
    try:
        channel.settimeout(timeout)
        channel.exec_command(f"scp -f {shlex.quote(remote_path)}")
        channel.sendall(_OK)

        header = _read_line(channel)
        if header[:1] in _ERRORS:
            raise ScpError(header[1:].decode("utf-8", errors="replace").strip())
        if header[:1] != b"C":
            raise ScpError(f"Unexpected scp header: {header!r}")
        try:
            _mode, size_text, _name = header[1:].decode("utf-8").rstrip("\n").split(" ", 2)
            size = int(size_text)
        except ValueError as exc:
            raise ScpError(f"Malformed scp header: {header!r}") from exc
        channel.sendall(_OK)

        remaining = size
        with open(local_path, "wb") as target:
            while remaining > 0:
                chunk = channel.recv(min(CHUNK_SIZE, remaining))
                if not chunk:
                    raise ScpError(
                        f"Connection closed with {remaining} of {size} bytes outstanding"
                    )
                target.write(chunk)
                remaining -= len(chunk)
        _expect_ok(channel)
        channel.sendall(_OK)
        logger.debug("scp received %s -> %s (%d bytes)", remote_path, local_path, size)
    finally:
        channel.close()


def _expect_ok(channel: paramiko.Channel) -> None:
    code = channel.recv(1)
    if code == _OK:
        return
    if not code:
        raise ScpError("Remote scp closed the channel")
    if code in _ERRORS:
        message = _read_line(channel).decode("utf-8", errors="replace").strip()
        raise ScpError(message or "Remote scp reported an error")
    raise ScpError(f"Unexpected scp response: {code + _read_line(channel)!r}")


def _read_line(channel: paramiko.Channel) -> bytes:
    line = bytearray()
    while True:
        byte = channel.recv(1)
        if not byte:
            break
        line += byte
        if byte == b"\n":
            break
    return bytes(line)
