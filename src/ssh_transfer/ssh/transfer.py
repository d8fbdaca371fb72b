"""Streaming copy loop shared by uploads and downloads."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import IO

from ..utils.logging import get_logger
from .errors import IncompleteTransferError, WriteError
from .transport import TRANSPORT_ERRORS

logger = get_logger(__name__)


class ShortReadPolicy(str, Enum):
    """What an empty read before the expected size means."""

    RAISE = "raise"    # IncompleteTransferError
    ACCEPT = "accept"  # legitimate EOF, logged


@dataclass
class TransferResult:
    source: str
    destination: str
    expected: int
    transferred: int

    @property
    def complete(self) -> bool:
        return self.transferred == self.expected


def copy_stream(
    source: IO[bytes],
    destination: IO[bytes],
    size: int,
    *,
    source_name: str,
    destination_name: str,
    short_read: ShortReadPolicy = ShortReadPolicy.RAISE,
) -> TransferResult:
    """Copy ``size`` bytes from ``source`` to ``destination``.

    Every read asks for all remaining bytes; each chunk is written before the
    next read. Partial writes are resumed with the unwritten remainder.
    """
    transferred = 0
    while transferred < size:
        chunk = source.read(size - transferred)
        if not chunk:
            if short_read is ShortReadPolicy.RAISE:
                raise IncompleteTransferError(
                    f"Source {source_name} ended after {transferred} of {size} bytes",
                    expected=size,
                    received=transferred,
                    path=source_name,
                )
            logger.warning(
                "Source %s ended after %d of %d bytes, accepting as end of file",
                source_name,
                transferred,
                size,
            )
            break
        transferred += len(chunk)
        _write_all(destination, chunk, destination_name)

    logger.debug("Copied %d bytes from %s to %s", transferred, source_name, destination_name)
    return TransferResult(
        source=source_name,
        destination=destination_name,
        expected=size,
        transferred=transferred,
    )


def _write_all(destination: IO[bytes], chunk: bytes, destination_name: str) -> None:
    remaining = chunk
    while remaining:
        try:
            written = destination.write(remaining)
        except TRANSPORT_ERRORS as exc:
            raise WriteError(
                f"Unable to write to {destination_name}: {exc}", path=destination_name
            ) from exc
        # Buffered and paramiko streams return None or the full length.
        if written is None:
            return
        if written <= 0:
            raise WriteError(
                f"Unable to write to {destination_name}: no progress", path=destination_name
            )
        remaining = remaining[written:]
