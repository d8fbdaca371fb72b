"""Connection state of an SFTP client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class Disconnected:
    """No live handles."""

    @property
    def is_connected(self) -> bool:
        return False


@dataclass(frozen=True)
class Connected:
    """An authenticated connection and the SFTP handle derived from it.

    Both handles are stored and released together.
    """

    raw: Any
    fs: Any
    host: str
    port: int

    @property
    def is_connected(self) -> bool:
        return True


DISCONNECTED = Disconnected()

Session = Union[Disconnected, Connected]
