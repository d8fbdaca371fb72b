"""Authentication modes and strategies."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable

from ..utils.logging import get_logger
from .transport import TRANSPORT_ERRORS

logger = get_logger(__name__)

AuthStep = Callable[[], bool]


class AuthMode(str, Enum):
    """How credentials authenticate a transport."""

    NONE = "none"
    PASSWORD = "password"
    PUBLIC_KEY = "public_key"
    BOTH = "both"


@dataclass
class TryThenFallback:
    """Run ``first`` for its side effect on the transport, return ``fallback``.

    The outcome of ``first`` (success, refusal or a transport error) is logged
    and discarded. Only ``fallback`` decides the result.

    Intended for servers that demand a key and then a password. A server that
    accepts the key alone has finished authentication and never answers the
    password request, so ``fallback`` blocks until the transport auth timeout
    and returns False.
    """

    first: AuthStep
    fallback: AuthStep
    first_name: str = "first"
    fallback_name: str = "fallback"

    def __call__(self) -> bool:
        try:
            accepted = self.first()
        except TRANSPORT_ERRORS as exc:
            logger.warning("%s authentication step failed, ignoring: %s", self.first_name, exc)
        else:
            logger.debug("%s authentication step returned %s, ignoring", self.first_name, accepted)
        result = self.fallback()
        logger.debug("%s authentication step returned %s", self.fallback_name, result)
        return result
