"""SSH credential helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Optional, cast

from ..utils.logging import get_logger
from .auth import AuthMode, TryThenFallback
from .errors import InvalidHandleError, ValidationError
from .transport import Transport

logger = get_logger(__name__)


@dataclass
class Credentials:
    """Identity material for one authentication mode.

    Build it with one of the ``with_*`` factories, or bare followed by the
    setters (the only way to get ``AuthMode.NONE``). Validation runs again on
    every :meth:`authorize` call.
    """

    username: Optional[str] = None
    mode: Optional[AuthMode] = None
    password: Optional[str] = field(default=None, repr=False)
    public_key_path: Optional[str] = None
    private_key_path: Optional[str] = None
    private_key_passphrase: Optional[str] = field(default=None, repr=False)

    @classmethod
    def with_password(cls, username: str, password: str) -> "Credentials":
        return cls().set_mode(AuthMode.PASSWORD).set_username(username).set_password(password)

    @classmethod
    def with_public_key(
        cls,
        username: str,
        public_key_path: str,
        private_key_path: str,
        passphrase: Optional[str] = None,
    ) -> "Credentials":
        return (
            cls()
            .set_mode(AuthMode.PUBLIC_KEY)
            .set_username(username)
            .set_public_key(public_key_path)
            .set_private_key(private_key_path, passphrase)
        )

    @classmethod
    def with_both(
        cls,
        username: str,
        password: str,
        public_key_path: str,
        private_key_path: str,
        passphrase: Optional[str] = None,
    ) -> "Credentials":
        return (
            cls()
            .set_mode(AuthMode.BOTH)
            .set_username(username)
            .set_password(password)
            .set_public_key(public_key_path)
            .set_private_key(private_key_path, passphrase)
        )

    def set_mode(self, mode: AuthMode | str) -> "Credentials":
        try:
            self.mode = AuthMode(mode)
        except ValueError as exc:
            raise ValidationError(f"Unknown authentication mode: {mode!r}") from exc
        return self

    def set_username(self, username: str) -> "Credentials":
        if not username:
            raise ValidationError("Username must be at least 1 character long")
        self.username = username
        return self

    def set_password(self, password: str) -> "Credentials":
        # "" is a valid password; only None means unset.
        self.password = password
        return self

    def set_public_key(self, path: str) -> "Credentials":
        if not os.path.exists(path):
            raise FileNotFoundError(f"Public key file does not exist: {path}")
        self.public_key_path = path
        return self

    def set_private_key(self, path: str, passphrase: Optional[str] = None) -> "Credentials":
        if not os.path.exists(path):
            raise FileNotFoundError(f"Private key file does not exist: {path}")
        self.private_key_path = path
        self.private_key_passphrase = passphrase
        return self

    @property
    def needs_password(self) -> bool:
        return self.mode in (AuthMode.PASSWORD, AuthMode.BOTH)

    @property
    def needs_keys(self) -> bool:
        return self.mode in (AuthMode.PUBLIC_KEY, AuthMode.BOTH)

    def validate(self) -> None:
        if self.username is None:
            raise ValidationError("Username not set")
        if self.mode is None:
            raise ValidationError("Authentication mode not set")
        if self.needs_password and self.password is None:
            raise ValidationError(f"Password required for {self.mode.name} mode")
        if self.needs_keys:
            if self.public_key_path is None:
                raise ValidationError(f"Public key required for {self.mode.name} mode")
            if self.private_key_path is None:
                raise ValidationError(f"Private key required for {self.mode.name} mode")

    def authorize(self, handle: Any, transport: Transport) -> bool:
        """Authenticate ``handle`` using this mode; True when the host accepts."""
        if not handle:
            raise InvalidHandleError("A connected transport handle is required")
        self.validate()
        # validate() guarantees both are set.
        username = cast(str, self.username)
        mode = cast(AuthMode, self.mode)

        logger.info("Authenticating %s using %s mode", username, mode.value)
        if mode is AuthMode.NONE:
            # Listing other allowed methods does not count as success.
            return transport.authenticate_none(handle, username) is True
        if mode is AuthMode.PASSWORD:
            return self._password_step(handle, transport)()
        if mode is AuthMode.PUBLIC_KEY:
            return self._public_key_step(handle, transport)()
        strategy = TryThenFallback(
            first=self._public_key_step(handle, transport),
            fallback=self._password_step(handle, transport),
            first_name="public key",
            fallback_name="password",
        )
        return strategy()

    def _password_step(self, handle: Any, transport: Transport):
        def step() -> bool:
            return transport.authenticate_password(handle, self.username, self.password)

        return step

    def _public_key_step(self, handle: Any, transport: Transport):
        def step() -> bool:
            return transport.authenticate_public_key(
                handle,
                self.username,
                self.public_key_path,
                self.private_key_path,
                self.private_key_passphrase,
            )

        return step
