"""Configuration loading utilities for ssh-transfer."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .ssh.auth import AuthMode
from .ssh.credentials import Credentials
from .ssh.errors import ConfigError
from .ssh.transfer import ShortReadPolicy

# Load .env file if it exists
load_dotenv()

_DEFAULT_CONFIG_PATH = Path("config/ssh_transfer.json")

_TRUE_VALUES = ("1", "true", "yes", "on")


@dataclass
class ConnectionConfig:
    """Where to connect and how to authenticate."""

    host: Optional[str] = None
    port: int = 22
    username: Optional[str] = None
    auth_mode: str = AuthMode.PASSWORD.value
    password: Optional[str] = None
    public_key_path: Optional[str] = None
    private_key_path: Optional[str] = None
    passphrase: Optional[str] = None
    timeout: Optional[float] = 20.0

    def to_credentials(self) -> Credentials:
        """Build credentials for ``auth_mode``; key paths must exist."""
        try:
            mode = AuthMode(self.auth_mode)
        except ValueError as exc:
            raise ConfigError(f"Unknown auth_mode: {self.auth_mode!r}") from exc
        if not self.username:
            raise ConfigError("connection.username is required")

        if mode is AuthMode.PASSWORD:
            return Credentials.with_password(self.username, self.password)
        if mode is AuthMode.PUBLIC_KEY:
            return Credentials.with_public_key(
                self.username,
                self._required("public_key_path"),
                self._required("private_key_path"),
                self.passphrase,
            )
        if mode is AuthMode.BOTH:
            return Credentials.with_both(
                self.username,
                self.password,
                self._required("public_key_path"),
                self._required("private_key_path"),
                self.passphrase,
            )
        return Credentials().set_mode(AuthMode.NONE).set_username(self.username)

    def _required(self, name: str) -> str:
        value = getattr(self, name)
        if not value:
            raise ConfigError(f"connection.{name} is required for {self.auth_mode} mode")
        return value


@dataclass
class TransferConfig:
    """Settings for the transfer engine."""

    verify_size: bool = False
    local_prefix: str = ""
    remote_prefix: str = ""
    short_read: str = ShortReadPolicy.RAISE.value


@dataclass
class AppConfig:
    """Top-level configuration."""

    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    transfer: TransferConfig = field(default_factory=TransferConfig)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        connection_payload = _strip_comments(payload.get("connection", {}) or {})
        transfer_payload = _strip_comments(payload.get("transfer", {}) or {})
        try:
            return cls(
                connection=ConnectionConfig(
                    **{**ConnectionConfig().__dict__, **connection_payload}
                ),
                transfer=TransferConfig(**{**TransferConfig().__dict__, **transfer_payload}),
            )
        except TypeError as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc


def _strip_comments(payload: Dict[str, Any]) -> Dict[str, Any]:
    # Keys starting with "_" are comments.
    return {k: v for k, v in payload.items() if not k.startswith("_")}


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from `path` or the default location.

    Environment variables (higher priority than config file):
    - SSH_TRANSFER_HOST / SSH_TRANSFER_PORT: Remote host and port
    - SSH_TRANSFER_USERNAME: Login name
    - SSH_TRANSFER_AUTH_MODE: none | password | public_key | both
    - SSH_TRANSFER_PASSWORD: Password (selects password mode unless a mode is set
      in the file or by SSH_TRANSFER_AUTH_MODE)
    - SSH_TRANSFER_PUBLIC_KEY_PATH / SSH_TRANSFER_PRIVATE_KEY_PATH: Key pair
    - SSH_TRANSFER_PASSPHRASE: Private key passphrase
    - SSH_TRANSFER_TIMEOUT: Transport timeout in seconds
    - SSH_TRANSFER_VERIFY_SIZE: Enable post-transfer size verification
    """

    candidate_paths = []
    if path:
        candidate_paths.append(Path(path))
    candidate_paths.append(_DEFAULT_CONFIG_PATH)

    for candidate in candidate_paths:
        if candidate.is_file():
            with candidate.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
            config = AppConfig.from_dict(data)
            mode_in_file = "auth_mode" in (data.get("connection") or {})
            _apply_environment(config, infer_auth_mode=not mode_in_file)
            return config

    raise FileNotFoundError(
        f"Could not find configuration file. Looked in: {', '.join(str(p) for p in candidate_paths)}"
    )


def _apply_environment(config: AppConfig, infer_auth_mode: bool = True) -> None:
    connection = config.connection

    env_host = os.getenv("SSH_TRANSFER_HOST")
    if env_host:
        connection.host = env_host

    env_port = os.getenv("SSH_TRANSFER_PORT")
    if env_port:
        connection.port = int(env_port)

    env_username = os.getenv("SSH_TRANSFER_USERNAME")
    if env_username:
        connection.username = env_username

    env_password = os.getenv("SSH_TRANSFER_PASSWORD")
    if env_password:
        connection.password = env_password
        if infer_auth_mode:
            connection.auth_mode = AuthMode.PASSWORD.value

    env_public_key = os.getenv("SSH_TRANSFER_PUBLIC_KEY_PATH")
    if env_public_key:
        connection.public_key_path = env_public_key

    env_private_key = os.getenv("SSH_TRANSFER_PRIVATE_KEY_PATH")
    if env_private_key:
        connection.private_key_path = env_private_key
        if infer_auth_mode:
            connection.auth_mode = AuthMode.PUBLIC_KEY.value

    env_passphrase = os.getenv("SSH_TRANSFER_PASSPHRASE")
    if env_passphrase:
        connection.passphrase = env_passphrase

    # An explicit mode wins over the file and the ones implied above.
    env_mode = os.getenv("SSH_TRANSFER_AUTH_MODE")
    if env_mode:
        connection.auth_mode = env_mode.lower()

    env_timeout = os.getenv("SSH_TRANSFER_TIMEOUT")
    if env_timeout:
        connection.timeout = float(env_timeout)

    env_verify = os.getenv("SSH_TRANSFER_VERIFY_SIZE")
    if env_verify:
        config.transfer.verify_size = env_verify.lower() in _TRUE_VALUES
