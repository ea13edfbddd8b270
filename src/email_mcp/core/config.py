"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, ClassVar, Literal, cast

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ConfigurationError

SecurityMode = Literal["ssl", "starttls", "none"]


class ConnectionSettings(BaseModel):
    """Host, port, transport security, and credentials for one protocol."""

    model_config = ConfigDict(frozen=True)

    DEFAULT_PORTS: ClassVar[dict[str, int]] = {}

    host: str = Field(description="Server hostname")
    security: SecurityMode = Field(
        default="ssl", description="Implicit TLS, STARTTLS upgrade, or plaintext"
    )
    port: int = Field(gt=0, lt=65536, description="Server port")
    verify_certificates: bool = Field(
        default=True, description="Validate the server certificate chain"
    )
    username: str = Field(default="", description="Login username")
    password: str = Field(default="", repr=False, description="Login password")

    @model_validator(mode="before")
    @classmethod
    def _apply_default_port(cls, data: Any) -> Any:
        """Infer the port from the security mode when none was supplied."""
        if not isinstance(data, dict):
            return data
        if data.get("port") is not None:
            return data
        security = data.get("security") or "ssl"
        default_port = cls.DEFAULT_PORTS.get(security)
        if default_port is None:
            return data
        return {**data, "port": default_port}

    @property
    def requires_login(self) -> bool:
        """Whether the session must authenticate before use."""
        return bool(self.password) or self.security != "none"


class ImapSettings(ConnectionSettings):
    """Settings controlling IMAP connectivity."""

    DEFAULT_PORTS: ClassVar[dict[str, int]] = {"ssl": 993, "starttls": 143, "none": 143}


class SmtpSettings(ConnectionSettings):
    """Settings controlling SMTP connectivity."""

    DEFAULT_PORTS: ClassVar[dict[str, int]] = {"ssl": 465, "starttls": 587, "none": 25}


class AccountSettings(BaseModel):
    """Identity of the mail account."""

    model_config = ConfigDict(frozen=True)

    address: str = Field(description="Address used as the sender of outgoing mail")


class NetworkSettings(BaseModel):
    """Transport-level tuning shared by both protocols."""

    model_config = ConfigDict(frozen=True)

    timeout_seconds: float = Field(
        default=30.0, gt=0, description="Socket timeout for server round trips"
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    model_config = ConfigDict(frozen=True)

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle key=value structured logging"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    model_config = ConfigDict(frozen=True)

    account: AccountSettings
    imap: ImapSettings
    smtp: SmtpSettings
    network: NetworkSettings = Field(default_factory=NetworkSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


ENV_PREFIX = "EMAIL_MCP_"

ACCOUNT_KEYS = ("EMAIL_ADDRESS", "EMAIL_USERNAME", "EMAIL_PASSWORD", "SSL_VERIFY")
IMAP_KEYS = ("IMAP_HOST", "IMAP_PORT", "IMAP_SECURITY")
SMTP_KEYS = ("SMTP_HOST", "SMTP_PORT", "SMTP_SECURITY")
REQUIRED_KEYS = ("EMAIL_ADDRESS", "IMAP_HOST", "SMTP_HOST")
BOOLEAN_KEYS = frozenset({"SSL_VERIFY"})

# Maps a validation error location back to the variable an operator sets.
_FIELD_TO_ENV = {
    ("account", "address"): "EMAIL_ADDRESS",
    ("imap", "host"): "IMAP_HOST",
    ("imap", "port"): "IMAP_PORT",
    ("imap", "security"): "IMAP_SECURITY",
    ("imap", "username"): "EMAIL_USERNAME",
    ("imap", "password"): "EMAIL_PASSWORD",
    ("smtp", "host"): "SMTP_HOST",
    ("smtp", "port"): "SMTP_PORT",
    ("smtp", "security"): "SMTP_SECURITY",
    ("smtp", "username"): "EMAIL_USERNAME",
    ("smtp", "password"): "EMAIL_PASSWORD",
}


def _normalize_key(raw_key: str) -> list[str]:
    """Convert a prefixed environment key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _normalize_value(key: str, value: str | None) -> Any:
    """Map empty strings to ``None`` and switch literals to ``bool``.

    Only ``SSL_VERIFY`` and prefixed keys are switches; credentials and hosts
    stay strings.
    """
    if value is None or value == "":
        return None
    if key not in BOOLEAN_KEYS and not key.startswith(ENV_PREFIX):
        return value
    lowercase_value = value.lower()
    if lowercase_value == "true":
        return True
    if lowercase_value == "false":
        return False
    return value


def _read_sources(
    env_file: Path | str | None, environ: Mapping[str, str] | None
) -> dict[str, Any]:
    """Combine values from an optional dotenv file and the environment."""
    known_keys = {*ACCOUNT_KEYS, *IMAP_KEYS, *SMTP_KEYS}

    def wanted(key: str | None) -> bool:
        return bool(key) and (key in known_keys or key.startswith(ENV_PREFIX))

    file_values: dict[str, str | None] = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if wanted(key)
            }

    source = os.environ if environ is None else environ
    env_values = {key: value for key, value in source.items() if wanted(key)}

    combined: dict[str, str | None] = {**file_values, **env_values}
    return {key: _normalize_value(key, value) for key, value in combined.items()}


def _connection_tree(
    values: Mapping[str, Any], prefix: str, username: Any, password: Any
) -> dict[str, Any]:
    """Build the raw settings dictionary for one protocol."""
    security = values.get(f"{prefix}_SECURITY", "ssl")
    if isinstance(security, str):
        security = security.lower()
    tree: dict[str, Any] = {
        "host": values.get(f"{prefix}_HOST"),
        "port": values.get(f"{prefix}_PORT"),
        "security": "ssl" if security is None else security,
        "verify_certificates": values.get("SSL_VERIFY") is not False,
        "username": username or "",
        "password": password or "",
    }
    return tree


def _build_tree(values: Mapping[str, Any]) -> dict[str, Any]:
    """Translate flat environment values into the nested settings layout."""
    for key in REQUIRED_KEYS:
        if not values.get(key):
            raise ConfigurationError(f"{key} is required")

    address = values["EMAIL_ADDRESS"]
    username = values.get("EMAIL_USERNAME") or address
    password = values.get("EMAIL_PASSWORD")

    tree: dict[str, Any] = {
        "account": {"address": address},
        "imap": _connection_tree(values, "IMAP", username, password),
        "smtp": _connection_tree(values, "SMTP", username, password),
    }
    for key, value in values.items():
        if not key.startswith(ENV_PREFIX):
            continue
        path = _normalize_key(key)
        if path and value is not None:
            _merge_into_tree(tree, path, value)
    return tree


def _describe_validation_error(exc: ValidationError) -> str:
    """Render the first validation failure using environment variable names."""
    error = exc.errors()[0]
    location = tuple(str(part) for part in error.get("loc", ()))
    field = _FIELD_TO_ENV.get(location[:2]) or ENV_PREFIX + "__".join(
        part.upper() for part in location
    )
    return f"{field}: {error.get('msg', 'invalid value')}"


def _check_credentials(settings: AppSettings) -> None:
    """Refuse to start without a password when any transport is secured."""
    if settings.imap.password:
        return
    if settings.imap.security != "none":
        raise ConfigurationError(
            "EMAIL_PASSWORD is required when IMAP_SECURITY is not 'none'"
        )
    if settings.smtp.security != "none":
        raise ConfigurationError(
            "EMAIL_PASSWORD is required when SMTP_SECURITY is not 'none'"
        )


def load_app_settings(
    env_file: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppSettings:
    """Resolve application settings from the environment and an optional file.

    Raises:
        ConfigurationError: If a required value is missing or malformed.
    """
    values = _read_sources(env_file, environ)
    tree = _build_tree(values)
    try:
        settings = AppSettings.model_validate(tree)
    except ValidationError as exc:
        raise ConfigurationError(_describe_validation_error(exc)) from exc
    _check_credentials(settings)
    return settings


__all__ = [
    "AccountSettings",
    "AppSettings",
    "ConnectionSettings",
    "ImapSettings",
    "LoggingSettings",
    "NetworkSettings",
    "SecurityMode",
    "SmtpSettings",
    "load_app_settings",
]
