"""Core utilities for configuration, logging, errors, and domain models."""

from .config import AppSettings, ImapSettings, SmtpSettings, load_app_settings
from .errors import (
    ConfigurationError,
    EmailMcpError,
    ImapError,
    MailConnectionError,
    NotFoundError,
    OperationError,
    SendError,
)
from .logging import configure_logging

__all__ = [
    "AppSettings",
    "ConfigurationError",
    "EmailMcpError",
    "ImapError",
    "ImapSettings",
    "MailConnectionError",
    "NotFoundError",
    "OperationError",
    "SendError",
    "SmtpSettings",
    "configure_logging",
    "load_app_settings",
]
