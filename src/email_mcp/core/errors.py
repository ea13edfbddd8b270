"""Exception hierarchy shared by the transport and tool layers."""

from __future__ import annotations


class EmailMcpError(RuntimeError):
    """Base class for every error surfaced to tool callers."""


class ConfigurationError(EmailMcpError):
    """Raised when startup settings are missing or invalid."""


class ImapError(EmailMcpError):
    """Wrap low level IMAP errors with additional context."""


class MailConnectionError(ImapError):
    """Raised when a session cannot be established (network, TLS, auth)."""


class NotFoundError(ImapError):
    """Raised when a UID does not resolve in the selected mailbox."""


class OperationError(ImapError):
    """Raised when the server confirms an action did not take effect."""


class SendError(EmailMcpError):
    """Raised when the relay rejects the connection, sender, or all recipients."""


__all__ = [
    "ConfigurationError",
    "EmailMcpError",
    "ImapError",
    "MailConnectionError",
    "NotFoundError",
    "OperationError",
    "SendError",
]
