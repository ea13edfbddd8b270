"""Transport adapters for the mail store and the relay."""

from .imap_client import ImapClient, ImapError
from .smtp_client import OutgoingEmail, SmtpClient

__all__ = ["ImapClient", "ImapError", "OutgoingEmail", "SmtpClient"]
