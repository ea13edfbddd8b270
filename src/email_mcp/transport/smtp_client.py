"""SMTP client for sending emails with proper error handling and security."""

from __future__ import annotations

import logging
import smtplib
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from email.mime.text import MIMEText
from email.utils import formatdate, getaddresses, make_msgid

from ..core.config import SmtpSettings
from ..core.errors import SendError
from ..core.models import SendResult
from .tls import create_ssl_context

LOGGER = logging.getLogger(__name__)

Recipients = str | Sequence[str]
ConnectionFactory = Callable[[SmtpSettings, float], smtplib.SMTP]


@dataclass(frozen=True, slots=True)
class OutgoingEmail:
    """Outgoing email message representation.

    Attributes:
        to: Recipient address, or a list of them
        subject: Email subject line
        body: Email body content
        cc: Carbon-copy recipient(s)
        bcc: Blind carbon-copy recipient(s), never written to the headers
        reply_to: Address replies should go to
        html: Whether body contains HTML content
    """

    to: Recipients
    subject: str
    body: str
    cc: Recipients | None = None
    bcc: Recipients | None = None
    reply_to: str | None = None
    html: bool = False


def join_recipients(recipients: Recipients | None) -> str | None:
    """Render one address or a list of them as a header value."""
    if recipients is None:
        return None
    if isinstance(recipients, str):
        return recipients or None
    joined = ", ".join(address for address in recipients if address)
    return joined or None


def envelope_addresses(*headers: str | None) -> list[str]:
    """Extract bare addresses from header values, preserving order."""
    addresses: list[str] = []
    for _, address in getaddresses([header for header in headers if header]):
        if address and address not in addresses:
            addresses.append(address)
    return addresses


def open_smtp_connection(settings: SmtpSettings, timeout: float) -> smtplib.SMTP:
    """Open a socket to the relay using the configured security mode."""
    if settings.security == "ssl":
        LOGGER.debug("Using SSL for SMTP connection")
        return smtplib.SMTP_SSL(
            settings.host,
            settings.port,
            timeout=timeout,
            context=create_ssl_context(settings.verify_certificates),
        )

    connection = smtplib.SMTP(settings.host, settings.port, timeout=timeout)
    if settings.security == "starttls":
        LOGGER.debug("Using STARTTLS for SMTP connection")
        context = create_ssl_context(settings.verify_certificates)
        try:
            connection.starttls(context=context)
            connection.ehlo()
        except (smtplib.SMTPException, OSError):
            connection.close()
            raise
    else:
        LOGGER.debug("Using plaintext SMTP connection")
    return connection


class SmtpClient:
    """SMTP client for sending emails.

    Provides context manager interface for automatic connection management.
    Supports implicit SSL, STARTTLS, and plaintext connections.

    Example:
        >>> with SmtpClient(settings.smtp, sender="me@example.com") as client:
        ...     message = OutgoingEmail(to="user@example.com", ...)
        ...     client.send(message)
    """

    def __init__(
        self,
        settings: SmtpSettings,
        sender: str,
        *,
        timeout: float = 30.0,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        """Initialize SMTP client with configuration.

        Args:
            settings: SMTP configuration settings
            sender: Address written to the From header and used as envelope sender
            timeout: Socket timeout in seconds
            connection_factory: Override for opening the relay connection
        """
        self._settings = settings
        self._sender = sender
        self._timeout = timeout
        self._connection_factory = connection_factory or open_smtp_connection
        self._connection: smtplib.SMTP | None = None

    def __enter__(self) -> SmtpClient:
        """Enter context manager, establishing connection."""
        self.connect()
        return self

    def __exit__(self, *args: object) -> None:
        """Exit context manager, closing connection."""
        self.disconnect()

    def connect(self) -> None:
        """Establish SMTP connection and authenticate.

        Raises:
            SendError: If connection or authentication fails
        """
        LOGGER.info(
            "Attempting SMTP connection to %s:%d",
            self._settings.host,
            self._settings.port,
        )

        try:
            self._connection = self._connection_factory(self._settings, self._timeout)
        except smtplib.SMTPException as exc:
            LOGGER.error("SMTP connection failed: %s", exc)
            raise SendError(f"Failed to connect to SMTP server: {exc}") from exc
        except OSError as exc:
            LOGGER.error("Network error connecting to SMTP server: %s", exc)
            raise SendError(f"Network error: {exc}") from exc

        if not self._settings.requires_login:
            return
        try:
            LOGGER.debug("Authenticating as %s", self._settings.username)
            self._connection.login(self._settings.username, self._settings.password)
            LOGGER.info("SMTP authentication successful")
        except smtplib.SMTPAuthenticationError as exc:
            LOGGER.error("SMTP authentication failed: %s", exc)
            self.disconnect()
            raise SendError(f"SMTP authentication failed: {exc}") from exc
        except (smtplib.SMTPException, OSError) as exc:
            LOGGER.error("SMTP error during login: %s", exc)
            self.disconnect()
            raise SendError(f"SMTP error: {exc}") from exc

    def disconnect(self) -> None:
        """Close SMTP connection gracefully."""
        if self._connection is None:
            return
        connection = self._connection
        self._connection = None
        try:
            connection.quit()
            LOGGER.debug("SMTP connection closed")
        except (smtplib.SMTPException, OSError) as exc:
            LOGGER.warning("Error closing SMTP connection: %s", exc)
            connection.close()

    def send(self, message: OutgoingEmail) -> SendResult:
        """Send an email message.

        Partial acceptance is not an error: refused recipients are reported
        in :attr:`SendResult.rejected`.

        Raises:
            SendError: If not connected, or the relay refuses the sender,
                the data, or every recipient
        """
        if self._connection is None:
            raise SendError("Not connected to SMTP server")

        mime_message = self._build_mime_message(message)
        recipients = envelope_addresses(
            join_recipients(message.to),
            join_recipients(message.cc),
            join_recipients(message.bcc),
        )
        if not recipients:
            raise SendError("At least one recipient is required")

        LOGGER.info(
            "Sending email to %d recipient(s): %s", len(recipients), message.subject
        )
        try:
            refused = self._connection.send_message(
                mime_message, from_addr=self._sender, to_addrs=recipients
            )
        except smtplib.SMTPRecipientsRefused as exc:
            LOGGER.error("All recipients refused: %s", exc.recipients)
            raise SendError(f"All recipients refused: {exc.recipients}") from exc
        except smtplib.SMTPSenderRefused as exc:
            LOGGER.error("Sender refused: %s", exc)
            raise SendError(f"Sender refused: {exc}") from exc
        except smtplib.SMTPDataError as exc:
            LOGGER.error("SMTP data error: %s", exc)
            raise SendError(f"SMTP data error: {exc}") from exc
        except (smtplib.SMTPException, OSError) as exc:
            LOGGER.error("Failed to send email: %s", exc)
            raise SendError(f"Failed to send email: {exc}") from exc

        if refused:
            LOGGER.warning("Some recipients were refused: %s", refused)
        rejected = [address for address in recipients if address in refused]
        accepted = [address for address in recipients if address not in refused]
        message_id = str(mime_message["Message-ID"])
        LOGGER.info("Email %s accepted for %d recipient(s)", message_id, len(accepted))
        return SendResult(
            message_id=message_id,
            accepted=accepted,
            rejected=rejected,
        )

    def _build_mime_message(self, message: OutgoingEmail) -> MIMEText:
        """Build a single-part MIME message from an :class:`OutgoingEmail`."""
        subtype = "html" if message.html else "plain"
        mime_msg = MIMEText(message.body, subtype, "utf-8")

        mime_msg["From"] = self._sender
        mime_msg["To"] = join_recipients(message.to) or ""
        cc_header = join_recipients(message.cc)
        if cc_header:
            mime_msg["Cc"] = cc_header
        if message.reply_to:
            mime_msg["Reply-To"] = message.reply_to
        mime_msg["Subject"] = message.subject
        mime_msg["Date"] = formatdate(localtime=True)
        _, _, domain = self._sender.rpartition("@")
        mime_msg["Message-ID"] = make_msgid(domain=domain or None)

        LOGGER.debug(
            "Built %s message: From=%s, To=%s, Subject=%s",
            subtype,
            self._sender,
            mime_msg["To"],
            message.subject,
        )
        return mime_msg


__all__ = [
    "OutgoingEmail",
    "SmtpClient",
    "envelope_addresses",
    "join_recipients",
    "open_smtp_connection",
]
