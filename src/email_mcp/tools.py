"""Operation boundary between MCP tool calls and the mail transports.

Every operation opens its own session, runs to completion, and releases the
session before returning. Results are plain JSON-ready dictionaries; errors
from the transports are turned into tool errors by :func:`run_tool`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from typing import Any

from mcp.server.fastmcp.exceptions import ToolError

from .core.config import AppSettings
from .core.errors import EmailMcpError
from .core.models import SearchCriteria
from .transport.imap_client import ConnectionFactory as ImapConnectionFactory
from .transport.imap_client import ImapClient
from .transport.smtp_client import ConnectionFactory as SmtpConnectionFactory
from .transport.smtp_client import OutgoingEmail, SmtpClient

LOGGER = logging.getLogger(__name__)

DEFAULT_MAILBOX = "INBOX"


class EmailTools:
    """The tool operations, bound to one immutable settings object."""

    def __init__(
        self,
        settings: AppSettings,
        *,
        imap_factory: ImapConnectionFactory | None = None,
        smtp_factory: SmtpConnectionFactory | None = None,
    ) -> None:
        self._settings = settings
        self._imap_factory = imap_factory
        self._smtp_factory = smtp_factory

    def list_mailboxes(self) -> list[dict[str, Any]]:
        """Return every mailbox visible to the account."""
        with self._imap() as client:
            mailboxes = client.list_mailboxes()
        return [mailbox.to_dict() for mailbox in mailboxes]

    def list_emails(
        self, mailbox: str = DEFAULT_MAILBOX, page: int = 1, page_size: int = 20
    ) -> dict[str, Any]:
        """Return one newest-first page of message summaries."""
        with self._imap() as client:
            result = client.list_emails(mailbox, page=page, page_size=page_size)
        return result.to_dict()

    def fetch_email(self, uid: int, mailbox: str = DEFAULT_MAILBOX) -> dict[str, Any]:
        """Return a message with decoded bodies and attachment metadata."""
        with self._imap() as client:
            detail = client.fetch_email(mailbox, uid)
        return detail.to_dict()

    def search_emails(
        self,
        criteria: SearchCriteria,
        mailbox: str = DEFAULT_MAILBOX,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Return the most recent messages matching ``criteria``."""
        with self._imap() as client:
            summaries = client.search_emails(mailbox, criteria, limit=limit)
        return [summary.to_dict() for summary in summaries]

    def move_email(
        self, uid: int, destination: str, mailbox: str = DEFAULT_MAILBOX
    ) -> dict[str, Any]:
        """Move a message to ``destination``."""
        with self._imap() as client:
            result = client.move_email(mailbox, uid, destination)
        return result.to_dict()

    def delete_email(self, uid: int, mailbox: str = DEFAULT_MAILBOX) -> dict[str, Any]:
        """Permanently remove a message."""
        with self._imap() as client:
            result = client.delete_email(mailbox, uid)
        return result.to_dict()

    def send_email(
        self,
        to: str | Sequence[str],
        subject: str,
        body: str,
        *,
        cc: str | Sequence[str] | None = None,
        bcc: str | Sequence[str] | None = None,
        reply_to: str | None = None,
        is_html: bool = False,
    ) -> dict[str, Any]:
        """Send a message from the account address through the relay."""
        message = OutgoingEmail(
            to=to,
            subject=subject,
            body=body,
            cc=cc,
            bcc=bcc,
            reply_to=reply_to,
            html=is_html,
        )
        with SmtpClient(
            self._settings.smtp,
            sender=self._settings.account.address,
            timeout=self._settings.network.timeout_seconds,
            connection_factory=self._smtp_factory,
        ) as client:
            result = client.send(message)
        return result.to_dict()

    def _imap(self) -> ImapClient:
        return ImapClient(
            self._settings.imap,
            timeout=self._settings.network.timeout_seconds,
            connection_factory=self._imap_factory,
        )


def render_result(payload: Any) -> str:
    """Serialise a tool result the way clients display it."""
    return json.dumps(payload, indent=2, ensure_ascii=False)


def run_tool(name: str, operation: Callable[[], Any]) -> str:
    """Execute ``operation`` and render its result, or raise a tool error.

    Domain and validation failures become a :class:`ToolError` carrying the
    original message; anything else is a bug and propagates unchanged.
    """
    LOGGER.debug("Running tool %s", name)
    try:
        payload = operation()
    except (EmailMcpError, ValueError) as exc:
        LOGGER.warning("Tool %s failed: %s", name, exc)
        raise ToolError(str(exc)) from exc
    return render_result(payload)


__all__ = ["DEFAULT_MAILBOX", "EmailTools", "render_result", "run_tool"]
