"""MCP server exposing the email tools over stdio."""

# pylint: disable=invalid-name

from __future__ import annotations

from typing import Annotated

from mcp.server.fastmcp import FastMCP
from pydantic import Field

from .core.config import AppSettings
from .core.models import SearchCriteria
from .tools import DEFAULT_MAILBOX, EmailTools, run_tool

SERVER_NAME = "email-mcp"

Mailbox = Annotated[str, Field(description="Mailbox path")]
Uid = Annotated[int, Field(description="Email UID")]
AddressList = str | list[str]


def create_server(settings: AppSettings, tools: EmailTools | None = None) -> FastMCP:
    """Build the FastMCP server with every tool registered."""
    email_tools = tools or EmailTools(settings)
    server = FastMCP(SERVER_NAME)

    @server.tool(description="List available mailboxes/folders")
    def list_mailboxes() -> str:
        return run_tool("list_mailboxes", email_tools.list_mailboxes)

    @server.tool(description="List emails in a mailbox with pagination (newest first)")
    def list_emails(
        mailbox: Mailbox = DEFAULT_MAILBOX,
        page: Annotated[int, Field(ge=1, description="Page number")] = 1,
        pageSize: Annotated[
            int, Field(ge=1, le=100, description="Emails per page")
        ] = 20,
    ) -> str:
        return run_tool(
            "list_emails",
            lambda: email_tools.list_emails(mailbox, page=page, page_size=pageSize),
        )

    @server.tool(
        description="Fetch a single email by UID with full body and attachment info"
    )
    def fetch_email(uid: Uid, mailbox: Mailbox = DEFAULT_MAILBOX) -> str:
        return run_tool(
            "fetch_email", lambda: email_tools.fetch_email(uid, mailbox=mailbox)
        )

    @server.tool(description="Search emails by various criteria")
    def search_emails(
        mailbox: Mailbox = DEFAULT_MAILBOX,
        from_: Annotated[
            str | None, Field(description="From address to match")
        ] = None,
        to: Annotated[str | None, Field(description="To address to match")] = None,
        subject: Annotated[str | None, Field(description="Subject to match")] = None,
        since: Annotated[
            str | None, Field(description="Messages since date (ISO format)")
        ] = None,
        before: Annotated[
            str | None, Field(description="Messages before date (ISO format)")
        ] = None,
        body: Annotated[str | None, Field(description="Body text to match")] = None,
        seen: Annotated[
            bool | None, Field(description="Filter by read/unread status")
        ] = None,
        limit: Annotated[int, Field(ge=1, le=200, description="Max results")] = 50,
    ) -> str:
        criteria = SearchCriteria(
            from_=from_,
            to=to,
            subject=subject,
            since=since,
            before=before,
            body=body,
            seen=seen,
        )
        return run_tool(
            "search_emails",
            lambda: email_tools.search_emails(criteria, mailbox=mailbox, limit=limit),
        )

    @server.tool(description="Send an email via SMTP")
    def send_email(
        to: Annotated[AddressList, Field(description="Recipient(s)")],
        subject: Annotated[str, Field(description="Email subject")],
        body: Annotated[str, Field(description="Email body")],
        cc: Annotated[AddressList | None, Field(description="CC recipient(s)")] = None,
        bcc: Annotated[
            AddressList | None, Field(description="BCC recipient(s)")
        ] = None,
        replyTo: Annotated[str | None, Field(description="Reply-To address")] = None,
        isHtml: Annotated[bool, Field(description="Whether body is HTML")] = False,
    ) -> str:
        return run_tool(
            "send_email",
            lambda: email_tools.send_email(
                to,
                subject,
                body,
                cc=cc,
                bcc=bcc,
                reply_to=replyTo,
                is_html=isHtml,
            ),
        )

    @server.tool(
        description="Move an email to another mailbox/folder (e.g. archive, junk, sent)"
    )
    def move_email(
        uid: Annotated[int, Field(description="Email UID to move")],
        destination: Annotated[
            str,
            Field(description="Destination mailbox path (e.g. Archive, Junk, Trash)"),
        ],
        mailbox: Annotated[
            str, Field(description="Source mailbox path")
        ] = DEFAULT_MAILBOX,
    ) -> str:
        return run_tool(
            "move_email",
            lambda: email_tools.move_email(uid, destination, mailbox=mailbox),
        )

    @server.tool(
        description="Permanently delete an email (sets \\Deleted flag and expunges)"
    )
    def delete_email(
        uid: Annotated[int, Field(description="Email UID to delete")],
        mailbox: Mailbox = DEFAULT_MAILBOX,
    ) -> str:
        return run_tool(
            "delete_email", lambda: email_tools.delete_email(uid, mailbox=mailbox)
        )

    return server


__all__ = ["SERVER_NAME", "create_server"]
