"""Email MCP bridge: IMAP mailbox access and SMTP sending as MCP tools."""

__version__ = "0.1.0"
