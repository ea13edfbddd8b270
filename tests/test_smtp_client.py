"""Tests for the SMTP relay client."""

from __future__ import annotations

import smtplib
from email.message import Message
from unittest.mock import ANY, MagicMock

import pytest

from email_mcp.core.config import SmtpSettings
from email_mcp.core.errors import SendError
from email_mcp.transport import smtp_client as smtp_module
from email_mcp.transport.smtp_client import (
    OutgoingEmail,
    SmtpClient,
    envelope_addresses,
    join_recipients,
    open_smtp_connection,
)

SETTINGS = SmtpSettings(
    host="smtp.test", security="ssl", username="me@example.com", password="pw"
)
SENDER = "me@example.com"


def _client(connection: MagicMock, settings: SmtpSettings = SETTINGS) -> SmtpClient:
    return SmtpClient(settings, SENDER, connection_factory=lambda *_: connection)


def _sent_message(connection: MagicMock) -> tuple[Message, list[str]]:
    call = connection.send_message.call_args
    return call.args[0], call.kwargs["to_addrs"]


def test_join_recipients_accepts_strings_and_lists() -> None:
    assert join_recipients("a@example.com") == "a@example.com"
    assert join_recipients(["a@example.com", "", "b@example.com"]) == (
        "a@example.com, b@example.com"
    )
    assert join_recipients([]) is None
    assert join_recipients("") is None
    assert join_recipients(None) is None


def test_envelope_addresses_strip_names_and_duplicates() -> None:
    assert envelope_addresses(
        "Ann <ann@example.com>, bob@example.com", None, "ann@example.com"
    ) == ["ann@example.com", "bob@example.com"]


def test_send_builds_headers_and_envelope() -> None:
    connection = MagicMock()
    connection.send_message.return_value = {}
    message = OutgoingEmail(
        to=["ann@example.com", "Bob <bob@example.com>"],
        subject="Quarterly numbers",
        body="<p>See attached</p>",
        cc="carol@example.com",
        bcc=["hidden@example.com"],
        reply_to="replies@example.com",
        html=True,
    )

    with _client(connection) as client:
        result = client.send(message)

    connection.login.assert_called_once_with("me@example.com", "pw")
    connection.quit.assert_called_once_with()
    mime, recipients = _sent_message(connection)
    assert connection.send_message.call_args.kwargs["from_addr"] == SENDER
    assert recipients == [
        "ann@example.com",
        "bob@example.com",
        "carol@example.com",
        "hidden@example.com",
    ]
    assert mime["From"] == SENDER
    assert mime["To"] == "ann@example.com, Bob <bob@example.com>"
    assert mime["Cc"] == "carol@example.com"
    assert mime["Bcc"] is None
    assert mime["Reply-To"] == "replies@example.com"
    assert mime["Subject"] == "Quarterly numbers"
    assert mime["Date"]
    assert mime.get_content_type() == "text/html"
    assert mime.get_content_charset() == "utf-8"
    assert mime["Message-ID"].endswith("@example.com>")
    assert result.to_dict() == {
        "messageId": mime["Message-ID"],
        "accepted": recipients,
        "rejected": [],
    }


def test_plain_text_is_default() -> None:
    connection = MagicMock()
    connection.send_message.return_value = {}

    with _client(connection) as client:
        client.send(OutgoingEmail(to="ann@example.com", subject="Hi", body="Hello"))

    mime, recipients = _sent_message(connection)
    assert mime.get_content_type() == "text/plain"
    assert mime["Cc"] is None
    assert mime["Reply-To"] is None
    assert recipients == ["ann@example.com"]


def test_partially_refused_recipients_are_reported() -> None:
    connection = MagicMock()
    connection.send_message.return_value = {"bad@example.com": (550, b"No such user")}

    with _client(connection) as client:
        result = client.send(
            OutgoingEmail(
                to=["ann@example.com", "bad@example.com"], subject="Hi", body="Hello"
            )
        )

    assert result.accepted == ["ann@example.com"]
    assert result.rejected == ["bad@example.com"]


def test_all_recipients_refused_raises() -> None:
    connection = MagicMock()
    connection.send_message.side_effect = smtplib.SMTPRecipientsRefused(
        {"bad@example.com": (550, b"No such user")}
    )

    with _client(connection) as client:
        with pytest.raises(SendError, match="All recipients refused"):
            client.send(OutgoingEmail(to="bad@example.com", subject="Hi", body="x"))


def test_sender_refused_raises() -> None:
    connection = MagicMock()
    connection.send_message.side_effect = smtplib.SMTPSenderRefused(
        553, b"Sender not allowed", SENDER
    )

    with _client(connection) as client:
        with pytest.raises(SendError, match="Sender refused"):
            client.send(OutgoingEmail(to="ann@example.com", subject="Hi", body="x"))


def test_missing_recipients_are_rejected_before_sending() -> None:
    connection = MagicMock()

    with _client(connection) as client:
        with pytest.raises(SendError, match="recipient"):
            client.send(OutgoingEmail(to=[], subject="Hi", body="x"))

    connection.send_message.assert_not_called()


def test_send_requires_connection() -> None:
    client = _client(MagicMock())

    with pytest.raises(SendError, match="Not connected"):
        client.send(OutgoingEmail(to="ann@example.com", subject="Hi", body="x"))


def test_authentication_failure_disconnects() -> None:
    connection = MagicMock()
    connection.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad creds")

    with pytest.raises(SendError, match="authentication failed"):
        _client(connection).connect()

    connection.quit.assert_called_once_with()


def test_plaintext_relay_without_password_skips_login() -> None:
    settings = SmtpSettings(host="smtp.test", security="none")
    connection = MagicMock()

    with _client(connection, settings):
        pass

    connection.login.assert_not_called()


def test_connection_error_is_wrapped() -> None:
    def refuse(*_: object) -> MagicMock:
        raise ConnectionRefusedError("connection refused")

    client = SmtpClient(SETTINGS, SENDER, connection_factory=refuse)

    with pytest.raises(SendError, match="Network error"):
        client.connect()


def test_quit_failure_falls_back_to_close() -> None:
    connection = MagicMock()
    connection.quit.side_effect = smtplib.SMTPServerDisconnected("gone")

    with _client(connection):
        pass

    connection.close.assert_called_once_with()


def test_open_connection_with_implicit_tls(monkeypatch: pytest.MonkeyPatch) -> None:
    smtp_ssl = MagicMock()
    monkeypatch.setattr(smtp_module.smtplib, "SMTP_SSL", smtp_ssl)

    connection = open_smtp_connection(SETTINGS, 15.0)

    smtp_ssl.assert_called_once_with("smtp.test", 465, timeout=15.0, context=ANY)
    assert connection is smtp_ssl.return_value


def test_open_connection_with_starttls(monkeypatch: pytest.MonkeyPatch) -> None:
    smtp = MagicMock()
    monkeypatch.setattr(smtp_module.smtplib, "SMTP", smtp)
    settings = SmtpSettings(host="smtp.test", security="starttls", password="pw")

    connection = open_smtp_connection(settings, 15.0)

    smtp.assert_called_once_with("smtp.test", 587, timeout=15.0)
    connection.starttls.assert_called_once_with(context=ANY)
    connection.ehlo.assert_called_once_with()


def test_open_plaintext_connection(monkeypatch: pytest.MonkeyPatch) -> None:
    smtp = MagicMock()
    monkeypatch.setattr(smtp_module.smtplib, "SMTP", smtp)
    settings = SmtpSettings(host="smtp.test", security="none")

    connection = open_smtp_connection(settings, 15.0)

    smtp.assert_called_once_with("smtp.test", 25, timeout=15.0)
    connection.starttls.assert_not_called()
