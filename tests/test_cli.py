"""Tests for the command-line entry point."""

from __future__ import annotations

from pathlib import Path

import pytest

from email_mcp import cli
from email_mcp.core.config import AppSettings

CONFIG_KEYS = [
    "EMAIL_ADDRESS",
    "EMAIL_PASSWORD",
    "EMAIL_USERNAME",
    "IMAP_HOST",
    "IMAP_PORT",
    "IMAP_SECURITY",
    "SMTP_HOST",
    "SMTP_PORT",
    "SMTP_SECURITY",
    "SSL_VERIFY",
]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in CONFIG_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_describe_settings_hides_password(app_settings: AppSettings) -> None:
    lines = cli.describe_settings(app_settings)

    assert lines == [
        "  Email: me@example.com",
        "  IMAP: imap.example.com:993 (ssl)",
        "  SMTP: smtp.example.com:465 (ssl)",
    ]
    assert not any("secret" in line for line in lines)


def test_info_command_prints_endpoints(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(
        "EMAIL_ADDRESS=me@example.com\n"
        "EMAIL_PASSWORD=secret\n"
        "IMAP_HOST=imap.example.com\n"
        "IMAP_SECURITY=starttls\n"
        "SMTP_HOST=smtp.example.com\n",
        encoding="utf-8",
    )

    cli.main(["--env-file", str(env_file), "info"])

    output = capsys.readouterr().out
    assert "IMAP: imap.example.com:143 (starttls)" in output
    assert "secret" not in output


def test_missing_configuration_exits_with_error(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--env-file", str(tmp_path / "missing.env"), "info"])

    assert excinfo.value.code == 1


def test_serve_runs_the_stdio_server(
    monkeypatch: pytest.MonkeyPatch, app_settings: AppSettings
) -> None:
    started: list[str] = []

    class FakeServer:
        def run(self) -> None:
            started.append("run")

    monkeypatch.setattr(cli, "create_server", lambda settings: FakeServer())
    monkeypatch.setattr(cli, "load_app_settings", lambda env_file: app_settings)

    cli.main([])

    assert started == ["run"]
