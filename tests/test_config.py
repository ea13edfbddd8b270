"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from email_mcp.core.config import ImapSettings, SmtpSettings, load_app_settings
from email_mcp.core.errors import ConfigurationError

BASE_ENV = {
    "EMAIL_ADDRESS": "me@example.com",
    "EMAIL_PASSWORD": "secret",
    "IMAP_HOST": "imap.example.com",
    "SMTP_HOST": "smtp.example.com",
}


def test_defaults_use_implicit_tls() -> None:
    """Unset security modes fall back to ssl with the implicit TLS ports."""

    settings = load_app_settings(environ=BASE_ENV)

    assert settings.imap.security == "ssl"
    assert settings.imap.port == 993
    assert settings.smtp.security == "ssl"
    assert settings.smtp.port == 465
    assert settings.imap.verify_certificates is True
    assert settings.imap.username == "me@example.com"
    assert settings.smtp.password == "secret"
    assert settings.account.address == "me@example.com"
    assert settings.network.timeout_seconds == 30.0


@pytest.mark.parametrize(
    ("security", "imap_port", "smtp_port"),
    [
        ("ssl", 993, 465),
        ("starttls", 143, 587),
        ("none", 143, 25),
    ],
)
def test_default_port_table(security: str, imap_port: int, smtp_port: int) -> None:
    env = {**BASE_ENV, "IMAP_SECURITY": security, "SMTP_SECURITY": security}

    settings = load_app_settings(environ=env)

    assert settings.imap.port == imap_port
    assert settings.smtp.port == smtp_port


def test_starttls_is_not_promoted_to_ssl_port() -> None:
    settings = load_app_settings(environ={**BASE_ENV, "IMAP_SECURITY": "starttls"})

    assert settings.imap.security == "starttls"
    assert settings.imap.port == 143
    assert settings.smtp.port == 465


def test_explicit_port_wins() -> None:
    env = {**BASE_ENV, "IMAP_PORT": "1993", "SMTP_PORT": "2525"}

    settings = load_app_settings(environ=env)

    assert settings.imap.port == 1993
    assert settings.smtp.port == 2525


def test_security_value_is_case_insensitive() -> None:
    settings = load_app_settings(environ={**BASE_ENV, "SMTP_SECURITY": "STARTTLS"})

    assert settings.smtp.security == "starttls"
    assert settings.smtp.port == 587


def test_ssl_verify_can_be_disabled() -> None:
    settings = load_app_settings(environ={**BASE_ENV, "SSL_VERIFY": "false"})

    assert settings.imap.verify_certificates is False
    assert settings.smtp.verify_certificates is False


def test_username_overrides_address_for_login() -> None:
    settings = load_app_settings(environ={**BASE_ENV, "EMAIL_USERNAME": "login-name"})

    assert settings.imap.username == "login-name"
    assert settings.smtp.username == "login-name"
    assert settings.account.address == "me@example.com"


@pytest.mark.parametrize("missing", ["EMAIL_ADDRESS", "IMAP_HOST", "SMTP_HOST"])
def test_missing_required_value_is_fatal(missing: str) -> None:
    env = {key: value for key, value in BASE_ENV.items() if key != missing}

    with pytest.raises(ConfigurationError, match=missing):
        load_app_settings(environ=env)


def test_empty_required_value_counts_as_missing() -> None:
    with pytest.raises(ConfigurationError, match="IMAP_HOST"):
        load_app_settings(environ={**BASE_ENV, "IMAP_HOST": ""})


def test_password_required_when_any_mode_is_secured() -> None:
    env = {key: value for key, value in BASE_ENV.items() if key != "EMAIL_PASSWORD"}
    env["IMAP_SECURITY"] = "none"

    with pytest.raises(ConfigurationError, match="SMTP_SECURITY"):
        load_app_settings(environ=env)


def test_password_optional_when_both_modes_are_plaintext() -> None:
    env = {key: value for key, value in BASE_ENV.items() if key != "EMAIL_PASSWORD"}
    env.update({"IMAP_SECURITY": "none", "SMTP_SECURITY": "none"})

    settings = load_app_settings(environ=env)

    assert settings.imap.password == ""
    assert settings.imap.requires_login is False
    assert settings.smtp.requires_login is False


def test_invalid_security_mode_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="IMAP_SECURITY"):
        load_app_settings(environ={**BASE_ENV, "IMAP_SECURITY": "tls"})


def test_non_numeric_port_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="SMTP_PORT"):
        load_app_settings(environ={**BASE_ENV, "SMTP_PORT": "submission"})


def test_env_file_values(tmp_path: Path) -> None:
    """Values defined in an env file are used when the environment is silent."""

    env_file = tmp_path / "test.env"
    env_file.write_text(
        "\n".join(f"{key}={value}" for key, value in BASE_ENV.items()) + "\n",
        encoding="utf-8",
    )

    settings = load_app_settings(env_file=env_file, environ={})

    assert settings.imap.host == "imap.example.com"


def test_environment_overrides_env_file(tmp_path: Path) -> None:
    env_file = tmp_path / "test.env"
    env_file.write_text(
        "\n".join(f"{key}={value}" for key, value in BASE_ENV.items()) + "\n",
        encoding="utf-8",
    )

    settings = load_app_settings(
        env_file=env_file, environ={"IMAP_HOST": "imap.override.test"}
    )

    assert settings.imap.host == "imap.override.test"
    assert settings.smtp.host == "smtp.example.com"


def test_prefixed_ambient_settings() -> None:
    env = {
        **BASE_ENV,
        "EMAIL_MCP_LOGGING__LEVEL": "DEBUG",
        "EMAIL_MCP_LOGGING__STRUCTURED": "true",
        "EMAIL_MCP_NETWORK__TIMEOUT_SECONDS": "5",
    }

    settings = load_app_settings(environ=env)

    assert settings.logging.level == "DEBUG"
    assert settings.logging.structured is True
    assert settings.network.timeout_seconds == 5.0


def test_reads_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for key, value in BASE_ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.setenv("IMAP_SECURITY", "none")

    settings = load_app_settings()

    assert settings.imap.security == "none"
    assert settings.imap.port == 143


def test_settings_are_immutable() -> None:
    settings = load_app_settings(environ=BASE_ENV)

    with pytest.raises(ValidationError):
        settings.imap.host = "elsewhere"  # type: ignore[misc]


def test_connection_settings_infer_port_directly() -> None:
    assert ImapSettings(host="imap.test", security="starttls").port == 143
    assert SmtpSettings(host="smtp.test", security="none").port == 25
    assert SmtpSettings(host="smtp.test", port=2525).port == 2525


@pytest.mark.parametrize("password", ["False", "true", "TRUE"])
def test_boolean_looking_password_stays_a_string(password: str) -> None:
    settings = load_app_settings(environ={**BASE_ENV, "EMAIL_PASSWORD": password})

    assert settings.imap.password == password
    assert settings.smtp.password == password


def test_boolean_looking_username_stays_a_string() -> None:
    settings = load_app_settings(environ={**BASE_ENV, "EMAIL_USERNAME": "false"})

    assert settings.imap.username == "false"
    assert settings.smtp.username == "false"
