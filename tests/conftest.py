"""Shared fixtures for the test suite."""

from __future__ import annotations

import pytest

from email_mcp.core.config import AppSettings, load_app_settings

TEST_ENVIRONMENT = {
    "EMAIL_ADDRESS": "me@example.com",
    "EMAIL_PASSWORD": "secret",
    "IMAP_HOST": "imap.example.com",
    "SMTP_HOST": "smtp.example.com",
}


@pytest.fixture
def app_settings() -> AppSettings:
    """Settings resolved from a fixed environment, ignoring the process one."""
    return load_app_settings(environ=TEST_ENVIRONMENT)
