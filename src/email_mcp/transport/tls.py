"""TLS context construction shared by the IMAP and SMTP transports."""

from __future__ import annotations

import logging
import ssl

LOGGER = logging.getLogger(__name__)


def create_ssl_context(verify_certificates: bool = True) -> ssl.SSLContext:
    """Return a client TLS context, optionally without certificate checks."""
    context = ssl.create_default_context()
    if not verify_certificates:
        LOGGER.warning("TLS certificate verification is disabled")
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


__all__ = ["create_ssl_context"]
