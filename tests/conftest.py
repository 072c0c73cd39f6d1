"""Pytest configuration and fixtures."""

import os
from collections import namedtuple
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment variables before importing settings
os.environ.update(
    {
        "IMAPSTREAM_IMAP_HOST": "imap.test.local",
        "IMAPSTREAM_IMAP_USER": "test@test.local",
        "IMAPSTREAM_IMAP_PASS": "testpass",
    }
)


# Same shape as aioimaplib.Response
Response = namedtuple("Response", "result lines")


def ok(*lines) -> Response:
    """Tagged OK response carrying ``lines``."""
    return Response("OK", list(lines))


def no(*lines) -> Response:
    """Tagged NO response carrying ``lines``."""
    return Response("NO", list(lines))


@pytest.fixture(autouse=True)
def fast_negotiation():
    """Skip the network check unless a test turns it back on."""
    from imapstream.transport.negotiator import NegotiationFlag, clear_global, set_global

    set_global(NegotiationFlag.MUST_GO_FASTER)
    yield
    clear_global(NegotiationFlag.MUST_GO_FASTER)


@pytest.fixture
def registry():
    """A registry private to the test."""
    from imapstream.core.registry import SessionRegistry

    return SessionRegistry()


@pytest.fixture
def mock_client() -> AsyncMock:
    """An authenticated aioimaplib client double."""
    client = AsyncMock()
    client.has_capability = MagicMock(return_value=True)
    client.select = AsyncMock(return_value=ok(b"FLAGS (\\Seen \\Deleted)", b"3 EXISTS", b"SELECT completed"))
    client.noop = AsyncMock(return_value=ok(b"NOOP completed"))
    client.expunge = AsyncMock(return_value=ok(b"EXPUNGE completed"))
    client.logout = AsyncMock(return_value=ok(b"BYE"))
    return client


@pytest.fixture
def open_session(registry, mock_client):
    """A session that looks freshly negotiated against ``mock_client``."""
    from imapstream.config import AccountOptions
    from imapstream.transport.negotiator import SecurityOption, TransportConfig
    from imapstream.transport.session import Session, SessionStatus

    session = Session(
        "imap.example.com",
        "user@example.com",
        "password123",
        AccountOptions(),
        registry=registry,
    )
    session._client = mock_client
    session.configuration = TransportConfig(
        "imap.example.com",
        993,
        (SecurityOption.SSL, SecurityOption.SECURE, SecurityOption.VALIDATE_CERT),
    )
    session.status = SessionStatus.OPEN
    registry.register(session)
    return session


@pytest.fixture
def sample_email_bytes():
    """Sample raw email bytes."""
    return b"""From: Sender <sender@example.com>
To: recipient@test.local
Subject: Test Email
Date: Mon, 06 Jan 2020 10:00:00 +0000
Message-ID: <test-123@example.com>
Content-Type: text/plain

This is a test email body.
"""
