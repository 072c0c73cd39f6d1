"""imapstream: one negotiated IMAP session, many mailboxes, message streams."""

from imapstream.config import AccountOptions, Settings, get_settings
from imapstream.core import SessionRegistry, configure_logging, default_registry
from imapstream.locator import open_url, session_from_url
from imapstream.models import MessageReference, ParsedEmail
from imapstream.transport import (
    END_OF_STREAM,
    MailboxView,
    NegotiationFlag,
    OpenFlag,
    Session,
    SessionStatus,
    set_global,
)

__all__ = [
    "END_OF_STREAM",
    "AccountOptions",
    "MailboxView",
    "MessageReference",
    "NegotiationFlag",
    "OpenFlag",
    "ParsedEmail",
    "Session",
    "SessionRegistry",
    "SessionStatus",
    "Settings",
    "configure_logging",
    "default_registry",
    "get_settings",
    "open_url",
    "session_from_url",
    "set_global",
]
