"""Transport layer for imapstream.

This module provides the IMAP session machinery:
- TransportNegotiator: Find a port and security configuration a server accepts
- Session: One negotiated connection multiplexed across mailboxes
- MailboxView: Cursor based stream of message references in one mailbox
"""

from imapstream.transport.mailbox import END_OF_STREAM, MailboxView
from imapstream.transport.names import MailboxAttribute
from imapstream.transport.negotiator import (
    NegotiationFlag,
    SecurityOption,
    TransportConfig,
    TransportNegotiator,
    clear_global,
    set_global,
)
from imapstream.transport.session import OpenFlag, SelectedMailbox, Session, SessionStatus

__all__ = [
    "END_OF_STREAM",
    "MailboxAttribute",
    "MailboxView",
    "NegotiationFlag",
    "OpenFlag",
    "SecurityOption",
    "SelectedMailbox",
    "Session",
    "SessionStatus",
    "TransportConfig",
    "TransportNegotiator",
    "clear_global",
    "set_global",
]
