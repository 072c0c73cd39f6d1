"""Email data models for imapstream.

This module provides the lightweight message reference handed out by
mailbox views, and a parsed email value that can be built from raw
bytes (or a bare header block) and streamed back out for appending.
"""

from collections.abc import Callable
from dataclasses import dataclass
from email import message_from_bytes
from email.header import decode_header
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from imapstream.transport.session import Session

STREAM_CHUNK_SIZE = 8192


@runtime_checkable
class StreamableMessage(Protocol):
    """Anything that can push its raw RFC 5322 bytes into a callback."""

    def stream(self, write: Callable[[bytes], object]) -> None: ...


@dataclass(frozen=True)
class MessageReference:
    """A message addressed by mailbox path and UID.

    References never carry message content; the content is resolved
    through a session when it is asked for.

    Attributes:
        path: Mailbox path the message lives in.
        uid: Server assigned stable identifier.
    """

    path: str
    uid: int

    async def fetch_header(self, session: "Session") -> "ParsedEmail":
        """Fetch and parse this message's header through ``session``."""
        header = await session.fetch_header(self.path, self.uid)
        return ParsedEmail.parse(header.encode("utf-8"))


def _decode_header(val: object) -> str:
    # Handles RFC 2047 encoded words and never returns email.header.Header
    if val is None:
        return ""
    try:
        parts = decode_header(str(val))
        decoded = []
        for fragment, charset in parts:
            if isinstance(fragment, bytes):
                decoded.append(fragment.decode(charset or "utf-8", errors="replace"))
            else:
                decoded.append(fragment)
        return " ".join(decoded)
    except Exception:
        return str(val)


@dataclass
class ParsedEmail:
    """A parsed email message with its decoded headers.

    Attributes:
        message_id: The Message-ID header value.
        from_addr: The From header value.
        to_addr: The To header value.
        subject: The Subject header value.
        date: The Date header value.
        raw: The original raw email bytes (or header block).
    """

    message_id: str
    from_addr: str
    to_addr: str
    subject: str
    date: str
    raw: bytes

    def stream(self, write: Callable[[bytes], object], chunk_size: int = STREAM_CHUNK_SIZE) -> None:
        """Push the raw message into ``write`` in chunks."""
        for start in range(0, len(self.raw), chunk_size):
            write(self.raw[start : start + chunk_size])

    @classmethod
    def parse(cls, raw: bytes) -> "ParsedEmail":
        msg = message_from_bytes(raw)
        return cls(
            message_id=_decode_header(msg.get("Message-ID")),
            from_addr=_decode_header(msg.get("From")),
            to_addr=_decode_header(msg.get("To")),
            subject=_decode_header(msg.get("Subject")),
            date=_decode_header(msg.get("Date")),
            raw=raw,
        )
