"""Mailbox views: cursor based streams of message references."""

from functools import cached_property
from typing import TYPE_CHECKING

import structlog

from imapstream.exceptions import MessageTypeError
from imapstream.models import MessageReference, StreamableMessage
from imapstream.transport.names import MailboxAttribute, folder_name

if TYPE_CHECKING:
    from imapstream.transport.session import Session

logger = structlog.get_logger(__name__)

# Returned by read() and peek() once the cursor is past the last message
END_OF_STREAM = None

_FACTORY_TOKEN = object()


class MailboxView:
    """A lazily loaded stream of the messages in one mailbox.

    The view holds UIDs only. The UID list is loaded on first use and is
    then treated as a snapshot; it is not refreshed behind the caller's
    back. Views are handed out by ``Session.list_mailboxes()`` and
    ``Session.open_mailbox()`` and keep a non-owning reference to that
    session.

    Attributes:
        session: The session this view reads through.
        path: Full mailbox path, using ``delimiter`` between levels.
        delimiter: The server's hierarchy delimiter ("" for flat servers).
        attributes: LIST attributes such as HASCHILDREN or NOSELECT.
    """

    def __init__(
        self,
        token: object,
        session: "Session",
        path: str,
        delimiter: str = "",
        attributes: MailboxAttribute = MailboxAttribute.NONE,
    ) -> None:
        if token is not _FACTORY_TOKEN:
            raise TypeError(
                "MailboxView is created by Session.list_mailboxes() or Session.open_mailbox()"
            )
        self.session = session
        self.path = path
        self.delimiter = delimiter
        self.attributes = attributes
        self._uids: list[int] | None = None
        self._cursor = 0
        self._message_count: int | None = None

    @classmethod
    def _create(
        cls,
        session: "Session",
        path: str,
        delimiter: str = "",
        attributes: MailboxAttribute = MailboxAttribute.NONE,
    ) -> "MailboxView":
        return cls(_FACTORY_TOKEN, session, path, delimiter, attributes)

    def __repr__(self) -> str:
        return f"<MailboxView {self.path!r}>"

    @cached_property
    def name(self) -> str:
        """The label a user would see for this mailbox."""
        return folder_name(self.path, self.delimiter)

    @property
    def position(self) -> int:
        """Zero based index of the next message read() will return."""
        return self._cursor

    # =========================================================================
    # Stream protocol
    # =========================================================================

    def open(self) -> None:
        """Nothing to do; the session selects the mailbox on demand."""

    def close(self) -> None:
        """Nothing to release; the view owns no connection."""

    def ready(self) -> bool:
        return bool(self.path) and self.session.ready()

    async def initialize_search(self, query: object = None) -> None:
        """Load the UID list if needed and move the cursor to the start.

        ``query`` is accepted for forward compatibility and currently
        does not filter anything.
        """
        if not self._uids:
            await self._load()
        self._cursor = 0

    async def read(self) -> MessageReference | None:
        """Return the next message reference and advance the cursor.

        Returns END_OF_STREAM once every message has been read.
        """
        reference = await self.peek()
        if reference is not END_OF_STREAM:
            self._cursor += 1
        return reference

    async def peek(self) -> MessageReference | None:
        """Return the next message reference without advancing."""
        if self._uids is None:
            # Caller skipped initialize_search(); that's fine
            await self._load()
        if self._cursor >= len(self._uids):
            return END_OF_STREAM
        return MessageReference(self.path, self._uids[self._cursor])

    def rewind(self, count: int | None = None) -> None:
        """Move the cursor back ``count`` messages, or to the first one."""
        if count is None:
            count = self._cursor
        self._cursor = max(0, self._cursor - max(0, count))

    async def write(self, message: object) -> bool:
        """Append a message to this mailbox.

        Args:
            message: Raw message bytes or text, or an object with a
                ``stream(callback)`` method such as ParsedEmail.

        Raises:
            MessageTypeError: If ``message`` is neither.
        """
        if isinstance(message, str):
            raw = message.encode("utf-8")
        elif isinstance(message, (bytes, bytearray)):
            raw = bytes(message)
        elif isinstance(message, StreamableMessage):
            chunks: list[bytes] = []
            message.stream(
                lambda chunk: chunks.append(
                    chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk)
                )
            )
            raw = b"".join(chunks)
        else:
            raise MessageTypeError()

        ok = await self.session.append(raw, self.path)
        if ok and self._message_count is not None:
            self._message_count += 1
        return ok

    def __aiter__(self) -> "MailboxView":
        return self

    async def __anext__(self) -> MessageReference:
        reference = await self.read()
        if reference is END_OF_STREAM:
            raise StopAsyncIteration
        return reference

    # =========================================================================
    # Mailbox information
    # =========================================================================

    async def child_views(self) -> list["MailboxView"]:
        """Mailboxes one level below this one. Grandchildren are not listed."""
        if not self.delimiter or self.attributes & MailboxAttribute.NOINFERIORS:
            return []
        return await self.session.list_mailboxes(f"{self.path}{self.delimiter}%")

    async def message_count(self) -> int:
        if self._message_count is None:
            self._message_count = await self.session.message_count(self.path)
        return self._message_count

    async def is_empty(self) -> bool:
        return await self.message_count() == 0

    async def _load(self) -> None:
        self._uids = await self.session.message_uids(self.path)
        logger.debug("mailbox_uids_loaded", mailbox=self.path, count=len(self._uids))
