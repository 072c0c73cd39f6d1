"""One negotiated IMAP session multiplexed across mailboxes.

A Session holds exactly one aioimaplib client. Mailbox operations name
the mailbox they work on; the session re-points its single connection
whenever a different mailbox is needed.
"""

import asyncio
import contextlib
import re
from dataclasses import dataclass, field, replace
from enum import Enum, IntFlag
from typing import TYPE_CHECKING

import aioimaplib
import structlog

from imapstream.config import AccountOptions
from imapstream.core.logging import sanitize_for_log
from imapstream.core.network import DEFAULT_ENDPOINTS
from imapstream.core.registry import SessionRegistry, default_registry
from imapstream.exceptions import (
    AccountLockedError,
    ConnectionLostError,
    MailboxListError,
    MailboxNotFoundError,
    MailboxSwitchError,
    NotConnectedError,
)
from imapstream.transport.mailbox import MailboxView
from imapstream.transport.names import parse_list_response, quote_mailbox, quote_pattern
from imapstream.transport.negotiator import (
    NegotiationFlag,
    TransportConfig,
    TransportNegotiator,
    set_global,
)

if TYPE_CHECKING:
    from imapstream.config import Settings

logger = structlog.get_logger(__name__)

DEFAULT_MAILBOX = "INBOX"

_EXISTS = re.compile(rb"^(\d+)\s+EXISTS\b", re.IGNORECASE)
_FETCH_UID = re.compile(rb"\bFETCH\s+\(.*\bUID\s+(\d+)", re.IGNORECASE)

# Failures of the connection itself, as opposed to protocol errors
_TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError, aioimaplib.CommandTimeout)


class SessionStatus(str, Enum):
    UNOPENED = "unopened"
    OPEN = "open"
    CLOSED = "closed"


class OpenFlag(IntFlag):
    NONE = 0  # read-write
    READONLY = 1
    ANONYMOUS = 2
    HALFOPEN = 4
    EXPUNGE = 8


@dataclass(frozen=True)
class SelectedMailbox:
    path: str = ""
    flags: OpenFlag = OpenFlag.READONLY
    # Last EXISTS count the server reported for the mailbox
    exists: int = field(default=0, compare=False)


def _as_bytes(line: object) -> bytes:
    if isinstance(line, (bytes, bytearray)):
        return bytes(line)
    return str(line).encode("utf-8", errors="replace")


def _exists_count(lines: list) -> int | None:
    count = None
    for line in lines:
        match = _EXISTS.match(_as_bytes(line))
        if match:
            count = int(match.group(1))
    return count


class Session:
    """A single logical connection to one mail account.

    Operations invoked while the session is not open return an empty
    result instead of raising. Once open, transport failures propagate
    to the caller.
    """

    _LOCKABLE = ("host", "username", "ports", "mailbox")

    def __init__(
        self,
        host: str,
        username: str,
        password: str | None = None,
        options: AccountOptions | None = None,
        *,
        registry: SessionRegistry | None = None,
        timeout: float = 30,
        check_endpoints: tuple[tuple[str, int], ...] | list[tuple[str, int]] = DEFAULT_ENDPOINTS,
        check_timeout: float = 3.0,
    ) -> None:
        options = options or AccountOptions()
        self._locked = False
        self.host = host
        self.username = username
        self.ports = options.ports
        self.mailbox = options.mailbox
        self._password = password or ""
        self._registry = registry if registry is not None else default_registry
        self.timeout = timeout
        self.check_endpoints = check_endpoints
        self.check_timeout = check_timeout

        self.status = SessionStatus.UNOPENED
        self.configuration: TransportConfig | None = None
        self.current_mailbox = SelectedMailbox()
        self.pending_expunge = False
        self._client: aioimaplib.IMAP4 | None = None
        self._folders: list[MailboxView] | None = None

    def __setattr__(self, name: str, value: object) -> None:
        if name in self._LOCKABLE and self.__dict__.get("_locked"):
            raise AccountLockedError(name)
        super().__setattr__(name, value)

    def __repr__(self) -> str:
        return f"<Session {self.username}@{self.host} {self.status.value}>"

    @classmethod
    def from_settings(cls, settings: "Settings", registry: SessionRegistry | None = None) -> "Session":
        """Create an unopened session from application settings."""
        if settings.skip_network_check:
            set_global(NegotiationFlag.MUST_GO_FASTER)
        return cls(
            settings.imap_host,
            settings.imap_user,
            settings.imap_pass.get_secret_value(),
            settings.account_options(),
            registry=registry,
            timeout=settings.connect_timeout,
            check_timeout=settings.check_timeout,
        )

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def open(self, password: str | None = None) -> None:
        """Negotiate a transport and log in.

        Configurations are tried from most to least secure; if an explicit
        port or port list was given only those ports are tried. Exhausting
        every option (or being refused on credentials) does not raise:
        the session simply stays not ready.

        Args:
            password: Overrides the password given at construction, e.g.
                when reopening after ``close()``.

        Raises:
            NetworkOfflineError: If the reachability check reports offline.
        """
        if self.ready():
            return

        negotiator = TransportNegotiator(
            self.host,
            timeout=self.timeout,
            check_endpoints=self.check_endpoints,
            check_timeout=self.check_timeout,
        )
        await negotiator.preflight()

        logger.info("imap_negotiating", host=self.host, user=self.username, ports=self.ports)
        try:
            result = await negotiator.negotiate(self.ports, self.username, password or self._password)
        finally:
            # Don't keep the password in memory past this point
            self._password = ""
            self._locked = True

        if result is None:
            self.configuration = None
            self._client = None
            return

        self._client = result.client
        self.configuration = result.config
        self.current_mailbox = SelectedMailbox()
        self.pending_expunge = False
        self.status = SessionStatus.OPEN
        self._registry.register(self)

    def ready(self) -> bool:
        """True if a connection is established and the session is open."""
        return self.status == SessionStatus.OPEN and self._client is not None

    async def close(self) -> None:
        """Close the connection, flushing any deferred expunge.

        Safe to call more than once. The session can be reopened with
        ``open(password)``.
        """
        self.status = SessionStatus.CLOSED
        if self._client is None:
            self._registry.deregister(self)
            return

        client = self._client
        if self.pending_expunge:
            self.pending_expunge = False
            with contextlib.suppress(Exception):
                await client.expunge()
        with contextlib.suppress(Exception):
            await client.logout()

        self._client = None
        self.configuration = None
        self.current_mailbox = SelectedMailbox()
        self._registry.deregister(self)
        logger.info("imap_session_closed", host=self.host, user=self.username)

    async def __aenter__(self) -> "Session":
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    # =========================================================================
    # Mailbox selection
    # =========================================================================

    async def select(self, path: str, flags: OpenFlag = OpenFlag.READONLY) -> None:
        """Point the connection at ``path`` if it is not already there.

        A read-only request never downgrades a mailbox that is already
        selected read-write; a read-write request upgrades a read-only
        selection.

        Both modes are sent as SELECT; aioimaplib refuses SEARCH, FETCH
        and UID after EXAMINE. Reads only use ``BODY.PEEK`` and
        ``UID SEARCH``, so a read-only selection changes no flags.

        Raises:
            MailboxSwitchError: If the server refuses the mailbox or the
                pending expunge fails. No mailbox is selected afterwards.
        """
        if self.status != SessionStatus.OPEN or self._client is None:
            return

        # Session level concerns, not select options
        flags &= ~(OpenFlag.ANONYMOUS | OpenFlag.EXPUNGE)
        current = self.current_mailbox
        if path == current.path and not (
            flags != current.flags
            and current.flags != OpenFlag.NONE
            and flags != OpenFlag.READONLY
        ):
            return

        try:
            if self.pending_expunge:
                await self._client.expunge()
                self.pending_expunge = False
                logger.debug("imap_expunged", mailbox=current.path)
            response = await self._client.select(quote_mailbox(path))
        except Exception as e:
            self.current_mailbox = SelectedMailbox()
            raise MailboxSwitchError(path, str(e)) from e

        if response.result != "OK":
            self.current_mailbox = SelectedMailbox()
            reason = " ".join(sanitize_for_log(line) for line in response.lines)
            raise MailboxSwitchError(path, reason)

        self.current_mailbox = SelectedMailbox(path, flags, _exists_count(response.lines) or 0)
        logger.debug(
            "imap_mailbox_selected",
            mailbox=path,
            readonly=bool(flags & OpenFlag.READONLY),
            exists=self.current_mailbox.exists,
        )

    # =========================================================================
    # Mailbox operations
    # =========================================================================

    async def list_mailboxes(self, pattern: str = "%") -> list[MailboxView]:
        """List mailboxes matching an IMAP LIST pattern.

        ``%`` matches one hierarchy level; use ``path + delimiter + "%"``
        for the children of a mailbox.

        Raises:
            NotConnectedError: If the session is not ready (a closed
                session returns an empty list instead).
            MailboxListError: If the server returns no usable list.
        """
        if self.status == SessionStatus.CLOSED:
            return []
        if not self.ready():
            raise NotConnectedError()

        try:
            response = await self._client.list('""', quote_pattern(pattern))
        except Exception as e:
            raise MailboxListError(f"Error when retrieving mailboxes: {e}") from e
        if response.result != "OK":
            raise MailboxListError()

        views = [
            MailboxView._create(self, listed.path, listed.delimiter, listed.attributes)
            for listed in parse_list_response(response.lines)
        ]
        logger.debug("imap_mailboxes_listed", pattern=pattern, count=len(views))
        return views

    async def folders(self) -> list[MailboxView]:
        """Top level mailboxes, listed once and then remembered."""
        if self._folders is None:
            folders = await self.list_mailboxes("%")
            if not self.ready():
                return folders
            self._folders = folders
        return self._folders

    async def open_mailbox(self, path: str | None = None) -> MailboxView:
        """Return the view for one mailbox, by default the account's mailbox.

        Raises:
            MailboxNotFoundError: If the server has no such mailbox.
        """
        path = path or self.mailbox or DEFAULT_MAILBOX
        for view in await self.list_mailboxes(path):
            if view.path == path:
                return view
        raise MailboxNotFoundError(path)

    async def message_count(self, path: str = DEFAULT_MAILBOX) -> int:
        """Number of messages in ``path``.

        Taken from the EXISTS count of the selected mailbox. A NOOP
        first collects any EXISTS update the server has queued since the
        mailbox was selected.
        """
        if self.status != SessionStatus.OPEN:
            return 0
        await self.select(path)
        response = await self._client.noop()
        if response.result == "OK":
            self._track_exists(response.lines)
        return self.current_mailbox.exists

    def _track_exists(self, lines: list) -> None:
        count = _exists_count(lines)
        if count is not None:
            self.current_mailbox = replace(self.current_mailbox, exists=count)

    async def message_uids(self, path: str = DEFAULT_MAILBOX) -> list[int]:
        """UIDs of every message in ``path``, oldest arrival first.

        Only identifiers are retrieved; no message data is prefetched.
        """
        if self.status != SessionStatus.OPEN:
            return []
        await self.select(path)
        response = await self._client.uid_search("ALL", charset=None)
        if response.result != "OK":
            return []
        uids: list[int] = []
        for line in response.lines:
            tokens = _as_bytes(line).split()
            if tokens and tokens[0].upper() == b"SEARCH":
                tokens = tokens[1:]
            if tokens and all(token.isdigit() for token in tokens):
                uids.extend(int(token) for token in tokens)
        return sorted(uids)

    async def fetch_header(self, path: str, uid: int) -> str:
        """Raw header block of one message.

        An empty header is returned as ``""`` when the server still
        answers with FETCH data for ``uid``.

        Raises:
            ConnectionLostError: If the fetch fails at the transport, or
                the header is empty and the UID no longer resolves in the
                mailbox.
        """
        if self.status != SessionStatus.OPEN:
            return ""
        await self.select(path)

        try:
            response = await self._client.uid("fetch", str(uid), "(BODY.PEEK[HEADER])")
        except _TRANSPORT_ERRORS as e:
            logger.warning("imap_header_fetch_failed", mailbox=path, uid=uid, error=str(e))
            raise ConnectionLostError() from e

        header = b""
        resolved = False
        if response.result == "OK":
            for line in response.lines:
                # The header literal is the only bytearray in the response
                if isinstance(line, bytearray):
                    header = header or bytes(line)
                    continue
                match = _FETCH_UID.search(_as_bytes(line))
                if match and int(match.group(1)) == uid:
                    resolved = True

        if not header and not resolved:
            raise ConnectionLostError()
        return header.decode("utf-8", errors="replace")

    async def append(self, message: bytes | str, path: str = DEFAULT_MAILBOX) -> bool:
        """Store a complete raw message in ``path``."""
        if self.status != SessionStatus.OPEN:
            return False
        if isinstance(message, str):
            message = message.encode("utf-8")
        response = await self._client.append(message, mailbox=quote_mailbox(path))
        ok = response.result == "OK"
        if ok and path == self.current_mailbox.path:
            self._track_exists(response.lines)
        logger.info("imap_message_appended", mailbox=path, size=len(message), ok=ok)
        return ok

    async def delete(self, path: str, uid: int) -> bool:
        """Flag a message as deleted.

        The expunge is deferred until the next mailbox switch or
        ``close()`` so that a run of deletes costs a single expunge.
        """
        if self.status != SessionStatus.OPEN:
            return False
        await self.select(path, OpenFlag.NONE)
        self.pending_expunge = True
        response = await self._client.uid("store", str(uid), "+FLAGS", "(\\Deleted)")
        ok = response.result == "OK"
        logger.info("imap_message_deleted", mailbox=path, uid=uid, ok=ok)
        return ok
