"""Mailbox name handling: wire encoding and LIST response parsing."""

import re
from dataclasses import dataclass
from enum import IntFlag

from imapclient import imap_utf7


class MailboxAttribute(IntFlag):
    NONE = 0
    NOINFERIORS = 1
    NOSELECT = 2
    MARKED = 4
    UNMARKED = 8
    HASCHILDREN = 16
    HASNOCHILDREN = 32


_ATTRIBUTE_NAMES = {
    "\\noinferiors": MailboxAttribute.NOINFERIORS,
    "\\noselect": MailboxAttribute.NOSELECT,
    "\\marked": MailboxAttribute.MARKED,
    "\\unmarked": MailboxAttribute.UNMARKED,
    "\\haschildren": MailboxAttribute.HASCHILDREN,
    "\\hasnochildren": MailboxAttribute.HASNOCHILDREN,
}

_LIST_LINE = re.compile(
    r'^(?:LIST\s+)?\((?P<flags>[^)]*)\)\s+(?P<delimiter>"(?:[^"\\]|\\.)*"|NIL)\s+(?P<name>.*)$',
    re.IGNORECASE,
)
_LITERAL = re.compile(r"^\{(\d+)\}$")
# RFC 3501 astring and list-mailbox characters
_ASTRING = re.compile(r'[^\x00-\x20\x7f(){%*"\\]+')
_LIST_MAILBOX = re.compile(r'[^\x00-\x20\x7f(){"\\]+')


@dataclass(frozen=True)
class ListedMailbox:
    path: str
    delimiter: str
    attributes: MailboxAttribute


def decode_name(name: str | bytes) -> str:
    """Decode a mailbox name from IMAP modified UTF-7."""
    if isinstance(name, str):
        try:
            name = name.encode("ascii")
        except UnicodeEncodeError:
            # Server sent raw UTF-8 (UTF8=ACCEPT); nothing to decode
            return name
    return imap_utf7.decode(name)


def _encode(path: str) -> str:
    encoded = imap_utf7.encode(path)
    if isinstance(encoded, bytes):
        encoded = encoded.decode("ascii")
    return encoded


def _quote(encoded: str, bare: re.Pattern) -> str:
    if bare.fullmatch(encoded):
        return encoded
    escaped = encoded.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def quote_mailbox(path: str) -> str:
    """Encode a mailbox path for the wire.

    Names made only of atom characters are sent bare, anything else as a
    quoted string.
    """
    return _quote(_encode(path), _ASTRING)


def quote_pattern(pattern: str) -> str:
    """Like ``quote_mailbox`` but keeps the ``%`` and ``*`` wildcards bare."""
    return _quote(_encode(pattern), _LIST_MAILBOX)


def folder_name(path: str, delimiter: str) -> str:
    """The last hierarchy segment of ``path``, as a user would see it."""
    if not delimiter:
        return path
    return path.split(delimiter)[-1]


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        value = value[1:-1]
        value = re.sub(r"\\(.)", r"\1", value)
    return value


def _parse_attributes(flags: str) -> MailboxAttribute:
    attributes = MailboxAttribute.NONE
    for flag in flags.split():
        attributes |= _ATTRIBUTE_NAMES.get(flag.lower(), MailboxAttribute.NONE)
    return attributes


def parse_list_response(lines: list) -> list[ListedMailbox]:
    """Parse the untagged lines of a LIST response.

    Lines that are not LIST data (such as the completion text) are
    skipped. Mailbox names sent as literals arrive as the following line.
    """
    mailboxes = []
    pending: tuple[str, str] | None = None

    for raw in lines:
        if isinstance(raw, (bytes, bytearray)):
            line = bytes(raw).decode("utf-8", errors="replace")
        else:
            line = str(raw)

        if pending is not None:
            flags, delimiter = pending
            pending = None
            mailboxes.append(
                ListedMailbox(decode_name(line), delimiter, _parse_attributes(flags))
            )
            continue

        match = _LIST_LINE.match(line.strip())
        if not match:
            continue

        delimiter = match.group("delimiter")
        delimiter = "" if delimiter == "NIL" else _unquote(delimiter)
        name = match.group("name").strip()
        if _LITERAL.match(name):
            pending = (match.group("flags"), delimiter)
            continue

        mailboxes.append(
            ListedMailbox(
                decode_name(_unquote(name)), delimiter, _parse_attributes(match.group("flags"))
            )
        )

    return mailboxes
