"""Custom exceptions for imapstream.

This module defines the exception hierarchy used throughout the
imapstream package. Negotiation failures never surface here; an
exhausted negotiation leaves the session not ready instead.
"""


class ImapStreamError(Exception):
    """Base exception for all imapstream errors.

    All custom exceptions in the imapstream package inherit from
    this class, allowing for broad exception catching when needed.

    Attributes:
        message: A human-readable description of the error.
    """

    def __init__(self, message: str = "An error occurred in imapstream") -> None:
        """Initialize the exception with an optional message.

        Args:
            message: A description of the error that occurred.
        """
        self.message = message
        super().__init__(self.message)


class ConfigurationError(ImapStreamError):
    """Raised when account configuration is missing or invalid.

    This exception is raised before any network activity, e.g. when an
    account URL lacks a hostname, username or password.
    """

    def __init__(self, message: str = "Configuration error") -> None:
        super().__init__(message)


class AccountLockedError(ConfigurationError):
    """Raised when an account field is changed after the session was opened."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Account field '{field}' is locked once the session has been opened")


class NetworkOfflineError(ImapStreamError):
    """Raised when the reachability check reports the network is offline."""

    def __init__(
        self,
        message: str = "Can't connect to remote imap server; the network is currently offline",
    ) -> None:
        super().__init__(message)


class NotConnectedError(ImapStreamError):
    """Raised when an operation needs a ready session and there is none."""

    def __init__(self, message: str = "No imap connection") -> None:
        super().__init__(message)


class MailboxSwitchError(ImapStreamError):
    """Raised when the session cannot be pointed at another mailbox.

    Attributes:
        mailbox: The mailbox path the session tried to select.
    """

    def __init__(self, mailbox: str, reason: str | None = None) -> None:
        """Initialize the exception for the mailbox that failed to open.

        Args:
            mailbox: The mailbox path that could not be selected.
            reason: Optional server or transport detail.
        """
        self.mailbox = mailbox
        message = f"Error switching to mailbox {mailbox}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class MailboxListError(ImapStreamError):
    """Raised when the server does not return a usable mailbox list."""

    def __init__(self, message: str = "Error when retrieving mailboxes") -> None:
        super().__init__(message)


class MailboxNotFoundError(MailboxListError):
    """Raised when a mailbox requested by path does not exist on the server."""

    def __init__(self, mailbox: str) -> None:
        self.mailbox = mailbox
        super().__init__(f"Mailbox not found: {mailbox}")


class ConnectionLostError(ImapStreamError):
    """Raised when the session dies in the middle of an operation.

    A header fetch that comes back empty for a UID that no longer
    resolves is reported with this exception rather than as an empty
    header.
    """

    def __init__(self, message: str = "Lost the imap connection") -> None:
        super().__init__(message)


class MessageTypeError(ImapStreamError):
    """Raised when a mailbox is asked to store something that is not a message."""

    def __init__(
        self, message: str = "Can't write this type of message to the imap connection"
    ) -> None:
        super().__init__(message)
