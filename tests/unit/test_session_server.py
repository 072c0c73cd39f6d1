"""Session tests against aioimaplib's in-process IMAP server."""

import asyncio

import pytest
import pytest_asyncio
from aioimaplib.imap_testing_server import Mail, MockImapServer

from imapstream.config import AccountOptions
from imapstream.exceptions import ConnectionLostError
from imapstream.models import MessageReference
from imapstream.transport.session import OpenFlag, SelectedMailbox, Session

USER = "user@test.local"


def make_mail(subject: str) -> Mail:
    return Mail.create([USER], mail_from="sender@example.com", subject=subject, content="body")


@pytest_asyncio.fixture
async def imap_server():
    """A running test server and the port it listens on."""
    server = MockImapServer(loop=asyncio.get_running_loop())
    listener = await server.run_server(host="127.0.0.1", port=0)
    port = listener.sockets[0].getsockname()[1]
    yield server, port
    server.reset()
    listener.close()
    await listener.wait_closed()


@pytest.fixture
def make_session(imap_server, registry):
    _, port = imap_server

    def factory() -> Session:
        return Session(
            "127.0.0.1",
            USER,
            "password",
            AccountOptions(port=port),
            registry=registry,
            timeout=5,
        )

    return factory


class TestSessionAgainstServer:
    """Open, list, enumerate, fetch and delete over a real aioimaplib client."""

    @pytest.mark.asyncio
    async def test_negotiates_plaintext(self, make_session, registry) -> None:
        async with make_session() as session:
            assert session.ready()
            assert session.configuration.options == ()
            assert session in registry

        assert session not in registry

    @pytest.mark.asyncio
    async def test_read_only_mailbox(self, imap_server, make_session) -> None:
        server, _ = imap_server
        server.receive(make_mail("first"), imap_user=USER)
        server.receive(make_mail("second"), imap_user=USER)

        async with make_session() as session:
            paths = [view.path for view in await session.list_mailboxes()]
            assert "INBOX" in paths
            assert "Sent" in paths

            assert await session.message_uids("INBOX") == [1, 2]
            assert session.current_mailbox == SelectedMailbox("INBOX", OpenFlag.READONLY)
            assert await session.message_count("INBOX") == 2

            # The test server answers header fetches with the UID only
            assert await session.fetch_header("INBOX", 1) == ""
            with pytest.raises(ConnectionLostError):
                await session.fetch_header("INBOX", 99)

    @pytest.mark.asyncio
    async def test_mailbox_view_reads_references(self, imap_server, make_session) -> None:
        server, _ = imap_server
        server.receive(make_mail("first"), imap_user=USER)
        server.receive(make_mail("second"), imap_user=USER)

        async with make_session() as session:
            view = await session.open_mailbox("INBOX")

            assert await view.read() == MessageReference("INBOX", 1)
            assert await view.peek() == MessageReference("INBOX", 2)
            assert await view.message_count() == 2

    @pytest.mark.asyncio
    async def test_append_then_enumerate(self, make_session, sample_email_bytes) -> None:
        async with make_session() as session:
            assert await session.message_uids("Drafts") == []

            assert await session.append(sample_email_bytes, "Drafts") is True

            assert await session.message_uids("Drafts") == [1]

    @pytest.mark.asyncio
    async def test_delete_is_expunged_on_switch(self, imap_server, make_session) -> None:
        server, _ = imap_server
        server.receive(make_mail("doomed"), imap_user=USER)

        async with make_session() as session:
            assert await session.message_uids("INBOX") == [1]

            assert await session.delete("INBOX", 1) is True
            assert session.pending_expunge is True
            assert session.current_mailbox == SelectedMailbox("INBOX", OpenFlag.NONE)

            assert await session.message_uids("Sent") == []
            assert session.pending_expunge is False

            assert await session.message_uids("INBOX") == []
