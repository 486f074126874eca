"""
IMAP mailbox session for one user's sync pass.

Wraps imapclient.IMAPClient. The client is blocking, so every network call is
pushed to a worker thread with ``asyncio.to_thread``; the event loop stays free
for the HTTP surface and the scheduler while a pass is in flight.

Lifecycle (always used through the context managers):

    async with open_mailbox_session(credential, settings) as session:
        async with session.select_mailbox("INBOX"):
            handles = await session.list_since(since)
            raw = await session.fetch_raw(handles[0])
            message = session.parse(raw)
"""

import asyncio
import logging
import ssl
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date
from typing import AsyncIterator, Callable, Optional

from imapclient import IMAPClient

from app.config import SyncSettings, resolve_connection
from app.models.email_sync import ParsedMessage, UserCredential
from app.services.message_parser import parse_message

logger = logging.getLogger(__name__)

# BODY.PEEK leaves the \Seen flag untouched; the response key drops PEEK.
_FETCH_ITEM = "BODY.PEEK[]"
_FETCH_KEY = b"BODY[]"


class MailboxConnectionError(Exception):
    """Connecting or authenticating to the mail server failed."""


class MessageFetchError(Exception):
    """A single message could not be downloaded."""


@dataclass(frozen=True)
class MessageHandle:
    """Server-side reference to one message. Valid only inside its session."""

    uid: int


class MailboxSession:
    """One authenticated IMAP connection bound to one user's mailbox."""

    def __init__(self, client, username: str):
        self._client = client
        self.username = username
        self._closed = False

    @classmethod
    async def open(
        cls,
        credential: UserCredential,
        settings: SyncSettings,
        client_factory: Optional[Callable] = None,
    ) -> "MailboxSession":
        """
        Connect and log in.

        Raises:
            MailboxConnectionError: On any connect or login failure.
        """
        host, port, secure = resolve_connection(credential, settings)
        factory = client_factory or IMAPClient

        def _connect():
            ssl_context = ssl.create_default_context() if secure else None
            client = factory(host, port=port, ssl=secure, ssl_context=ssl_context)
            try:
                client.login(credential.imap_username, credential.imap_password)
            except Exception:
                _quiet_logout(client)
                raise
            return client

        try:
            client = await asyncio.to_thread(_connect)
        except Exception as e:
            raise MailboxConnectionError(
                f"Failed to connect to {host}:{port} as {credential.imap_username}: {str(e)}"
            )

        logger.info(f"Connected to {host}:{port} as {credential.imap_username}")
        return cls(client, credential.imap_username)

    @asynccontextmanager
    async def select_mailbox(self, name: str) -> AsyncIterator["MailboxSession"]:
        """
        Select a mailbox for the duration of the block.

        The mailbox is unselected on every exit path, including exceptions
        raised inside the block.
        """
        await asyncio.to_thread(self._client.select_folder, name, readonly=True)
        try:
            yield self
        finally:
            try:
                await asyncio.to_thread(self._client.close_folder)
            except Exception as e:
                logger.warning(f"Failed to release mailbox {name!r} for {self.username}: {e}")

    async def list_since(self, since: date) -> list[MessageHandle]:
        """Return handles for messages since ``since``, oldest first."""
        uids = await asyncio.to_thread(self._client.search, ["SINCE", since])
        return [MessageHandle(uid=uid) for uid in sorted(uids)]

    async def fetch_raw(self, handle: MessageHandle) -> bytes:
        """
        Download the full source of one message.

        Raises:
            MessageFetchError: If the server returns no body for the handle.
        """
        response = await asyncio.to_thread(self._client.fetch, [handle.uid], [_FETCH_ITEM])
        data = (response or {}).get(handle.uid) or {}
        raw = data.get(_FETCH_KEY)
        if not raw:
            raise MessageFetchError(f"No message body returned for UID {handle.uid}")
        return raw

    def parse(self, raw: bytes) -> ParsedMessage:
        return parse_message(raw)

    async def close(self) -> None:
        """Log out. Safe to call more than once; never raises."""
        if self._closed:
            return
        self._closed = True
        await asyncio.to_thread(_quiet_logout, self._client)

    @property
    def closed(self) -> bool:
        return self._closed


def _quiet_logout(client) -> None:
    try:
        client.logout()
    except Exception as e:
        logger.warning(f"IMAP logout failed: {e}")


@asynccontextmanager
async def open_mailbox_session(
    credential: UserCredential,
    settings: SyncSettings,
    client_factory: Optional[Callable] = None,
) -> AsyncIterator[MailboxSession]:
    """Open a session and guarantee it is closed when the block exits."""
    session = await MailboxSession.open(credential, settings, client_factory=client_factory)
    try:
        yield session
    finally:
        await session.close()
