"""
Email sync: pull recent mail for every configured user into Supabase.

Two entry points:
  sync_user_emails  — one user's pass: connect, list, dedup, store.
  sync_all_users    — every user, one after another, with pacing between.

Failure isolation
-----------------
  connection / mailbox / listing failure   → that user's pass ends, counted as failed
  fetch or parse failure for one message   → errored += 1, next message
  message insert failure                   → errored += 1, next message
  attachment insert failure                → logged only; message still synced
  user enumeration failure                 → raised to the caller

sync_user_emails never raises. sync_all_users raises only when the user list
cannot be read.

Two fleet runs may overlap (scheduled tick + manual trigger). There is no lock
between them, so both can pass the existence check for the same message and
insert it twice.
"""

import asyncio
import logging
from collections import deque
from datetime import date, datetime, timedelta, timezone
from typing import AsyncContextManager, Callable, Optional, Sequence

from app.config import SyncSettings
from app.models.email_sync import SyncSummary, UserCredential
from app.services.mailbox import MailboxSession, MessageHandle, open_mailbox_session
from app.services.message_store import MessageStore
from app.services.pacing import IntervalPacer, paced

logger = logging.getLogger(__name__)

SessionOpener = Callable[[UserCredential, SyncSettings], AsyncContextManager[MailboxSession]]


def since_cutoff(lookback_days: int, now: Optional[datetime] = None) -> date:
    """Return the date used for the IMAP SINCE filter."""
    now = now or datetime.now(timezone.utc)
    return (now - timedelta(days=lookback_days)).date()


def select_recent(handles: Sequence[MessageHandle], max_emails: int) -> list[MessageHandle]:
    """
    Keep the newest ``max_emails`` handles and return them newest first.

    ``handles`` is oldest first (server order). Only handles are held here;
    nothing beyond the cap is ever downloaded.
    """
    newest = deque(handles, maxlen=max_emails)
    newest.reverse()
    return list(newest)


async def _process_message(session, handle: MessageHandle, store: MessageStore,
                           user_id: str, summary: SyncSummary) -> None:
    try:
        raw = await session.fetch_raw(handle)
        parsed = session.parse(raw)
    except Exception as e:
        logger.error(f"Error processing message {handle.uid}: {e}")
        summary.errored += 1
        return

    if await asyncio.to_thread(store.record_exists, parsed.message_id, user_id):
        summary.skipped += 1
        return

    try:
        email_id = await asyncio.to_thread(store.insert_message, parsed, user_id)
    except Exception as e:
        logger.error(f"Error saving message {handle.uid}: {e}")
        summary.errored += 1
        return

    # Best effort: an attachment failure does not undo the message
    await asyncio.to_thread(store.insert_attachments, email_id, parsed.attachments)

    summary.synced += 1
    logger.info(f"Saved email: {parsed.subject or '(No subject)'}")


async def sync_user_emails(
    credential: UserCredential,
    store: MessageStore,
    settings: SyncSettings,
    open_session: SessionOpener = open_mailbox_session,
    now: Optional[datetime] = None,
) -> SyncSummary:
    """
    Sync one user's recent mail.

    Lists messages from the last ``settings.lookback_days`` days in
    ``settings.mailbox``, keeps the newest ``settings.max_emails`` and stores
    the ones not already present (dedup on Message-ID; messages without one
    are always stored).

    Never raises: every failure ends up in the returned summary.
    """
    user_id = credential.user_id
    user_email = credential.display_name
    summary = SyncSummary(user_id=user_id, user_email=user_email)

    logger.info(f"Starting email sync for user: {user_email}")

    try:
        async with open_session(credential, settings) as session:
            async with session.select_mailbox(settings.mailbox):
                since = since_cutoff(settings.lookback_days, now)
                handles = select_recent(await session.list_since(since), settings.max_emails)
                logger.info(f"Found {len(handles)} recent messages for {user_email}")

                for handle in handles:
                    await _process_message(session, handle, store, user_id, summary)
    except Exception as e:
        logger.error(f"Error syncing emails for {user_email}: {e}")
        summary.failed = True
        summary.error = str(e)

    logger.info(
        f"Sync completed for {user_email}: {summary.synced} new, "
        f"{summary.skipped} skipped, {summary.errored} errors"
    )
    return summary


async def sync_all_users(
    store: MessageStore,
    settings: SyncSettings,
    open_session: SessionOpener = open_mailbox_session,
    pacer: Optional[IntervalPacer] = None,
) -> list[SyncSummary]:
    """
    Sync every user with credentials, sequentially.

    Raises:
        CredentialLookupError: If the user list cannot be read.
    """
    logger.info("Starting email sync for all users...")

    credentials = await asyncio.to_thread(store.fetch_user_credentials)
    logger.info(f"Found {len(credentials)} users with email credentials")

    if not credentials:
        logger.info("No users with email credentials found")
        return []

    if pacer is None:
        pacer = IntervalPacer(settings.user_delay_ms / 1000)

    summaries: list[SyncSummary] = []
    async for credential in paced(credentials, pacer):
        try:
            summary = await sync_user_emails(credential, store, settings, open_session=open_session)
        except Exception as e:
            logger.exception(f"Unexpected error syncing user {credential.user_id}")
            summary = SyncSummary(
                user_id=credential.user_id,
                user_email=credential.display_name,
                failed=True,
                error=str(e),
            )
        summaries.append(summary)

    logger.info("Email sync completed for all users")
    return summaries
