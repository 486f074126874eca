"""
Supabase persistence for synced messages.

Tables:
  user_email_credentials  — one row per user with mailbox credentials
  emails02                — one row per stored message
  email_attachments       — attachment metadata, many per message

Failure policy:
  - record_exists fails open: a store error reads as "not found".
  - insert_message raises MessagePersistenceError; the caller counts it.
  - insert_attachments is best-effort: errors are logged, never raised.
  - fetch_user_credentials raises CredentialLookupError; nothing can run
    without the user list.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from app.models.email_sync import ParsedAttachment, ParsedMessage, UserCredential

logger = logging.getLogger(__name__)

CREDENTIALS_TABLE = "user_email_credentials"
MESSAGES_TABLE = "emails02"
ATTACHMENTS_TABLE = "email_attachments"

_CREDENTIALS_SELECT = "*, users (id, email, name)"


class CredentialLookupError(Exception):
    """The user credential list could not be read."""


class MessagePersistenceError(Exception):
    """A message row could not be written."""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_iso(value: Optional[datetime]) -> str:
    if value is None:
        return _now_iso()
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def build_message_row(message: ParsedMessage, user_id: str) -> dict:
    """Map a parsed message onto an emails02 row."""
    return {
        "user_id": user_id,
        "message_id": message.message_id,
        "subject": message.subject or "",
        "from": message.from_text or "",
        "to": message.to_text or "",
        "date": _to_iso(message.date),
        "html_content": message.html or "",
        "text_content": message.text or "",
        "created_at": _now_iso(),
    }


def build_attachment_row(attachment: ParsedAttachment, email_id: str) -> dict:
    """Map a parsed attachment onto an email_attachments row."""
    return {
        "email_id": email_id,
        "filename": attachment.filename or "unnamed",
        "content_type": attachment.content_type or "application/octet-stream",
        "size": attachment.size or 0,
        "content_id": attachment.content_id or None,
        "is_inline": attachment.content_disposition == "inline",
        "created_at": _now_iso(),
    }


class MessageStore:
    """
    Thin adapter over a Supabase client. No business logic lives here.

    The client is shared by every sync routine; concurrency control is left
    to the database.
    """

    def __init__(self, client):
        self.client = client

    def fetch_user_credentials(self) -> list[UserCredential]:
        """
        Return every user with mailbox credentials configured.

        Rows that do not validate (e.g. missing username) are logged and
        skipped.

        Raises:
            CredentialLookupError: If the query itself fails.
        """
        try:
            result = (
                self.client.table(CREDENTIALS_TABLE)
                .select(_CREDENTIALS_SELECT)
                .execute()
            )
        except Exception as e:
            raise CredentialLookupError(f"Failed to fetch user email credentials: {str(e)}")

        credentials: list[UserCredential] = []
        for row in result.data or []:
            try:
                credentials.append(UserCredential.model_validate(row))
            except ValidationError as e:
                logger.warning(
                    f"Skipping unusable credential row for user {row.get('user_id')!r}: {e}"
                )
        return credentials

    def record_exists(self, message_id: Optional[str], user_id: str) -> bool:
        """
        Return True if this user already has a stored message with message_id.

        An empty message_id is never a duplicate. Store errors are logged and
        reported as "not found" so the message is inserted rather than lost.
        """
        if not message_id:
            return False

        try:
            result = (
                self.client.table(MESSAGES_TABLE)
                .select("id")
                .eq("message_id", message_id)
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.warning(f"Existence check failed for message {message_id!r}: {e}")
            return False

        return bool(result.data)

    def insert_message(self, message: ParsedMessage, user_id: str) -> str:
        """
        Insert one message row and return its id.

        Raises:
            MessagePersistenceError: If the insert fails or returns no row.
        """
        row = build_message_row(message, user_id)
        try:
            result = self.client.table(MESSAGES_TABLE).insert(row).execute()
        except Exception as e:
            raise MessagePersistenceError(f"Failed to save email: {str(e)}")

        if not result.data:
            raise MessagePersistenceError("Failed to save email: no row returned")

        return result.data[0]["id"]

    def insert_attachments(self, email_id: str, attachments: list[ParsedAttachment]) -> bool:
        """
        Insert attachment rows for an already-stored message.

        Returns True on success (or when there is nothing to write), False when
        the write failed. Failures never affect the parent message.
        """
        if not attachments:
            return True

        rows = [build_attachment_row(att, email_id) for att in attachments]
        try:
            self.client.table(ATTACHMENTS_TABLE).insert(rows).execute()
        except Exception as e:
            logger.warning(f"Error saving {len(rows)} attachment(s) for email {email_id}: {e}")
            return False

        return True
