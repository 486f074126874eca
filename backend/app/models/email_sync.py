"""
Pydantic models for the email sync service.

Models:
  UserProfile       — joined row from the users table
  UserCredential    — row from user_email_credentials (+ joined profile)
  ParsedAttachment  — one attachment of a decoded message
  ParsedMessage     — a decoded RFC 822 message
  SyncSummary       — per-user outcome of one sync pass
  SyncResponse      — response body for POST /sync
  HealthResponse    — response body for GET /health
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

class UserProfile(BaseModel):
    model_config = {"extra": "ignore"}

    id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None


class UserCredential(BaseModel):
    """
    Mailbox credentials for one user.

    imap_host / imap_port / imap_secure are optional per-user overrides; when
    absent the service-wide defaults apply (see app.config.resolve_connection).
    """
    model_config = {"extra": "ignore"}

    user_id: str
    imap_username: str
    imap_password: str
    imap_host: Optional[str] = None
    imap_port: Optional[int] = None
    imap_secure: Optional[bool] = None
    users: Optional[UserProfile] = None

    @property
    def display_name(self) -> str:
        if self.users and self.users.email:
            return self.users.email
        return self.imap_username


# ---------------------------------------------------------------------------
# Parsed messages
# ---------------------------------------------------------------------------

class ParsedAttachment(BaseModel):
    filename: Optional[str] = None
    content_type: Optional[str] = None
    size: Optional[int] = None
    content_id: Optional[str] = None        # without surrounding <>
    content_disposition: Optional[str] = None  # "attachment" / "inline"


class ParsedMessage(BaseModel):
    """
    A decoded message.

    message_id is the dedup key. When it is None the message is never treated
    as a duplicate.
    """

    message_id: Optional[str] = None
    subject: Optional[str] = None
    from_text: Optional[str] = None
    to_text: Optional[str] = None
    date: Optional[datetime] = None
    html: Optional[str] = None
    text: Optional[str] = None
    attachments: list[ParsedAttachment] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Sync outcome + HTTP bodies
# ---------------------------------------------------------------------------

class SyncSummary(BaseModel):
    """Counters for one user's sync pass. Never persisted."""

    user_id: str
    user_email: str
    synced: int = 0
    skipped: int = 0
    errored: int = 0
    # Set when the pass was aborted at user level (connection, mailbox, listing)
    failed: bool = False
    error: Optional[str] = None


class SyncResponse(BaseModel):
    success: bool
    message: str
    summaries: list[SyncSummary] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    service: str
