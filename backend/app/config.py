"""
Service configuration.

All values come from environment variables (a .env file is loaded if present).
Integer options mirror the historic ``parseInt(value) || default`` behaviour:
anything missing, unparseable or non-positive falls back to the default.
"""

import logging
import os

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

logger = logging.getLogger(__name__)

# Hard-coded fallbacks, used when neither the user record nor the environment
# provides a value.
FALLBACK_IMAP_HOST = "mail.titan.email"
FALLBACK_IMAP_PORT = 993
FALLBACK_IMAP_SECURE = True

DEFAULT_MAX_EMAILS = 50
DEFAULT_LOOKBACK_DAYS = 30
DEFAULT_USER_DELAY_MS = 1000
DEFAULT_MAILBOX = "INBOX"
DEFAULT_SYNC_INTERVAL_MINUTES = 5


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}; using {default}")
        return default
    if value <= 0:
        logger.warning(f"Ignoring non-positive {name}={raw!r}; using {default}")
        return default
    return value


def _bool_env(name: str, default: bool) -> bool:
    """Anything other than the literal string 'false' counts as true."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() != "false"


class SyncSettings(BaseModel):
    """Snapshot of the sync configuration."""

    imap_host: str = FALLBACK_IMAP_HOST
    imap_port: int = FALLBACK_IMAP_PORT
    imap_secure: bool = FALLBACK_IMAP_SECURE
    max_emails: int = DEFAULT_MAX_EMAILS
    lookback_days: int = DEFAULT_LOOKBACK_DAYS
    user_delay_ms: int = DEFAULT_USER_DELAY_MS
    mailbox: str = DEFAULT_MAILBOX
    sync_interval_minutes: int = DEFAULT_SYNC_INTERVAL_MINUTES
    scheduler_enabled: bool = True

    @classmethod
    def from_env(cls) -> "SyncSettings":
        return cls(
            imap_host=os.getenv("DEFAULT_IMAP_HOST", "").strip() or FALLBACK_IMAP_HOST,
            imap_port=_int_env("DEFAULT_IMAP_PORT", FALLBACK_IMAP_PORT),
            imap_secure=_bool_env("DEFAULT_IMAP_SECURE", FALLBACK_IMAP_SECURE),
            max_emails=_int_env("MAX_EMAILS_PER_SYNC", DEFAULT_MAX_EMAILS),
            lookback_days=_int_env("SYNC_LOOKBACK_DAYS", DEFAULT_LOOKBACK_DAYS),
            user_delay_ms=_int_env("SYNC_USER_DELAY_MS", DEFAULT_USER_DELAY_MS),
            mailbox=os.getenv("SYNC_MAILBOX", "").strip() or DEFAULT_MAILBOX,
            sync_interval_minutes=_int_env(
                "SYNC_INTERVAL_MINUTES", DEFAULT_SYNC_INTERVAL_MINUTES
            ),
            scheduler_enabled=_bool_env("SYNC_SCHEDULER_ENABLED", True),
        )


def resolve_connection(credential, settings: SyncSettings) -> tuple[str, int, bool]:
    """
    Work out (host, port, secure) for one user's mailbox.

    Precedence for each value:
      1. Override on the user's credential record
      2. Service-wide default from the environment (already in ``settings``)
      3. Hard-coded fallback
    """
    host = credential.imap_host or settings.imap_host or FALLBACK_IMAP_HOST
    port = credential.imap_port or settings.imap_port or FALLBACK_IMAP_PORT
    if credential.imap_secure is not None:
        secure = credential.imap_secure
    else:
        secure = settings.imap_secure
    return host, port, secure
