"""
One-shot email sync from the command line.

Usage
-----
email-sync                          # sync every user with the configured defaults
email-sync --max-emails 100         # raise the per-user cap for this run
email-sync --lookback-days 7        # only look at the last week
email-sync --mailbox Archive        # sync a different mailbox

Exit status is 0 when the run completed (individual user failures are only
logged) and 1 when the user list could not be read.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from app.config import SyncSettings
from app.dependencies import get_message_store
from app.services.email_sync import sync_all_users

logger = logging.getLogger(__name__)


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="email-sync",
        description="Sync recent IMAP mail for every configured user into Supabase.",
    )
    parser.add_argument("--max-emails", type=int, help="Per-user message cap for this run")
    parser.add_argument("--lookback-days", type=int, help="Only sync mail from the last N days")
    parser.add_argument("--mailbox", help="Mailbox to sync (default: INBOX)")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> SyncSettings:
    """Environment settings with any command-line overrides applied."""
    settings = SyncSettings.from_env()
    overrides = {}
    if args.max_emails and args.max_emails > 0:
        overrides["max_emails"] = args.max_emails
    if args.lookback_days and args.lookback_days > 0:
        overrides["lookback_days"] = args.lookback_days
    if args.mailbox:
        overrides["mailbox"] = args.mailbox
    return settings.model_copy(update=overrides)


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    args = _parse_args(argv)
    settings = build_settings(args)

    try:
        store = get_message_store()
        summaries = asyncio.run(sync_all_users(store, settings))
    except Exception as e:
        logger.error(f"Sync failed: {e}")
        return 1

    failed = sum(1 for s in summaries if s.failed)
    logger.info(f"Sync completed successfully ({len(summaries)} users, {failed} failed)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
