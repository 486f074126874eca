"""
Shared dependencies for the HTTP surface, the scheduler and the CLI.

The store client is created once and passed explicitly to the sync code;
FastAPI routes receive it through Depends so tests can override it.
"""

from functools import lru_cache
from typing import Callable

from app.config import SyncSettings
from app.db import get_supabase_admin
from app.services.message_store import MessageStore


@lru_cache(maxsize=1)
def get_sync_settings() -> SyncSettings:
    return SyncSettings.from_env()


def get_message_store() -> MessageStore:
    return MessageStore(get_supabase_admin())


def get_message_store_factory() -> Callable[[], MessageStore]:
    """Hand routes the store constructor so configuration errors surface in the handler."""
    return get_message_store
