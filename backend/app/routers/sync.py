"""
Manual sync endpoint.

POST /sync runs a full fleet sync to completion before responding.
"""

import logging
from datetime import datetime, timezone
from typing import Callable

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.config import SyncSettings
from app.dependencies import get_message_store_factory, get_sync_settings
from app.models.email_sync import SyncResponse
from app.services.email_sync import sync_all_users
from app.services.message_store import MessageStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/sync",
    response_model=SyncResponse,
    responses={
        500: {"description": "The store is unconfigured or the user list could not be read; nothing was synced"},
    },
)
async def trigger_sync(
    store_factory: Callable[[], MessageStore] = Depends(get_message_store_factory),
    settings: SyncSettings = Depends(get_sync_settings),
):
    """
    Run an email sync for every user with credentials.

    Per-user and per-message failures are reported in ``summaries`` and do
    not fail the request. A missing store configuration or a failure to
    enumerate users returns 500.
    """
    logger.info(f"Manual sync triggered at: {datetime.now(timezone.utc).isoformat()}")
    try:
        store = store_factory()
        summaries = await sync_all_users(store, settings)
    except Exception as e:
        logger.error(f"Manual sync failed: {e}")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    return SyncResponse(success=True, message="Sync completed", summaries=summaries)
