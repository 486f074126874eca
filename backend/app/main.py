"""
Email Sync Service
FastAPI application that pulls users' IMAP mail into Supabase, on a schedule
and on demand.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException

from app.dependencies import get_message_store, get_sync_settings
from app.db import get_supabase_admin
from app.models.email_sync import HealthResponse
from app.routers import sync
from app.services.email_sync import sync_all_users
from app.services.message_store import MESSAGES_TABLE
from app.services.scheduler import SyncScheduler

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "email-sync-service"

app = FastAPI(
    title="Email Sync API",
    description="Periodic IMAP mailbox sync into Supabase",
    version="0.1.0",
)

app.include_router(sync.router, tags=["sync"])

_scheduler: Optional[SyncScheduler] = None


async def _scheduled_sync() -> None:
    await sync_all_users(get_message_store(), get_sync_settings())


@app.on_event("startup")
async def start_scheduler() -> None:
    """
    Start the periodic sync unless SYNC_SCHEDULER_ENABLED=false.

    Also logs where the manual endpoints are reachable.
    """
    global _scheduler

    port = os.getenv("PORT", "8000")
    logger.info(
        "Email sync service running on port %s\n"
        "  Health check: http://localhost:%s/health\n"
        "  Manual sync:  POST http://localhost:%s/sync",
        port,
        port,
        port,
    )

    settings = get_sync_settings()
    if not settings.scheduler_enabled:
        logger.info("Scheduled sync disabled (SYNC_SCHEDULER_ENABLED=false)")
        return

    _scheduler = SyncScheduler(settings.sync_interval_minutes, _scheduled_sync)
    _scheduler.start()


@app.on_event("shutdown")
async def stop_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None


@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        service=SERVICE_NAME,
    )


@app.get("/health/db")
async def health_db():
    """
    Test the Supabase database connection.

    Executes a lightweight query (SELECT 1 row from the messages table) to
    verify the service-role client can reach the database. Returns 503 on
    failure.
    """
    try:
        client = get_supabase_admin()
    except ValueError as exc:
        raise HTTPException(
            status_code=503,
            detail=f"Database client unavailable: {str(exc)}",
        )

    try:
        client.table(MESSAGES_TABLE).select("id").limit(1).execute()
        return {"status": "ok", "database": "reachable"}
    except Exception as exc:
        logger.error(f"Database health check failed: {exc}")
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(exc)}",
        )
