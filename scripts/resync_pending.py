#!/usr/bin/env python3
"""Re-run the HubSpot sync for every unsynced or failed submission.

Usage:
    python scripts/resync_pending.py
    python scripts/resync_pending.py --limit 50 --dry-run

Runs each sync in the foreground (no worker queue) and writes the usual
audit rows. Exit code 0 if every attempted sync succeeded, 1 otherwise.

Reads DATABASE_URL and HUBSPOT_API_KEY from environment or .env file.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Ensure project root is on sys.path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

import structlog  # noqa: E402

from src.contact_hub.api.middleware.logging import configure_structlog  # noqa: E402
from src.contact_hub.config import get_settings  # noqa: E402
from src.contact_hub.contacts.repository import (  # noqa: E402
    FormAnalyticsRepository,
    SubmissionRepository,
    SyncAuditLog,
)
from src.contact_hub.core.database import close_db, get_session  # noqa: E402
from src.contact_hub.crm.hubspot import HubSpotClient  # noqa: E402
from src.contact_hub.sync.engine import ContactSyncEngine  # noqa: E402

logger = structlog.get_logger(__name__)


async def resync(limit: int, dry_run: bool) -> int:
    """Sync pending submissions one by one. Returns the number that failed."""
    settings = get_settings()
    client = HubSpotClient(
        api_key=settings.HUBSPOT_API_KEY,
        base_url=settings.HUBSPOT_BASE_URL,
        retry_policy=settings.hubspot_retry_policy(),
    )
    if not client.is_configured():
        print("Error: HUBSPOT_API_KEY is not set")
        return 1

    submissions = SubmissionRepository(get_session)
    engine = ContactSyncEngine(
        client=client,
        submissions=submissions,
        audit_log=SyncAuditLog(get_session),
        analytics=FormAnalyticsRepository(get_session),
        form_name=settings.CONTACT_FORM_NAME,
    )

    pending = await submissions.list_pending(limit=limit)
    logger.info("resync.started", pending=len(pending), dry_run=dry_run)

    if dry_run:
        for submission in pending:
            print(f"  #{submission.id:<8} {submission.email:40s} {submission.sync_status.value}")
        print(f"\n{len(pending)} submission(s) pending")
        return 0

    synced = failed = skipped = 0
    for submission in pending:
        result = await engine.sync_submission(submission.id)
        if result is None:
            skipped += 1
        elif result.success:
            synced += 1
            print(f"  #{submission.id:<8} {submission.email:40s} -> {result.remote_id}")
        else:
            failed += 1
            print(f"  #{submission.id:<8} {submission.email:40s} FAILED: {result.error}")

    print(f"\nResync complete: {synced} synced, {failed} failed, {skipped} skipped")
    return failed


async def main_async(args: argparse.Namespace) -> None:
    try:
        failed = await resync(args.limit, args.dry_run)
    finally:
        await close_db()
    if failed:
        sys.exit(1)


def main() -> None:
    parser = argparse.ArgumentParser(description="Re-sync pending contact submissions to HubSpot")
    parser.add_argument("--limit", type=int, default=500, help="Maximum submissions to process")
    parser.add_argument("--dry-run", action="store_true", help="List pending submissions only")
    args = parser.parse_args()

    configure_structlog()
    asyncio.run(main_async(args))


if __name__ == "__main__":
    main()
