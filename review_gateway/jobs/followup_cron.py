"""
Follow-up Cron Job: retries effects that failed after a committed decision.

This module runs as a scheduled job (via cron or similar) to:
1. Re-run document generation for approved applications
2. Replay notifications that could not be delivered
3. Persist the expiry of review tokens past their deadline

Typical cron schedule: */15 * * * * (every 15 minutes)
"""

import asyncio
import logging
import os
import traceback
from datetime import datetime, timezone
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from ..core.clock import Clock, utc_now
from ..core.errors import ReviewGatewayError
from ..core.store import RecordStore
from ..models import EffectKind
from ..services.decisions import DecisionProcessor
from ..services.effects import DocumentGenerator, Notifier, get_document_generator, get_notifier
from ..services.followups import FollowUpService
from ..services.tokens import TokenService

logger = logging.getLogger(__name__)

CRON_ACTOR = "system:followup"
DEFAULT_MAX_ATTEMPTS = 10


# =============================================================================
# ALERTING
# =============================================================================


async def send_alert(
    title: str,
    message: str,
    severity: str = "error",
    details: dict | None = None,
) -> None:
    """
    Send an alert when the cron job fails.

    Always logs; also posts to ALERT_WEBHOOK_URL (PagerDuty, Opsgenie,
    custom) when it is set.
    """
    log_message = f"[CRON ALERT] {title}: {message}"
    if details:
        log_message += f" | Details: {details}"

    if severity == "critical":
        logger.critical(log_message)
    else:
        logger.error(log_message)

    alert_webhook_url = os.getenv("ALERT_WEBHOOK_URL")
    if alert_webhook_url:
        payload = {
            "title": title,
            "message": message,
            "severity": severity,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "source": "review-gateway-cron",
            "details": details or {},
        }
        try:
            async with httpx.AsyncClient() as client:
                await client.post(alert_webhook_url, json=payload, timeout=10)
        except httpx.HTTPError as e:
            logger.error(f"Failed to send webhook alert: {e}")


# =============================================================================
# PROCESSING
# =============================================================================


async def retry_document_generation(
    store: RecordStore,
    documents: DocumentGenerator,
    notifier: Notifier,
    clock: Clock = utc_now,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> tuple[int, int, list[str]]:
    """Returns (completed, still_failing, errors)."""
    followups = FollowUpService(store, clock=clock)
    processor = DecisionProcessor(store, documents, notifier, clock=clock)

    application_ids = []
    for failure in await followups.open_failures(EffectKind.DOCUMENT_GENERATION):
        if failure.attempts >= max_attempts:
            continue
        if failure.application_id not in application_ids:
            application_ids.append(failure.application_id)

    completed, failing, errors = 0, 0, []
    for application_id in application_ids:
        try:
            outcome = await processor.retry_documents(application_id, actor=CRON_ACTOR)
        except ReviewGatewayError as e:
            await store.session.rollback()
            errors.append(f"Application {application_id}: {e}")
            failing += 1
            continue

        if outcome.document_id:
            completed += 1
        else:
            failing += 1
        await store.commit()

    return completed, failing, errors


async def replay_notifications(
    store: RecordStore,
    notifier: Notifier,
    clock: Clock = utc_now,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> tuple[int, int]:
    """Returns (delivered, still_failing)."""
    followups = FollowUpService(store, clock=clock)
    delivered, failing = 0, 0

    for failure in await followups.open_failures(EffectKind.NOTIFICATION):
        if failure.attempts >= max_attempts:
            continue
        payload = failure.payload or {}
        try:
            await notifier.notify(
                payload.get("target_id"),
                payload.get("event_type", "application.updated"),
                payload.get("payload", {}),
            )
        except Exception as e:
            await followups.record_retry_failure(failure, e)
            failing += 1
        else:
            await followups.resolve(failure, actor=CRON_ACTOR)
            delivered += 1
        await store.commit()

    return delivered, failing


async def process_followups(
    store: RecordStore,
    documents: DocumentGenerator | None = None,
    notifier: Notifier | None = None,
    clock: Clock = utc_now,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> dict[str, Any]:
    """Run one follow-up pass against an open store."""
    documents = documents or get_document_generator()
    notifier = notifier or get_notifier()

    completed, documents_failing, errors = await retry_document_generation(
        store, documents, notifier, clock=clock, max_attempts=max_attempts
    )
    delivered, notifications_failing = await replay_notifications(
        store, notifier, clock=clock, max_attempts=max_attempts
    )
    expired = await TokenService(store, clock=clock).sweep_expired()
    await store.commit()

    return {
        "documents_completed": completed,
        "documents_failing": documents_failing,
        "notifications_delivered": delivered,
        "notifications_failing": notifications_failing,
        "tokens_expired": expired,
        "errors": errors,
    }


async def run_followup_job(
    database_url: str,
    documents: DocumentGenerator | None = None,
    notifier: Notifier | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> dict[str, Any]:
    """
    Main entry point for the follow-up cron job.

    Args:
        database_url: Async SQLAlchemy connection string
        documents: Document generator (defaults to the configured one)
        notifier: Notifier (defaults to the configured one)
        max_attempts: Failures retried this many times are left for staff

    Returns:
        Job result summary
    """
    start_time = datetime.now(timezone.utc)
    logger.info(f"Starting follow-up job at {start_time.isoformat()}")

    engine = create_async_engine(database_url)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)

    results: dict[str, Any] = {"started_at": start_time.isoformat(), "completed_at": None}

    try:
        async with session_factory() as session:
            results.update(
                await process_followups(
                    RecordStore(session),
                    documents=documents,
                    notifier=notifier,
                    max_attempts=max_attempts,
                )
            )
    except Exception as e:
        logger.error(f"Follow-up job failed: {e}")
        await send_alert(
            title="Follow-up Cron Job Failed",
            message="The follow-up job crashed unexpectedly.",
            severity="critical",
            details={
                "error": str(e),
                "traceback": traceback.format_exc()[-500:],
                "started_at": results["started_at"],
            },
        )
        raise
    finally:
        await engine.dispose()

    end_time = datetime.now(timezone.utc)
    results["completed_at"] = end_time.isoformat()
    results["duration_seconds"] = (end_time - start_time).total_seconds()

    logger.info(
        f"Follow-up job completed in {results['duration_seconds']:.2f}s: "
        f"{results['documents_completed']} documents, "
        f"{results['notifications_delivered']} notifications, "
        f"{results['tokens_expired']} tokens expired"
    )

    if results["documents_failing"] or results["notifications_failing"]:
        await send_alert(
            title="Follow-up Job Completed with Warnings",
            message="Some downstream effects are still failing.",
            severity="warning",
            details={
                "documents_failing": results["documents_failing"],
                "notifications_failing": results["notifications_failing"],
                "errors": results["errors"][:5],
            },
        )

    return results


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def main():
    """CLI entry point for the follow-up job."""
    import argparse

    parser = argparse.ArgumentParser(description="Retry failed review follow-ups")
    parser.add_argument(
        "--database-url",
        default=os.environ.get("DATABASE_URL"),
        help="Database connection string",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=DEFAULT_MAX_ATTEMPTS,
        help="Stop retrying a failure after this many attempts",
    )

    args = parser.parse_args()

    if not args.database_url:
        print("Error: DATABASE_URL is required")
        raise SystemExit(1)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    database_url = args.database_url.replace("postgresql://", "postgresql+asyncpg://")
    try:
        results = asyncio.run(run_followup_job(database_url, max_attempts=args.max_attempts))
        print(f"Job completed: {results}")
    except Exception as e:
        print(f"Job failed: {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
