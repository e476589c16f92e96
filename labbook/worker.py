"""arq worker: scheduled draft purge, workspace completion and queued email delivery.

Run with ``arq labbook.worker.WorkerSettings``.
"""

import asyncio
import os
from typing import Any

import structlog
from arq.connections import RedisSettings
from arq.cron import cron

from labbook.booking.service import BookingService
from labbook.config import get_config
from labbook.core.audit_logger import AuditLogger
from labbook.core.logging import configure_logging
from labbook.db.connection import build_engine, make_session_factory
from labbook.db.unit_of_work import unit_of_work_factory
from labbook.documents.storage import LocalFileStorage
from labbook.notifications.email import EmailService
from labbook.notifications.notifier import BookingNotifier
from labbook.samples.service import SampleService

logger = structlog.get_logger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    """Initialize resources when worker starts."""
    configure_logging()
    config = get_config()
    engine = build_engine(
        config.db.url,
        echo=config.db.echo,
        pool_size=config.db.pool_size,
        max_overflow=config.db.pool_max_overflow,
        pool_pre_ping=True,
    )
    session_maker = make_session_factory(engine)
    ctx["engine"] = engine
    ctx["session_maker"] = session_maker
    uow_factory = unit_of_work_factory(session_maker)
    audit = AuditLogger(session_maker)
    notifier = BookingNotifier(session_maker)
    ctx["booking_service"] = BookingService(uow_factory, audit, notifier, config=config.booking)
    ctx["sample_service"] = SampleService(
        uow_factory, LocalFileStorage(config.storage.root), audit, notifier
    )
    ctx["email_service"] = EmailService()
    logger.info("worker_started")


async def shutdown(ctx: dict[str, Any]) -> None:
    """Cleanup resources when worker stops."""
    await ctx["engine"].dispose()
    logger.info("worker_stopped")


async def purge_expired_drafts_job(ctx: dict[str, Any]) -> dict[str, Any]:
    """Delete drafts idle for longer than the retention window."""
    service: BookingService = ctx["booking_service"]
    deleted = await service.purge_expired_drafts()
    return {"deleted": deleted}


async def complete_workspace_bookings_job(ctx: dict[str, Any]) -> dict[str, Any]:
    """Complete bench-only bookings whose end date has passed."""
    service: SampleService = ctx["sample_service"]
    completed = await service.complete_finished_workspace_bookings()
    return {"completed": completed}


async def send_email_job(
    ctx: dict[str, Any],
    to_email: str,
    recipient_name: str,
    reference_number: str,
    title: str,
    message: str,
) -> dict[str, Any]:
    """Deliver one booking notification email queued by the notifier."""
    email_service: EmailService = ctx["email_service"]
    sent = await asyncio.to_thread(
        email_service.send_booking_event,
        to_email,
        recipient_name,
        reference_number,
        title,
        message,
        get_config().notifications.portal_url,
    )
    if not sent:
        logger.info("email_skipped", to_email=to_email, reason="SMTP not configured")
        return {"status": "skipped", "reason": "SMTP not configured"}
    return {"status": "sent", "to": to_email}


class WorkerSettings:
    functions = [purge_expired_drafts_job, complete_workspace_bookings_job, send_email_job]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(
        os.environ.get("REDIS_URL", "redis://redis:6379/0")
    )
    # Daily draft purge and workspace completion
    cron_jobs = [
        cron(
            purge_expired_drafts_job,
            hour=int(os.environ.get("PURGE_CRON_HOUR", "3")),
            minute=0,
            run_at_startup=False,
        ),
        cron(
            complete_workspace_bookings_job,
            hour=int(os.environ.get("WORKSPACE_CRON_HOUR", "1")),
            minute=0,
            run_at_startup=False,
        ),
    ]
