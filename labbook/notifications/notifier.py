"""In-app and email notifications for booking events."""

from __future__ import annotations

import asyncio
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from labbook.config import NotificationsConfig, get_config
from labbook.core import queue
from labbook.db.models import NotificationModel, UserModel
from labbook.db.users import UserRepository
from labbook.notifications.email import EmailService
from labbook.notifications.slack import booking_review_blocks, send_slack_notification

logger = structlog.get_logger(__name__)

# event -> (title, message); message may reference {reference} and {comment}
BOOKING_EVENTS: dict[str, tuple[str, str]] = {
    "submitted": (
        "Booking submitted",
        "Your booking {reference} was submitted and is awaiting review.",
    ),
    "pending_user_verification": (
        "Booking awaiting account verification",
        "Your booking {reference} will be reviewed once your account is verified.",
    ),
    "resubmitted": (
        "Booking resubmitted",
        "Your revised booking {reference} was resubmitted for review.",
    ),
    "approved": ("Booking approved", "Your booking {reference} has been approved."),
    "rejected": ("Booking rejected", "Your booking {reference} was rejected. {comment}"),
    "revision_requested": (
        "Changes requested",
        "An administrator asked for changes to booking {reference}. {comment}",
    ),
    "cancelled_by_user": ("Booking cancelled", "You cancelled booking {reference}."),
    "cancelled_by_admin": (
        "Booking cancelled",
        "Booking {reference} was cancelled by an administrator. {comment}",
    ),
    "in_progress": ("Lab work started", "Work on booking {reference} is in progress."),
    "completed": ("Booking completed", "Booking {reference} is complete."),
    "timeline_updated": (
        "Booking dates updated",
        "The preferred dates for booking {reference} were updated.",
    ),
    "sample_status_changed": (
        "Sample status updated",
        "Sample {comment} on booking {reference} has a new status.",
    ),
    "document_verified": (
        "Document verified",
        "A document on booking {reference} was verified.",
    ),
    "document_rejected": (
        "Document rejected",
        "A document on booking {reference} was rejected: {comment}",
    ),
    "payment_verified": (
        "Payment verified",
        "Your payment for booking {reference} was verified.",
    ),
    "payment_rejected": (
        "Payment rejected",
        "Your payment for booking {reference} was rejected: {comment}",
    ),
    "modification_approved": (
        "Quantity change approved",
        "Your quantity change on booking {reference} was approved. {comment}",
    ),
    "modification_rejected": (
        "Quantity change rejected",
        "Your quantity change on booking {reference} was rejected. {comment}",
    ),
}


class BookingNotifier:
    """Writes notification rows and sends the matching email.

    Runs after commit from an outbox; exceptions propagate to the outbox,
    which logs them.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        email_service: EmailService | None = None,
        config: NotificationsConfig | None = None,
    ):
        self._session_factory = session_factory
        self._email = email_service
        self._config = config

    @property
    def config(self) -> NotificationsConfig:
        if self._config is None:
            self._config = get_config().notifications
        return self._config

    async def booking_event(
        self,
        user_id: UUID,
        booking_id: UUID,
        reference_number: str,
        event: str,
        comment: str | None = None,
    ) -> None:
        title, template = BOOKING_EVENTS[event]
        message = template.format(reference=reference_number, comment=comment or "").strip()

        async with self._session_factory() as session:
            user = await UserRepository(session).get(user_id)
            if user is None:
                logger.warning("notification_user_missing", user_id=str(user_id), event=event)
                return
            notification = NotificationModel(
                user_id=user_id,
                type=f"booking_{event}",
                title=title,
                message=message,
                related_entity_type="booking",
                related_entity_id=str(booking_id),
            )
            session.add(notification)
            notification.email_sent = await self._send_email(user, reference_number, title, message)
            await session.commit()

        logger.info("booking_notification_sent", booking_id=str(booking_id), event=event)

    async def notify_admins(self, booking_id: UUID, reference_number: str, message: str) -> None:
        async with self._session_factory() as session:
            admins = await UserRepository(session).active_admins()
            for admin in admins:
                session.add(
                    NotificationModel(
                        user_id=admin.id,
                        type="admin_booking_review",
                        title=f"Booking {reference_number} needs review",
                        message=message,
                        related_entity_type="booking",
                        related_entity_id=str(booking_id),
                    )
                )
            await session.commit()

        await send_slack_notification(
            f"{reference_number}: {message}",
            blocks=booking_review_blocks(reference_number, message, self.config.portal_url),
        )

    async def _send_email(self, user: UserModel, reference_number: str, title: str, message: str) -> bool:
        if not self.config.email_enabled:
            return False

        if self.config.via_queue:
            await queue.enqueue(
                "send_email_job",
                to_email=user.email,
                recipient_name=user.full_name,
                reference_number=reference_number,
                title=title,
                message=message,
            )
            return True

        email = self._email or EmailService()
        return await asyncio.to_thread(
            email.send_booking_event,
            user.email,
            user.full_name,
            reference_number,
            title,
            message,
            self.config.portal_url,
        )
