"""Sample tracking and the booking status derived from it."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from uuid import UUID

import structlog

from labbook.core.audit_logger import AuditLogger
from labbook.core.errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from labbook.core.outbox import Outbox
from labbook.db.models import AnalysisResultModel, SampleTrackingModel
from labbook.db.unit_of_work import UnitOfWork, UnitOfWorkFactory
from labbook.documents.storage import LocalFileStorage
from labbook.models import Actor, BookingStatus, SampleStatus
from labbook.notifications.notifier import BookingNotifier
from labbook.utils.clock import utcnow

logger = structlog.get_logger(__name__)

NEXT_STATUS: dict[SampleStatus, SampleStatus] = {
    SampleStatus.PENDING: SampleStatus.RECEIVED,
    SampleStatus.RECEIVED: SampleStatus.IN_ANALYSIS,
    SampleStatus.IN_ANALYSIS: SampleStatus.ANALYSIS_COMPLETE,
    SampleStatus.ANALYSIS_COMPLETE: SampleStatus.RETURN_REQUESTED,
    SampleStatus.RETURN_REQUESTED: SampleStatus.RETURNED,
}

STATUS_TIMESTAMPS: dict[SampleStatus, str] = {
    SampleStatus.RECEIVED: "received_at",
    SampleStatus.IN_ANALYSIS: "analysis_started_at",
    SampleStatus.ANALYSIS_COMPLETE: "analysis_complete_at",
    SampleStatus.RETURN_REQUESTED: "return_requested_at",
    SampleStatus.RETURNED: "returned_at",
}

ACTIVE_SAMPLE_STATUSES = frozenset(
    {SampleStatus.RECEIVED, SampleStatus.IN_ANALYSIS, SampleStatus.RETURN_REQUESTED}
)
FINISHED_SAMPLE_STATUSES = frozenset({SampleStatus.ANALYSIS_COMPLETE, SampleStatus.RETURNED})
TRACKED_BOOKING_STATUSES = frozenset({BookingStatus.APPROVED, BookingStatus.IN_PROGRESS})
# Samples may still be returned after the booking has been released.
SAMPLE_UPDATE_BOOKING_STATUSES = TRACKED_BOOKING_STATUSES | {BookingStatus.COMPLETED}
RESULT_SAMPLE_STATUSES = FINISHED_SAMPLE_STATUSES | {SampleStatus.IN_ANALYSIS, SampleStatus.RETURN_REQUESTED}


def derive_booking_status(
    current: BookingStatus, sample_statuses: list[SampleStatus], workspace_ended: bool = False
) -> BookingStatus:
    """Booking status implied by its samples.

    Only approved and in-progress bookings follow their samples. A booking
    without samples completes once its bench time has ended and otherwise
    keeps its status.
    """
    if current not in TRACKED_BOOKING_STATUSES:
        return current
    if not sample_statuses:
        return BookingStatus.COMPLETED if workspace_ended else current
    if all(status in FINISHED_SAMPLE_STATUSES for status in sample_statuses):
        return BookingStatus.COMPLETED
    if any(status in ACTIVE_SAMPLE_STATUSES for status in sample_statuses):
        return BookingStatus.IN_PROGRESS
    return current


class SampleService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        storage: LocalFileStorage,
        audit: AuditLogger,
        notifier: BookingNotifier,
        clock: Callable[[], datetime] | None = None,
    ):
        self._uow = uow_factory
        self._storage = storage
        self._audit = audit
        self._notifier = notifier
        self._now = clock or utcnow

    async def list_for_booking(self, actor: Actor, booking_id: UUID) -> list[SampleTrackingModel]:
        async with self._uow() as uow:
            booking = await uow.bookings.get(booking_id)
            if booking is None:
                raise NotFoundError(f"Booking {booking_id} not found")
            if not actor.is_admin and booking.user_id != actor.id:
                raise ForbiddenError("You do not have access to this booking")
            return await uow.samples.list_for_booking(booking_id)

    async def update_status(
        self, admin_id: UUID, sample_id: UUID, new_status: SampleStatus
    ) -> SampleTrackingModel:
        """Advance a sample one step and recompute its booking's status."""
        new_status = SampleStatus(new_status)
        outbox = Outbox()
        async with self._uow() as uow:
            sample = await uow.samples.get(sample_id, for_update=True)
            if sample is None:
                raise NotFoundError(f"Sample {sample_id} not found")
            booking_id = await uow.samples.booking_id_for_sample(sample_id)
            booking = await uow.bookings.get(booking_id, for_update=True)
            if BookingStatus(booking.status) not in SAMPLE_UPDATE_BOOKING_STATUSES:
                raise InvalidStateError(
                    f"Samples on booking {booking.reference_number} cannot change while it is '{booking.status}'",
                    current=booking.status,
                    expected=sorted(status.value for status in SAMPLE_UPDATE_BOOKING_STATUSES),
                )

            current = SampleStatus(sample.status)
            if NEXT_STATUS.get(current) != new_status:
                raise InvalidStateError(
                    f"Sample {sample.sample_identifier} cannot move from '{current.value}' to '{new_status.value}'",
                    current=current.value,
                    expected=[NEXT_STATUS[current].value] if current in NEXT_STATUS else [],
                )

            now = self._now()
            sample.status = new_status.value
            setattr(sample, STATUS_TIMESTAMPS[new_status], now)
            sample.updated_by = admin_id
            sample.updated_at = now
            await uow.flush()

            outbox.add(
                "sample.status_changed",
                self._audit.log_action,
                action="sample.status_changed",
                user_id=admin_id,
                entity="sample",
                entity_id=sample.id,
                details={"booking_id": booking_id, "old_status": current, "new_status": new_status},
            )
            outbox.add(
                "notify:sample",
                self._notifier.booking_event,
                user_id=booking.user_id,
                booking_id=booking.id,
                reference_number=booking.reference_number,
                event="sample_status_changed",
                comment=sample.sample_identifier,
            )
            await self._recompute(uow, booking_id, admin_id, outbox)

        await outbox.flush()
        return sample

    async def recompute_booking_status(self, booking_id: UUID, actor_id: UUID | None = None) -> BookingStatus:
        outbox = Outbox()
        async with self._uow() as uow:
            status = await self._recompute(uow, booking_id, actor_id, outbox)
        await outbox.flush()
        return status

    async def complete_finished_workspace_bookings(self) -> int:
        """Complete bench-only bookings whose end date has passed; returns how many completed."""
        async with self._uow() as uow:
            booking_ids = await uow.bookings.ids_with_ended_workspace(self._now().date())

        completed = 0
        for booking_id in booking_ids:
            try:
                status = await self.recompute_booking_status(booking_id)
            except InvalidStateError:
                logger.warning("workspace_completion_skipped", booking_id=str(booking_id))
                continue
            if status == BookingStatus.COMPLETED:
                completed += 1

        logger.info("workspace_bookings_completed", checked=len(booking_ids), completed=completed)
        return completed

    async def _recompute(
        self, uow: UnitOfWork, booking_id: UUID, actor_id: UUID | None, outbox: Outbox
    ) -> BookingStatus:
        booking = await uow.bookings.get(booking_id, for_update=True)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")

        current = BookingStatus(booking.status)
        samples = await uow.samples.list_for_booking(booking_id)
        workspace_ended = False
        if not samples and booking.preferred_end_date is not None:
            workspace_ended = booking.preferred_end_date <= self._now().date() and (
                await uow.bookings.has_workspace_items(booking_id)
            )
        target = derive_booking_status(
            current, [SampleStatus(sample.status) for sample in samples], workspace_ended
        )
        if target == current:
            return current

        values = {"status": target.value, "updated_at": self._now()}
        if target == BookingStatus.COMPLETED:
            values["released_at"] = self._now()
        if not await uow.bookings.compare_and_set(booking, current.value, values):
            raise InvalidStateError(
                f"Booking {booking.reference_number} changed concurrently; reload and retry",
                current=current.value,
            )

        logger.info(
            "booking_status_recomputed",
            booking_id=str(booking_id),
            old_status=current.value,
            new_status=target.value,
        )
        outbox.add(
            "booking.status_recomputed",
            self._audit.log_action,
            action="booking.status_recomputed",
            user_id=actor_id,
            entity="booking",
            entity_id=booking_id,
            details={"old_status": current, "new_status": target},
        )
        outbox.add(
            f"notify:{target.value}",
            self._notifier.booking_event,
            user_id=booking.user_id,
            booking_id=booking.id,
            reference_number=booking.reference_number,
            event=target.value,
        )
        return target

    async def upload_result(
        self,
        admin_id: UUID,
        sample_id: UUID,
        filename: str,
        content: bytes,
        file_type: str | None = None,
        description: str | None = None,
    ) -> AnalysisResultModel:
        if not content:
            raise ValidationError("Empty file", [{"field": "file", "message": "File is empty"}])

        outbox = Outbox()
        async with self._uow() as uow:
            sample = await uow.samples.get(sample_id)
            if sample is None:
                raise NotFoundError(f"Sample {sample_id} not found")
            if SampleStatus(sample.status) not in RESULT_SAMPLE_STATUSES:
                raise InvalidStateError(
                    f"Sample {sample.sample_identifier} has not entered analysis",
                    current=sample.status,
                )
            booking_id = await uow.samples.booking_id_for_sample(sample_id)

            key = self._storage.key_for(booking_id, filename)
            await self._storage.save(key, content)
            result = AnalysisResultModel(
                sample_tracking_id=sample.id,
                file_name=filename,
                file_path=key,
                file_type=file_type,
                file_size=len(content),
                description=description,
                uploaded_by=admin_id,
                created_at=self._now(),
            )
            uow.samples.add_result(result)
            await uow.flush()
            outbox.add(
                "result.upload",
                self._audit.log_action,
                action="result.upload",
                user_id=admin_id,
                entity="analysis_result",
                entity_id=result.id,
                details={"sample_id": sample.id, "booking_id": booking_id, "file_name": filename},
            )

        await outbox.flush()
        return result
