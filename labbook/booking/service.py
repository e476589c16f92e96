"""Booking lifecycle service.

Every mutating operation runs in one unit of work: the booking row is read
(locked where the database supports it), the transition is checked against
``labbook.booking.status``, and the status change is applied as a
compare-and-set on the observed status. Audit entries and notifications are
queued on an outbox and flushed only after the transaction commits.
"""

from __future__ import annotations

import secrets
import string
import time
from collections.abc import Callable, Sequence
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

import structlog

from labbook.booking import status as transitions
from labbook.booking.models import (
    BookingDetail,
    BookingPage,
    BulkActionOutcome,
    BulkItemResult,
    DraftCreated,
    ServiceResult,
)
from labbook.booking.repository import resolve_page_size
from labbook.booking.status import Transition
from labbook.config import BookingConfig, get_config
from labbook.core.audit_logger import AuditLogger
from labbook.core.errors import (
    BadRequestError,
    ForbiddenError,
    InvalidStateError,
    LabBookError,
    NotEditableError,
    NotFoundError,
    ValidationError,
)
from labbook.core.outbox import Outbox
from labbook.db.models import (
    BookingRequestModel,
    BookingServiceItemModel,
    SampleTrackingModel,
    ServiceAddOnModel,
)
from labbook.db.unit_of_work import UnitOfWork, UnitOfWorkFactory
from labbook.models import (
    Actor,
    AdminAction,
    BookingDraftUpdate,
    BookingListParams,
    BookingStatus,
    ServiceCategory,
    UserStatus,
)
from labbook.notifications.notifier import BookingNotifier
from labbook.utils.clock import utcnow

logger = structlog.get_logger(__name__)

_BASE36 = string.digits + string.ascii_uppercase

ADMIN_EVENTS = {
    AdminAction.APPROVE: "approved",
    AdminAction.REJECT: "rejected",
    AdminAction.REQUEST_REVISION: "revision_requested",
}


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits)) or "0"


def generate_reference_number() -> str:
    """``BK-<base36 epoch millis>-<4 random base36 chars>``."""
    stamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"BK-{stamp}-{suffix}"


class BookingService:
    """Owner and admin operations on booking requests."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        audit: AuditLogger,
        notifier: BookingNotifier,
        config: BookingConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._uow = uow_factory
        self._audit = audit
        self._notifier = notifier
        self._config = config or get_config().booking
        self._now = clock or utcnow

    # ------------------------------------------------------------------
    # helpers

    async def _load(self, uow: UnitOfWork, booking_id: UUID) -> BookingRequestModel:
        booking = await uow.bookings.get(booking_id, for_update=True)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    @staticmethod
    def _require_owner(booking: BookingRequestModel, user_id: UUID) -> None:
        if booking.user_id != user_id:
            raise ForbiddenError("You do not have access to this booking")

    @staticmethod
    def _require_source(booking: BookingRequestModel, transition: Transition) -> None:
        allowed = transitions.allowed_sources(transition)
        if BookingStatus(booking.status) not in allowed:
            expected = sorted(status.value for status in allowed)
            raise InvalidStateError(
                f"Cannot {transition.value.replace('_', ' ')} booking {booking.reference_number}: "
                f"status is '{booking.status}', expected one of {', '.join(expected)}",
                current=booking.status,
                expected=expected,
            )

    async def _apply(
        self,
        uow: UnitOfWork,
        booking: BookingRequestModel,
        target: BookingStatus,
        **values: Any,
    ) -> str:
        """Compare-and-set the status; returns the previous status."""
        previous = booking.status
        values.setdefault("updated_at", self._now())
        applied = await uow.bookings.compare_and_set(
            booking, previous, {"status": target.value, **values}
        )
        if not applied:
            raise InvalidStateError(
                f"Booking {booking.reference_number} changed concurrently; reload and retry",
                current=previous,
            )
        logger.info(
            "booking_transition_applied",
            booking_id=str(booking.id),
            old_status=previous,
            new_status=target.value,
        )
        return previous

    def _queue_audit(
        self,
        outbox: Outbox,
        action: str,
        user_id: UUID | None,
        booking: BookingRequestModel,
        **details: Any,
    ) -> None:
        outbox.add(
            action,
            self._audit.log_action,
            action=action,
            user_id=user_id,
            entity="booking",
            entity_id=booking.id,
            details={"reference_number": booking.reference_number, **details},
        )

    def _queue_notify(
        self, outbox: Outbox, booking: BookingRequestModel, event: str, comment: str | None = None
    ) -> None:
        outbox.add(
            f"notify:{event}",
            self._notifier.booking_event,
            user_id=booking.user_id,
            booking_id=booking.id,
            reference_number=booking.reference_number,
            event=event,
            comment=comment,
        )

    def _queue_admin_alert(self, outbox: Outbox, booking: BookingRequestModel, message: str) -> None:
        outbox.add(
            "notify:admins",
            self._notifier.notify_admins,
            booking_id=booking.id,
            reference_number=booking.reference_number,
            message=message,
        )

    async def _new_reference(self, uow: UnitOfWork) -> str:
        for _ in range(5):
            reference = generate_reference_number()
            if not await uow.bookings.reference_exists(reference):
                return reference
        raise RuntimeError("Could not allocate a unique booking reference number")

    # ------------------------------------------------------------------
    # owner operations

    async def create_draft(self, user_id: UUID, service_id: UUID | None = None) -> DraftCreated:
        outbox = Outbox()
        async with self._uow() as uow:
            user = await uow.users.get(user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")

            booking = BookingRequestModel(
                reference_number=await self._new_reference(uow),
                status=BookingStatus.DRAFT.value,
                user_id=user_id,
                total_amount=Decimal("0"),
                created_at=self._now(),
                updated_at=self._now(),
            )
            uow.bookings.add(booking)
            await uow.flush()

            if service_id is not None:
                service = await uow.catalog.get_service(service_id)
                if service is None or not service.is_active:
                    raise ValidationError(
                        "Unknown service",
                        [{"field": "service_id", "message": "Service not found or inactive"}],
                    )
                unit_price = await uow.catalog.current_price(service.id, user.user_type, self._now())
                unit_price = unit_price or Decimal("0")
                item = BookingServiceItemModel(
                    service_id=service.id,
                    service_category=service.category,
                    quantity=1,
                    unit_price=unit_price,
                    total_price=unit_price,
                )
                await uow.bookings.replace_items(booking.id, [(item, [])])
                booking.total_amount = unit_price

            self._queue_audit(outbox, "booking.create_draft", user_id, booking)

        await outbox.flush()
        return DraftCreated(booking_id=booking.id, reference_number=booking.reference_number)

    async def get_booking(self, actor: Actor, booking_id: UUID) -> BookingDetail:
        async with self._uow() as uow:
            booking = await uow.bookings.get(booking_id)
            if booking is None:
                raise NotFoundError(f"Booking {booking_id} not found")
            if not actor.is_admin:
                self._require_owner(booking, actor.id)
            return await self._detail(uow, booking)

    async def _detail(self, uow: UnitOfWork, booking: BookingRequestModel) -> BookingDetail:
        items = await uow.bookings.list_items(booking.id)
        add_ons: dict[UUID, list[ServiceAddOnModel]] = {}
        for add_on in await uow.bookings.list_add_ons(item.id for item in items):
            add_ons.setdefault(add_on.booking_service_item_id, []).append(add_on)
        return BookingDetail(booking=booking, items=items, add_ons=add_ons)

    async def save_draft(
        self,
        user_id: UUID,
        booking_id: UUID,
        dto: BookingDraftUpdate,
        user_type: str,
    ) -> BookingDetail:
        """Persist edits to a draft or a booking returned for revision."""
        outbox = Outbox()
        async with self._uow() as uow:
            booking = await self._load(uow, booking_id)
            self._require_owner(booking, user_id)
            if not transitions.is_editable(booking.status):
                raise NotEditableError(
                    f"Booking {booking.reference_number} cannot be edited in status '{booking.status}'"
                )

            fields = dto.model_dump(exclude_unset=True, exclude={"service_items"})
            for name, value in fields.items():
                setattr(booking, name, value)

            if dto.service_items is not None:
                booking.total_amount = await self._replace_items(uow, booking, dto, user_type)

            booking.updated_at = self._now()
            await uow.flush()
            detail = await self._detail(uow, booking)
            self._queue_audit(
                outbox,
                "booking.save_draft",
                user_id,
                booking,
                fields=sorted(dto.model_dump(exclude_unset=True)),
            )

        await outbox.flush()
        return detail

    async def _replace_items(
        self,
        uow: UnitOfWork,
        booking: BookingRequestModel,
        dto: BookingDraftUpdate,
        user_type: str,
    ) -> Decimal:
        inputs = dto.service_items or []
        services = await uow.catalog.get_services(item.service_id for item in inputs)
        add_on_catalog = await uow.catalog.get_add_ons(
            add_on.add_on_id for item in inputs for add_on in item.add_ons
        )

        errors: list[dict[str, str]] = []
        rows: list[tuple[BookingServiceItemModel, list[ServiceAddOnModel]]] = []
        total = Decimal("0")
        now = self._now()

        for index, item_input in enumerate(inputs):
            service = services.get(item_input.service_id)
            if service is None or not service.is_active:
                errors.append(
                    {"field": f"service_items[{index}].service_id", "message": "Unknown service"}
                )
                continue

            unit_price = await uow.catalog.current_price(service.id, user_type, now)
            if unit_price is None:
                errors.append(
                    {
                        "field": f"service_items[{index}].service_id",
                        "message": f"No price configured for user type '{user_type}'",
                    }
                )
                continue

            add_on_rows = []
            for add_on_input in item_input.add_ons:
                catalog_entry = add_on_catalog.get(add_on_input.add_on_id)
                if catalog_entry is None:
                    errors.append(
                        {"field": f"service_items[{index}].add_ons", "message": "Unknown add-on"}
                    )
                    continue
                amount = (
                    add_on_input.amount
                    if add_on_input.amount is not None
                    else catalog_entry.default_amount
                )
                add_on_rows.append(
                    ServiceAddOnModel(
                        add_on_catalog_id=catalog_entry.id, name=catalog_entry.name, amount=amount
                    )
                )

            line_total = unit_price * item_input.quantity + sum(
                (row.amount for row in add_on_rows), Decimal("0")
            )
            total += line_total
            rows.append(
                (
                    BookingServiceItemModel(
                        service_id=service.id,
                        service_category=service.category,
                        quantity=item_input.quantity,
                        unit_price=unit_price,
                        total_price=line_total,
                        sample_name=item_input.sample_name,
                        sample_type=item_input.sample_type,
                        notes=item_input.notes,
                    ),
                    add_on_rows,
                )
            )

        if errors:
            raise ValidationError("Invalid service items", errors)

        await uow.bookings.replace_items(booking.id, rows)
        return total

    async def _validate_for_submission(self, uow: UnitOfWork, booking: BookingRequestModel) -> None:
        errors: list[dict[str, str]] = []
        if not (booking.project_description or "").strip():
            errors.append({"field": "project_description", "message": "Project description is required"})

        items = await uow.bookings.list_items(booking.id)
        if not items:
            errors.append({"field": "service_items", "message": "Select at least one service"})

        services = await uow.catalog.get_services(item.service_id for item in items)
        for index, item in enumerate(items):
            service = services.get(item.service_id)
            if service is not None and service.requires_sample and not (item.sample_name or "").strip():
                errors.append(
                    {"field": f"service_items[{index}].sample_name", "message": "Sample name is required"}
                )

        has_workspace = any(
            item.service_category == ServiceCategory.WORKING_SPACE.value for item in items
        )
        if has_workspace and (booking.preferred_start_date is None or booking.preferred_end_date is None):
            errors.append(
                {"field": "preferred_start_date", "message": "Working space bookings need start and end dates"}
            )
        if (
            booking.preferred_start_date is not None
            and booking.preferred_end_date is not None
            and booking.preferred_start_date > booking.preferred_end_date
        ):
            errors.append({"field": "preferred_end_date", "message": "End date must not precede start date"})

        if errors:
            raise ValidationError("Booking is incomplete", errors)

    async def submit(self, user_id: UUID, booking_id: UUID, user_status: UserStatus | str) -> BookingDetail:
        """Submit a draft, or resubmit a booking returned for revision."""
        outbox = Outbox()
        async with self._uow() as uow:
            booking = await self._load(uow, booking_id)
            self._require_owner(booking, user_id)

            if booking.status == BookingStatus.REVISION_REQUESTED.value:
                transition = Transition.RESUBMIT
                target = transitions.TARGETS[Transition.RESUBMIT]
            else:
                transition = Transition.SUBMIT
                target = transitions.submit_target(UserStatus(user_status) == UserStatus.ACTIVE)
            self._require_source(booking, transition)
            await self._validate_for_submission(uow, booking)

            previous = await self._apply(
                uow, booking, target, reviewed_by=None, reviewed_at=None, review_notes=None
            )
            detail = await self._detail(uow, booking)

            self._queue_audit(
                outbox,
                f"booking.{transition.value}",
                user_id,
                booking,
                old_status=previous,
                new_status=target,
            )
            if transition == Transition.RESUBMIT:
                self._queue_notify(outbox, booking, "resubmitted")
            elif target == BookingStatus.PENDING_APPROVAL:
                self._queue_notify(outbox, booking, "submitted")
            else:
                self._queue_notify(outbox, booking, "pending_user_verification")
            if target in transitions.REVIEWABLE_STATUSES:
                self._queue_admin_alert(outbox, booking, f"Booking is {target.value.replace('_', ' ')}")

        await outbox.flush()
        return detail

    async def update_timeline(
        self, actor: Actor, booking_id: UUID, start: date | None, end: date | None
    ) -> BookingRequestModel:
        outbox = Outbox()
        async with self._uow() as uow:
            booking = await self._load(uow, booking_id)
            if not actor.is_admin:
                self._require_owner(booking, actor.id)
            if booking.status == BookingStatus.CANCELLED.value:
                raise InvalidStateError(
                    f"Booking {booking.reference_number} is cancelled",
                    current=booking.status,
                )
            if start is not None and end is not None and start > end:
                raise ValidationError(
                    "Invalid timeline",
                    [{"field": "preferred_end_date", "message": "End date must not precede start date"}],
                )

            previous = {
                "start": booking.preferred_start_date,
                "end": booking.preferred_end_date,
            }
            booking.preferred_start_date = start
            booking.preferred_end_date = end
            booking.updated_at = self._now()
            await uow.flush()

            self._queue_audit(
                outbox,
                "booking_timeline_updated",
                actor.id,
                booking,
                previous=previous,
                new={"start": start, "end": end},
                by_admin=actor.is_admin,
            )
            if actor.is_admin:
                self._queue_notify(outbox, booking, "timeline_updated")

        await outbox.flush()
        return booking

    async def delete_draft(self, user_id: UUID, booking_id: UUID) -> None:
        outbox = Outbox()
        async with self._uow() as uow:
            booking = await self._load(uow, booking_id)
            self._require_owner(booking, user_id)
            if not transitions.can_apply(Transition.DELETE_DRAFT, booking.status):
                raise BadRequestError(
                    f"Only draft bookings can be deleted; {booking.reference_number} is "
                    f"'{booking.status}'"
                )
            if not await uow.bookings.delete_if_status(booking.id, BookingStatus.DRAFT.value):
                raise InvalidStateError(
                    f"Booking {booking.reference_number} changed concurrently; reload and retry",
                    current=booking.status,
                )
            self._queue_audit(outbox, "booking.delete_draft", user_id, booking)

        await outbox.flush()

    # ------------------------------------------------------------------
    # cancellation

    async def cancel_booking_by_user(
        self, booking_id: UUID, actor_id: UUID, reason: str | None = None
    ) -> ServiceResult[BookingRequestModel]:
        return await self._cancel(booking_id, actor_id, reason, by_admin=False)

    async def cancel_booking_by_admin(
        self, booking_id: UUID, actor_id: UUID, reason: str | None = None
    ) -> ServiceResult[BookingRequestModel]:
        return await self._cancel(booking_id, actor_id, reason, by_admin=True)

    async def _cancel(
        self, booking_id: UUID, actor_id: UUID, reason: str | None, by_admin: bool
    ) -> ServiceResult[BookingRequestModel]:
        reason = (reason or "").strip() or None
        outbox = Outbox()
        try:
            async with self._uow() as uow:
                booking = await self._load(uow, booking_id)
                if not by_admin:
                    self._require_owner(booking, actor_id)
                self._require_source(booking, Transition.CANCEL)

                if by_admin:
                    notes = f"Cancellation reason: {reason}" if reason else "Booking cancelled by administrator"
                    previous = await self._apply(
                        uow,
                        booking,
                        BookingStatus.CANCELLED,
                        review_notes=notes,
                        reviewed_by=actor_id,
                        reviewed_at=self._now(),
                    )
                else:
                    notes = f"User cancellation: {reason}" if reason else "Booking cancelled by user"
                    previous = await self._apply(
                        uow, booking, BookingStatus.CANCELLED, review_notes=notes
                    )

                action = "booking_cancelled_by_admin" if by_admin else "booking_cancelled_by_user"
                self._queue_audit(
                    outbox,
                    action,
                    actor_id,
                    booking,
                    old_status=previous,
                    new_status=BookingStatus.CANCELLED,
                    reason=reason,
                )
                if by_admin:
                    self._queue_notify(outbox, booking, "cancelled_by_admin", reason)
                else:
                    self._queue_notify(outbox, booking, "cancelled_by_user", reason)
                    self._queue_admin_alert(outbox, booking, "Booking was cancelled by its owner")
        except LabBookError as exc:
            logger.info("booking_cancel_refused", booking_id=str(booking_id), error=exc.kind.value)
            return ServiceResult.failure(exc)

        await outbox.flush()
        return ServiceResult.success(booking)

    # ------------------------------------------------------------------
    # admin review

    async def admin_approve(self, admin_id: UUID, booking_id: UUID, note: str | None = None) -> BookingRequestModel:
        return await self.admin_action(admin_id, booking_id, AdminAction.APPROVE, note)

    async def admin_reject(self, admin_id: UUID, booking_id: UUID, note: str | None = None) -> BookingRequestModel:
        return await self.admin_action(admin_id, booking_id, AdminAction.REJECT, note)

    async def admin_return_for_edit(
        self, admin_id: UUID, booking_id: UUID, note: str | None = None
    ) -> BookingRequestModel:
        return await self.admin_action(admin_id, booking_id, AdminAction.REQUEST_REVISION, note)

    async def admin_action(
        self, admin_id: UUID, booking_id: UUID, action: AdminAction, note: str | None = None
    ) -> BookingRequestModel:
        """Approve, reject or return a booking under review."""
        action = AdminAction(action)
        note = (note or "").strip() or None
        if action in (AdminAction.REJECT, AdminAction.REQUEST_REVISION) and note is None:
            raise ValidationError(
                "A comment is required",
                [{"field": "comment", "message": f"A comment is required to {action.value.replace('_', ' ')}"}],
            )

        transition = transitions.ADMIN_ACTION_TRANSITIONS[action]
        outbox = Outbox()
        async with self._uow() as uow:
            booking = await self._load(uow, booking_id)
            if BookingStatus(booking.status) not in transitions.REVIEWABLE_STATUSES:
                raise InvalidStateError(
                    f"Booking {booking.reference_number} is not reviewable: status is "
                    f"'{booking.status}', expected one of pending_approval, revision_submitted",
                    current=booking.status,
                    expected=sorted(status.value for status in transitions.REVIEWABLE_STATUSES),
                )

            target = transitions.TARGETS[transition]
            previous = await self._apply(
                uow,
                booking,
                target,
                reviewed_by=admin_id,
                reviewed_at=self._now(),
                review_notes=note,
            )
            if action == AdminAction.APPROVE:
                await self._create_sample_tracking(uow, booking)

            self._queue_audit(
                outbox,
                f"booking.{action.value}",
                admin_id,
                booking,
                old_status=previous,
                new_status=target,
                comment=note,
            )
            self._queue_notify(outbox, booking, ADMIN_EVENTS[action], note)

        await outbox.flush()
        return booking

    async def _create_sample_tracking(self, uow: UnitOfWork, booking: BookingRequestModel) -> int:
        items = await uow.bookings.list_items(booking.id)
        services = await uow.catalog.get_services(item.service_id for item in items)
        counter = 0
        for item in items:
            service = services.get(item.service_id)
            if service is None or not service.requires_sample:
                continue
            for _ in range(item.quantity):
                counter += 1
                uow.samples.add(
                    SampleTrackingModel(
                        booking_service_item_id=item.id,
                        sample_identifier=f"{booking.reference_number}-S{counter:02d}",
                    )
                )
        await uow.flush()
        return counter

    async def bulk_admin_action(
        self,
        admin_id: UUID,
        booking_ids: Sequence[UUID],
        action: AdminAction,
        comment: str | None = None,
    ) -> BulkActionOutcome:
        """Apply one review action per id; each id succeeds or fails on its own."""
        action = AdminAction(action)
        ids = self._check_bulk_ids(booking_ids)
        outcome = BulkActionOutcome()
        for booking_id in ids:
            try:
                await self.admin_action(admin_id, booking_id, action, comment)
            except LabBookError as exc:
                outcome.results.append(
                    BulkItemResult(id=booking_id, ok=False, error=exc.message, error_kind=exc.kind)
                )
            except Exception:
                logger.exception("bulk_action_item_failed", booking_id=str(booking_id), action=action)
                outcome.results.append(
                    BulkItemResult(id=booking_id, ok=False, error="Unexpected error")
                )
            else:
                outcome.results.append(BulkItemResult(id=booking_id, ok=True))

        summary = Outbox()
        summary.add(
            "booking.bulk_action",
            self._audit.log_action,
            action="booking.bulk_action",
            user_id=admin_id,
            entity="booking",
            details={
                "action": AdminAction(action),
                "booking_ids": ids,
                "success_count": outcome.success_count,
                "failure_count": outcome.failure_count,
                "status": outcome.summary_status,
            },
        )
        await summary.flush()
        return outcome

    async def bulk_delete(self, admin_id: UUID, booking_ids: Sequence[UUID]) -> int:
        """Delete bookings in one statement; only safe statuses are removed."""
        ids = self._check_bulk_ids(booking_ids)
        outbox = Outbox()
        async with self._uow() as uow:
            deleted = await uow.bookings.delete_many_in_statuses(
                ids, transitions.BULK_DELETABLE_STATUSES
            )
            outbox.add(
                "booking.bulk_delete",
                self._audit.log_action,
                action="booking.bulk_delete",
                user_id=admin_id,
                entity="booking",
                details={"booking_ids": ids, "deleted": deleted},
            )
        await outbox.flush()
        return deleted

    def _check_bulk_ids(self, booking_ids: Sequence[UUID]) -> list[UUID]:
        ids = list(dict.fromkeys(booking_ids))
        if not ids:
            raise ValidationError("No bookings selected", [{"field": "ids", "message": "Select at least one booking"}])
        if len(ids) > self._config.max_bulk_ids:
            raise ValidationError(
                "Too many bookings selected",
                [{"field": "ids", "message": f"At most {self._config.max_bulk_ids} bookings per request"}],
            )
        return ids

    async def admin_start_work(self, admin_id: UUID, booking_id: UUID) -> BookingRequestModel:
        return await self._admin_progress(admin_id, booking_id, Transition.START_WORK)

    async def admin_complete(
        self, admin_id: UUID, booking_id: UUID, note: str | None = None
    ) -> BookingRequestModel:
        """Admin override that completes a booking regardless of sample state."""
        return await self._admin_progress(admin_id, booking_id, Transition.COMPLETE, note)

    async def _admin_progress(
        self, admin_id: UUID, booking_id: UUID, transition: Transition, note: str | None = None
    ) -> BookingRequestModel:
        outbox = Outbox()
        async with self._uow() as uow:
            booking = await self._load(uow, booking_id)
            self._require_source(booking, transition)
            target = transitions.TARGETS[transition]
            values: dict[str, Any] = {}
            if target == BookingStatus.COMPLETED:
                values["released_at"] = self._now()
            previous = await self._apply(uow, booking, target, **values)

            action = "booking_force_completed" if transition == Transition.COMPLETE else "booking.start_work"
            self._queue_audit(
                outbox, action, admin_id, booking, old_status=previous, new_status=target, comment=note
            )
            self._queue_notify(outbox, booking, target.value)

        await outbox.flush()
        return booking

    async def on_user_verified(self, admin_id: UUID | None, user_id: UUID) -> int:
        """Activate an account and release its bookings held for verification."""
        outbox = Outbox()
        released = 0
        async with self._uow() as uow:
            user = await uow.users.get(user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")
            user.status = UserStatus.ACTIVE.value

            booking_ids = await uow.bookings.ids_for_user_in_status(
                user_id, BookingStatus.PENDING_USER_VERIFICATION
            )
            for booking_id in booking_ids:
                booking = await self._load(uow, booking_id)
                self._require_source(booking, Transition.USER_VERIFIED)
                previous = await self._apply(uow, booking, BookingStatus.PENDING_APPROVAL)
                released += 1
                self._queue_audit(
                    outbox,
                    "booking.user_verified",
                    admin_id,
                    booking,
                    old_status=previous,
                    new_status=BookingStatus.PENDING_APPROVAL,
                )
                self._queue_notify(outbox, booking, "submitted")
                self._queue_admin_alert(outbox, booking, "Booking is pending approval")

            outbox.add(
                "user.verified",
                self._audit.log_action,
                action="user.verified",
                user_id=admin_id,
                entity="user",
                entity_id=user_id,
                details={"released_bookings": released},
            )

        await outbox.flush()
        return released

    # ------------------------------------------------------------------
    # maintenance

    async def purge_expired_drafts(self, cutoff: datetime | None = None) -> int:
        """Delete drafts whose last update is strictly older than ``cutoff``."""
        if cutoff is None:
            cutoff = self._now() - timedelta(days=self._config.draft_ttl_days)

        outbox = Outbox()
        async with self._uow() as uow:
            deleted = await uow.bookings.delete_drafts_updated_before(cutoff)
            outbox.add(
                "booking.purge_drafts",
                self._audit.log_action,
                action="booking.purge_drafts",
                user_id=None,
                entity="booking",
                details={"cutoff": cutoff, "deleted": deleted},
            )

        logger.info("expired_drafts_purged", deleted=deleted, cutoff=cutoff.isoformat())
        await outbox.flush()
        return deleted

    # ------------------------------------------------------------------
    # queries

    async def list_user_bookings(self, user_id: UUID, params: BookingListParams) -> BookingPage:
        page_size = resolve_page_size(params.page_size, self._config.user_page_sizes)
        async with self._uow() as uow:
            items, total = await uow.bookings.search(params, page_size, user_id=user_id)
        return BookingPage(items=items, total=total, page=params.page, page_size=page_size)

    async def list_admin_bookings(self, params: BookingListParams) -> BookingPage:
        page_size = resolve_page_size(params.page_size, self._config.admin_page_sizes)
        async with self._uow() as uow:
            items, total = await uow.bookings.search(params, page_size, exclude_draft=True)
        return BookingPage(items=items, total=total, page=params.page, page_size=page_size)

    async def count_user_bookings(self, user_id: UUID) -> dict[str, int]:
        async with self._uow() as uow:
            return await uow.bookings.count_by_status(user_id=user_id)

    async def count_admin_bookings(self) -> dict[str, int]:
        async with self._uow() as uow:
            return await uow.bookings.count_by_status(exclude_draft=True)
