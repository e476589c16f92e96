"""Quantity changes on approved bookings.

Owners ask for a different quantity on one service item; an administrator
approves or rejects the request. Approval reprices the item, shifts the
booking total by the difference and grows or shrinks the item's pending
samples to match.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from uuid import UUID

import structlog

from labbook.core.audit_logger import AuditLogger
from labbook.core.errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from labbook.core.outbox import Outbox
from labbook.db.models import (
    BookingModificationModel,
    BookingRequestModel,
    BookingServiceItemModel,
    SampleTrackingModel,
)
from labbook.db.unit_of_work import UnitOfWork, UnitOfWorkFactory
from labbook.models import Actor, BookingStatus, ModificationStatus, SampleStatus
from labbook.notifications.notifier import BookingNotifier
from labbook.samples.service import SampleService
from labbook.utils.clock import utcnow

logger = structlog.get_logger(__name__)

MODIFIABLE_STATUSES = frozenset({BookingStatus.APPROVED, BookingStatus.IN_PROGRESS})
MIN_REASON_LENGTH = 10


def _sample_number(identifier: str) -> int:
    _, _, suffix = identifier.rpartition("-S")
    return int(suffix) if suffix.isdigit() else 0


class ModificationService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        audit: AuditLogger,
        notifier: BookingNotifier,
        samples: SampleService,
        clock: Callable[[], datetime] | None = None,
    ):
        self._uow = uow_factory
        self._audit = audit
        self._notifier = notifier
        self._samples = samples
        self._now = clock or utcnow

    async def _load_item(
        self, uow: UnitOfWork, item_id: UUID
    ) -> tuple[BookingServiceItemModel, BookingRequestModel]:
        item = await uow.bookings.get_item(item_id, for_update=True)
        if item is None:
            raise NotFoundError(f"Service item {item_id} not found")
        booking = await uow.bookings.get(item.booking_id, for_update=True)
        return item, booking

    @staticmethod
    def _require_modifiable(booking: BookingRequestModel) -> None:
        if BookingStatus(booking.status) not in MODIFIABLE_STATUSES:
            expected = sorted(status.value for status in MODIFIABLE_STATUSES)
            raise InvalidStateError(
                f"Booking {booking.reference_number} cannot be modified while it is "
                f"'{booking.status}'",
                current=booking.status,
                expected=expected,
            )

    async def request_modification(
        self, user_id: UUID, item_id: UUID, new_quantity: int, reason: str
    ) -> BookingModificationModel:
        """Record a pending quantity change and alert the administrators.

        Raises:
            NotFoundError: unknown service item.
            ForbiddenError: the item belongs to someone else's booking.
            InvalidStateError: booking not approved or in progress, or a
                request for this item is already pending.
            ValidationError: quantity below one or unchanged, or a reason
                shorter than ten characters.
        """
        reason = (reason or "").strip()
        errors = []
        if new_quantity < 1:
            errors.append({"field": "new_quantity", "message": "Quantity must be at least 1"})
        if len(reason) < MIN_REASON_LENGTH:
            errors.append(
                {
                    "field": "reason",
                    "message": f"Reason must be at least {MIN_REASON_LENGTH} characters",
                }
            )
        if errors:
            raise ValidationError("Invalid modification request", errors)

        outbox = Outbox()
        async with self._uow() as uow:
            item, booking = await self._load_item(uow, item_id)
            if booking.user_id != user_id:
                raise ForbiddenError("You do not have access to this booking")
            self._require_modifiable(booking)
            if new_quantity == item.quantity:
                raise ValidationError(
                    "Invalid modification request",
                    [{"field": "new_quantity", "message": "Quantity is unchanged"}],
                )
            if await uow.bookings.has_pending_modification(item.id):
                raise InvalidStateError(
                    "A modification request for this item is already pending",
                    current=ModificationStatus.PENDING.value,
                )

            owner = await uow.users.get(user_id)
            unit_price = await uow.catalog.current_price(
                item.service_id, owner.user_type, self._now()
            )
            if unit_price is None:
                unit_price = item.unit_price
            add_ons = await uow.bookings.list_add_ons([item.id])
            add_on_total = sum((add_on.amount for add_on in add_ons), Decimal("0"))

            modification = BookingModificationModel(
                booking_id=booking.id,
                booking_service_item_id=item.id,
                original_quantity=item.quantity,
                new_quantity=new_quantity,
                original_total_price=item.total_price,
                new_total_price=unit_price * new_quantity + add_on_total,
                reason=reason,
                status=ModificationStatus.PENDING.value,
                created_by=user_id,
                created_at=self._now(),
            )
            uow.bookings.add_modification(modification)
            await uow.flush()

            logger.info(
                "modification_requested",
                booking_id=str(booking.id),
                item_id=str(item.id),
                original_quantity=item.quantity,
                new_quantity=new_quantity,
            )
            outbox.add(
                "booking.modification_requested",
                self._audit.log_action,
                action="booking.modification_requested",
                user_id=user_id,
                entity="booking",
                entity_id=booking.id,
                details={
                    "reference_number": booking.reference_number,
                    "modification_id": modification.id,
                    "item_id": item.id,
                    "original_quantity": item.quantity,
                    "new_quantity": new_quantity,
                    "reason": reason,
                },
            )
            outbox.add(
                "notify:admins",
                self._notifier.notify_admins,
                booking_id=booking.id,
                reference_number=booking.reference_number,
                message=f"Quantity change requested: {item.quantity} -> {new_quantity}. {reason}",
            )

        await outbox.flush()
        return modification

    async def decide_modification(
        self, admin_id: UUID, modification_id: UUID, approved: bool, notes: str | None = None
    ) -> BookingModificationModel:
        """Approve or reject a pending quantity change.

        Approval updates the item quantity and total, moves the booking
        total by the difference and keeps the item's pending samples in
        step with the new quantity.
        """
        notes = (notes or "").strip() or None
        outbox = Outbox()
        resync_samples = False
        async with self._uow() as uow:
            modification = await uow.bookings.get_modification(modification_id, for_update=True)
            if modification is None:
                raise NotFoundError(f"Modification request {modification_id} not found")
            if modification.status != ModificationStatus.PENDING.value:
                raise InvalidStateError(
                    "This modification request has already been processed",
                    current=modification.status,
                    expected=[ModificationStatus.PENDING.value],
                )

            item, booking = await self._load_item(uow, modification.booking_service_item_id)
            decision = ModificationStatus.APPROVED if approved else ModificationStatus.REJECTED
            if approved:
                self._require_modifiable(booking)
                resync_samples = await self._apply_quantity(uow, booking, item, modification)

            modification.status = decision.value
            modification.decided_by = admin_id
            modification.decided_at = self._now()
            modification.decision_notes = notes
            await uow.flush()

            logger.info(
                "modification_decided",
                modification_id=str(modification.id),
                booking_id=str(booking.id),
                decision=decision.value,
            )
            outbox.add(
                f"booking.modification_{decision.value}",
                self._audit.log_action,
                action=f"booking.modification_{decision.value}",
                user_id=admin_id,
                entity="booking",
                entity_id=booking.id,
                details={
                    "reference_number": booking.reference_number,
                    "modification_id": modification.id,
                    "item_id": item.id,
                    "original_quantity": modification.original_quantity,
                    "new_quantity": modification.new_quantity,
                    "notes": notes,
                },
            )
            outbox.add(
                f"notify:modification_{decision.value}",
                self._notifier.booking_event,
                user_id=booking.user_id,
                booking_id=booking.id,
                reference_number=booking.reference_number,
                event=f"modification_{decision.value}",
                comment=notes,
            )

        if resync_samples:
            await self._samples.recompute_booking_status(modification.booking_id, admin_id)
        await outbox.flush()
        return modification

    async def _apply_quantity(
        self,
        uow: UnitOfWork,
        booking: BookingRequestModel,
        item: BookingServiceItemModel,
        modification: BookingModificationModel,
    ) -> bool:
        """Reprice the item and resize its samples; True when samples changed."""
        now = self._now()
        difference = modification.new_total_price - item.total_price
        item.quantity = modification.new_quantity
        item.total_price = modification.new_total_price
        booking.total_amount = booking.total_amount + difference
        booking.updated_at = now

        services = await uow.catalog.get_services([item.service_id])
        service = services.get(item.service_id)
        if service is None or not service.requires_sample:
            return False

        samples = await uow.samples.list_for_item(item.id)
        delta = modification.new_quantity - len(samples)
        if delta > 0:
            existing = await uow.samples.list_for_booking(booking.id)
            counter = max(
                (_sample_number(sample.sample_identifier) for sample in existing), default=0
            )
            for _ in range(delta):
                counter += 1
                uow.samples.add(
                    SampleTrackingModel(
                        booking_service_item_id=item.id,
                        sample_identifier=f"{booking.reference_number}-S{counter:02d}",
                        status=SampleStatus.PENDING.value,
                        created_at=now,
                        updated_at=now,
                    )
                )
        elif delta < 0:
            pending = [sample for sample in samples if sample.status == SampleStatus.PENDING.value]
            if len(pending) < -delta:
                raise InvalidStateError(
                    f"Cannot reduce {booking.reference_number} to {modification.new_quantity}: "
                    f"only {len(pending)} sample(s) have not been received",
                    current=booking.status,
                )
            for sample in pending[delta:]:
                await uow.samples.remove(sample)
        return delta != 0

    async def list_modifications(
        self, actor: Actor, booking_id: UUID | None = None, status: ModificationStatus | None = None
    ) -> list[BookingModificationModel]:
        """Modification requests, newest first; owners only see their own booking's."""
        async with self._uow() as uow:
            if booking_id is not None:
                booking = await uow.bookings.get(booking_id)
                if booking is None:
                    raise NotFoundError(f"Booking {booking_id} not found")
                if not actor.is_admin and booking.user_id != actor.id:
                    raise ForbiddenError("You do not have access to this booking")
            elif not actor.is_admin:
                raise ForbiddenError("Admin access required")
            return await uow.bookings.list_modifications(booking_id=booking_id, status=status)
