"""Document uploads, verification and result downloads."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from uuid import UUID

import structlog

from labbook.core.audit_logger import AuditLogger
from labbook.core.errors import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    PaymentRequiredError,
    ValidationError,
)
from labbook.core.outbox import Outbox
from labbook.db.models import (
    AnalysisResultModel,
    BookingDocumentModel,
    BookingRequestModel,
    ServiceFormModel,
)
from labbook.db.unit_of_work import UnitOfWork, UnitOfWorkFactory
from labbook.documents import gatekeeper
from labbook.documents.gatekeeper import DocumentVerificationState, DownloadEligibility
from labbook.documents.storage import LocalFileStorage
from labbook.models import (
    Actor,
    BookingStatus,
    DocumentStatus,
    DocumentType,
    ServiceFormStatus,
)
from labbook.notifications.notifier import BookingNotifier
from labbook.utils.clock import utcnow

logger = structlog.get_logger(__name__)

USER_UPLOAD_TYPES = frozenset(
    {
        DocumentType.SERVICE_FORM_SIGNED,
        DocumentType.WORKSPACE_FORM_SIGNED,
        DocumentType.PAYMENT_RECEIPT,
    }
)
SIGNED_FORM_TYPES = frozenset({DocumentType.SERVICE_FORM_SIGNED, DocumentType.WORKSPACE_FORM_SIGNED})
FORM_STATUSES = frozenset(
    {BookingStatus.APPROVED, BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED}
)
MAX_UPLOAD_BYTES = 20 * 1024 * 1024


class DocumentService:
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

    async def _booking_for(self, uow: UnitOfWork, actor: Actor, booking_id: UUID) -> BookingRequestModel:
        booking = await uow.bookings.get(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        if not actor.is_admin and booking.user_id != actor.id:
            raise ForbiddenError("You do not have access to this booking")
        return booking

    def _queue_audit(self, outbox: Outbox, action: str, user_id: UUID, entity: str, entity_id, **details) -> None:
        outbox.add(
            action,
            self._audit.log_action,
            action=action,
            user_id=user_id,
            entity=entity,
            entity_id=entity_id,
            details=details,
        )

    # ------------------------------------------------------------------
    # gate

    async def get_verification_state(self, actor: Actor, booking_id: UUID) -> DocumentVerificationState:
        async with self._uow() as uow:
            await self._booking_for(uow, actor, booking_id)
            return await gatekeeper.get_document_verification_state(uow, booking_id)

    async def check_eligibility(self, actor: Actor, booking_id: UUID) -> DownloadEligibility:
        async with self._uow() as uow:
            await self._booking_for(uow, actor, booking_id)
            return await gatekeeper.check_download_eligibility(uow, booking_id)

    async def open_result(self, actor: Actor, result_id: UUID) -> tuple[AnalysisResultModel, Path]:
        """Resolve a result file for download, re-checking the gate."""
        async with self._uow() as uow:
            found = await uow.samples.get_result(result_id)
            if found is None:
                raise NotFoundError(f"Result {result_id} not found")
            result, booking_id = found
            await self._booking_for(uow, actor, booking_id)

            eligibility = await gatekeeper.check_download_eligibility(uow, booking_id)
            if not eligibility.eligible:
                logger.info(
                    "result_download_blocked",
                    result_id=str(result_id),
                    missing=list(eligibility.missing),
                )
                raise PaymentRequiredError(f"Payment Required: {eligibility.reason}")

        path = self._storage.path_for(result.file_path)
        if not path.is_file():
            raise NotFoundError("Result file is missing from storage")
        return result, path

    # ------------------------------------------------------------------
    # documents

    async def list_documents(self, actor: Actor, booking_id: UUID) -> list[BookingDocumentModel]:
        async with self._uow() as uow:
            await self._booking_for(uow, actor, booking_id)
            return await uow.documents.list_for_booking(booking_id)

    async def upload_document(
        self,
        actor: Actor,
        booking_id: UUID,
        doc_type: DocumentType,
        filename: str,
        content: bytes,
        mime_type: str | None = None,
        note: str | None = None,
    ) -> BookingDocumentModel:
        doc_type = DocumentType(doc_type)
        if not actor.is_admin and doc_type not in USER_UPLOAD_TYPES:
            raise ForbiddenError(f"Only administrators can upload {doc_type.value} documents")
        if not content:
            raise ValidationError("Empty file", [{"field": "file", "message": "File is empty"}])
        if len(content) > MAX_UPLOAD_BYTES:
            raise ValidationError("File too large", [{"field": "file", "message": "File exceeds 20 MB"}])

        outbox = Outbox()
        async with self._uow() as uow:
            booking = await self._booking_for(uow, actor, booking_id)
            form = await uow.documents.latest_form(booking_id)
            if doc_type in SIGNED_FORM_TYPES and form is None:
                raise InvalidStateError(
                    f"No service form has been generated for booking {booking.reference_number}",
                    current=booking.status,
                )

            key = self._storage.key_for(booking_id, filename)
            await self._storage.save(key, content)

            document = BookingDocumentModel(
                booking_id=booking_id,
                type=doc_type.value,
                storage_key=key,
                file_name=filename,
                mime_type=mime_type,
                size_bytes=len(content),
                verification_status=DocumentStatus.PENDING_VERIFICATION.value,
                note=note,
                created_by=actor.id,
                created_at=self._now(),
            )
            uow.documents.add(document)

            if doc_type in SIGNED_FORM_TYPES and form.status != ServiceFormStatus.SIGNED_FORMS_UPLOADED.value:
                form.status = ServiceFormStatus.SIGNED_FORMS_UPLOADED.value
                form.signed_forms_uploaded_at = self._now()
            await uow.flush()

            self._queue_audit(
                outbox,
                "document.upload",
                actor.id,
                "booking_document",
                document.id,
                booking_id=booking_id,
                type=doc_type,
                file_name=filename,
            )
            if not actor.is_admin:
                outbox.add(
                    "notify:admins",
                    self._notifier.notify_admins,
                    booking_id=booking_id,
                    reference_number=booking.reference_number,
                    message=f"New {doc_type.value.replace('_', ' ')} awaiting verification",
                )

        await outbox.flush()
        return document

    async def verify_document(self, admin_id: UUID, document_id: UUID, note: str | None = None) -> BookingDocumentModel:
        return await self._decide(admin_id, document_id, DocumentStatus.VERIFIED, note)

    async def reject_document(self, admin_id: UUID, document_id: UUID, reason: str | None) -> BookingDocumentModel:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError(
                "A rejection reason is required",
                [{"field": "reason", "message": "A rejection reason is required"}],
            )
        return await self._decide(admin_id, document_id, DocumentStatus.REJECTED, reason)

    async def _decide(
        self, admin_id: UUID, document_id: UUID, decision: DocumentStatus, text: str | None
    ) -> BookingDocumentModel:
        outbox = Outbox()
        async with self._uow() as uow:
            document = await uow.documents.get(document_id, for_update=True)
            if document is None:
                raise NotFoundError(f"Document {document_id} not found")
            if document.verification_status != DocumentStatus.PENDING_VERIFICATION.value:
                raise InvalidStateError(
                    f"Document is already {document.verification_status}; upload a new file instead",
                    current=document.verification_status,
                    expected=[DocumentStatus.PENDING_VERIFICATION.value],
                )

            document.verification_status = decision.value
            document.verified_by = admin_id
            document.verified_at = self._now()
            if decision == DocumentStatus.REJECTED:
                document.rejection_reason = text
            elif text:
                document.note = text

            booking = await uow.bookings.get(document.booking_id)
            await uow.flush()

            action = "document.verify" if decision == DocumentStatus.VERIFIED else "document.reject"
            self._queue_audit(
                outbox,
                action,
                admin_id,
                "booking_document",
                document.id,
                booking_id=document.booking_id,
                type=document.type,
                reason=text,
            )
            outbox.add(
                f"notify:{action}",
                self._notifier.booking_event,
                user_id=booking.user_id,
                booking_id=booking.id,
                reference_number=booking.reference_number,
                event="document_verified" if decision == DocumentStatus.VERIFIED else "document_rejected",
                comment=text,
            )

        await outbox.flush()
        return document

    async def delete_document(self, actor: Actor, document_id: UUID) -> None:
        """Delete a document; the storage object goes first.

        A storage failure leaves an orphaned object, which is logged, and the
        metadata row is still removed.
        """
        async with self._uow() as uow:
            document = await uow.documents.get(document_id)
            if document is None:
                raise NotFoundError(f"Document {document_id} not found")
            await self._booking_for(uow, actor, document.booking_id)
            if not actor.is_admin and document.verification_status == DocumentStatus.VERIFIED.value:
                raise ForbiddenError("Verified documents cannot be deleted")
            storage_key = document.storage_key
            booking_id = document.booking_id

        try:
            await self._storage.delete(storage_key)
        except OSError as exc:
            logger.warning(
                "document_storage_orphan",
                document_id=str(document_id),
                storage_key=storage_key,
                error=str(exc),
            )

        outbox = Outbox()
        async with self._uow() as uow:
            await uow.documents.delete(document_id)
            self._queue_audit(
                outbox,
                "document.delete",
                actor.id,
                "booking_document",
                document_id,
                booking_id=booking_id,
                storage_key=storage_key,
            )
        await outbox.flush()

    # ------------------------------------------------------------------
    # service forms

    async def generate_service_form(self, admin_id: UUID, booking_id: UUID) -> ServiceFormModel:
        outbox = Outbox()
        async with self._uow() as uow:
            booking = await uow.bookings.get(booking_id)
            if booking is None:
                raise NotFoundError(f"Booking {booking_id} not found")
            if BookingStatus(booking.status) not in FORM_STATUSES:
                raise InvalidStateError(
                    f"Service forms can only be generated for approved bookings; status is '{booking.status}'",
                    current=booking.status,
                    expected=sorted(status.value for status in FORM_STATUSES),
                )

            sequence = await uow.documents.count_forms(booking_id) + 1
            form = ServiceFormModel(
                booking_id=booking_id,
                form_number=f"SF-{booking.reference_number.removeprefix('BK-')}-{sequence:02d}",
                status=ServiceFormStatus.GENERATED.value,
                requires_working_area_agreement=await uow.bookings.has_workspace_items(booking_id),
                generated_by=admin_id,
                created_at=self._now(),
            )
            uow.documents.add_form(form)
            await uow.flush()
            self._queue_audit(
                outbox,
                "service_form.generate",
                admin_id,
                "service_form",
                form.id,
                booking_id=booking_id,
                form_number=form.form_number,
            )

        await outbox.flush()
        return form

    async def verify_form_signatures(self, admin_id: UUID, form_id: UUID) -> ServiceFormModel:
        """Verify the pending signed uploads for a form in one step."""
        outbox = Outbox()
        async with self._uow() as uow:
            form = await uow.documents.get_form(form_id)
            if form is None:
                raise NotFoundError(f"Service form {form_id} not found")
            if form.status != ServiceFormStatus.SIGNED_FORMS_UPLOADED.value:
                raise InvalidStateError(
                    "Signed forms have not been uploaded for this service form",
                    current=form.status,
                    expected=[ServiceFormStatus.SIGNED_FORMS_UPLOADED.value],
                )

            required = [DocumentType.SERVICE_FORM_SIGNED]
            if form.requires_working_area_agreement:
                required.append(DocumentType.WORKSPACE_FORM_SIGNED)

            documents = []
            for doc_type in required:
                document = await uow.documents.latest_by_type(form.booking_id, doc_type)
                if document is None or document.verification_status == DocumentStatus.REJECTED.value:
                    raise ValidationError(
                        "Missing signed document",
                        [{"field": doc_type.value, "message": "A current signed upload is required"}],
                    )
                documents.append(document)

            now = self._now()
            for document in documents:
                if document.verification_status == DocumentStatus.PENDING_VERIFICATION.value:
                    document.verification_status = DocumentStatus.VERIFIED.value
                    document.verified_by = admin_id
                    document.verified_at = now
            await uow.flush()

            self._queue_audit(
                outbox,
                "VERIFY_SIGNATURE",
                admin_id,
                "service_form",
                form.id,
                booking_id=form.booking_id,
                documents=[document.id for document in documents],
            )

        await outbox.flush()
        return form
