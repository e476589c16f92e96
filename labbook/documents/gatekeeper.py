"""Result download gate.

Results unlock only when the signed service form is verified, the signed
working-area agreement is verified (when the booking needs one) and payment
is verified. The gate is a pure function of database state; handlers call it
again right before streaming a file.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from labbook.db.unit_of_work import UnitOfWork
from labbook.models import DocumentType, RequirementStatus

SERVICE_FORM_LABEL = "Signed Service Form"
WORK_AREA_LABEL = "Signed Working Area Agreement"
PAYMENT_LABEL = "Payment"


@dataclass(slots=True, frozen=True)
class DocumentVerificationState:
    service_form_status: RequirementStatus
    work_area_status: RequirementStatus
    payment_verified: bool

    @property
    def form_verified(self) -> bool:
        return self.service_form_status == RequirementStatus.VERIFIED

    @property
    def work_area_required(self) -> bool:
        return self.work_area_status != RequirementStatus.NOT_REQUIRED

    @property
    def work_area_verified(self) -> bool:
        return self.work_area_status in (RequirementStatus.VERIFIED, RequirementStatus.NOT_REQUIRED)

    @property
    def forms_verified(self) -> bool:
        return self.form_verified and self.work_area_verified

    def to_dict(self) -> dict:
        return {
            "form_verified": self.form_verified,
            "work_area_required": self.work_area_required,
            "work_area_verified": self.work_area_verified,
            "payment_verified": self.payment_verified,
            "service_form_status": self.service_form_status.value,
            "work_area_status": self.work_area_status.value,
        }


@dataclass(slots=True, frozen=True)
class DownloadEligibility:
    eligible: bool
    reason: str
    missing: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {"eligible": self.eligible, "reason": self.reason, "missing": list(self.missing)}


def evaluate_eligibility(state: DocumentVerificationState) -> DownloadEligibility:
    """Combine the three gate inputs; any unverified requirement locks results."""
    missing: list[str] = []
    if not state.form_verified:
        missing.append(SERVICE_FORM_LABEL)
    if not state.work_area_verified:
        missing.append(WORK_AREA_LABEL)
    if not state.payment_verified:
        missing.append(PAYMENT_LABEL)

    if not missing:
        return DownloadEligibility(
            eligible=True, reason="All documents verified. Results are available for download."
        )
    return DownloadEligibility(
        eligible=False,
        reason=f"Results are locked. Awaiting verification of: {', '.join(missing)}.",
        missing=tuple(missing),
    )


async def _requirement_status(
    uow: UnitOfWork, booking_id: UUID, doc_type: DocumentType
) -> RequirementStatus:
    latest = await uow.documents.latest_by_type(booking_id, doc_type)
    if latest is None:
        return RequirementStatus.PENDING_UPLOAD
    return RequirementStatus(latest.verification_status)


async def work_area_required(uow: UnitOfWork, booking_id: UUID) -> bool:
    if await uow.bookings.has_workspace_items(booking_id):
        return True
    form = await uow.documents.latest_form(booking_id)
    return bool(form and form.requires_working_area_agreement)


async def payment_verified(uow: UnitOfWork, booking_id: UUID) -> bool:
    """True if some open invoice is covered by verified payments."""
    for invoice in await uow.billing.open_invoices_for_booking(booking_id):
        if await uow.billing.verified_total(invoice.id) >= invoice.amount:
            return True
    return False


async def get_document_verification_state(
    uow: UnitOfWork, booking_id: UUID
) -> DocumentVerificationState:
    service_form = await _requirement_status(uow, booking_id, DocumentType.SERVICE_FORM_SIGNED)
    if await work_area_required(uow, booking_id):
        work_area = await _requirement_status(uow, booking_id, DocumentType.WORKSPACE_FORM_SIGNED)
    else:
        work_area = RequirementStatus.NOT_REQUIRED

    return DocumentVerificationState(
        service_form_status=service_form,
        work_area_status=work_area,
        payment_verified=await payment_verified(uow, booking_id),
    )


async def check_download_eligibility(uow: UnitOfWork, booking_id: UUID) -> DownloadEligibility:
    return evaluate_eligibility(await get_document_verification_state(uow, booking_id))
