"""Booking routes for portal users.

Routes:
- POST   /api/bookings                     - Create a draft
- GET    /api/bookings                     - List own bookings
- GET    /api/bookings/counts              - Own bookings per status
- GET    /api/bookings/{id}                - Booking detail
- PUT    /api/bookings/{id}                - Save draft
- DELETE /api/bookings/{id}                - Delete draft
- POST   /api/bookings/{id}/submit         - Submit or resubmit
- POST   /api/bookings/{id}/cancel         - Cancel
- PATCH  /api/bookings/{id}/timeline       - Change preferred dates
- GET    /api/bookings/{id}/eligibility    - Result download gate
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from labbook.booking.service import BookingService
from labbook.documents.service import DocumentService
from labbook.models import Actor, BookingDraftUpdate, BookingListParams
from labbook.web.auth import get_current_actor
from labbook.web.dependencies import get_booking_service, get_document_service, get_list_params
from labbook.web.models import CancelRequest, CreateDraftRequest, TimelineRequest, booking_to_dict
from labbook.web.rate_limit import rate_limit

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_draft(
    body: CreateDraftRequest | None = None,
    actor: Actor = Depends(rate_limit("create_draft", "create_draft_limit")),
    service: BookingService = Depends(get_booking_service),
):
    created = await service.create_draft(actor.id, body.service_id if body else None)
    return {"booking_id": str(created.booking_id), "reference_number": created.reference_number}


@router.get("")
async def list_bookings(
    params: BookingListParams = Depends(get_list_params),
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    page = await service.list_user_bookings(actor.id, params)
    return page.to_dict()


@router.get("/counts")
async def booking_counts(
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    return await service.count_user_bookings(actor.id)


@router.get("/{booking_id}")
async def get_booking(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    detail = await service.get_booking(actor, booking_id)
    return detail.to_dict()


@router.put("/{booking_id}")
async def save_draft(
    booking_id: UUID,
    body: BookingDraftUpdate,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    detail = await service.save_draft(actor.id, booking_id, body, actor.user_type)
    return detail.to_dict()


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_draft(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    await service.delete_draft(actor.id, booking_id)


@router.post("/{booking_id}/submit")
async def submit_booking(
    booking_id: UUID,
    actor: Actor = Depends(rate_limit("submit", "submit_limit")),
    service: BookingService = Depends(get_booking_service),
):
    detail = await service.submit(actor.id, booking_id, actor.status)
    return detail.to_dict()


@router.post("/{booking_id}/cancel")
async def cancel_booking(
    booking_id: UUID,
    body: CancelRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    result = await service.cancel_booking_by_user(booking_id, actor.id, body.reason if body else None)
    return booking_to_dict(result.unwrap())


@router.patch("/{booking_id}/timeline")
async def update_timeline(
    booking_id: UUID,
    body: TimelineRequest,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.update_timeline(
        actor, booking_id, body.preferred_start_date, body.preferred_end_date
    )
    return booking_to_dict(booking)


@router.get("/{booking_id}/eligibility")
async def download_eligibility(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    documents: DocumentService = Depends(get_document_service),
):
    state = await documents.get_verification_state(actor, booking_id)
    eligibility = await documents.check_eligibility(actor, booking_id)
    return {**eligibility.to_dict(), "verification": state.to_dict()}
