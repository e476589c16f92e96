"""Admin booking review routes.

Routes:
- GET  /api/admin/bookings                          - List submitted bookings
- GET  /api/admin/bookings/counts                   - Counts per status (no drafts)
- POST /api/admin/bookings/{id}/approve             - Approve
- POST /api/admin/bookings/{id}/reject              - Reject (comment required)
- POST /api/admin/bookings/{id}/return-for-edit     - Request revision (comment required)
- POST /api/admin/bookings/{id}/cancel              - Cancel
- POST /api/admin/bookings/{id}/start               - Mark work in progress
- POST /api/admin/bookings/{id}/complete            - Force completion
- POST /api/admin/bookings/bulk-action              - Bulk review or delete
- POST /api/admin/users/{id}/verify                 - Verify a pending account
"""

from __future__ import annotations

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends

from labbook.booking.service import BookingService
from labbook.models import Actor, AdminAction, BookingListParams
from labbook.web.auth import require_admin
from labbook.web.dependencies import get_booking_service, get_list_params
from labbook.web.models import (
    BulkActionRequest,
    CancelRequest,
    ReviewDecisionRequest,
    booking_to_dict,
)
from labbook.web.rate_limit import rate_limit

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/bookings")
async def list_bookings(
    params: BookingListParams = Depends(get_list_params),
    admin: Actor = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    page = await service.list_admin_bookings(params)
    return page.to_dict()


@router.get("/bookings/counts")
async def booking_counts(
    admin: Actor = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    return await service.count_admin_bookings()


@router.post("/bookings/bulk-action")
async def bulk_action(
    body: BulkActionRequest,
    admin: Actor = Depends(require_admin),
    _limited: Actor = Depends(rate_limit("bulk_action", "bulk_action_limit")),
    service: BookingService = Depends(get_booking_service),
):
    """Apply one action to many bookings.

    Always answers 200 when the request itself is valid; per-id failures are
    reported in ``results``.
    """
    if body.action == "delete":
        deleted = await service.bulk_delete(admin.id, body.ids)
        return {
            "action": "delete",
            "status": "all_succeeded" if deleted == len(set(body.ids)) else "partial",
            "deleted": deleted,
            "requested": len(set(body.ids)),
        }

    outcome = await service.bulk_admin_action(admin.id, body.ids, AdminAction(body.action), body.comment)
    logger.info(
        "bulk_action_completed",
        action=body.action,
        success_count=outcome.success_count,
        failure_count=outcome.failure_count,
    )
    return {
        "action": body.action,
        "status": outcome.summary_status,
        "success_count": outcome.success_count,
        "failure_count": outcome.failure_count,
        "results": [result.to_dict() for result in outcome.results],
    }


@router.post("/bookings/{booking_id}/approve")
async def approve_booking(
    booking_id: UUID,
    body: ReviewDecisionRequest | None = None,
    admin: Actor = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.admin_approve(admin.id, booking_id, body.note if body else None)
    return booking_to_dict(booking)


@router.post("/bookings/{booking_id}/reject")
async def reject_booking(
    booking_id: UUID,
    body: ReviewDecisionRequest,
    admin: Actor = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.admin_reject(admin.id, booking_id, body.note)
    return booking_to_dict(booking)


@router.post("/bookings/{booking_id}/return-for-edit")
async def return_for_edit(
    booking_id: UUID,
    body: ReviewDecisionRequest,
    admin: Actor = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.admin_return_for_edit(admin.id, booking_id, body.note)
    return booking_to_dict(booking)


@router.post("/bookings/{booking_id}/cancel")
async def cancel_booking(
    booking_id: UUID,
    body: CancelRequest | None = None,
    admin: Actor = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    result = await service.cancel_booking_by_admin(booking_id, admin.id, body.reason if body else None)
    return booking_to_dict(result.unwrap())


@router.post("/bookings/{booking_id}/start")
async def start_work(
    booking_id: UUID,
    admin: Actor = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.admin_start_work(admin.id, booking_id)
    return booking_to_dict(booking)


@router.post("/bookings/{booking_id}/complete")
async def complete_booking(
    booking_id: UUID,
    body: ReviewDecisionRequest | None = None,
    admin: Actor = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.admin_complete(admin.id, booking_id, body.note if body else None)
    return booking_to_dict(booking)


@router.post("/users/{user_id}/verify")
async def verify_user(
    user_id: UUID,
    admin: Actor = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    released = await service.on_user_verified(admin.id, user_id)
    return {"user_id": str(user_id), "status": "active", "released_bookings": released}
