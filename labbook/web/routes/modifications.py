"""Quantity change requests on approved bookings.

Routes:
- POST  /api/modifications                      - Request a quantity change on a service item
- GET   /api/bookings/{id}/modifications        - Requests on one booking
- GET   /api/admin/modifications                - All requests, optionally by status
- PATCH /api/admin/modifications/{id}           - Approve or reject a pending request
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from labbook.booking.modifications import ModificationService
from labbook.models import Actor, ModificationStatus
from labbook.web.auth import get_current_actor, require_admin
from labbook.web.dependencies import get_modification_service
from labbook.web.models import (
    ModificationDecisionRequest,
    ModificationRequest,
    modification_to_dict,
)

router = APIRouter(tags=["modifications"])


@router.post("/api/modifications", status_code=status.HTTP_201_CREATED)
async def request_modification(
    body: ModificationRequest,
    actor: Actor = Depends(get_current_actor),
    service: ModificationService = Depends(get_modification_service),
):
    modification = await service.request_modification(
        actor.id, body.item_id, body.new_quantity, body.reason
    )
    return modification_to_dict(modification)


@router.get("/api/bookings/{booking_id}/modifications")
async def list_booking_modifications(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: ModificationService = Depends(get_modification_service),
):
    modifications = await service.list_modifications(actor, booking_id=booking_id)
    return {"items": [modification_to_dict(modification) for modification in modifications]}


@router.get("/api/admin/modifications")
async def list_modifications(
    status: ModificationStatus | None = None,
    admin: Actor = Depends(require_admin),
    service: ModificationService = Depends(get_modification_service),
):
    modifications = await service.list_modifications(admin, status=status)
    return {"items": [modification_to_dict(modification) for modification in modifications]}


@router.patch("/api/admin/modifications/{modification_id}")
async def decide_modification(
    modification_id: UUID,
    body: ModificationDecisionRequest,
    admin: Actor = Depends(require_admin),
    service: ModificationService = Depends(get_modification_service),
):
    modification = await service.decide_modification(
        admin.id, modification_id, approved=body.action == "approve", notes=body.notes
    )
    return modification_to_dict(modification)
