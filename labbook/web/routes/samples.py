"""Sample tracking routes.

Routes:
- GET   /api/bookings/{id}/samples           - Samples on a booking
- PATCH /api/admin/samples/{id}              - Advance a sample's status
- POST  /api/admin/samples/{id}/results      - Upload an analysis result (multipart)
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from labbook.models import Actor
from labbook.samples.service import SampleService
from labbook.web.auth import get_current_actor, require_admin
from labbook.web.dependencies import get_sample_service
from labbook.web.models import SampleStatusRequest, sample_to_dict

router = APIRouter(tags=["samples"])


@router.get("/api/bookings/{booking_id}/samples")
async def list_samples(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: SampleService = Depends(get_sample_service),
):
    samples = await service.list_for_booking(actor, booking_id)
    return {"items": [sample_to_dict(sample) for sample in samples]}


@router.patch("/api/admin/samples/{sample_id}")
async def update_sample_status(
    sample_id: UUID,
    body: SampleStatusRequest,
    admin: Actor = Depends(require_admin),
    service: SampleService = Depends(get_sample_service),
):
    sample = await service.update_status(admin.id, sample_id, body.status)
    return sample_to_dict(sample)


@router.post("/api/admin/samples/{sample_id}/results", status_code=status.HTTP_201_CREATED)
async def upload_result(
    sample_id: UUID,
    file: UploadFile = File(...),
    description: str | None = Form(None),
    admin: Actor = Depends(require_admin),
    service: SampleService = Depends(get_sample_service),
):
    result = await service.upload_result(
        admin.id,
        sample_id,
        file.filename or "result",
        await file.read(),
        file_type=file.content_type,
        description=description,
    )
    return {
        "id": str(result.id),
        "sample_tracking_id": str(result.sample_tracking_id),
        "file_name": result.file_name,
        "file_size": result.file_size,
    }
