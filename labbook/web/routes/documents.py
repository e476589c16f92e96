"""Booking documents, service forms and result downloads.

Routes:
- GET    /api/bookings/{id}/documents            - List documents on a booking
- POST   /api/bookings/{id}/documents            - Upload a document (multipart)
- DELETE /api/booking-docs/{doc_id}              - Delete a document
- POST   /api/booking-docs/{doc_id}/verify       - Admin verifies a document
- POST   /api/booking-docs/{doc_id}/reject       - Admin rejects a document
- POST   /api/admin/forms/generate/{booking_id}  - Generate a service form
- POST   /api/admin/forms/{form_id}/verify       - Verify all signed uploads for a form
- GET    /api/downloads/result/{result_id}       - Download a result file (gated)
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import FileResponse

from labbook.documents.service import DocumentService
from labbook.models import Actor, DocumentType
from labbook.web.auth import get_current_actor, require_admin
from labbook.web.dependencies import get_document_service
from labbook.web.models import (
    ReviewDecisionRequest,
    RejectRequest,
    document_to_dict,
    form_to_dict,
)

router = APIRouter(tags=["documents"])


@router.get("/api/bookings/{booking_id}/documents")
async def list_documents(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: DocumentService = Depends(get_document_service),
):
    documents = await service.list_documents(actor, booking_id)
    return {"items": [document_to_dict(document) for document in documents]}


@router.post("/api/bookings/{booking_id}/documents", status_code=status.HTTP_201_CREATED)
async def upload_document(
    booking_id: UUID,
    doc_type: DocumentType = Form(...),
    note: str | None = Form(None),
    file: UploadFile = File(...),
    actor: Actor = Depends(get_current_actor),
    service: DocumentService = Depends(get_document_service),
):
    content = await file.read()
    document = await service.upload_document(
        actor,
        booking_id,
        doc_type,
        file.filename or "upload",
        content,
        mime_type=file.content_type,
        note=note,
    )
    return document_to_dict(document)


@router.delete("/api/booking-docs/{doc_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    doc_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: DocumentService = Depends(get_document_service),
):
    await service.delete_document(actor, doc_id)


@router.post("/api/booking-docs/{doc_id}/verify")
async def verify_document(
    doc_id: UUID,
    body: ReviewDecisionRequest | None = None,
    admin: Actor = Depends(require_admin),
    service: DocumentService = Depends(get_document_service),
):
    document = await service.verify_document(admin.id, doc_id, body.note if body else None)
    return document_to_dict(document)


@router.post("/api/booking-docs/{doc_id}/reject")
async def reject_document(
    doc_id: UUID,
    body: RejectRequest,
    admin: Actor = Depends(require_admin),
    service: DocumentService = Depends(get_document_service),
):
    document = await service.reject_document(admin.id, doc_id, body.reason)
    return document_to_dict(document)


@router.post("/api/admin/forms/generate/{booking_id}", status_code=status.HTTP_201_CREATED)
async def generate_service_form(
    booking_id: UUID,
    admin: Actor = Depends(require_admin),
    service: DocumentService = Depends(get_document_service),
):
    form = await service.generate_service_form(admin.id, booking_id)
    return form_to_dict(form)


@router.post("/api/admin/forms/{form_id}/verify")
async def verify_form_signatures(
    form_id: UUID,
    admin: Actor = Depends(require_admin),
    service: DocumentService = Depends(get_document_service),
):
    form = await service.verify_form_signatures(admin.id, form_id)
    return form_to_dict(form)


@router.get("/api/downloads/result/{result_id}")
async def download_result(
    result_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: DocumentService = Depends(get_document_service),
):
    """Stream a result file; the gate is checked again on every request."""
    result, path = await service.open_result(actor, result_id)
    return FileResponse(
        path,
        filename=result.file_name,
        media_type=result.file_type or "application/octet-stream",
    )
