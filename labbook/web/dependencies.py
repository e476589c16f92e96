"""Shared dependencies for LabBook web routes.

Services are process-wide singletons wired to the global session factory.
Tests replace them through ``app.dependency_overrides``.

Usage:
    from fastapi import Depends
    from labbook.web.dependencies import get_booking_service

    @router.post("/api/bookings")
    async def create(service: BookingService = Depends(get_booking_service)):
        ...
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import Query

from labbook.billing.service import BillingService
from labbook.booking.modifications import ModificationService
from labbook.booking.service import BookingService
from labbook.config import get_config
from labbook.core.audit_logger import AuditLogger
from labbook.db.connection import get_session_factory
from labbook.db.unit_of_work import UnitOfWorkFactory, unit_of_work_factory
from labbook.documents.service import DocumentService
from labbook.documents.storage import LocalFileStorage
from labbook.models import BookingListParams, BookingStatus
from labbook.notifications.notifier import BookingNotifier
from labbook.samples.service import SampleService

_uow_factory: UnitOfWorkFactory | None = None
_audit: AuditLogger | None = None
_notifier: BookingNotifier | None = None
_storage: LocalFileStorage | None = None
_booking_service: BookingService | None = None
_document_service: DocumentService | None = None
_billing_service: BillingService | None = None
_sample_service: SampleService | None = None
_modification_service: ModificationService | None = None


def get_uow_factory() -> UnitOfWorkFactory:
    global _uow_factory
    if _uow_factory is None:
        _uow_factory = unit_of_work_factory(get_session_factory())
    return _uow_factory


def get_audit_logger() -> AuditLogger:
    global _audit
    if _audit is None:
        _audit = AuditLogger(get_session_factory())
    return _audit


def get_notifier() -> BookingNotifier:
    global _notifier
    if _notifier is None:
        _notifier = BookingNotifier(get_session_factory())
    return _notifier


def get_storage() -> LocalFileStorage:
    global _storage
    if _storage is None:
        _storage = LocalFileStorage(get_config().storage.root)
    return _storage


def get_booking_service() -> BookingService:
    global _booking_service
    if _booking_service is None:
        _booking_service = BookingService(get_uow_factory(), get_audit_logger(), get_notifier())
    return _booking_service


def get_document_service() -> DocumentService:
    global _document_service
    if _document_service is None:
        _document_service = DocumentService(
            get_uow_factory(), get_storage(), get_audit_logger(), get_notifier()
        )
    return _document_service


def get_billing_service() -> BillingService:
    global _billing_service
    if _billing_service is None:
        _billing_service = BillingService(
            get_uow_factory(), get_storage(), get_audit_logger(), get_notifier()
        )
    return _billing_service


def get_sample_service() -> SampleService:
    global _sample_service
    if _sample_service is None:
        _sample_service = SampleService(
            get_uow_factory(), get_storage(), get_audit_logger(), get_notifier()
        )
    return _sample_service


def get_modification_service() -> ModificationService:
    global _modification_service
    if _modification_service is None:
        _modification_service = ModificationService(
            get_uow_factory(), get_audit_logger(), get_notifier(), get_sample_service()
        )
    return _modification_service


def reset_dependencies() -> None:
    """Drop cached services; call after the engine is closed."""
    global _uow_factory, _audit, _notifier, _storage
    global _booking_service, _document_service, _billing_service, _sample_service
    global _modification_service
    _uow_factory = _audit = _notifier = _storage = None
    _booking_service = _document_service = _billing_service = _sample_service = None
    _modification_service = None


def get_list_params(
    status: list[BookingStatus] | None = Query(default=None),
    q: str | None = Query(default=None, max_length=200),
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int | None = None,
    sort_by: str | None = None,
    sort_dir: Literal["asc", "desc"] = "desc",
) -> BookingListParams:
    """Query-string filters shared by the user and admin booking lists.

    ``status`` may repeat (``?status=approved&status=completed``).
    """
    return BookingListParams(
        statuses=status,
        q=q,
        created_from=created_from,
        created_to=created_to,
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        sort_dir=sort_dir,
    )
