"""Database layer for LabBook with async SQLAlchemy."""

from labbook.db.connection import get_session, init_db
from labbook.db.models import (
    AuditLogModel,
    Base,
    BookingDocumentModel,
    BookingModificationModel,
    BookingRequestModel,
    BookingServiceItemModel,
    InvoiceModel,
    NotificationModel,
    PaymentModel,
    SampleTrackingModel,
    ServiceFormModel,
    UserModel,
)

__all__ = [
    "Base",
    "UserModel",
    "BookingRequestModel",
    "BookingServiceItemModel",
    "BookingModificationModel",
    "SampleTrackingModel",
    "ServiceFormModel",
    "BookingDocumentModel",
    "InvoiceModel",
    "PaymentModel",
    "NotificationModel",
    "AuditLogModel",
    "get_session",
    "init_db",
]
