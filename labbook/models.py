"""LabBook Pydantic models and enums for type-safe data validation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class UserStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    INACTIVE = "inactive"
    REJECTED = "rejected"
    SUSPENDED = "suspended"


class BookingStatus(str, Enum):
    """Booking lifecycle states."""

    DRAFT = "draft"
    PENDING_USER_VERIFICATION = "pending_user_verification"
    PENDING_APPROVAL = "pending_approval"
    REVISION_REQUESTED = "revision_requested"
    REVISION_SUBMITTED = "revision_submitted"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class AdminAction(str, Enum):
    """Review decisions available to admins (single and bulk)."""

    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_REVISION = "request_revision"


class ServiceCategory(str, Enum):
    ANALYSIS = "analysis"
    WORKING_SPACE = "working_space"


class SampleStatus(str, Enum):
    """Physical sample lifecycle, tracked independently of booking approval."""

    PENDING = "pending"
    RECEIVED = "received"
    IN_ANALYSIS = "in_analysis"
    ANALYSIS_COMPLETE = "analysis_complete"
    RETURN_REQUESTED = "return_requested"
    RETURNED = "returned"


class DocumentType(str, Enum):
    SERVICE_FORM_UNSIGNED = "service_form_unsigned"
    SERVICE_FORM_SIGNED = "service_form_signed"
    WORKSPACE_FORM_UNSIGNED = "workspace_form_unsigned"
    WORKSPACE_FORM_SIGNED = "workspace_form_signed"
    PAYMENT_RECEIPT = "payment_receipt"
    SAMPLE_RESULT = "sample_result"


class DocumentStatus(str, Enum):
    """Verification status of one uploaded document row."""

    PENDING_VERIFICATION = "pending_verification"
    VERIFIED = "verified"
    REJECTED = "rejected"


class RequirementStatus(str, Enum):
    """Derived status of a required document slot on a booking."""

    PENDING_UPLOAD = "pending_upload"
    PENDING_VERIFICATION = "pending_verification"
    VERIFIED = "verified"
    REJECTED = "rejected"
    NOT_REQUIRED = "not_required"


class ServiceFormStatus(str, Enum):
    GENERATED = "generated"
    SIGNED_FORMS_UPLOADED = "signed_forms_uploaded"


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class ModificationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(slots=True, frozen=True)
class Actor:
    """The authenticated principal performing an operation."""

    id: UUID
    role: UserRole = UserRole.USER
    status: UserStatus = UserStatus.ACTIVE
    user_type: str = "internal_member"

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class AddOnInput(BaseModel):
    add_on_id: UUID
    amount: Decimal | None = Field(default=None, ge=0)


class ServiceItemInput(BaseModel):
    """One requested service line in a draft."""

    service_id: UUID
    quantity: int = Field(default=1, ge=1)
    sample_name: str | None = None
    sample_type: str | None = None
    notes: str | None = None
    add_ons: list[AddOnInput] = Field(default_factory=list)


class BookingDraftUpdate(BaseModel):
    """Partial draft update; fields left out of the payload are untouched.

    ``service_items`` replaces the full item list when provided.
    """

    project_description: str | None = None
    notes: str | None = None
    preferred_start_date: date | None = None
    preferred_end_date: date | None = None
    service_items: list[ServiceItemInput] | None = None


class BookingListParams(BaseModel):
    """Filters shared by the user and admin booking lists."""

    statuses: list[BookingStatus] | None = None
    q: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    page: int = Field(default=1, ge=1)
    page_size: int | None = None
    sort_by: str | None = None
    sort_dir: Literal["asc", "desc"] = "desc"

    @field_validator("q")
    @classmethod
    def strip_query(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None
