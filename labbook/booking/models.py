"""Data structures returned by the booking service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Generic, TypeVar
from uuid import UUID

from labbook.core.errors import ErrorKind, LabBookError

T = TypeVar("T")


@dataclass(slots=True)
class DraftCreated:
    booking_id: UUID
    reference_number: str


@dataclass(slots=True)
class BookingSummary:
    id: UUID
    reference_number: str
    status: str
    total_amount: Decimal
    created_at: datetime
    updated_at: datetime
    user_id: UUID
    user_email: str
    user_name: str
    organization_name: str | None


@dataclass(slots=True)
class BookingPage:
    items: list[BookingSummary]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 1
        return (self.total + self.page_size - 1) // self.page_size

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [
                {
                    "id": str(item.id),
                    "reference_number": item.reference_number,
                    "status": item.status,
                    "total_amount": str(item.total_amount),
                    "created_at": item.created_at.isoformat(),
                    "updated_at": item.updated_at.isoformat(),
                    "user_id": str(item.user_id),
                    "user_email": item.user_email,
                    "user_name": item.user_name,
                    "organization_name": item.organization_name,
                }
                for item in self.items
            ],
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
            "total_pages": self.total_pages,
        }


@dataclass(slots=True)
class BulkItemResult:
    id: UUID
    ok: bool
    error: str | None = None
    error_kind: ErrorKind | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": str(self.id), "ok": self.ok}
        if not self.ok:
            payload["error"] = self.error
            payload["error_kind"] = self.error_kind.value if self.error_kind else None
        return payload


@dataclass(slots=True)
class BulkActionOutcome:
    """Per-id results of a bulk review action."""

    results: list[BulkItemResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for result in self.results if result.ok)

    @property
    def failure_count(self) -> int:
        return len(self.results) - self.success_count

    @property
    def summary_status(self) -> str:
        if self.failure_count == 0:
            return "all_succeeded"
        if self.success_count == 0:
            return "all_failed"
        return "partial"


@dataclass(slots=True)
class ServiceResult(Generic[T]):
    """Success/failure envelope for operations whose callers branch on outcome.

    Cancellation returns this instead of raising so that route handlers can
    map the error kind to a status code themselves.
    """

    is_success: bool
    data: T | None = None
    error: LabBookError | None = None

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(is_success=True, data=data)

    @classmethod
    def failure(cls, error: LabBookError) -> ServiceResult[T]:
        return cls(is_success=False, error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.data  # type: ignore[return-value]


@dataclass(slots=True)
class BookingDetail:
    """A booking with its service items and their add-ons."""

    booking: Any
    items: list[Any]
    add_ons: dict[UUID, list[Any]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        booking = self.booking
        return {
            "id": str(booking.id),
            "reference_number": booking.reference_number,
            "status": booking.status,
            "user_id": str(booking.user_id),
            "project_description": booking.project_description,
            "notes": booking.notes,
            "preferred_start_date": (
                booking.preferred_start_date.isoformat() if booking.preferred_start_date else None
            ),
            "preferred_end_date": (
                booking.preferred_end_date.isoformat() if booking.preferred_end_date else None
            ),
            "total_amount": str(booking.total_amount),
            "reviewed_by": str(booking.reviewed_by) if booking.reviewed_by else None,
            "reviewed_at": booking.reviewed_at.isoformat() if booking.reviewed_at else None,
            "review_notes": booking.review_notes,
            "released_at": booking.released_at.isoformat() if booking.released_at else None,
            "created_at": booking.created_at.isoformat(),
            "updated_at": booking.updated_at.isoformat(),
            "service_items": [
                {
                    "id": str(item.id),
                    "service_id": str(item.service_id),
                    "service_category": item.service_category,
                    "quantity": item.quantity,
                    "unit_price": str(item.unit_price),
                    "total_price": str(item.total_price),
                    "sample_name": item.sample_name,
                    "sample_type": item.sample_type,
                    "notes": item.notes,
                    "add_ons": [
                        {"id": str(add_on.id), "name": add_on.name, "amount": str(add_on.amount)}
                        for add_on in self.add_ons.get(item.id, [])
                    ],
                }
                for item in self.items
            ],
        }
