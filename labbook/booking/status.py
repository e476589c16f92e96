"""Booking transition table.

Pure data plus small guards; no I/O. Every service-level transition looks up
its allowed source states here.
"""

from __future__ import annotations

from enum import Enum

from labbook.models import AdminAction, BookingStatus


class Transition(str, Enum):
    SUBMIT = "submit"
    RESUBMIT = "resubmit"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_REVISION = "request_revision"
    CANCEL = "cancel"
    START_WORK = "start_work"
    COMPLETE = "complete"
    DELETE_DRAFT = "delete_draft"
    USER_VERIFIED = "user_verified"


REVIEWABLE_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.PENDING_APPROVAL, BookingStatus.REVISION_SUBMITTED}
)

TERMINAL_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.REJECTED, BookingStatus.CANCELLED}
)

EDITABLE_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.DRAFT, BookingStatus.REVISION_REQUESTED}
)

# Statuses an admin bulk delete may remove in one statement.
BULK_DELETABLE_STATUSES: frozenset[BookingStatus] = frozenset(
    {
        BookingStatus.DRAFT,
        BookingStatus.REJECTED,
        BookingStatus.CANCELLED,
        BookingStatus.REVISION_REQUESTED,
    }
)

NON_TERMINAL_STATUSES: frozenset[BookingStatus] = frozenset(BookingStatus) - TERMINAL_STATUSES

ALLOWED_SOURCES: dict[Transition, frozenset[BookingStatus]] = {
    Transition.SUBMIT: frozenset({BookingStatus.DRAFT}),
    Transition.RESUBMIT: frozenset({BookingStatus.REVISION_REQUESTED}),
    Transition.APPROVE: REVIEWABLE_STATUSES,
    Transition.REJECT: REVIEWABLE_STATUSES,
    Transition.REQUEST_REVISION: REVIEWABLE_STATUSES,
    Transition.CANCEL: NON_TERMINAL_STATUSES,
    Transition.START_WORK: frozenset({BookingStatus.APPROVED}),
    Transition.COMPLETE: frozenset({BookingStatus.IN_PROGRESS}),
    Transition.DELETE_DRAFT: frozenset({BookingStatus.DRAFT}),
    Transition.USER_VERIFIED: frozenset({BookingStatus.PENDING_USER_VERIFICATION}),
}

# Fixed targets; SUBMIT depends on the owner's verification state.
TARGETS: dict[Transition, BookingStatus] = {
    Transition.RESUBMIT: BookingStatus.REVISION_SUBMITTED,
    Transition.APPROVE: BookingStatus.APPROVED,
    Transition.REJECT: BookingStatus.REJECTED,
    Transition.REQUEST_REVISION: BookingStatus.REVISION_REQUESTED,
    Transition.CANCEL: BookingStatus.CANCELLED,
    Transition.START_WORK: BookingStatus.IN_PROGRESS,
    Transition.COMPLETE: BookingStatus.COMPLETED,
    Transition.USER_VERIFIED: BookingStatus.PENDING_APPROVAL,
}

ADMIN_ACTION_TRANSITIONS: dict[AdminAction, Transition] = {
    AdminAction.APPROVE: Transition.APPROVE,
    AdminAction.REJECT: Transition.REJECT,
    AdminAction.REQUEST_REVISION: Transition.REQUEST_REVISION,
}


def allowed_sources(transition: Transition) -> frozenset[BookingStatus]:
    return ALLOWED_SOURCES[transition]


def can_apply(transition: Transition, status: BookingStatus | str) -> bool:
    return BookingStatus(status) in ALLOWED_SOURCES[transition]


def submit_target(owner_verified: bool) -> BookingStatus:
    """Status a draft lands in when its owner submits it."""
    if owner_verified:
        return BookingStatus.PENDING_APPROVAL
    return BookingStatus.PENDING_USER_VERIFICATION


def is_terminal(status: BookingStatus | str) -> bool:
    return BookingStatus(status) in TERMINAL_STATUSES


def is_editable(status: BookingStatus | str) -> bool:
    return BookingStatus(status) in EDITABLE_STATUSES
