"""Unit tests for the booking transition table."""

from __future__ import annotations

import pytest

from labbook.booking import status as transitions
from labbook.booking.status import Transition
from labbook.models import AdminAction, BookingStatus

ALL_STATUSES = list(BookingStatus)


class TestAllowedSources:
    """Each transition accepts exactly the documented source states."""

    @pytest.mark.parametrize(
        "transition,sources",
        [
            (Transition.SUBMIT, {BookingStatus.DRAFT}),
            (Transition.RESUBMIT, {BookingStatus.REVISION_REQUESTED}),
            (Transition.APPROVE, {BookingStatus.PENDING_APPROVAL, BookingStatus.REVISION_SUBMITTED}),
            (Transition.REJECT, {BookingStatus.PENDING_APPROVAL, BookingStatus.REVISION_SUBMITTED}),
            (
                Transition.REQUEST_REVISION,
                {BookingStatus.PENDING_APPROVAL, BookingStatus.REVISION_SUBMITTED},
            ),
            (Transition.START_WORK, {BookingStatus.APPROVED}),
            (Transition.COMPLETE, {BookingStatus.IN_PROGRESS}),
            (Transition.DELETE_DRAFT, {BookingStatus.DRAFT}),
            (Transition.USER_VERIFIED, {BookingStatus.PENDING_USER_VERIFICATION}),
        ],
    )
    def test_sources(self, transition, sources):
        for status in ALL_STATUSES:
            assert transitions.can_apply(transition, status) is (status in sources), status

    def test_cancel_from_any_non_terminal_status(self):
        for status in ALL_STATUSES:
            expected = status not in {
                BookingStatus.COMPLETED,
                BookingStatus.REJECTED,
                BookingStatus.CANCELLED,
            }
            assert transitions.can_apply(Transition.CANCEL, status) is expected

    def test_accepts_plain_strings(self):
        assert transitions.can_apply(Transition.START_WORK, "approved")
        assert not transitions.can_apply(Transition.START_WORK, "draft")

    def test_every_transition_has_sources(self):
        assert set(transitions.ALLOWED_SOURCES) == set(Transition)


class TestTargets:
    def test_submit_target_depends_on_owner_verification(self):
        assert transitions.submit_target(True) == BookingStatus.PENDING_APPROVAL
        assert transitions.submit_target(False) == BookingStatus.PENDING_USER_VERIFICATION

    def test_resubmit_goes_to_revision_submitted(self):
        assert transitions.TARGETS[Transition.RESUBMIT] == BookingStatus.REVISION_SUBMITTED

    def test_admin_actions_map_to_transitions(self):
        assert {
            action: transitions.TARGETS[transition]
            for action, transition in transitions.ADMIN_ACTION_TRANSITIONS.items()
        } == {
            AdminAction.APPROVE: BookingStatus.APPROVED,
            AdminAction.REJECT: BookingStatus.REJECTED,
            AdminAction.REQUEST_REVISION: BookingStatus.REVISION_REQUESTED,
        }


class TestStatusSets:
    def test_editable(self):
        assert transitions.is_editable("draft")
        assert transitions.is_editable(BookingStatus.REVISION_REQUESTED)
        assert not transitions.is_editable("pending_approval")
        assert not transitions.is_editable("approved")

    def test_terminal(self):
        assert transitions.is_terminal("completed")
        assert transitions.is_terminal("rejected")
        assert transitions.is_terminal("cancelled")
        assert not transitions.is_terminal("in_progress")

    def test_bulk_deletable_statuses(self):
        assert transitions.BULK_DELETABLE_STATUSES == {
            BookingStatus.DRAFT,
            BookingStatus.REJECTED,
            BookingStatus.CANCELLED,
            BookingStatus.REVISION_REQUESTED,
        }

    def test_unknown_status_raises(self):
        with pytest.raises(ValueError):
            transitions.is_editable("archived")
