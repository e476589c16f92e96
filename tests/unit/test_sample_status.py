"""Unit tests for booking status derived from sample progress."""

from __future__ import annotations

import pytest

from labbook.models import BookingStatus, SampleStatus
from labbook.samples.service import NEXT_STATUS, derive_booking_status

P = SampleStatus.PENDING
R = SampleStatus.RECEIVED
A = SampleStatus.IN_ANALYSIS
C = SampleStatus.ANALYSIS_COMPLETE
Q = SampleStatus.RETURN_REQUESTED
D = SampleStatus.RETURNED


class TestDeriveBookingStatus:
    @pytest.mark.parametrize(
        "samples,expected",
        [
            ([P, P], BookingStatus.APPROVED),
            ([R, P], BookingStatus.IN_PROGRESS),
            ([A, A], BookingStatus.IN_PROGRESS),
            ([C, Q], BookingStatus.IN_PROGRESS),
            ([C, D], BookingStatus.COMPLETED),
            ([C], BookingStatus.COMPLETED),
            ([C, P], BookingStatus.APPROVED),
            ([D, P], BookingStatus.APPROVED),
        ],
    )
    def test_from_approved(self, samples, expected):
        assert derive_booking_status(BookingStatus.APPROVED, samples) == expected

    def test_in_progress_with_all_pending_stays_in_progress(self):
        assert derive_booking_status(BookingStatus.IN_PROGRESS, [P, P]) == BookingStatus.IN_PROGRESS

    def test_in_progress_completes(self):
        assert derive_booking_status(BookingStatus.IN_PROGRESS, [D, D]) == BookingStatus.COMPLETED

    def test_no_samples_leaves_status_unchanged(self):
        assert derive_booking_status(BookingStatus.APPROVED, []) == BookingStatus.APPROVED

    @pytest.mark.parametrize("current", [BookingStatus.APPROVED, BookingStatus.IN_PROGRESS])
    def test_ended_workspace_without_samples_completes(self, current):
        assert derive_booking_status(current, [], workspace_ended=True) == BookingStatus.COMPLETED

    def test_ended_workspace_waits_for_samples(self):
        assert derive_booking_status(BookingStatus.APPROVED, [P], workspace_ended=True) == BookingStatus.APPROVED

    def test_ended_workspace_ignored_outside_tracking(self):
        result = derive_booking_status(BookingStatus.PENDING_APPROVAL, [], workspace_ended=True)
        assert result == BookingStatus.PENDING_APPROVAL

    @pytest.mark.parametrize(
        "current",
        [
            BookingStatus.PENDING_APPROVAL,
            BookingStatus.COMPLETED,
            BookingStatus.CANCELLED,
            BookingStatus.REJECTED,
        ],
    )
    def test_untracked_statuses_ignore_samples(self, current):
        assert derive_booking_status(current, [C, C]) == current


class TestSampleSequence:
    def test_each_status_advances_one_step(self):
        order = [P, R, A, C, Q, D]
        assert [NEXT_STATUS[status] for status in order[:-1]] == order[1:]
        assert D not in NEXT_STATUS
