"""Sample status progression and the booking status derived from it."""

from datetime import date, timedelta

import pytest

from labbook.core.errors import ForbiddenError, InvalidStateError, ValidationError
from labbook.models import (
    Actor,
    BookingDraftUpdate,
    BookingStatus,
    SampleStatus,
    ServiceItemInput,
    UserRole,
)
from labbook.utils.clock import utcnow

pytestmark = [pytest.mark.asyncio, pytest.mark.integration]


@pytest.fixture
def admin(seed) -> Actor:
    return Actor(id=seed.admin.id, role=UserRole.ADMIN)


async def _walk(sample_service, admin_id, sample_id, *statuses):
    for status in statuses:
        sample = await sample_service.update_status(admin_id, sample_id, status)
    return sample


async def _booking(booking_service, admin, booking_id):
    return (await booking_service.get_booking(admin, booking_id)).booking


class TestSampleProgress:
    async def test_first_received_sample_starts_work(
        self, booking_service, sample_service, admin, make_booking
    ):
        booking_id = await make_booking("approved", quantity=2)
        first, second = await sample_service.list_for_booking(admin, booking_id)

        sample = await sample_service.update_status(admin.id, first.id, SampleStatus.RECEIVED)

        assert sample.status == "received"
        assert sample.received_at is not None
        assert sample.updated_by == admin.id
        assert (await _booking(booking_service, admin, booking_id)).status == "in_progress"

    async def test_all_samples_complete_releases_booking(
        self, booking_service, sample_service, admin, make_booking, notifier
    ):
        booking_id = await make_booking("approved", quantity=2)
        first, second = await sample_service.list_for_booking(admin, booking_id)
        path = (SampleStatus.RECEIVED, SampleStatus.IN_ANALYSIS, SampleStatus.ANALYSIS_COMPLETE)

        await _walk(sample_service, admin.id, first.id, *path)
        assert (await _booking(booking_service, admin, booking_id)).status == "in_progress"

        await _walk(sample_service, admin.id, second.id, *path)
        booking = await _booking(booking_service, admin, booking_id)

        assert booking.status == "completed"
        assert booking.released_at is not None
        assert notifier.booking_event.await_args.kwargs["event"] == "completed"

    async def test_samples_can_be_returned_after_release(
        self, booking_service, sample_service, admin, make_booking
    ):
        booking_id = await make_booking("approved")
        (sample,) = await sample_service.list_for_booking(admin, booking_id)

        sample = await _walk(
            sample_service,
            admin.id,
            sample.id,
            SampleStatus.RECEIVED,
            SampleStatus.IN_ANALYSIS,
            SampleStatus.ANALYSIS_COMPLETE,
        )
        assert (await _booking(booking_service, admin, booking_id)).status == "completed"

        sample = await _walk(
            sample_service, admin.id, sample.id, SampleStatus.RETURN_REQUESTED, SampleStatus.RETURNED
        )

        assert sample.analysis_complete_at is not None
        assert sample.returned_at is not None
        assert (await _booking(booking_service, admin, booking_id)).status == "completed"

    async def test_steps_cannot_be_skipped(self, booking_service, sample_service, admin, make_booking):
        booking_id = await make_booking("approved")
        (sample,) = await sample_service.list_for_booking(admin, booking_id)

        with pytest.raises(InvalidStateError, match="cannot move"):
            await sample_service.update_status(admin.id, sample.id, SampleStatus.ANALYSIS_COMPLETE)

        (unchanged,) = await sample_service.list_for_booking(admin, booking_id)
        assert unchanged.status == "pending"
        assert (await _booking(booking_service, admin, booking_id)).status == "approved"

    async def test_cancelled_booking_freezes_samples(
        self, booking_service, sample_service, seed, admin, make_booking
    ):
        booking_id = await make_booking("approved")
        (sample,) = await sample_service.list_for_booking(admin, booking_id)
        await booking_service.cancel_booking_by_admin(booking_id, seed.admin.id, "Instrument down")

        with pytest.raises(InvalidStateError):
            await sample_service.update_status(admin.id, sample.id, SampleStatus.RECEIVED)

    async def test_recompute_without_change(self, sample_service, seed, make_booking):
        booking_id = await make_booking("approved")

        status = await sample_service.recompute_booking_status(booking_id, seed.admin.id)

        assert status == "approved"


class TestSampleAccessAndResults:
    async def test_other_user_cannot_list_samples(self, sample_service, seed, make_booking):
        booking_id = await make_booking("approved")

        with pytest.raises(ForbiddenError):
            await sample_service.list_for_booking(Actor(id=seed.other.id), booking_id)

    async def test_owner_lists_own_samples(self, sample_service, seed, make_booking):
        booking_id = await make_booking("approved", quantity=3)

        samples = await sample_service.list_for_booking(Actor(id=seed.owner.id), booking_id)

        assert [sample.sample_identifier[-3:] for sample in samples] == ["S01", "S02", "S03"]

    async def test_result_needs_sample_in_analysis(self, sample_service, admin, make_booking):
        booking_id = await make_booking("approved")
        (sample,) = await sample_service.list_for_booking(admin, booking_id)

        with pytest.raises(InvalidStateError):
            await sample_service.upload_result(admin.id, sample.id, "early.csv", b"a,b\n")

    async def test_empty_result_file(self, sample_service, admin, make_booking):
        booking_id = await make_booking("approved")
        (sample,) = await sample_service.list_for_booking(admin, booking_id)

        with pytest.raises(ValidationError):
            await sample_service.upload_result(admin.id, sample.id, "empty.csv", b"")

    async def test_result_is_stored(self, sample_service, storage, admin, make_booking):
        booking_id = await make_booking("approved")
        (sample,) = await sample_service.list_for_booking(admin, booking_id)
        await _walk(sample_service, admin.id, sample.id, SampleStatus.RECEIVED, SampleStatus.IN_ANALYSIS)

        result = await sample_service.upload_result(
            admin.id, sample.id, "../../etc/passwd.csv", b"Pb,12.5\n", description="ICP-MS run 1"
        )

        assert result.file_size == 8
        assert result.file_path.startswith(f"{booking_id}/")
        assert result.file_path.endswith("_passwd.csv")
        assert storage.exists(result.file_path)


async def _bench_booking(booking_service, seed, start: date, end: date, with_analysis: bool = False):
    """Approved booking with bench time between ``start`` and ``end``."""
    items = [ServiceItemInput(service_id=seed.workspace.id)]
    if with_analysis:
        items.append(ServiceItemInput(service_id=seed.analysis.id))
    created = await booking_service.create_draft(seed.owner.id)
    await booking_service.save_draft(
        seed.owner.id,
        created.booking_id,
        BookingDraftUpdate(
            project_description="Soil column incubation",
            preferred_start_date=start,
            preferred_end_date=end,
            service_items=items,
        ),
        seed.owner.user_type,
    )
    await booking_service.submit(seed.owner.id, created.booking_id, seed.owner.status)
    await booking_service.admin_approve(seed.admin.id, created.booking_id)
    return created.booking_id


class TestWorkspaceCompletion:
    async def test_ended_bench_booking_completes(
        self, booking_service, sample_service, seed, admin, notifier
    ):
        today = utcnow().date()
        booking_id = await _bench_booking(
            booking_service, seed, today - timedelta(days=5), today - timedelta(days=1)
        )

        status = await sample_service.recompute_booking_status(booking_id)

        assert status == BookingStatus.COMPLETED
        booking = await _booking(booking_service, admin, booking_id)
        assert booking.status == "completed"
        assert booking.released_at is not None
        assert notifier.booking_event.await_args.kwargs["event"] == "completed"

    async def test_running_bench_booking_stays_approved(
        self, booking_service, sample_service, seed, admin
    ):
        today = utcnow().date()
        booking_id = await _bench_booking(
            booking_service, seed, today - timedelta(days=1), today + timedelta(days=3)
        )

        assert await sample_service.recompute_booking_status(booking_id) == BookingStatus.APPROVED

    async def test_sweep_skips_bookings_with_open_samples(
        self, booking_service, sample_service, seed, admin
    ):
        today = utcnow().date()
        bench_only = await _bench_booking(
            booking_service, seed, today - timedelta(days=4), today
        )
        with_samples = await _bench_booking(
            booking_service,
            seed,
            today - timedelta(days=4),
            today - timedelta(days=2),
            with_analysis=True,
        )
        future = await _bench_booking(
            booking_service, seed, today, today + timedelta(days=7)
        )

        assert await sample_service.complete_finished_workspace_bookings() == 1

        assert (await _booking(booking_service, admin, bench_only)).status == "completed"
        assert (await _booking(booking_service, admin, with_samples)).status == "approved"
        assert (await _booking(booking_service, admin, future)).status == "approved"
        assert await sample_service.complete_finished_workspace_bookings() == 0
