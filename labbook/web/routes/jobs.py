"""Scheduled-job trigger routes.

External schedulers call these with the shared ``X-Job-Key`` header instead
of a user session.

Routes:
- POST /api/jobs/purge-drafts                - Delete drafts idle longer than the retention window
- POST /api/jobs/complete-workspace-bookings - Complete bench-only bookings past their end date
"""

from __future__ import annotations

import hmac

import structlog
from fastapi import APIRouter, Depends, Header

from labbook.booking.service import BookingService
from labbook.config import get_config
from labbook.core.errors import UnauthorizedError
from labbook.samples.service import SampleService
from labbook.web.dependencies import get_booking_service, get_sample_service

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


def require_job_key(x_job_key: str | None = Header(default=None)) -> None:
    expected = get_config().jobs.job_key
    if (
        not expected
        or not x_job_key
        or not hmac.compare_digest(x_job_key.encode(), expected.encode())
    ):
        logger.warning("job_key_rejected")
        raise UnauthorizedError("Invalid job key")


@router.post("/purge-drafts", dependencies=[Depends(require_job_key)])
async def purge_drafts(service: BookingService = Depends(get_booking_service)):
    deleted = await service.purge_expired_drafts()
    return {"deleted": deleted}


@router.post("/complete-workspace-bookings", dependencies=[Depends(require_job_key)])
async def complete_workspace_bookings(service: SampleService = Depends(get_sample_service)):
    completed = await service.complete_finished_workspace_bookings()
    return {"completed": completed}
