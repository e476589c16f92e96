"""Pytest configuration and fixtures for LabBook tests.

Database fixtures run against in-memory SQLite through the real service
layer. Notifications are replaced by an ``AsyncMock`` so tests can assert on
the events a transition queued.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from labbook.billing.service import BillingService
from labbook.booking.modifications import ModificationService
from labbook.booking.service import BookingService
from labbook.config import BookingConfig, reset_config
from labbook.core.audit_logger import AuditLogger
from labbook.db.connection import build_engine, make_session_factory
from labbook.db.models import (
    AddOnCatalogModel,
    Base,
    ServiceModel,
    ServicePricingModel,
    UserModel,
)
from labbook.db.unit_of_work import unit_of_work_factory
from labbook.documents.service import DocumentService
from labbook.documents.storage import LocalFileStorage
from labbook.models import (
    AddOnInput,
    BookingDraftUpdate,
    ServiceItemInput,
    UserStatus,
)
from labbook.notifications.notifier import BookingNotifier
from labbook.samples.service import SampleService
from labbook.utils.clock import utcnow
from labbook.web.rate_limit import reset_rate_limiter

JOB_KEY = "test-job-key"


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch, tmp_path):
    """Set up test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.setenv("JOB_KEY", JOB_KEY)
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    reset_config()
    reset_rate_limiter()
    yield
    reset_config()
    reset_rate_limiter()


class TickingClock:
    """Clock that advances one millisecond per call so rows never tie."""

    def __init__(self, start: datetime | None = None):
        self.current = start or utcnow()

    def __call__(self) -> datetime:
        self.current += timedelta(milliseconds=1)
        return self.current


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest_asyncio.fixture
async def engine():
    """In-memory database with the full schema."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def uow_factory(session_factory):
    return unit_of_work_factory(session_factory)


@pytest.fixture
def audit(session_factory) -> AuditLogger:
    return AuditLogger(session_factory)


@pytest.fixture
def notifier() -> AsyncMock:
    return AsyncMock(spec=BookingNotifier)


@pytest.fixture
def storage(tmp_path) -> LocalFileStorage:
    return LocalFileStorage(tmp_path / "files")


@pytest_asyncio.fixture
async def seed(session_factory):
    """Accounts, two catalog services with internal prices and one add-on."""
    price_from = utcnow() - timedelta(days=30)
    owner = UserModel(
        email="olive.owner@soil.test",
        first_name="Olive",
        last_name="Owner",
        status=UserStatus.ACTIVE.value,
        organization_name="Soil Institute",
    )
    pending_owner = UserModel(
        email="pat.pending@soil.test",
        first_name="Pat",
        last_name="Pending",
        status=UserStatus.PENDING.value,
    )
    other = UserModel(
        email="otto.other@water.test",
        first_name="Otto",
        last_name="Other",
        status=UserStatus.ACTIVE.value,
        organization_name="Water Board",
    )
    admin = UserModel(
        email="ada.admin@lab.test",
        first_name="Ada",
        last_name="Admin",
        role="admin",
        status=UserStatus.ACTIVE.value,
    )
    analysis = ServiceModel(code="ICP-MS", name="ICP-MS metals panel", category="analysis")
    workspace = ServiceModel(
        code="BENCH-1",
        name="Wet bench",
        category="working_space",
        requires_sample=False,
    )
    rush = AddOnCatalogModel(name="Rush processing", default_amount=Decimal("25.00"))

    async with session_factory() as session:
        session.add_all([owner, pending_owner, other, admin, analysis, workspace, rush])
        await session.flush()
        session.add_all(
            [
                ServicePricingModel(
                    service_id=analysis.id,
                    user_type="internal_member",
                    price=Decimal("100.00"),
                    effective_from=price_from,
                ),
                ServicePricingModel(
                    service_id=workspace.id,
                    user_type="internal_member",
                    price=Decimal("50.00"),
                    effective_from=price_from,
                ),
            ]
        )
        await session.commit()

    return SimpleNamespace(
        owner=owner,
        pending_owner=pending_owner,
        other=other,
        admin=admin,
        analysis=analysis,
        workspace=workspace,
        rush=rush,
    )


@pytest.fixture
def booking_service(uow_factory, audit, notifier, clock) -> BookingService:
    return BookingService(uow_factory, audit, notifier, config=BookingConfig(), clock=clock)


@pytest.fixture
def document_service(uow_factory, storage, audit, notifier, clock) -> DocumentService:
    return DocumentService(uow_factory, storage, audit, notifier, clock=clock)


@pytest.fixture
def billing_service(uow_factory, storage, audit, notifier, clock) -> BillingService:
    return BillingService(uow_factory, storage, audit, notifier, config=BookingConfig(), clock=clock)


@pytest.fixture
def sample_service(uow_factory, storage, audit, notifier, clock) -> SampleService:
    return SampleService(uow_factory, storage, audit, notifier, clock=clock)


@pytest.fixture
def modification_service(uow_factory, audit, notifier, sample_service, clock) -> ModificationService:
    return ModificationService(uow_factory, audit, notifier, sample_service, clock=clock)


def draft_update(seed, quantity: int = 1, workspace: bool = False, rush: bool = False) -> BookingDraftUpdate:
    """A complete draft: one analysis line, optionally bench time and rush."""
    items = [
        ServiceItemInput(
            service_id=seed.analysis.id,
            quantity=quantity,
            sample_name="Topsoil core",
            sample_type="soil",
            add_ons=[AddOnInput(add_on_id=seed.rush.id)] if rush else [],
        )
    ]
    if workspace:
        items.append(ServiceItemInput(service_id=seed.workspace.id))
    return BookingDraftUpdate(
        project_description="Heavy metal screening of field samples",
        preferred_start_date=date(2026, 11, 2),
        preferred_end_date=date(2026, 11, 6),
        service_items=items,
    )


@pytest.fixture
def make_booking(booking_service, seed):
    """Build a booking and walk it to ``stage``.

    Stages: draft, submitted, approved, in_progress, completed.
    """

    async def _make(stage: str = "submitted", owner=None, quantity: int = 1, workspace: bool = False):
        owner = owner or seed.owner
        created = await booking_service.create_draft(owner.id)
        if stage == "draft":
            return created.booking_id
        await booking_service.save_draft(
            owner.id, created.booking_id, draft_update(seed, quantity, workspace), owner.user_type
        )
        await booking_service.submit(owner.id, created.booking_id, owner.status)
        if stage == "submitted":
            return created.booking_id
        await booking_service.admin_approve(seed.admin.id, created.booking_id)
        if stage == "approved":
            return created.booking_id
        await booking_service.admin_start_work(seed.admin.id, created.booking_id)
        if stage == "in_progress":
            return created.booking_id
        await booking_service.admin_complete(seed.admin.id, created.booking_id)
        return created.booking_id

    return _make


@pytest.fixture
def draft_payload(seed):
    """``draft_update`` bound to the seeded catalog."""

    def _payload(quantity: int = 1, workspace: bool = False, rush: bool = False) -> BookingDraftUpdate:
        return draft_update(seed, quantity=quantity, workspace=workspace, rush=rush)

    return _payload
