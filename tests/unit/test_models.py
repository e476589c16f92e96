"""Unit tests for LabBook data models and small helpers."""

from __future__ import annotations

import re
from pathlib import Path
from uuid import uuid4

import pytest
from pydantic import ValidationError as PydanticValidationError

from labbook.booking.models import BookingPage, BulkActionOutcome, BulkItemResult, ServiceResult
from labbook.booking.repository import resolve_order, resolve_page_size
from labbook.booking.service import _to_base36, generate_reference_number
from labbook.core.errors import ErrorKind, ForbiddenError
from labbook.db.models import BookingRequestModel
from labbook.documents import storage as storage_module
from labbook.documents.storage import LocalFileStorage, safe_filename
from labbook.models import Actor, BookingDraftUpdate, BookingListParams, ServiceItemInput, UserRole
from labbook.web.models import BulkActionRequest


class TestActor:
    def test_defaults_to_active_user(self):
        actor = Actor(id=uuid4())

        assert actor.is_admin is False
        assert actor.user_type == "internal_member"

    def test_admin_role(self):
        assert Actor(id=uuid4(), role=UserRole.ADMIN).is_admin is True


class TestDraftUpdate:
    def test_unset_fields_are_excluded(self):
        dto = BookingDraftUpdate(notes="Bring gloves")

        assert dto.model_dump(exclude_unset=True) == {"notes": "Bring gloves"}

    def test_quantity_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            ServiceItemInput(service_id=uuid4(), quantity=0)


class TestBookingListParams:
    def test_blank_query_becomes_none(self):
        assert BookingListParams(q="   ").q is None

    def test_query_is_stripped(self):
        assert BookingListParams(q="  BK-12 ").q == "BK-12"

    def test_page_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            BookingListParams(page=0)

    def test_sort_dir_is_restricted(self):
        with pytest.raises(PydanticValidationError):
            BookingListParams(sort_dir="sideways")


class TestBulkActionRequest:
    def test_approve_without_comment(self):
        request = BulkActionRequest(ids=[uuid4()], action="approve")

        assert request.comment is None

    @pytest.mark.parametrize("action", ["reject", "request_revision"])
    def test_negative_decisions_require_comment(self, action):
        with pytest.raises(PydanticValidationError):
            BulkActionRequest(ids=[uuid4()], action=action, comment="  ")

    def test_at_most_fifty_ids(self):
        with pytest.raises(PydanticValidationError):
            BulkActionRequest(ids=[uuid4() for _ in range(51)], action="delete")

    def test_at_least_one_id(self):
        with pytest.raises(PydanticValidationError):
            BulkActionRequest(ids=[], action="delete")

    def test_unknown_action(self):
        with pytest.raises(PydanticValidationError):
            BulkActionRequest(ids=[uuid4()], action="archive")


class TestPaging:
    @pytest.mark.parametrize(
        "requested,expected",
        [(None, 10), (10, 10), (25, 25), (50, 50), (7, 10), (1000, 10)],
    )
    def test_user_page_sizes(self, requested, expected):
        assert resolve_page_size(requested, (10, 25, 50)) == expected

    def test_admin_default(self):
        assert resolve_page_size(None, (25, 50, 100)) == 25

    def test_sort_falls_back_to_updated_at_desc(self):
        updated_desc = str(BookingRequestModel.updated_at.desc())

        assert str(resolve_order("createdAt", "asc")) == str(BookingRequestModel.created_at.asc())
        assert str(resolve_order("password_hash", "asc")) == updated_desc
        assert str(resolve_order(None)) == updated_desc

    def test_total_pages(self):
        assert BookingPage(items=[], total=0, page=1, page_size=10).total_pages == 1
        assert BookingPage(items=[], total=21, page=1, page_size=10).total_pages == 3


class TestReferenceNumber:
    def test_format(self):
        assert re.fullmatch(r"BK-[0-9A-Z]+-[0-9A-Z]{4}", generate_reference_number())

    def test_base36(self):
        assert _to_base36(0) == "0"
        assert _to_base36(35) == "Z"
        assert _to_base36(36) == "10"

    def test_references_differ(self):
        assert len({generate_reference_number() for _ in range(50)}) == 50


class TestBulkOutcome:
    def test_summary_status(self):
        ok = BulkItemResult(id=uuid4(), ok=True)
        failed = BulkItemResult(
            id=uuid4(), ok=False, error="not reviewable", error_kind=ErrorKind.INVALID_STATE
        )

        assert BulkActionOutcome([ok, ok]).summary_status == "all_succeeded"
        assert BulkActionOutcome([ok, failed]).summary_status == "partial"
        assert BulkActionOutcome([failed]).summary_status == "all_failed"

    def test_failed_item_to_dict(self):
        booking_id = uuid4()
        result = BulkItemResult(
            id=booking_id, ok=False, error="not reviewable", error_kind=ErrorKind.INVALID_STATE
        )

        assert result.to_dict() == {
            "id": str(booking_id),
            "ok": False,
            "error": "not reviewable",
            "error_kind": "invalid_state",
        }


class TestServiceResult:
    def test_success_unwraps(self):
        assert ServiceResult.success("booking").unwrap() == "booking"

    def test_failure_unwrap_raises(self):
        result = ServiceResult.failure(ForbiddenError("not yours"))

        assert result.is_success is False
        with pytest.raises(ForbiddenError):
            result.unwrap()


class TestStorage:
    def test_safe_filename(self):
        assert safe_filename("../../etc/passwd") == "passwd"
        assert safe_filename("signed form (v2).pdf") == "signed_form_v2_.pdf"
        assert safe_filename("") == "upload"

    def test_path_cannot_escape_root(self, tmp_path):
        storage = LocalFileStorage(tmp_path)

        with pytest.raises(ValueError):
            storage.path_for("../outside.txt")

    @pytest.mark.asyncio
    async def test_save_and_delete(self, tmp_path):
        storage = LocalFileStorage(tmp_path)
        key = storage.key_for(uuid4(), "result.csv")

        await storage.save(key, b"sample,value\n")
        assert storage.exists(key)

        await storage.delete(key)
        assert not storage.exists(key)

    @pytest.mark.asyncio
    async def test_delete_missing_raises(self, tmp_path):
        storage = LocalFileStorage(tmp_path)

        with pytest.raises(FileNotFoundError):
            await storage.delete(f"{uuid4()}/missing.pdf")

    @pytest.mark.asyncio
    async def test_save_writes_file_asynchronously(self, tmp_path, monkeypatch):
        storage = LocalFileStorage(tmp_path)
        key = storage.key_for(uuid4(), "signed form.pdf")
        opened = []
        real_open = storage_module.aiofiles.open

        def recording_open(path, mode="r", *args, **kwargs):
            opened.append((Path(path), mode))
            return real_open(path, mode, *args, **kwargs)

        monkeypatch.setattr(storage_module.aiofiles, "open", recording_open)

        await storage.save(key, b"%PDF-1.7")

        assert opened == [(storage.path_for(key), "wb")]
        assert storage.path_for(key).read_bytes() == b"%PDF-1.7"
        assert storage.path_for(key).parent.is_dir()
