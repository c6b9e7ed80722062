"""Tests for complaint creation, identifiers, priority and status history."""

import re

import pytest

from complaint_agent.errors import StoreUnavailable
from complaint_agent.schemas.complaint_schema import ComplaintPriority, ComplaintStatus
from complaint_agent.services.complaints import (
    INITIAL_STATUS_NOTE,
    ComplaintService,
    determine_priority,
    generate_tracking_number,
    validate_submission,
)
from complaint_agent.store.complaint_repository import InMemoryComplaintRepository
from conftest import make_submission


class BrokenComplaintRepository(InMemoryComplaintRepository):
    async def insert(self, complaint):
        raise ConnectionError("store offline")


class TestIdentifiers:
    def test_tracking_number_format(self):
        assert re.fullmatch(r"OMB-[0-9A-Z]+-[0-9A-F]{8}", generate_tracking_number())

    def test_tracking_numbers_are_unique(self):
        assert len({generate_tracking_number() for _ in range(200)}) == 200


class TestPriority:
    @pytest.mark.parametrize("category, expected", [
        ("corruption", ComplaintPriority.HIGH),
        ("harassment", ComplaintPriority.HIGH),
        ("service_delivery", ComplaintPriority.LOW),
        ("bureaucratic_delay", ComplaintPriority.MEDIUM),
        (None, ComplaintPriority.MEDIUM),
    ])
    def test_priority_from_category(self, category, expected):
        assert determine_priority(category) == expected


class TestValidation:
    def test_valid_submission(self):
        assert validate_submission(make_submission()) == []

    def test_short_description(self):
        errors = validate_submission(make_submission(description="too short"))
        assert any("Description" in e for e in errors)

    def test_bad_email(self):
        assert "Email address is not valid" in validate_submission(make_submission(email="nope"))


class TestCreate:
    @pytest.mark.asyncio
    async def test_creates_submitted_complaint(self, complaint_service):
        complaint = await complaint_service.create(make_submission())
        assert complaint.status == ComplaintStatus.SUBMITTED
        assert complaint.tracking_number.startswith("OMB-")
        assert len(complaint.status_history) == 1
        entry = complaint.status_history[0]
        assert entry.status == ComplaintStatus.SUBMITTED
        assert entry.note == INITIAL_STATUS_NOTE
        assert entry.actor == "system"

    @pytest.mark.asyncio
    async def test_public_ids_are_sequential(self, complaint_service):
        first = await complaint_service.create(make_submission())
        second = await complaint_service.create(make_submission())
        year = first.submitted_at.year
        assert first.public_id == f"CMP-{year}-001"
        assert second.public_id == f"CMP-{year}-002"

    @pytest.mark.asyncio
    async def test_missing_name_is_anonymous(self, complaint_service):
        complaint = await complaint_service.create(make_submission(full_name=None))
        assert complaint.is_anonymous
        assert complaint.complainant_name == "Anonymous"

    @pytest.mark.asyncio
    async def test_explicit_priority_wins(self, complaint_service):
        complaint = await complaint_service.create(
            make_submission(priority=ComplaintPriority.URGENT)
        )
        assert complaint.priority == ComplaintPriority.URGENT

    @pytest.mark.asyncio
    async def test_invalid_submission_raises(self, complaint_service):
        with pytest.raises(ValueError, match="Description"):
            await complaint_service.create(make_submission(description="short"))

    @pytest.mark.asyncio
    async def test_store_failure(self):
        service = ComplaintService(BrokenComplaintRepository(), timeout_sec=1.0)
        with pytest.raises(StoreUnavailable):
            await service.create(make_submission())

    @pytest.mark.asyncio
    async def test_lookup_is_case_insensitive(self, complaint_service):
        complaint = await complaint_service.create(make_submission())
        found = await complaint_service.get_by_tracking_number(complaint.tracking_number.lower())
        assert found.id == complaint.id


class TestUpdates:
    @pytest.mark.asyncio
    async def test_status_history_is_appended(self, complaint_service):
        complaint = await complaint_service.create(make_submission())
        updated = await complaint_service.update_status(
            complaint.tracking_number, ComplaintStatus.UNDER_REVIEW, "Assigned", actor="officer-7"
        )
        assert updated.status == ComplaintStatus.UNDER_REVIEW
        assert [h.status for h in updated.status_history] == [
            ComplaintStatus.SUBMITTED, ComplaintStatus.UNDER_REVIEW,
        ]
        assert updated.status_history[-1].actor == "officer-7"

    @pytest.mark.asyncio
    async def test_update_status_unknown(self, complaint_service):
        assert await complaint_service.update_status(
            "OMB-NOPE-NOPE", ComplaintStatus.CLOSED, "x"
        ) is None

    @pytest.mark.asyncio
    async def test_update_details(self, complaint_service):
        complaint = await complaint_service.create(make_submission())
        updated = await complaint_service.update_details(
            complaint.tracking_number, {"subject": "Bribe at hospital", "ministry": "Health"}
        )
        assert updated.subject == "Bribe at hospital"
        assert (await complaint_service.get(complaint.id)).subject == "Bribe at hospital"

    @pytest.mark.asyncio
    async def test_status_is_not_an_editable_detail(self, complaint_service):
        complaint = await complaint_service.create(make_submission())
        with pytest.raises(ValueError, match="status"):
            await complaint_service.update_details(complaint.tracking_number, {"status": "closed"})

    @pytest.mark.asyncio
    async def test_list_by_contact(self, complaint_service):
        await complaint_service.create(make_submission(email="a@example.org"))
        await complaint_service.create(make_submission(email="b@example.org"))
        found = await complaint_service.list_by_contact(email="A@example.org")
        assert len(found) == 1
