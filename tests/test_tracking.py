"""Tests for the citizen-facing tracking service."""

import re

import pytest

from complaint_agent.schemas.complaint_schema import ComplaintStatus
from complaint_agent.services.complaints import ComplaintService
from complaint_agent.services.tracking import (
    MAX_HISTORY_ENTRIES,
    TrackingErrorType,
    TrackingQuery,
    TrackingService,
    format_status,
)
from complaint_agent.store.complaint_repository import InMemoryComplaintRepository
from conftest import make_submission


class OfflineRepository(InMemoryComplaintRepository):
    async def get_by_tracking_number(self, tracking_number):
        raise ConnectionError("store offline")

    async def list_by_contact(self, **kwargs):
        raise ConnectionError("store offline")


class TestValidateFormat:
    def test_valid(self, tracking_service):
        assert tracking_service.validate_format("OMB-ABC123-DEADBEEF").is_valid

    def test_lower_case_valid(self, tracking_service):
        assert tracking_service.validate_format("omb-abc123-deadbeef").is_valid

    @pytest.mark.parametrize("value", ["OMB-abc", "", "   ", "XYZ-123-456", "OMB-12 3-456"])
    def test_invalid(self, tracking_service, value):
        check = tracking_service.validate_format(value)
        assert not check.is_valid
        assert check.error


class TestTrackComplaint:
    @pytest.mark.asyncio
    async def test_found(self, tracking_service, complaint_service):
        complaint = await complaint_service.create(make_submission())
        response = await tracking_service.track_complaint(
            TrackingQuery(tracking_number=complaint.tracking_number.lower())
        )
        assert response.success
        assert response.tracking_number == complaint.tracking_number
        assert response.status == "submitted"
        assert format_status(ComplaintStatus.SUBMITTED) in response.message
        assert "Next Steps:" in response.message

    @pytest.mark.asyncio
    async def test_never_exposes_internal_id(self, tracking_service, complaint_service):
        complaint = await complaint_service.create(make_submission())
        response = await tracking_service.track_complaint(
            TrackingQuery(tracking_number=complaint.tracking_number, include_history=True)
        )
        assert complaint.id not in response.model_dump_json()

    @pytest.mark.asyncio
    async def test_history_is_limited(self, tracking_service, complaint_service):
        complaint = await complaint_service.create(make_submission())
        for status in [
            ComplaintStatus.UNDER_REVIEW, ComplaintStatus.INVESTIGATING, ComplaintStatus.RESOLVED,
        ]:
            await complaint_service.update_status(complaint.tracking_number, status, "progress")
        response = await tracking_service.track_complaint(
            TrackingQuery(tracking_number=complaint.tracking_number, include_history=True)
        )
        history = response.message.split("Status History:")[1].split("Next Steps:")[0]
        assert len(re.findall(r"^\d+\. ", history, re.MULTILINE)) == MAX_HISTORY_ENTRIES

    @pytest.mark.asyncio
    async def test_not_found(self, tracking_service):
        response = await tracking_service.track_complaint(
            TrackingQuery(tracking_number="OMB-AAAA-BBBB")
        )
        assert not response.success
        assert response.error_type == TrackingErrorType.NOT_FOUND

    @pytest.mark.asyncio
    async def test_invalid_format(self, tracking_service):
        response = await tracking_service.track_complaint(TrackingQuery(tracking_number="OMB-abc"))
        assert response.error_type == TrackingErrorType.INVALID_FORMAT

    @pytest.mark.asyncio
    async def test_system_error(self):
        service = TrackingService(ComplaintService(OfflineRepository(), timeout_sec=1.0))
        response = await service.track_complaint(TrackingQuery(tracking_number="OMB-AAAA-BBBB"))
        assert response.error_type == TrackingErrorType.SYSTEM_ERROR
        assert "store offline" not in response.message


class TestTrackByEmail:
    @pytest.mark.asyncio
    async def test_lists_summaries(self, tracking_service, complaint_service):
        await complaint_service.create(make_submission(email="amina@example.com"))
        lookup = await tracking_service.track_by_email("amina@example.com")
        assert lookup.success
        assert len(lookup.complaints) == 1
        assert lookup.complaints[0].ministry == "Health"

    @pytest.mark.asyncio
    async def test_invalid_email(self, tracking_service):
        lookup = await tracking_service.track_by_email("not-an-email")
        assert not lookup.success

    @pytest.mark.asyncio
    async def test_no_complaints(self, tracking_service):
        lookup = await tracking_service.track_by_email("nobody@example.com")
        assert lookup.success
        assert lookup.complaints == []

    @pytest.mark.asyncio
    async def test_store_failure(self):
        service = TrackingService(ComplaintService(OfflineRepository(), timeout_sec=1.0))
        lookup = await service.track_by_email("amina@example.com")
        assert not lookup.success


def test_status_update_message(tracking_service):
    message = tracking_service.status_update_message(
        ComplaintStatus.SUBMITTED, ComplaintStatus.RESOLVED, "OMB-AAAA-BBBB"
    )
    assert "OMB-AAAA-BBBB" in message
    assert format_status(ComplaintStatus.RESOLVED) in message
