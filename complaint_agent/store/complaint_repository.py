"""
Complaint and evidence persistence.

Evidence is stored independently of complaints so that files uploaded
mid-conversation can hang off a placeholder id and be re-parented
once the complaint exists.
"""

import logging
from collections import defaultdict
from typing import Optional, Protocol

from complaint_agent.schemas.complaint_schema import Complaint, ComplaintStatus, EvidenceItem

logger = logging.getLogger(__name__)


class ComplaintRepository(Protocol):
    """Persistence contract for complaints and their evidence."""

    async def insert(self, complaint: Complaint) -> None: ...

    async def update(self, complaint: Complaint) -> None: ...

    async def get(self, complaint_id: str) -> Optional[Complaint]: ...

    async def get_by_tracking_number(self, tracking_number: str) -> Optional[Complaint]: ...

    async def list_by_contact(
        self,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[ComplaintStatus] = None,
    ) -> list[Complaint]: ...

    async def next_sequence(self, year: int) -> int: ...

    async def add_evidence(self, item: EvidenceItem) -> None: ...

    async def list_evidence(self, parent_id: str) -> list[EvidenceItem]: ...

    async def reparent_evidence(self, from_parent: str, to_parent: str) -> list[EvidenceItem]: ...


class InMemoryComplaintRepository:
    """Dict-backed complaint repository. Returns copies of stored models."""

    def __init__(self) -> None:
        self._complaints: dict[str, Complaint] = {}
        self._by_tracking: dict[str, str] = {}
        self._sequences: dict[int, int] = defaultdict(int)
        self._evidence: dict[str, EvidenceItem] = {}

    async def insert(self, complaint: Complaint) -> None:
        tracking = complaint.tracking_number.upper()
        if tracking in self._by_tracking:
            raise ValueError(f"Duplicate tracking number: {tracking}")
        self._complaints[complaint.id] = complaint.model_copy(deep=True)
        self._by_tracking[tracking] = complaint.id

    async def update(self, complaint: Complaint) -> None:
        if complaint.id not in self._complaints:
            raise KeyError(complaint.id)
        self._complaints[complaint.id] = complaint.model_copy(deep=True)

    async def get(self, complaint_id: str) -> Optional[Complaint]:
        complaint = self._complaints.get(complaint_id)
        return self._with_evidence(complaint) if complaint else None

    async def get_by_tracking_number(self, tracking_number: str) -> Optional[Complaint]:
        complaint_id = self._by_tracking.get(tracking_number.strip().upper())
        return await self.get(complaint_id) if complaint_id else None

    async def list_by_contact(
        self,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        user_id: Optional[str] = None,
        status: Optional[ComplaintStatus] = None,
    ) -> list[Complaint]:
        email = email.lower() if email else None
        matches = []
        for complaint in self._complaints.values():
            if not (
                (email and complaint.email.lower() == email)
                or (phone and complaint.phone == phone)
                or (user_id and complaint.user_id == user_id)
            ):
                continue
            if status and complaint.status != status:
                continue
            matches.append(self._with_evidence(complaint))
        return sorted(matches, key=lambda c: c.submitted_at, reverse=True)

    async def next_sequence(self, year: int) -> int:
        self._sequences[year] += 1
        return self._sequences[year]

    async def add_evidence(self, item: EvidenceItem) -> None:
        self._evidence[item.id] = item.model_copy()

    async def list_evidence(self, parent_id: str) -> list[EvidenceItem]:
        items = [e for e in self._evidence.values() if e.parent_id == parent_id]
        return sorted((e.model_copy() for e in items), key=lambda e: e.uploaded_at)

    async def reparent_evidence(self, from_parent: str, to_parent: str) -> list[EvidenceItem]:
        moved = []
        for item_id, item in self._evidence.items():
            if item.parent_id == from_parent:
                self._evidence[item_id] = item.model_copy(update={"parent_id": to_parent})
                moved.append(self._evidence[item_id].model_copy())
        if moved:
            logger.info("Re-parented %d evidence items onto %s", len(moved), to_parent)
        return moved

    def _with_evidence(self, complaint: Complaint) -> Complaint:
        copy = complaint.model_copy(deep=True)
        copy.evidence = sorted(
            (e.model_copy() for e in self._evidence.values() if e.parent_id == complaint.id),
            key=lambda e: e.uploaded_at,
        )
        return copy

    def reset(self) -> None:
        """Clear all complaints and evidence. Used by test fixtures for isolation."""
        self._complaints.clear()
        self._by_tracking.clear()
        self._sequences.clear()
        self._evidence.clear()
