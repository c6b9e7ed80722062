from complaint_agent.store.blob_store import BlobStore, InMemoryBlobStore
from complaint_agent.store.complaint_repository import (
    ComplaintRepository,
    InMemoryComplaintRepository,
)
from complaint_agent.store.session_store import (
    InMemorySessionRepository,
    SessionRepository,
    SessionStore,
)

__all__ = [
    "BlobStore",
    "ComplaintRepository",
    "InMemoryBlobStore",
    "InMemoryComplaintRepository",
    "InMemorySessionRepository",
    "SessionRepository",
    "SessionStore",
]
