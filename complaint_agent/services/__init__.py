from complaint_agent.services.complaints import ComplaintService
from complaint_agent.services.tracking import TrackingQuery, TrackingService

__all__ = ["ComplaintService", "TrackingQuery", "TrackingService"]
