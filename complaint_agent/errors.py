"""Exception hierarchy for the complaint intake agent.

Only infrastructure failures are raised as exceptions. User-facing
outcomes (validation problems, unknown tracking numbers, classification
rejections) are returned in-band as results, never raised.
"""


class ComplaintAgentError(Exception):
    """Base class for all agent errors."""


class StoreUnavailable(ComplaintAgentError):
    """The persistence layer failed or timed out. No partial write may be assumed."""


class SessionNotFound(ComplaintAgentError):
    """A session id was referenced that does not exist in the store."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class CompletionUnavailable(ComplaintAgentError):
    """The completion service failed, timed out, or returned an unusable payload."""

    def __init__(self, message: str, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable
