"""
Error taxonomy for the business coach feature.

Every error carries a ``recoverable`` flag so callers can decide between
retrying later and surfacing a hard failure.
"""


class CoachError(Exception):
    """Base exception for business coach errors."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


class RateLimitedError(CoachError):
    """Raised when an account exhausted its request window."""

    def __init__(self, retry_after_seconds: int):
        super().__init__(f"Rate limit exceeded, retry in {retry_after_seconds}s")
        self.retry_after_seconds = retry_after_seconds


class UpstreamFetchFailedError(CoachError):
    """A record gateway read failed; the whole aggregation is aborted."""

    def __init__(self, domain: str, message: str | None = None):
        super().__init__(message or f"Failed to fetch {domain} records")
        self.domain = domain


class ModelUnavailableError(CoachError):
    """The language model raised or returned no message."""


class ModelTimeoutError(ModelUnavailableError):
    """The language model did not answer before the hard timeout."""

    def __init__(self, timeout_seconds: float):
        super().__init__(f"Model call timed out after {timeout_seconds}s")
        self.timeout_seconds = timeout_seconds


class ToolExecutionFailedError(CoachError):
    """A single tool call failed. Scoped to that call only."""


class NotFoundOrNotOwnedError(ToolExecutionFailedError):
    """The target entity does not exist or belongs to another account."""

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type.capitalize()} not found or access denied", recoverable=False)
        self.entity_type = entity_type
        self.entity_id = entity_id


class UnknownToolError(ToolExecutionFailedError):
    """The requested tool name is outside the supported operation set."""

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}", recoverable=False)
        self.tool_name = tool_name
