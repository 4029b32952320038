"""
Upstream Error Taxonomy
Exceptions raised by the upstream clients and the offline databases
"""
from typing import List, Optional


class UpstreamError(Exception):
    """Base class for failures talking to an upstream service"""

    def __init__(self, message: str, status: Optional[int] = None):
        self.message = message
        self.status = status
        super().__init__(message)


class TransientUpstreamError(UpstreamError):
    """Network failure or 5xx response - may succeed if tried later"""


class RateLimited(TransientUpstreamError):
    """HTTP 429 from upstream"""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message, status=429)
        self.retry_after = retry_after


class RetriesExhausted(UpstreamError):
    """Bounded retries for a single request were used up"""

    def __init__(self, message: str, last_error: Optional[UpstreamError] = None):
        super().__init__(message, status=last_error.status if last_error else None)
        self.last_error = last_error


class UpstreamRejected(UpstreamError):
    """Non-retryable rejection (4xx other than 429)"""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message, status=status)
        self.body = body


class GraphQLError(UpstreamRejected):
    """A 2xx GraphQL response carrying an errors array"""

    def __init__(self, messages: List[str]):
        self.messages = messages
        super().__init__(f"AniList GraphQL errors: {'; '.join(messages)}", status=200)


class SnapshotUnavailable(Exception):
    """No fresh local snapshot and the download failed"""

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"{name}: snapshot unavailable ({reason})")
