"""Error hierarchy shared by the API client, vault, job store and handlers."""


class PulseError(Exception):
    """Base error for Comment Pulse operations."""


class ApiError(PulseError):
    """Graph API call failed."""

    def __init__(self, status: int | None, message: str) -> None:
        self.status = status
        self.message = message
        prefix = f"Graph API error ({status})" if status else "Graph API error"
        super().__init__(f"{prefix}: {message}")


class TransientApiError(ApiError):
    """Retriable failure: timeouts, connection errors, 5xx, throttling."""


class RateLimitExceeded(TransientApiError):
    """Throttled by the Graph API (429) on every attempt."""

    def __init__(self, message: str = "Rate limited by Graph API") -> None:
        super().__init__(429, message)


class PermanentApiError(ApiError):
    """Non-retriable 4xx: invalid token, malformed request, missing object."""


class InvalidCredentialError(PermanentApiError):
    """Stored credential failed validation; the page needs re-authentication."""

    def __init__(self, message: str) -> None:
        super().__init__(None, message)


class DecryptionError(PulseError):
    """Credential envelope is malformed or failed authentication."""


class NotFoundError(PulseError):
    """Referenced domain row does not exist."""


class UnknownJobKindError(PulseError):
    """No handler is registered for the job's kind."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f"Unknown job kind: {kind}")


class AnalysisUnavailableError(PulseError):
    """No sentiment analyzer is configured or reachable."""


class PageOwnershipError(PulseError):
    """Page is already connected by a different user."""

    def __init__(self, platform: str, external_id: str) -> None:
        self.platform = platform
        self.external_id = external_id
        super().__init__(f"{platform} page {external_id} is connected by another user")
