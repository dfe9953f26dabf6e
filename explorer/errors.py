"""
Explorer error taxonomy.

Only ValidationError and AuthoritativeSourceError ever reach the caller of a
pipeline run. Everything else is recovered or swallowed at the stage that
raised it.
"""


class ExplorerError(Exception):
    """Base exception for the exploration pipeline."""
    pass


class ValidationError(ExplorerError):
    """Malformed repository identifier, PR number or PR URL."""
    pass


class UpstreamUnavailable(ExplorerError):
    """An upstream service could not be reached or refused the request."""
    pass


class AuthoritativeSourceError(UpstreamUnavailable):
    """The code host failed. The run cannot proceed without the change set."""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)


class AdvisorySourceError(UpstreamUnavailable):
    """An advisory source failed. Callers fall back to deterministic rules."""
    pass


class ModelBackendError(AdvisorySourceError):
    """The model backend is unreachable, timed out or returned a bad status."""
    pass


class ModelResponseError(ExplorerError):
    """The model answered, but the answer is not the JSON we asked for."""
    pass


class DetectorError(ExplorerError):
    """A single detector failed. Captured into that detector's result slot."""
    pass


class NotificationError(ExplorerError):
    """A PR comment or webhook delivery failed."""
    pass
