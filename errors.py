"""Error taxonomy for notification dispatch.

The HTTP layer maps these to status codes; nothing in here knows about HTTP.
"""

from typing import Any, Optional


class NotificationError(Exception):
    """Base class for dispatch errors."""


class ValidationError(NotificationError):
    """Bad caller input: missing title/body or no resolvable recipients."""


class NotFoundError(NotificationError):
    """A named user (by email) has no account."""


class ConfigurationError(NotificationError):
    """Provider credentials or backends are not configured."""


class ProviderError(NotificationError):
    """The push provider rejected a single send.

    `code` carries the provider's error code when one could be extracted
    (e.g. 'UNREGISTERED', 'NotRegistered').
    """

    def __init__(self, message: str, code: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status = status


class AllFailedError(NotificationError):
    """Every token send failed; carries the full delivery report."""

    def __init__(self, report: Any):
        first_error = next((r.error for r in report.results if r.error), None)
        super().__init__(first_error or "Failed to send notification")
        self.report = report
