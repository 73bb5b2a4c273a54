"""Service layer — job lifecycle, commit recording and repository lookups.

Services raise the errors below; ``commitsync.api.errors`` maps them to
HTTP status codes.
"""


class ServiceError(Exception):
    """Base service exception."""


class NotFoundError(ServiceError):
    """Job, repository or commit does not exist (-> HTTP 404)."""


class ConflictError(ServiceError):
    """Job already running in this process, or repository URL taken (-> HTTP 409)."""


class ValidationError(ServiceError):
    """Out-of-order job transition or inconsistent request (-> HTTP 422)."""
