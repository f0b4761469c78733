# bulletin/errors.py
"""
Lifecycle error taxonomy.

Each error carries a stable machine-readable code and the HTTP status the
API layer maps it to. Messages are safe to show to end users; database
error text never goes into them.
"""


class LifecycleError(Exception):
    """Base class for errors surfaced to callers of the lifecycle services."""

    code = "LIFECYCLE_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | list | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(LifecycleError):
    """Entity absent, or outside the scope the caller asked for."""

    code = "NOT_FOUND"
    status_code = 404


class AlreadyArchivedError(LifecycleError):
    """archive() on an entity whose deleted_at is already set."""

    code = "ALREADY_ARCHIVED"
    status_code = 409


class NotArchivedError(LifecycleError):
    """restore() on an entity that is not archived."""

    code = "NOT_ARCHIVED"
    status_code = 409


class ValidationError(LifecycleError):
    """Malformed create/update input."""

    code = "VALIDATION_ERROR"
    status_code = 422


class ConcurrencyConflictError(LifecycleError):
    """Row locks could not be acquired in time during a bulk operation."""

    code = "CONCURRENCY_CONFLICT"
    status_code = 409
