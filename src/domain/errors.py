"""
Domain errors raised by the CRUD and pipeline services.

The REST handler maps each to an HTTP status via ``status_code``.
"""


class DomainError(Exception):
    status_code = 500


class ValidationError(DomainError):
    """Request data is missing or malformed."""
    status_code = 400


class NotFoundError(DomainError):
    status_code = 404


class ConflictError(DomainError):
    """A uniqueness constraint would be violated."""
    status_code = 409
