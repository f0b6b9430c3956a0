class DomainError(Exception):
    """Base exception for business rule violations."""

    http_status = 400


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class NotFoundError(DomainError):
    http_status = 404


class AuthenticationError(DomainError):
    """Raised when login credentials are invalid."""

    http_status = 401


class AuthorizationError(DomainError):
    """Raised when a user lacks permission for an action."""

    http_status = 403


class CollaboratorError(DomainError):
    """Raised when an external collaborator (photo store, ...) fails."""

    http_status = 502


class NoBatchAssigned(ValidationError):
    pass


class BatchNotRunning(ValidationError):
    pass


class DuplicateCheckIn(ValidationError):
    pass


class DuplicateCheckOut(ValidationError):
    pass


class NoCheckInFound(ValidationError):
    pass


class PhotoRequired(ValidationError):
    pass


class BatchNotFound(NotFoundError):
    pass


class RecordNotFound(NotFoundError):
    pass


class UserNotFound(NotFoundError):
    pass


class PhotoUploadFailed(CollaboratorError):
    pass


class DuplicateRecordError(Exception):
    """Raised by repositories when the (user, day) unique key is violated."""
