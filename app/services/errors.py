"""Domain exceptions mapped to HTTP responses in app.main."""


class DomainError(Exception):
    """Base class for errors raised by the verdict and voting services."""


class NotFoundError(DomainError):
    """Unknown ingredient, product or barcode (404)."""


class DomainValidationError(DomainError):
    """Malformed input or a violated business rule (400)."""


class IllegalTransitionError(DomainValidationError):
    """Attempted testing-request status change out of order."""

    def __init__(self, from_status: str, to_status: str, reason: str = ""):
        self.from_status = from_status
        self.to_status = to_status
        message = f"Illegal status transition: {from_status} -> {to_status}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ServiceUnavailableError(DomainError):
    """A collaborator (database, notification webhook) is unreachable."""
