"""Errors surfaced by the carpool flows."""


class CarpoolError(Exception):
    """Base class for every error the client reports to the user."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(CarpoolError):
    """A ride form field did not pass validation."""

    kind = "ValidationFailed"

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field

    def as_dict(self) -> dict:
        return {"field": self.field, "kind": self.kind, "message": self.message}


class MissingField(ValidationFailed):
    """Raised when a required ride field is empty."""

    kind = "MissingField"


class InvalidQuantity(ValidationFailed):
    """Raised when seats or price is not a positive number."""

    kind = "InvalidQuantity"


class WriteFailed(CarpoolError):
    """Raised when the backend rejects or fails a ride write."""


class SyncFailed(CarpoolError):
    """Raised when a live booking query errors out."""


class BackendError(Exception):
    """Raised by the backend client when a database call fails."""
