"""Typed failures raised by the booking and payment services.

Every error subclasses ValueError so callers that only care about "the request
was refused" can keep catching ValueError. The API layer renders them as
``{"detail": message, **extra}`` with the class' HTTP status.
"""


class BookingError(ValueError):
    status_code = 400

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = {k: v for k, v in extra.items() if v is not None}

    def to_dict(self) -> dict:
        return {"detail": self.message, **self.extra}


class NotFoundError(BookingError):
    status_code = 404


class ValidationError(BookingError):
    status_code = 400


class ConflictError(BookingError):
    status_code = 409


class GatewayVerificationError(BookingError):
    status_code = 400


class InternalError(BookingError):
    status_code = 500


class PermissionDeniedError(BookingError):
    status_code = 403


class GatewayError(BookingError):
    """The payment gateway could not be reached or answered with an error."""
    status_code = 502
