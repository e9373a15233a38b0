from typing import Dict, List, Optional


class AppError(Exception):
    """Base for errors rendered as ``{"message": ...}`` at the request boundary."""

    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationError(AppError):
    """A field is missing, malformed or outside its enumeration."""

    status_code = 422
    message = "The given data was invalid."

    def __init__(self, errors: Dict[str, List[str]], message: Optional[str] = None) -> None:
        self.errors = errors
        super().__init__(message)

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls({field: [message]})


class NotFoundError(AppError):
    status_code = 404
    message = "Not found"


class ForbiddenOrNotFoundError(NotFoundError):
    """The record is absent or owned by someone else; both look the same from outside."""


class ConflictError(AppError):
    status_code = 409
    message = "Conflict"


class UnauthenticatedError(AppError):
    status_code = 401
    message = "Unauthenticated."


class PaymentIncompleteError(AppError):
    status_code = 402
    message = "Payment not completed"


class CheckoutError(AppError):
    status_code = 500
    message = "Checkout provider error"
