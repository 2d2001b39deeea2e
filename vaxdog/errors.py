"""
Domain errors raised by the booking service and translated to HTTP
responses in one place by the app factory.
"""

from pydantic import ValidationError


class VaxDogError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message}


class ValidationFailed(VaxDogError):
    status_code = 422

    def __init__(self, errors: dict[str, str], message: str = "Validation failed") -> None:
        super().__init__(message)
        self.errors = errors

    @classmethod
    def from_pydantic(
        cls, exc: ValidationError, *, default_field: str = "form", message: str = "Validation failed"
    ) -> "ValidationFailed":
        """One message per field; model-level errors land on ``default_field``."""
        errors: dict[str, str] = {}
        for err in exc.errors():
            field = str(err["loc"][0]) if err["loc"] else default_field
            errors.setdefault(field, err["msg"].removeprefix("Value error, "))
        return cls(errors, message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "errors": self.errors}


class AuthenticationError(VaxDogError):
    status_code = 401


class PermissionDenied(VaxDogError):
    status_code = 403


class NotFound(VaxDogError):
    status_code = 404


class Conflict(VaxDogError):
    status_code = 409


class SlotUnavailableError(Conflict):
    """Slot was claimed by someone else (or removed) before the claim ran."""

    def __init__(self, slot_id: str) -> None:
        super().__init__(f"Slot {slot_id} is no longer available")
        self.slot_id = slot_id


class SlotInUseError(Conflict):
    def __init__(self, slot_id: str) -> None:
        super().__init__(f"Slot {slot_id} is booked and cannot be deleted")
        self.slot_id = slot_id


class PaymentVerificationError(VaxDogError):
    status_code = 400


class PaymentMismatchError(Conflict):
    """Verified payment does not cover what is being booked."""


class GatewayError(VaxDogError):
    """Transport or upstream failure talking to an external service."""

    status_code = 502
