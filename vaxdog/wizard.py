"""
Booking wizard as an explicit state machine.

Each flow walks the same four states; what a state asks for depends on
the flow. Moving forward runs that state's gate over the form values
collected so far, moving back never validates.
"""

from datetime import date
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from vaxdog.errors import ValidationFailed
from vaxdog.models import BookingKind, ContactDetails, FoodPreference


class BookingStep(StrEnum):
    SELECT_SLOT_OR_PET = "select_slot_or_pet"
    ENTER_DETAILS = "enter_details"
    SELECT_ITEMS = "select_items"
    CONFIRM = "confirm"


STEPS: tuple[BookingStep, ...] = tuple(BookingStep)


class SlotChoice(BaseModel):
    slot_id: str = Field(min_length=1)


class PetChoice(BaseModel):
    pet_id: str = Field(min_length=1)


class VaccineSelection(BaseModel):
    vaccine_ids: list[str] = Field(min_length=1)


class GroomingOptions(BaseModel):
    preferred_date: date
    preferred_time: str = Field(min_length=1)


class HostelOptions(BaseModel):
    start_date: date
    end_date: date
    food_preference: FoodPreference

    @model_validator(mode="after")
    def _range(self) -> "HostelOptions":
        if self.end_date < self.start_date:
            raise ValueError("End date must not be before start date.")
        return self


GATES: dict[BookingKind, dict[BookingStep, type[BaseModel]]] = {
    BookingKind.VACCINATION: {
        BookingStep.SELECT_SLOT_OR_PET: SlotChoice,
        BookingStep.ENTER_DETAILS: ContactDetails,
        BookingStep.SELECT_ITEMS: VaccineSelection,
    },
    BookingKind.GROOMING: {
        BookingStep.SELECT_SLOT_OR_PET: PetChoice,
        BookingStep.ENTER_DETAILS: ContactDetails,
        BookingStep.SELECT_ITEMS: GroomingOptions,
    },
    BookingKind.PET_HOSTEL: {
        BookingStep.SELECT_SLOT_OR_PET: PetChoice,
        BookingStep.ENTER_DETAILS: ContactDetails,
        BookingStep.SELECT_ITEMS: HostelOptions,
    },
}

# field reported for errors that are not tied to a single field
_RANGE_FIELDS = {HostelOptions: "end_date"}


def check_gate(flow: BookingKind, step: BookingStep, values: dict[str, Any]) -> dict[str, str]:
    """Field errors for ``step``; empty when the step may be left."""
    gate = GATES[flow].get(step)
    if gate is None:
        return {}
    try:
        gate.model_validate(values)
    except ValidationError as e:
        field = _RANGE_FIELDS.get(gate, "form")
        return ValidationFailed.from_pydantic(e, default_field=field).errors
    return {}


def validate_submission(flow: BookingKind, values: dict[str, Any]) -> None:
    errors: dict[str, str] = {}
    for step in STEPS:
        for field, message in check_gate(flow, step, values).items():
            errors.setdefault(field, message)
    if errors:
        raise ValidationFailed(errors, "Please fill in all required fields.")


class BookingWizard:
    def __init__(
        self,
        flow: BookingKind,
        *,
        step: BookingStep = BookingStep.SELECT_SLOT_OR_PET,
        values: dict[str, Any] | None = None,
    ) -> None:
        self.flow = flow
        self.step = step
        self.values: dict[str, Any] = dict(values or {})

    @property
    def is_first(self) -> bool:
        return self.step == STEPS[0]

    @property
    def is_confirming(self) -> bool:
        return self.step == BookingStep.CONFIRM

    def advance(self, values: dict[str, Any] | None = None) -> BookingStep:
        if self.is_confirming:
            raise ValidationFailed(
                {"step": "Already at confirmation; submit payment to finish."}
            )
        if values:
            self.values.update(values)

        errors = check_gate(self.flow, self.step, self.values)
        if errors:
            raise ValidationFailed(errors, "Please fill in all required fields.")

        self.step = STEPS[STEPS.index(self.step) + 1]
        return self.step

    def back(self) -> BookingStep:
        if not self.is_first:
            self.step = STEPS[STEPS.index(self.step) - 1]
        return self.step

    def reset(self) -> None:
        self.step = STEPS[0]
        self.values.clear()
