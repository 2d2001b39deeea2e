import pytest
from httpx import AsyncClient

from conftest import auth, contact_form
from vaxdog.errors import ValidationFailed
from vaxdog.models import BookingKind
from vaxdog.wizard import BookingStep, BookingWizard, check_gate, validate_submission


def test_vaccination_flow_walks_all_steps_in_order() -> None:
    wizard = BookingWizard(BookingKind.VACCINATION)
    assert wizard.step == BookingStep.SELECT_SLOT_OR_PET

    assert wizard.advance({"slot_id": "S1"}) == BookingStep.ENTER_DETAILS
    assert wizard.advance(contact_form()) == BookingStep.SELECT_ITEMS
    assert wizard.advance({"vaccine_ids": ["rabies"]}) == BookingStep.CONFIRM
    assert wizard.is_confirming


def test_gate_blocks_forward_move_and_keeps_step() -> None:
    wizard = BookingWizard(BookingKind.VACCINATION)

    with pytest.raises(ValidationFailed) as exc:
        wizard.advance()

    assert "slot_id" in exc.value.errors
    assert wizard.step == BookingStep.SELECT_SLOT_OR_PET


def test_contact_gate_reports_each_bad_field() -> None:
    errors = check_gate(
        BookingKind.GROOMING,
        BookingStep.ENTER_DETAILS,
        contact_form(name="A", phone="5550001111", address="short", postal_code="56002x"),
    )
    assert set(errors) == {"name", "phone", "address", "postal_code"}
    assert errors["phone"] == "Invalid Indian phone number."


@pytest.mark.parametrize("phone", ["9876543210", "+919876543210"])
def test_contact_gate_accepts_indian_mobiles(phone: str) -> None:
    assert check_gate(BookingKind.VACCINATION, BookingStep.ENTER_DETAILS, contact_form(phone=phone)) == {}


def test_back_never_validates_and_stops_at_first_step() -> None:
    wizard = BookingWizard(BookingKind.PET_HOSTEL, step=BookingStep.SELECT_ITEMS)

    assert wizard.back() == BookingStep.ENTER_DETAILS
    assert wizard.back() == BookingStep.SELECT_SLOT_OR_PET
    assert wizard.back() == BookingStep.SELECT_SLOT_OR_PET


def test_cannot_advance_past_confirm() -> None:
    wizard = BookingWizard(BookingKind.GROOMING, step=BookingStep.CONFIRM)
    with pytest.raises(ValidationFailed):
        wizard.advance()


def test_hostel_items_need_ordered_dates_and_food_preference() -> None:
    errors = check_gate(
        BookingKind.PET_HOSTEL,
        BookingStep.SELECT_ITEMS,
        {"start_date": "2025-03-10", "end_date": "2025-03-08", "food_preference": "veg"},
    )
    assert set(errors) == {"end_date"}

    errors = check_gate(
        BookingKind.PET_HOSTEL,
        BookingStep.SELECT_ITEMS,
        {"start_date": "2025-03-10", "end_date": "2025-03-12", "food_preference": "raw"},
    )
    assert set(errors) == {"food_preference"}


def test_grooming_items_need_date_and_time() -> None:
    errors = check_gate(BookingKind.GROOMING, BookingStep.SELECT_ITEMS, {"preferred_date": "2025-03-10"})
    assert set(errors) == {"preferred_time"}


def test_validate_submission_collects_errors_from_every_step() -> None:
    with pytest.raises(ValidationFailed) as exc:
        validate_submission(BookingKind.GROOMING, contact_form(city="X"))
    assert set(exc.value.errors) == {"pet_id", "city", "preferred_date", "preferred_time"}


def test_reset_returns_to_start() -> None:
    wizard = BookingWizard(BookingKind.VACCINATION)
    wizard.advance({"slot_id": "S1"})
    wizard.reset()
    assert wizard.step == BookingStep.SELECT_SLOT_OR_PET
    assert wizard.values == {}


@pytest.mark.asyncio
async def test_wizard_endpoint_moves_forward_and_back(client: AsyncClient, setup_test_data) -> None:
    resp = await client.post(
        "/wizard/vaccination/step",
        json={"step": "select_slot_or_pet", "values": {"slot_id": "S1"}},
        headers=auth("alice-token"),
    )
    assert resp.status_code == 200
    assert resp.json()["step"] == "enter_details"

    resp = await client.post(
        "/wizard/vaccination/step",
        json={"step": "enter_details", "values": contact_form(phone="123")},
        headers=auth("alice-token"),
    )
    assert resp.status_code == 422
    assert set(resp.json()["errors"]) == {"phone"}

    resp = await client.post(
        "/wizard/pet_hostel/step",
        json={"step": "confirm", "action": "back"},
        headers=auth("alice-token"),
    )
    assert resp.json()["step"] == "select_items"
