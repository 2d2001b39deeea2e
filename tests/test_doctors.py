from decimal import Decimal

import pytest
from httpx import AsyncClient

from conftest import ALICE, BOB, DOCTOR, NOW, auth, contact_form, paid_receipt
from vaxdog import doctors
from vaxdog.errors import NotFound
from vaxdog.models import BookingKind, Role, UserProfile, booking_key, reminder_key, user_key


async def _assigned_visit(client: AsyncClient, db, gateway) -> tuple[str, str]:
    """Book Bruno's rabies shot from a reminder and hand it to the doctor."""
    reminder = await client.post(
        "/reminders",
        json={"pet_name": "Bruno", "vaccine": "Anti-Rabies", "due": "2025-03-01"},
        headers=auth("alice-token"),
    )
    reminder_id = reminder.json()["id"]
    created = await client.post(
        "/bookings/vaccination/confirm",
        json={
            "receipt": paid_receipt(db, gateway, "pay_V", amount="650"),
            "pet_name": "Bruno",
            "reminder_id": reminder_id,
            "form": contact_form(slot_id="S1", vaccine_ids=["rabies"]),
        },
        headers=auth("alice-token"),
    )
    booking_id = created.json()["booking"]["id"]
    await client.put(
        f"/admin/bookings/vaccination/{ALICE.uid}/{booking_id}/doctor",
        json={"doctor_id": DOCTOR.uid},
        headers=auth("admin-token"),
    )
    return booking_id, reminder_id


@pytest.mark.asyncio
async def test_completing_a_visit_closes_its_reminder(
    client: AsyncClient, setup_test_data, db, gateway
) -> None:
    booking_id, reminder_id = await _assigned_visit(client, db, gateway)
    path = f"/doctor/bookings/{ALICE.uid}/{booking_id}/complete"

    resp = await client.post(path, headers=auth("doctor-token"))
    assert resp.status_code == 200
    assert resp.json()["status"] == "completed"
    assert resp.json()["completed_at"] is not None

    booking = db.get(booking_key(BookingKind.VACCINATION, ALICE.uid, booking_id))
    assert booking.status == "completed"
    reminder = db.get(reminder_key(ALICE.uid, reminder_id))
    assert reminder.status == "completed"
    assert reminder.completed_date.isoformat() == "2025-02-28"

    again = await client.post(path, headers=auth("doctor-token"))
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_only_the_assigned_doctor_completes_a_visit(
    client: AsyncClient, setup_test_data, db, gateway
) -> None:
    booking_id, reminder_id = await _assigned_visit(client, db, gateway)
    db.put(user_key(BOB.uid), UserProfile(uid=BOB.uid, role=Role.DOCTOR))
    path = f"/doctor/bookings/{ALICE.uid}/{booking_id}/complete"

    assert (await client.post(path, headers=auth("bob-token"))).status_code == 403
    assert (await client.post(path, headers=auth("alice-token"))).status_code == 403
    missing = await client.post(
        f"/doctor/bookings/{ALICE.uid}/nope/complete", headers=auth("doctor-token")
    )
    assert missing.status_code == 404

    booking = db.get(booking_key(BookingKind.VACCINATION, ALICE.uid, booking_id))
    assert booking.completed_at is None
    assert db.get(reminder_key(ALICE.uid, reminder_id)).status == "upcoming"


@pytest.mark.asyncio
async def test_doctor_profile_is_created_on_first_save(
    client: AsyncClient, setup_test_data
) -> None:
    resp = await client.get("/doctor/profile", headers=auth("doctor-token"))
    assert resp.status_code == 404

    resp = await client.put(
        "/doctor/profile",
        json={"name": "Dr. Mehta", "specialization": "Canine care", "uid": "someone-else"},
        headers=auth("doctor-token"),
    )
    assert resp.status_code == 200
    assert resp.json()["uid"] == DOCTOR.uid
    assert resp.json()["is_active"] is True

    resp = await client.put(
        "/doctor/profile", json={"consultation_fee": "500"}, headers=auth("doctor-token")
    )
    assert resp.json()["name"] == "Dr. Mehta"
    assert Decimal(str(resp.json()["consultation_fee"])) == Decimal("500")

    resp = await client.put(
        "/doctor/profile", json={"consultation_fee": "-5"}, headers=auth("doctor-token")
    )
    assert resp.status_code == 422

    profile = await client.get("/doctor/profile", headers=auth("doctor-token"))
    assert profile.json()["specialization"] == "Canine care"
    assert (await client.get("/doctor/profile", headers=auth("alice-token"))).status_code == 403


@pytest.mark.asyncio
async def test_doctor_manages_own_services(client: AsyncClient, setup_test_data, db) -> None:
    service = {
        "name": "Home check-up",
        "price": "700",
        "duration_minutes": 45,
        "category": "consultation",
    }
    resp = await client.post("/doctor/services", json=service, headers=auth("doctor-token"))
    assert resp.status_code == 201
    service_id = resp.json()["id"]
    assert resp.json()["doctor_id"] == DOCTOR.uid

    bad = await client.post(
        "/doctor/services", json=service | {"duration_minutes": 0}, headers=auth("doctor-token")
    )
    assert bad.status_code == 422

    resp = await client.patch(
        f"/doctor/services/{service_id}",
        json={"price": "750", "doctor_id": "someone-else"},
        headers=auth("doctor-token"),
    )
    assert Decimal(str(resp.json()["price"])) == Decimal("750")
    assert resp.json()["doctor_id"] == DOCTOR.uid

    listing = await client.get("/doctor/services", headers=auth("doctor-token"))
    assert [s["name"] for s in listing.json()] == ["Home check-up"]

    resp = await client.delete(f"/doctor/services/{service_id}", headers=auth("doctor-token"))
    assert resp.status_code == 204
    assert (await client.get("/doctor/services", headers=auth("doctor-token"))).json() == []
    with pytest.raises(NotFound):
        doctors.update_service(db, DOCTOR.uid, service_id, {"price": "1"}, now=NOW)
