"""
Plain owned records: pets, reminders, catalog entries and booking admin.
Each has a single writer, so these are straight reads and writes.
"""

import logging
from datetime import date, datetime
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from vaxdog.database import InMemoryKeyValueDatabase
from vaxdog.errors import NotFound, ValidationFailed
from vaxdog.models import (
    BookingKind,
    GroomingBooking,
    GroomingService,
    Pet,
    PetHostelBooking,
    PetHostelService,
    Reminder,
    ReminderStatus,
    Role,
    ServiceBookingStatus,
    UserProfile,
    VaccinationBooking,
    VaccinationStatus,
    Vaccine,
    booking_key,
    grooming_service_key,
    pet_hostel_service_key,
    pet_key,
    reminder_key,
    user_key,
    vaccine_key,
)

logger = logging.getLogger(__name__)

Database = InMemoryKeyValueDatabase[str, BaseModel]

BOOKING_TYPES: dict[BookingKind, type[BaseModel]] = {
    BookingKind.VACCINATION: VaccinationBooking,
    BookingKind.GROOMING: GroomingBooking,
    BookingKind.PET_HOSTEL: PetHostelBooking,
}


M = TypeVar("M", bound=BaseModel)


def updated_copy(record: M, changes: dict, protected: set[str]) -> M:
    """
    Apply a partial update and re-validate the whole record. Keys in
    ``protected`` (ids, owners) are never overwritten.
    """
    changes = {k: v for k, v in changes.items() if k not in protected}
    try:
        return type(record).model_validate(record.model_dump() | changes)
    except ValidationError as e:
        raise ValidationFailed.from_pydantic(e) from e


# pets


def add_pet(db: Database, pet: Pet) -> Pet:
    db.put(pet_key(pet.owner_id, pet.id), pet)
    return pet


def list_pets(db: Database, uid: str) -> list[Pet]:
    return [p for p in db.scan(f"pet:{uid}:") if isinstance(p, Pet)]


def get_pet(db: Database, uid: str, pet_id: str) -> Pet:
    pet = db.get(pet_key(uid, pet_id))
    if not isinstance(pet, Pet):
        raise NotFound("Pet not found")
    return pet


def update_pet(db: Database, uid: str, pet_id: str, changes: dict) -> Pet:
    pet = get_pet(db, uid, pet_id)
    updated = updated_copy(pet, changes, {"id", "owner_id"})
    db.put(pet_key(uid, pet_id), updated)
    return updated


def delete_pet(db: Database, uid: str, pet_id: str) -> None:
    get_pet(db, uid, pet_id)
    db.delete(pet_key(uid, pet_id))


# reminders


def add_reminder(db: Database, uid: str, pet_name: str, vaccine: str, due: date) -> Reminder:
    reminder = Reminder(owner_id=uid, pet_name=pet_name, vaccine=vaccine, due=due)
    db.put(reminder_key(uid, reminder.id), reminder)
    logger.info(f"Reminder {reminder.id} set for {vaccine} ({pet_name})")
    return reminder


def list_reminders(db: Database, uid: str, pet_name: str | None = None) -> list[Reminder]:
    reminders = [
        r
        for r in db.scan(f"reminder:{uid}:")
        if isinstance(r, Reminder) and (pet_name is None or r.pet_name == pet_name)
    ]
    return sorted(reminders, key=lambda r: r.due)


def _get_reminder(db: Database, uid: str, reminder_id: str) -> Reminder:
    reminder = db.get(reminder_key(uid, reminder_id))
    if not isinstance(reminder, Reminder):
        raise NotFound("Reminder not found")
    return reminder


def edit_reminder(
    db: Database, uid: str, reminder_id: str, *, vaccine: str, due: date
) -> Reminder:
    reminder = _get_reminder(db, uid, reminder_id)
    updated = reminder.model_copy(update={"vaccine": vaccine, "due": due})
    db.put(reminder_key(uid, reminder_id), updated)
    return updated


def complete_reminder(db: Database, uid: str, reminder_id: str, *, today: date) -> Reminder:
    reminder = _get_reminder(db, uid, reminder_id)
    updated = reminder.model_copy(
        update={"status": ReminderStatus.COMPLETED, "completed_date": today}
    )
    db.put(reminder_key(uid, reminder_id), updated)
    return updated


def delete_reminder(db: Database, uid: str, reminder_id: str) -> None:
    _get_reminder(db, uid, reminder_id)
    db.delete(reminder_key(uid, reminder_id))


# catalog


def add_vaccine(db: Database, vaccine: Vaccine) -> Vaccine:
    db.put(vaccine_key(vaccine.id), vaccine)
    return vaccine


def list_vaccines(db: Database, pet_type: str | None = None) -> list[Vaccine]:
    return [
        v
        for v in db.scan("vaccine:")
        if isinstance(v, Vaccine) and (pet_type is None or v.pet_type == pet_type)
    ]


def add_grooming_service(db: Database, service: GroomingService) -> GroomingService:
    db.put(grooming_service_key(service.id), service)
    return service


def list_grooming_services(db: Database) -> list[GroomingService]:
    return [s for s in db.scan("service:grooming:") if isinstance(s, GroomingService)]


def add_pet_hostel_service(db: Database, service: PetHostelService) -> PetHostelService:
    db.put(pet_hostel_service_key(service.id), service)
    return service


def list_pet_hostel_services(db: Database) -> list[PetHostelService]:
    return [s for s in db.scan("service:pet_hostel:") if isinstance(s, PetHostelService)]


# bookings


def list_user_bookings(db: Database, uid: str) -> dict[str, list[BaseModel]]:
    return {
        kind.value: _newest_first(
            b
            for b in db.scan(f"booking:{kind.value}:{uid}:")
            if isinstance(b, BOOKING_TYPES[kind])
        )
        for kind in BookingKind
    }


def list_all_bookings(db: Database, kind: BookingKind) -> list[BaseModel]:
    return _newest_first(
        b for b in db.scan(f"booking:{kind.value}:") if isinstance(b, BOOKING_TYPES[kind])
    )


def _newest_first(bookings) -> list:
    return sorted(bookings, key=lambda b: b.created_at, reverse=True)


def update_booking_status(
    db: Database,
    kind: BookingKind,
    uid: str,
    booking_id: str,
    status: str,
    *,
    now: datetime,
) -> BaseModel:
    """
    Admin status change. Vaccination bookings carry a payment status,
    grooming and hostel bookings a fulfilment status.
    """
    with db.transaction() as txn:
        booking = txn.get(booking_key(kind, uid, booking_id))
        if not isinstance(booking, BOOKING_TYPES[kind]):
            raise NotFound("Booking not found")
        try:
            if kind == BookingKind.VACCINATION:
                booking.status = VaccinationStatus(status)
            else:
                booking.booking_status = ServiceBookingStatus(status)
        except ValueError as e:
            raise ValidationFailed({"status": f"Unknown status {status!r}."}) from e
        booking.updated_at = now
        txn.put(booking_key(kind, uid, booking_id), booking)

    logger.info(f"{kind.value} booking {booking_id} status set to {status}")
    return booking


def assign_doctor(
    db: Database,
    uid: str,
    booking_id: str,
    doctor_id: str | None,
    *,
    now: datetime,
) -> VaccinationBooking:
    """Assign (or with ``doctor_id=None`` unassign) the visiting doctor."""
    if doctor_id is not None:
        doctor = db.get(user_key(doctor_id))
        if not isinstance(doctor, UserProfile) or doctor.role != Role.DOCTOR:
            raise NotFound("Doctor not found")

    with db.transaction() as txn:
        key = booking_key(BookingKind.VACCINATION, uid, booking_id)
        booking = txn.get(key)
        if not isinstance(booking, VaccinationBooking):
            raise NotFound("Booking not found")
        booking.assigned_doctor_id = doctor_id
        booking.assigned_at = now if doctor_id else None
        booking.updated_at = now
        txn.put(key, booking)

    logger.info(f"Booking {booking_id} assigned to doctor {doctor_id}")
    return booking


def list_doctor_bookings(db: Database, doctor_id: str) -> list[VaccinationBooking]:
    return _newest_first(
        b
        for b in db.scan("booking:vaccination:")
        if isinstance(b, VaccinationBooking) and b.assigned_doctor_id == doctor_id
    )
