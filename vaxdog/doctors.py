"""
Doctor-side operations: finishing a home visit, the doctor's own profile
and the services they list.
"""

import logging
from datetime import datetime

from pydantic import BaseModel

from vaxdog.database import InMemoryKeyValueDatabase
from vaxdog.errors import Conflict, NotFound, PermissionDenied
from vaxdog.models import (
    BookingKind,
    DoctorProfile,
    DoctorService,
    Reminder,
    ReminderStatus,
    VaccinationBooking,
    VaccinationStatus,
    booking_key,
    doctor_profile_key,
    doctor_service_key,
    reminder_key,
)
from vaxdog.records import updated_copy

logger = logging.getLogger(__name__)

Database = InMemoryKeyValueDatabase[str, BaseModel]

PROTECTED_FIELDS = {"uid", "id", "doctor_id", "created_at", "updated_at"}


def complete_visit(
    db: Database, doctor_uid: str, user_id: str, booking_id: str, *, now: datetime
) -> VaccinationBooking:
    """
    Mark an assigned vaccination visit completed. The booking and the
    reminder it was booked from are updated together.
    """
    with db.transaction() as txn:
        key = booking_key(BookingKind.VACCINATION, user_id, booking_id)
        booking = txn.get(key)
        if not isinstance(booking, VaccinationBooking):
            raise NotFound("Booking not found")
        if booking.assigned_doctor_id != doctor_uid:
            raise PermissionDenied("Booking is not assigned to you")
        if booking.status == VaccinationStatus.COMPLETED:
            raise Conflict(f"Booking {booking_id} is already completed")

        booking.status = VaccinationStatus.COMPLETED
        booking.completed_at = now
        booking.updated_at = now
        txn.put(key, booking)

        if booking.reminder_id:
            reminder = txn.get(reminder_key(user_id, booking.reminder_id))
            if isinstance(reminder, Reminder):
                reminder.status = ReminderStatus.COMPLETED
                reminder.completed_date = now.date()
                txn.put(reminder_key(user_id, reminder.id), reminder)

    logger.info(f"Doctor {doctor_uid} completed booking {booking_id}")
    return booking


# profile


def get_profile(db: Database, uid: str) -> DoctorProfile:
    profile = db.get(doctor_profile_key(uid))
    if not isinstance(profile, DoctorProfile):
        raise NotFound("Doctor profile not found")
    return profile


def update_profile(db: Database, uid: str, changes: dict, *, now: datetime) -> DoctorProfile:
    """Create the profile on first save, otherwise apply a partial update."""
    with db.transaction() as txn:
        profile = txn.get(doctor_profile_key(uid))
        if not isinstance(profile, DoctorProfile):
            profile = DoctorProfile(uid=uid, created_at=now)
        updated = updated_copy(profile, changes, PROTECTED_FIELDS)
        updated.updated_at = now
        txn.put(doctor_profile_key(uid), updated)
    return updated


# services


def list_services(db: Database, doctor_uid: str) -> list[DoctorService]:
    services = [
        s for s in db.scan(f"doctor-service:{doctor_uid}:") if isinstance(s, DoctorService)
    ]
    return sorted(services, key=lambda s: s.name)


def add_service(db: Database, service: DoctorService, *, now: datetime) -> DoctorService:
    service = service.model_copy(update={"created_at": now, "updated_at": now})
    db.put(doctor_service_key(service.doctor_id, service.id), service)
    logger.info(f"Doctor {service.doctor_id} added service {service.id} ({service.name})")
    return service


def _get_service(db: Database, doctor_uid: str, service_id: str) -> DoctorService:
    service = db.get(doctor_service_key(doctor_uid, service_id))
    if not isinstance(service, DoctorService):
        raise NotFound("Service not found")
    return service


def update_service(
    db: Database, doctor_uid: str, service_id: str, changes: dict, *, now: datetime
) -> DoctorService:
    service = _get_service(db, doctor_uid, service_id)
    updated = updated_copy(service, changes, PROTECTED_FIELDS)
    updated.updated_at = now
    db.put(doctor_service_key(doctor_uid, service_id), updated)
    return updated


def delete_service(db: Database, doctor_uid: str, service_id: str) -> None:
    _get_service(db, doctor_uid, service_id)
    db.delete(doctor_service_key(doctor_uid, service_id))
