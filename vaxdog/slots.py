import logging
from datetime import UTC, date, datetime, time, timedelta

from pydantic import BaseModel

from vaxdog.database import InMemoryKeyValueDatabase
from vaxdog.errors import NotFound, SlotInUseError, ValidationFailed
from vaxdog.models import BookingSlot, as_utc, slot_key

logger = logging.getLogger(__name__)

Database = InMemoryKeyValueDatabase[str, BaseModel]


def _slots(db: Database) -> list[BookingSlot]:
    return [s for s in db.scan("slot:") if isinstance(s, BookingSlot)]


def list_available_slots(db: Database, now: datetime) -> list[BookingSlot]:
    """Future, unclaimed slots, soonest first."""
    now = as_utc(now)
    open_slots = [
        s for s in _slots(db) if not s.is_booked and as_utc(s.starts_at) > now
    ]
    return sorted(open_slots, key=lambda s: as_utc(s.starts_at))


def list_all_slots(db: Database) -> list[BookingSlot]:
    return sorted(_slots(db), key=lambda s: as_utc(s.starts_at), reverse=True)


def add_slot(db: Database, at: datetime, *, now: datetime) -> BookingSlot:
    slot = BookingSlot(starts_at=as_utc(at), created_at=now)
    db.put(slot_key(slot.id), slot)
    logger.info(f"Added slot {slot.id} at {slot.starts_at.isoformat()}")
    return slot


def add_slots_batch(
    db: Database,
    day: date,
    start_hour: int,
    end_hour: int,
    interval_minutes: int,
    *,
    now: datetime,
) -> list[BookingSlot]:
    """
    Create slots on ``day`` every ``interval_minutes`` from ``start_hour``
    up to, but not including, ``end_hour``. Hours are UTC.
    """
    errors: dict[str, str] = {}
    if interval_minutes <= 0:
        errors["interval_minutes"] = "Interval must be a positive number of minutes."
    if not 0 <= start_hour <= 23:
        errors["start_hour"] = "Start hour must be between 0 and 23."
    if not 1 <= end_hour <= 24:
        errors["end_hour"] = "End hour must be between 1 and 24."
    elif end_hour <= start_hour:
        errors["end_hour"] = "End hour must be after start hour."
    if errors:
        raise ValidationFailed(errors)

    current = datetime.combine(day, time(hour=start_hour), tzinfo=UTC)
    end = datetime.combine(day, time(), tzinfo=UTC) + timedelta(hours=end_hour)
    step = timedelta(minutes=interval_minutes)

    created: list[BookingSlot] = []
    with db.transaction() as txn:
        while current < end:
            slot = BookingSlot(starts_at=current, created_at=now)
            txn.put(slot_key(slot.id), slot)
            created.append(slot)
            current += step

    logger.info(f"Added {len(created)} slots for {day.isoformat()}")
    return created


def delete_slot(db: Database, slot_id: str) -> None:
    with db.transaction() as txn:
        slot = txn.get(slot_key(slot_id))
        if not isinstance(slot, BookingSlot):
            raise NotFound("Slot not found")
        if slot.is_booked:
            raise SlotInUseError(slot_id)
        txn.delete(slot_key(slot_id))
    logger.info(f"Deleted slot {slot_id}")


def release_slot(db: Database, slot_id: str) -> BookingSlot:
    """
    Administrative release of a claimed slot. This is the only operation
    that clears the claimed-flag; the booking that held it is left as is.
    """
    with db.transaction() as txn:
        slot = txn.get(slot_key(slot_id))
        if not isinstance(slot, BookingSlot):
            raise NotFound("Slot not found")
        previous_booking = slot.booking_id
        slot.is_booked = False
        slot.booked_by = None
        slot.booking_id = None
        txn.put(slot_key(slot_id), slot)
    logger.info(f"Released slot {slot_id} (was booking {previous_booking})")
    return slot
