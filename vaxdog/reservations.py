"""
Slot reservation: bind a paid home-vaccination booking to exactly one slot.

A slot is contended for only after the gateway has captured the payment,
so the claim is a single compare-and-set inside one store transaction:
the slot must exist and be unclaimed, and the claim, the booking record
and the payment ledger entry are committed together or not at all.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from vaxdog.database import InMemoryKeyValueDatabase
from vaxdog.errors import Conflict, SlotUnavailableError
from vaxdog.models import (
    BookingKind,
    BookingSlot,
    ContactDetails,
    PaymentLedgerEntry,
    PaymentPurpose,
    VaccinationBooking,
    VaccinationStatus,
    VaccineLine,
    as_utc,
    booking_key,
    payment_key,
    slot_key,
)

logger = logging.getLogger(__name__)


class ReservationRequest(BaseModel):
    slot_id: str
    user_id: str
    pet_name: str
    reminder_id: str | None = None
    vaccines: list[VaccineLine]
    customer: ContactDetails
    amount: Decimal
    currency: str
    payment_id: str
    order_id: str | None = None


@dataclass(frozen=True)
class ReservationResult:
    booking: VaccinationBooking
    created: bool  # False when the payment reference was already booked


def reserve_slot(
    db: InMemoryKeyValueDatabase[str, BaseModel],
    request: ReservationRequest,
    *,
    now: datetime,
) -> ReservationResult:
    """
    Claim ``request.slot_id`` for ``request.user_id`` and create the paid
    booking that references it.

    Raises SlotUnavailableError when the slot is missing, already claimed
    or no longer in the future, or when this payment was already recorded as having lost a
    slot; nothing is written in that case. A second submission with the
    same payment id returns the booking created by the first one.
    """
    with db.transaction() as txn:
        ledger = txn.get(payment_key(request.payment_id))
        if isinstance(ledger, PaymentLedgerEntry):
            if ledger.exception_id is not None:
                # this payment already lost the race once
                raise SlotUnavailableError(request.slot_id)
            existing = _booking_for_ledger(txn, ledger)
            if existing is None:
                raise Conflict(
                    f"Payment {request.payment_id} is already bound to another booking"
                )
            logger.info(
                f"Duplicate submission for payment {request.payment_id}, "
                f"returning booking {existing.id}"
            )
            return ReservationResult(booking=existing, created=False)

        slot = txn.get(slot_key(request.slot_id))
        if (
            not isinstance(slot, BookingSlot)
            or slot.is_booked
            or as_utc(slot.starts_at) <= as_utc(now)
        ):
            logger.warning(
                f"Slot {request.slot_id} unavailable for user {request.user_id} "
                f"(payment {request.payment_id})"
            )
            raise SlotUnavailableError(request.slot_id)

        booking = VaccinationBooking(
            user_id=request.user_id,
            slot_id=slot.id,
            slot_datetime=slot.starts_at,
            reminder_id=request.reminder_id,
            pet_name=request.pet_name,
            vaccines=request.vaccines,
            amount=request.amount,
            currency=request.currency,
            payment_id=request.payment_id,
            order_id=request.order_id,
            status=VaccinationStatus.PAID,
            customer=request.customer,
            created_at=now,
            updated_at=now,
        )

        slot.is_booked = True
        slot.booked_by = request.user_id
        slot.booking_id = booking.id

        txn.put(slot_key(slot.id), slot)
        txn.put(
            booking_key(BookingKind.VACCINATION, request.user_id, booking.id),
            booking,
        )
        txn.put(
            payment_key(request.payment_id),
            PaymentLedgerEntry(
                payment_id=request.payment_id,
                kind=PaymentPurpose.VACCINATION,
                user_id=request.user_id,
                booking_id=booking.id,
            ),
        )

    logger.info(
        f"Slot {slot.id} claimed by user {request.user_id} with booking {booking.id}"
    )
    return ReservationResult(booking=booking, created=True)


def _booking_for_ledger(txn, ledger: PaymentLedgerEntry) -> VaccinationBooking | None:
    if ledger.kind != PaymentPurpose.VACCINATION or ledger.booking_id is None:
        return None
    booking = txn.get(
        booking_key(BookingKind.VACCINATION, ledger.user_id, ledger.booking_id)
    )
    return booking if isinstance(booking, VaccinationBooking) else None
