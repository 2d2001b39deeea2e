"""
Post-payment reconciliation.

The gateway reports success to the client, the client submits the receipt
here, and the request only returns once the booking is durably recorded or
the payment has been parked as a PaymentException for a refund or manual
rebooking. That gives the caller a terminal booked/failed answer instead of
fire-and-forget callback work.

Once a receipt's signature checks out the money is captured, so every
later failure (a lost slot, a record deleted mid-checkout, an invalid form,
an amount that does not match the issued order) parks the payment instead
of surfacing as a bare error.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from vaxdog import shop
from vaxdog.database import InMemoryKeyValueDatabase, Transaction
from vaxdog.errors import (
    Conflict,
    GatewayError,
    NotFound,
    PaymentMismatchError,
    PaymentVerificationError,
    SlotUnavailableError,
    ValidationFailed,
    VaxDogError,
)
from vaxdog.models import (
    BookingKind,
    ContactDetails,
    GroomingBooking,
    PaymentException,
    PaymentExceptionStatus,
    PaymentLedgerEntry,
    PaymentOrder,
    PaymentPurpose,
    PaymentReceipt,
    PaymentStatus,
    Pet,
    PetDetails,
    PetHostelBooking,
    ServiceBooking,
    ShippingAddress,
    ShopOrder,
    ShopPaymentMethod,
    booking_key,
    payment_exception_key,
    payment_key,
    payment_order_key,
    pet_key,
    shop_order_key,
)
from vaxdog.payments import RazorpayGateway, to_minor_units
from vaxdog.pricing import load_service, price_vaccines, service_amount
from vaxdog.reservations import ReservationRequest, reserve_slot
from vaxdog.session import SessionContext
from vaxdog.wizard import (
    GroomingOptions,
    HostelOptions,
    PetChoice,
    SlotChoice,
    VaccineSelection,
    validate_submission,
)

logger = logging.getLogger(__name__)

Database = InMemoryKeyValueDatabase[str, BaseModel]

SUPPORT_MESSAGE = (
    "Your payment was received but we could not complete your booking. "
    "Our team will refund you or help you book again; quote payment "
    "{payment_id} when contacting support."
)


class Outcome(StrEnum):
    BOOKED = "booked"
    ALREADY_BOOKED = "already_booked"
    PAYMENT_HELD = "payment_held"


class HoldReason(StrEnum):
    SLOT_UNAVAILABLE = "slot_unavailable"
    AMOUNT_MISMATCH = "amount_mismatch"
    NOT_FOUND = "not_found"
    INVALID_SUBMISSION = "invalid_submission"


# order matters: the first matching error class names the reason
HOLD_REASONS: tuple[tuple[type[VaxDogError], HoldReason], ...] = (
    (SlotUnavailableError, HoldReason.SLOT_UNAVAILABLE),
    (PaymentMismatchError, HoldReason.AMOUNT_MISMATCH),
    (NotFound, HoldReason.NOT_FOUND),
    (ValidationFailed, HoldReason.INVALID_SUBMISSION),
)
HELD_ERRORS = tuple(error for error, _ in HOLD_REASONS)

HOLD_STATUS_CODES = {reason: error.status_code for error, reason in HOLD_REASONS}


@dataclass(frozen=True)
class Reconciliation:
    outcome: Outcome
    booking: BaseModel | None = None
    payment_exception: PaymentException | None = None
    error: VaxDogError | None = None  # what parked the payment, when known

    @property
    def status_code(self) -> int:
        if self.outcome == Outcome.BOOKED:
            return 201
        if self.outcome == Outcome.ALREADY_BOOKED:
            return 200
        if self.error is not None:
            return self.error.status_code
        return HOLD_STATUS_CODES.get(self.payment_exception.reason, 409)


class VaccinationSubmission(BaseModel):
    receipt: PaymentReceipt
    pet_name: str = Field(min_length=1)
    reminder_id: str | None = None
    form: dict[str, Any]


class ServiceSubmission(BaseModel):
    receipt: PaymentReceipt
    service_id: str
    form: dict[str, Any]


class ShopSubmission(BaseModel):
    receipt: PaymentReceipt
    shipping_address: dict[str, Any]


def _verify(gateway: RazorpayGateway, receipt: PaymentReceipt) -> None:
    if not gateway.verify_payment_signature(receipt):
        logger.warning(f"Signature mismatch for payment {receipt.payment_id}")
        raise PaymentVerificationError("Payment could not be verified")


def _check_order(
    store: Database | Transaction,
    user_id: str,
    receipt: PaymentReceipt,
    purpose: PaymentPurpose,
    amount: Decimal,
) -> PaymentOrder:
    """
    The receipt's order must be one we issued to this user for this
    purpose, at the amount now due.
    """
    order = store.get(payment_order_key(receipt.order_id))
    if (
        not isinstance(order, PaymentOrder)
        or order.user_id != user_id
        or order.purpose != purpose
    ):
        raise PaymentMismatchError(
            f"Order {receipt.order_id} was not issued for this {purpose.value} payment"
        )
    if to_minor_units(order.amount) != to_minor_units(amount):
        raise PaymentMismatchError(
            f"Paid {order.amount} {order.currency} but {amount} is due"
        )
    return order


def _hold_reason(error: VaxDogError) -> HoldReason:
    return next(reason for cls, reason in HOLD_REASONS if isinstance(error, cls))


def _paid_amount(db: Database, user_id: str, receipt: PaymentReceipt) -> Decimal | None:
    order = db.get(payment_order_key(receipt.order_id))
    if isinstance(order, PaymentOrder) and order.user_id == user_id:
        return order.amount
    return None


def record_payment_exception(
    db: Database,
    *,
    receipt: PaymentReceipt,
    user_id: str,
    purpose: PaymentPurpose,
    slot_id: str | None,
    amount: Decimal | None,
    currency: str,
    reason: str,
    now: datetime,
) -> PaymentException:
    """Park a captured payment that has no booking. One record per payment."""
    with db.transaction() as txn:
        ledger = txn.get(payment_key(receipt.payment_id))
        if isinstance(ledger, PaymentLedgerEntry):
            existing = (
                txn.get(payment_exception_key(ledger.exception_id))
                if ledger.exception_id
                else None
            )
            if not isinstance(existing, PaymentException):
                raise Conflict(
                    f"Payment {receipt.payment_id} is already bound to another booking"
                )
            return existing

        exception = PaymentException(
            payment_id=receipt.payment_id,
            order_id=receipt.order_id,
            purpose=purpose,
            user_id=user_id,
            slot_id=slot_id,
            amount=amount,
            currency=currency,
            reason=reason,
            created_at=now,
        )
        txn.put(payment_exception_key(exception.id), exception)
        txn.put(
            payment_key(receipt.payment_id),
            PaymentLedgerEntry(
                payment_id=receipt.payment_id,
                kind=purpose,
                user_id=user_id,
                exception_id=exception.id,
            ),
        )

    logger.error(
        f"Payment {receipt.payment_id} captured without booking "
        f"(user {user_id}, {purpose.value}, slot {slot_id}, reason {reason}); "
        f"exception {exception.id}"
    )
    return exception


def _hold(
    db: Database,
    session: SessionContext,
    receipt: PaymentReceipt,
    purpose: PaymentPurpose,
    error: VaxDogError,
    *,
    slot_id: str | None = None,
    currency: str,
    now: datetime,
) -> Reconciliation:
    exception = record_payment_exception(
        db,
        receipt=receipt,
        user_id=session.uid,
        purpose=purpose,
        slot_id=slot_id,
        amount=_paid_amount(db, session.uid, receipt),
        currency=currency,
        reason=_hold_reason(error).value,
        now=now,
    )
    return Reconciliation(outcome=Outcome.PAYMENT_HELD, payment_exception=exception, error=error)


def _replay(
    store: Database | Transaction, receipt: PaymentReceipt, purpose: PaymentPurpose
) -> Reconciliation | None:
    """Answer a resubmitted receipt with whatever the first submission produced."""
    ledger = store.get(payment_key(receipt.payment_id))
    if not isinstance(ledger, PaymentLedgerEntry):
        return None
    if ledger.exception_id is not None:
        exception = store.get(payment_exception_key(ledger.exception_id))
        return Reconciliation(outcome=Outcome.PAYMENT_HELD, payment_exception=exception)
    if ledger.kind != purpose or ledger.booking_id is None:
        raise Conflict(f"Payment {receipt.payment_id} is already bound to another booking")

    if purpose == PaymentPurpose.SHOP:
        key = shop_order_key(ledger.user_id, ledger.booking_id)
    else:
        key = booking_key(BookingKind(purpose.value), ledger.user_id, ledger.booking_id)
    existing = store.get(key)
    if existing is None:
        raise Conflict(f"Payment {receipt.payment_id} is already bound to another booking")
    logger.info(
        f"Duplicate submission for payment {receipt.payment_id}, returning {existing.id}"
    )
    return Reconciliation(outcome=Outcome.ALREADY_BOOKED, booking=existing)


def reconcile_vaccination_payment(
    db: Database,
    gateway: RazorpayGateway,
    session: SessionContext,
    submission: VaccinationSubmission,
    *,
    currency: str,
    now: datetime,
) -> Reconciliation:
    receipt = submission.receipt
    _verify(gateway, receipt)
    replay = _replay(db, receipt, PaymentPurpose.VACCINATION)
    if replay is not None:
        return replay

    slot_id = submission.form.get("slot_id")
    try:
        validate_submission(BookingKind.VACCINATION, submission.form)
        slot_id = SlotChoice.model_validate(submission.form).slot_id
        customer = ContactDetails.model_validate(submission.form)
        selection = VaccineSelection.model_validate(submission.form)
        lines, amount = price_vaccines(db, selection.vaccine_ids)
        _check_order(db, session.uid, receipt, PaymentPurpose.VACCINATION, amount)

        request = ReservationRequest(
            slot_id=slot_id,
            user_id=session.uid,
            pet_name=submission.pet_name,
            reminder_id=submission.reminder_id,
            vaccines=lines,
            customer=customer,
            amount=amount,
            currency=currency,
            payment_id=receipt.payment_id,
            order_id=receipt.order_id,
        )
        result = reserve_slot(db, request, now=now)
    except HELD_ERRORS as e:
        return _hold(
            db,
            session,
            receipt,
            PaymentPurpose.VACCINATION,
            e,
            slot_id=slot_id if isinstance(slot_id, str) else None,
            currency=currency,
            now=now,
        )

    outcome = Outcome.BOOKED if result.created else Outcome.ALREADY_BOOKED
    return Reconciliation(outcome=outcome, booking=result.booking)


def _service_booking(
    db: Database,
    session: SessionContext,
    kind: BookingKind,
    submission: ServiceSubmission,
    *,
    currency: str,
    now: datetime,
) -> ServiceBooking:
    validate_submission(kind, submission.form)
    service = load_service(db, kind, submission.service_id)
    if kind == BookingKind.GROOMING:
        options: GroomingOptions | HostelOptions = GroomingOptions.model_validate(
            submission.form
        )
    else:
        options = HostelOptions.model_validate(submission.form)

    pet_id = PetChoice.model_validate(submission.form).pet_id
    pet = db.get(pet_key(session.uid, pet_id))
    if not isinstance(pet, Pet):
        raise NotFound("Pet not found")

    amount = service_amount(kind, service, options)
    receipt = submission.receipt
    _check_order(db, session.uid, receipt, PaymentPurpose(kind.value), amount)

    common = dict(
        user_id=session.uid,
        pet_id=pet.id,
        pet=PetDetails.from_pet(pet),
        service_id=service.id,
        service_name=service.name,
        amount=amount,
        currency=currency,
        payment_id=receipt.payment_id,
        order_id=receipt.order_id,
        customer=ContactDetails.model_validate(submission.form),
        created_at=now,
        updated_at=now,
    )
    if kind == BookingKind.GROOMING:
        return GroomingBooking(
            **common,
            preferred_date=options.preferred_date,
            preferred_time=options.preferred_time,
        )
    return PetHostelBooking(
        **common,
        start_date=options.start_date,
        end_date=options.end_date,
        food_preference=options.food_preference,
    )


def reconcile_service_payment(
    db: Database,
    gateway: RazorpayGateway,
    session: SessionContext,
    kind: BookingKind,
    submission: ServiceSubmission,
    *,
    currency: str,
    now: datetime,
) -> Reconciliation:
    """Grooming and pet-hostel bookings: no shared slot pool to contend for."""
    if kind == BookingKind.VACCINATION:
        raise ValueError("vaccination bookings go through reconcile_vaccination_payment")

    purpose = PaymentPurpose(kind.value)
    receipt = submission.receipt
    _verify(gateway, receipt)
    replay = _replay(db, receipt, purpose)
    if replay is not None:
        return replay

    try:
        booking = _service_booking(db, session, kind, submission, currency=currency, now=now)
    except HELD_ERRORS as e:
        return _hold(db, session, receipt, purpose, e, currency=currency, now=now)

    with db.transaction() as txn:
        # a concurrent submission of this receipt may have got here first
        replay = _replay(txn, receipt, purpose)
        if replay is not None:
            return replay
        txn.put(booking_key(kind, session.uid, booking.id), booking)
        txn.put(
            payment_key(receipt.payment_id),
            PaymentLedgerEntry(
                payment_id=receipt.payment_id,
                kind=purpose,
                user_id=session.uid,
                booking_id=booking.id,
            ),
        )

    logger.info(
        f"{kind.value} booking {booking.id} created for user {session.uid} "
        f"(payment {receipt.payment_id})"
    )
    return Reconciliation(outcome=Outcome.BOOKED, booking=booking)


def reconcile_shop_payment(
    db: Database,
    gateway: RazorpayGateway,
    session: SessionContext,
    submission: ShopSubmission,
    *,
    currency: str,
    now: datetime,
) -> Reconciliation:
    """Turn the paid-for cart into an order priced the same as the issued order."""
    receipt = submission.receipt
    _verify(gateway, receipt)
    replay = _replay(db, receipt, PaymentPurpose.SHOP)
    if replay is not None:
        return replay

    try:
        try:
            address = ShippingAddress.model_validate(submission.shipping_address)
        except ValidationError as e:
            raise ValidationFailed.from_pydantic(e) from e

        with db.transaction() as txn:
            replay = _replay(txn, receipt, PaymentPurpose.SHOP)
            if replay is not None:
                return replay
            totals = shop.checkout_totals(txn, shop.get_cart(txn, session.uid))
            _check_order(txn, session.uid, receipt, PaymentPurpose.SHOP, totals.total)
            order: ShopOrder = shop.place_order(
                txn,
                session.uid,
                totals,
                address,
                payment_method=ShopPaymentMethod.RAZORPAY,
                payment_status=PaymentStatus.PAID,
                currency=currency,
                now=now,
                receipt=receipt,
            )
            txn.put(
                payment_key(receipt.payment_id),
                PaymentLedgerEntry(
                    payment_id=receipt.payment_id,
                    kind=PaymentPurpose.SHOP,
                    user_id=session.uid,
                    booking_id=order.id,
                ),
            )
    except HELD_ERRORS as e:
        return _hold(db, session, receipt, PaymentPurpose.SHOP, e, currency=currency, now=now)

    logger.info(
        f"Shop order {order.order_number} paid by user {session.uid} "
        f"(payment {receipt.payment_id})"
    )
    return Reconciliation(outcome=Outcome.BOOKED, booking=order)


def _claim(
    db: Database,
    exception_id: str,
    resolution: PaymentExceptionStatus,
    *,
    note: str | None,
    now: datetime,
) -> PaymentException:
    """Move an open exception on, so a second resolver sees it as taken."""
    key = payment_exception_key(exception_id)
    with db.transaction() as txn:
        exception = txn.get(key)
        if not isinstance(exception, PaymentException):
            raise NotFound("Payment exception not found")
        if exception.status != PaymentExceptionStatus.OPEN:
            raise Conflict(
                f"Payment exception {exception_id} is already {exception.status.value}"
            )
        if resolution == PaymentExceptionStatus.REFUNDED:
            exception.status = PaymentExceptionStatus.REFUNDING
        else:
            exception.status = resolution
            exception.resolved_at = now
            exception.resolution_note = note
        txn.put(key, exception)
    return exception


def _settle_refund(
    db: Database, exception_id: str, *, refunded: bool, note: str | None, now: datetime
) -> PaymentException:
    key = payment_exception_key(exception_id)
    with db.transaction() as txn:
        exception = txn.get(key)
        if refunded:
            exception.status = PaymentExceptionStatus.REFUNDED
            exception.resolved_at = now
            exception.resolution_note = note
        else:
            exception.status = PaymentExceptionStatus.OPEN
        txn.put(key, exception)
    return exception


async def resolve_payment_exception(
    db: Database,
    gateway: RazorpayGateway,
    exception_id: str,
    resolution: PaymentExceptionStatus,
    *,
    note: str | None = None,
    now: datetime,
) -> PaymentException:
    """
    Close a parked payment. REFUNDED returns the money through the gateway
    (the full capture when no issued amount is on record); REBOOKED only
    records the note.

    The record is claimed as REFUNDING before the gateway is called, so
    concurrent resolutions of the same exception refund at most once. A
    failed refund reopens it.
    """
    if resolution not in (PaymentExceptionStatus.REFUNDED, PaymentExceptionStatus.REBOOKED):
        raise ValidationFailed({"resolution": "Resolution must be refunded or rebooked."})

    exception = _claim(db, exception_id, resolution, note=note, now=now)
    if resolution == PaymentExceptionStatus.REFUNDED:
        try:
            await gateway.refund(exception.payment_id, exception.amount)
        except GatewayError:
            _settle_refund(db, exception_id, refunded=False, note=None, now=now)
            logger.error(f"Refund for payment exception {exception_id} failed; reopened")
            raise
        exception = _settle_refund(db, exception_id, refunded=True, note=note, now=now)

    logger.info(f"Payment exception {exception_id} resolved as {resolution.value}")
    return exception
