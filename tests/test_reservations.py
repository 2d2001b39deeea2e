import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from conftest import NOW
from vaxdog.database import InMemoryKeyValueDatabase
from vaxdog.errors import SlotUnavailableError
from vaxdog.models import (
    BookingSlot,
    ContactDetails,
    VaccinationBooking,
    VaccineLine,
    slot_key,
)
from vaxdog.reservations import ReservationRequest, reserve_slot


@pytest.fixture
def store() -> InMemoryKeyValueDatabase:
    db = InMemoryKeyValueDatabase()
    db.put(
        slot_key("S1"),
        BookingSlot(id="S1", starts_at=datetime(2025, 3, 1, 10, 0, tzinfo=UTC)),
    )
    return db


def _request(user_id: str, payment_id: str) -> ReservationRequest:
    return ReservationRequest(
        slot_id="S1",
        user_id=user_id,
        pet_name="Bruno",
        vaccines=[VaccineLine(vaccine_id="rabies", name="Anti-Rabies", price=Decimal("500"))],
        customer=ContactDetails(
            name="Asha Rao",
            phone="9876500001",
            address="12 Residency Road, Ashok Nagar",
            city="Bengaluru",
            postal_code="560025",
        ),
        amount=Decimal("500"),
        currency="INR",
        payment_id=payment_id,
        order_id="order_1",
    )


def test_transaction_discards_staged_writes_on_error(store) -> None:
    with pytest.raises(RuntimeError):
        with store.transaction() as txn:
            slot = txn.get(slot_key("S1"))
            slot.is_booked = True
            txn.put(slot_key("S1"), slot)
            txn.put("booking:x", slot)
            raise RuntimeError("boom")

    assert store.get(slot_key("S1")).is_booked is False
    assert store.get("booking:x") is None


def test_transaction_reads_are_private_copies(store) -> None:
    with store.transaction() as txn:
        slot = txn.get(slot_key("S1"))
        slot.is_booked = True
        # not put back: committed state must not change
    assert store.get(slot_key("S1")).is_booked is False


def test_transaction_sees_its_own_writes_and_deletes(store) -> None:
    with store.transaction() as txn:
        txn.put("k", BookingSlot(id="k", starts_at=NOW))
        assert txn.get("k").id == "k"
        txn.delete(slot_key("S1"))
        assert txn.get(slot_key("S1")) is None
    assert store.get(slot_key("S1")) is None
    assert store.get("k") is not None


def test_reserve_binds_slot_and_booking_to_each_other(store) -> None:
    result = reserve_slot(store, _request("alice", "pay_A"), now=NOW)

    assert result.created is True
    slot = store.get(slot_key("S1"))
    assert slot.is_booked and slot.booked_by == "alice"
    assert slot.booking_id == result.booking.id
    assert result.booking.slot_id == "S1"
    assert result.booking.slot_datetime == slot.starts_at


def test_reserve_rejects_claimed_slot_without_writes(store) -> None:
    reserve_slot(store, _request("alice", "pay_A"), now=NOW)
    before = len(store)

    with pytest.raises(SlotUnavailableError):
        reserve_slot(store, _request("bob", "pay_B"), now=NOW)

    assert len(store) == before
    assert store.get(slot_key("S1")).booked_by == "alice"


def test_reserve_rejects_slot_that_has_started(store) -> None:
    before = len(store)

    with pytest.raises(SlotUnavailableError):
        reserve_slot(
            store, _request("alice", "pay_A"), now=datetime(2025, 3, 1, 10, 0, tzinfo=UTC)
        )

    assert len(store) == before
    assert store.get(slot_key("S1")).is_booked is False

    # naive clocks are read as UTC
    with pytest.raises(SlotUnavailableError):
        reserve_slot(store, _request("alice", "pay_A"), now=datetime(2025, 3, 2, 8, 0))


def test_store_length_waits_for_an_open_transaction(store) -> None:
    entered, release = threading.Event(), threading.Event()
    seen: list[int] = []

    def writer() -> None:
        with store.transaction() as txn:
            txn.put("a", "x")
            entered.set()
            release.wait(1)

    writing = threading.Thread(target=writer)
    writing.start()
    entered.wait(1)
    reading = threading.Thread(target=lambda: seen.append(len(store)))
    reading.start()
    reading.join(0.05)
    assert reading.is_alive()

    release.set()
    writing.join()
    reading.join()
    assert seen == [2]


def test_reserve_same_payment_twice_is_idempotent(store) -> None:
    first = reserve_slot(store, _request("alice", "pay_A"), now=NOW)
    second = reserve_slot(store, _request("alice", "pay_A"), now=NOW)

    assert second.created is False
    assert second.booking.id == first.booking.id
    bookings = [b for b in store.all() if isinstance(b, VaccinationBooking)]
    assert len(bookings) == 1


def test_concurrent_threads_produce_exactly_one_winner(store) -> None:
    contenders = 16
    barrier = threading.Barrier(contenders)

    def attempt(i: int) -> str:
        barrier.wait()
        try:
            reserve_slot(store, _request(f"user-{i}", f"pay-{i}"), now=NOW)
        except SlotUnavailableError:
            return "lost"
        return "won"

    with ThreadPoolExecutor(max_workers=contenders) as pool:
        outcomes = list(pool.map(attempt, range(contenders)))

    assert outcomes.count("won") == 1
    assert outcomes.count("lost") == contenders - 1

    bookings = [b for b in store.all() if isinstance(b, VaccinationBooking)]
    slot = store.get(slot_key("S1"))
    assert len(bookings) == 1
    assert slot.booking_id == bookings[0].id
    assert slot.booked_by == bookings[0].user_id
