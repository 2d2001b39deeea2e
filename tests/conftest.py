from datetime import UTC, date, datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from vaxdog.api import create_app
from vaxdog.errors import AuthenticationError
from vaxdog.identity import Identity
from vaxdog.models import (
    AdminGrant,
    BookingSlot,
    GroomingService,
    PaymentOrder,
    PaymentPurpose,
    PaymentReceipt,
    Pet,
    PetHostelService,
    Role,
    UserProfile,
    Vaccine,
    admin_key,
    grooming_service_key,
    payment_order_key,
    pet_hostel_service_key,
    pet_key,
    slot_key,
    user_key,
    vaccine_key,
)
from vaxdog.payments import RazorpayGateway

NOW = datetime(2025, 2, 28, 9, 0, 0, tzinfo=UTC)

ALICE = Identity(uid="alice-uid", phone_number="+919876500001", display_name="Alice")
BOB = Identity(uid="bob-uid", phone_number="+919876500002", display_name="Bob")
ADMIN = Identity(uid="admin-uid", phone_number="+919876500009", display_name="Admin")
DOCTOR = Identity(uid="doctor-uid", phone_number="+919876500007", display_name="Dr. Mehta")

TOKENS = {
    "alice-token": ALICE,
    "bob-token": BOB,
    "admin-token": ADMIN,
    "doctor-token": DOCTOR,
}


class StubIdentityProvider:
    """Stands in for the phone-OTP provider: known tokens map to identities."""

    async def lookup(self, id_token: str) -> Identity:
        identity = TOKENS.get(id_token)
        if identity is None:
            raise AuthenticationError("Invalid or expired sign-in token")
        return identity


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def signed_receipt(gateway: RazorpayGateway, payment_id: str, order_id: str = "order_1") -> dict:
    return PaymentReceipt(
        payment_id=payment_id,
        order_id=order_id,
        signature=gateway.sign(order_id, payment_id),
    ).model_dump()


def paid_receipt(
    db,
    gateway: RazorpayGateway,
    payment_id: str,
    *,
    amount,
    user_id: str = ALICE.uid,
    purpose: PaymentPurpose = PaymentPurpose.VACCINATION,
) -> dict:
    """Issue an order the way /payments/orders does, then pay it."""
    order_id = f"order_{payment_id}"
    db.put(
        payment_order_key(order_id),
        PaymentOrder(
            id=order_id,
            user_id=user_id,
            purpose=purpose,
            amount=Decimal(str(amount)),
            currency="INR",
            created_at=NOW,
        ),
    )
    return signed_receipt(gateway, payment_id, order_id)


def contact_form(**overrides) -> dict:
    form = {
        "name": "Asha Rao",
        "phone": "9876500001",
        "address": "12 Residency Road, Ashok Nagar",
        "city": "Bengaluru",
        "postal_code": "560025",
    }
    form.update(overrides)
    return form


@pytest.fixture
def gateway() -> RazorpayGateway:
    return RazorpayGateway("rzp_test_key", "test-secret")


@pytest.fixture
def app(gateway):
    app = create_app()
    app.state.now_fn = lambda: NOW
    app.state.identity = StubIdentityProvider()
    app.state.gateway = gateway
    return app


@pytest.fixture
def db(app):
    return app.state.database


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as async_client:
        yield async_client


@pytest.fixture
def setup_test_data(db):
    db.put(admin_key(ADMIN.phone_number), AdminGrant(phone_number=ADMIN.phone_number))
    db.put(
        user_key(DOCTOR.uid),
        UserProfile(uid=DOCTOR.uid, phone_number=DOCTOR.phone_number, role=Role.DOCTOR),
    )

    db.put(
        slot_key("S1"),
        BookingSlot(id="S1", starts_at=datetime(2025, 3, 1, 10, 0, tzinfo=UTC)),
    )
    db.put(
        slot_key("S2"),
        BookingSlot(id="S2", starts_at=datetime(2025, 3, 1, 11, 0, tzinfo=UTC)),
    )
    db.put(
        slot_key("past"),
        BookingSlot(id="past", starts_at=datetime(2025, 2, 27, 10, 0, tzinfo=UTC)),
    )

    db.put(
        vaccine_key("rabies"),
        Vaccine(id="rabies", name="Anti-Rabies", price=Decimal("500"), service_charge=Decimal("150")),
    )
    db.put(
        vaccine_key("dhppi"),
        Vaccine(id="dhppi", name="DHPPi+L", price=Decimal("800"), service_charge=Decimal("150")),
    )
    db.put(
        vaccine_key("fvrcp"),
        Vaccine(id="fvrcp", name="FVRCP", pet_type="Cat", price=Decimal("700")),
    )

    db.put(
        grooming_service_key("bath"),
        GroomingService(id="bath", name="Bath & Brush", price=Decimal("999")),
    )
    db.put(
        pet_hostel_service_key("stay"),
        PetHostelService(id="stay", name="Cozy Stay", daily_rate=Decimal("600")),
    )

    db.put(
        pet_key(ALICE.uid, "bruno"),
        Pet(
            id="bruno",
            owner_id=ALICE.uid,
            name="Bruno",
            breed="Labrador",
            date_of_birth=date(2022, 5, 1),
            age=2,
            weight=28.5,
            sex="Male",
        ),
    )
