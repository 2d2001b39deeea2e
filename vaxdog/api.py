import logging
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any, Literal

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from vaxdog import config, doctors, pricing, records, shop, slots
from vaxdog.database import InMemoryKeyValueDatabase
from vaxdog.errors import AuthenticationError, NotFound, VaxDogError
from vaxdog.identity import FirebaseIdentityProvider
from vaxdog.models import (
    BookingKind,
    Category,
    DoctorService,
    GroomingService,
    PaymentException,
    PaymentExceptionStatus,
    PaymentOrder,
    PaymentPurpose,
    Pet,
    PetHostelService,
    Product,
    Role,
    ShippingAddress,
    ShopOrderStatus,
    UserProfile,
    Vaccine,
    payment_order_key,
    user_key,
)
from vaxdog.payments import RazorpayGateway, to_minor_units
from vaxdog.reconciliation import (
    SUPPORT_MESSAGE,
    Outcome,
    Reconciliation,
    ServiceSubmission,
    ShopSubmission,
    VaccinationSubmission,
    reconcile_service_payment,
    reconcile_shop_payment,
    reconcile_vaccination_payment,
    resolve_payment_exception,
)
from vaxdog.session import SessionContext, derive_session, require_admin, require_doctor
from vaxdog.wizard import BookingStep, BookingWizard

logger = logging.getLogger(__name__)

router = APIRouter()

Database = InMemoryKeyValueDatabase[str, BaseModel]


class ServicePath(StrEnum):
    GROOMING = "grooming"
    PET_HOSTEL = "pet-hostel"


SERVICE_KINDS = {
    ServicePath.GROOMING: BookingKind.GROOMING,
    ServicePath.PET_HOSTEL: BookingKind.PET_HOSTEL,
}


class SlotCreateRequest(BaseModel):
    starts_at: datetime


class SlotBatchRequest(BaseModel):
    day: date
    start_hour: int
    end_hour: int
    interval_minutes: int = 30


class WizardStepRequest(BaseModel):
    step: BookingStep = BookingStep.SELECT_SLOT_OR_PET
    action: Literal["next", "back"] = "next"
    values: dict[str, Any] = Field(default_factory=dict)


class OrderRequest(BaseModel):
    """What the order pays for; the server works out the amount."""

    purpose: PaymentPurpose
    form: dict[str, Any] = Field(default_factory=dict)
    service_id: str | None = None
    description: str
    receipt: str | None = None
    notes: dict[str, str] = Field(default_factory=dict)


class StatusUpdateRequest(BaseModel):
    status: str


class DoctorAssignmentRequest(BaseModel):
    doctor_id: str | None = None


class RoleUpdateRequest(BaseModel):
    role: Role


class ResolveRequest(BaseModel):
    resolution: Literal["refunded", "rebooked"]
    note: str | None = None


class PetRequest(BaseModel):
    name: str
    breed: str
    pet_type: str = "Dog"
    date_of_birth: date | None = None
    age: int | None = None
    image_url: str | None = None
    aggression_level: str | None = None
    weight: float | None = None
    sex: str | None = None
    mating_interest: bool | None = None
    pregnancy_count: int | None = None
    pup_count: int | None = None
    vaccination_schedule_images: list[str] = Field(default_factory=list)


class PetUpdateRequest(BaseModel):
    name: str | None = None
    breed: str | None = None
    pet_type: str | None = None
    date_of_birth: date | None = None
    age: int | None = None
    image_url: str | None = None
    aggression_level: str | None = None
    weight: float | None = None
    sex: str | None = None
    mating_interest: bool | None = None
    pregnancy_count: int | None = None
    pup_count: int | None = None
    vaccination_schedule_images: list[str] | None = None


class ReminderRequest(BaseModel):
    pet_name: str
    vaccine: str
    due: date


class ReminderEditRequest(BaseModel):
    vaccine: str
    due: date


class CategoryUpdateRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    image_url: str | None = None
    is_active: bool | None = None


class ProductUpdateRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    price: Decimal | None = None
    category_id: str | None = None
    pet_type: str | None = None
    image_url: str | None = None
    gallery_images: list[str] | None = None
    is_featured: bool | None = None
    is_best_seller: bool | None = None
    is_active: bool | None = None
    stock: int | None = None
    sku: str | None = None


class CartItemRequest(BaseModel):
    product_id: str
    quantity: int = 1


class CartQuantityRequest(BaseModel):
    quantity: int


class CodOrderRequest(BaseModel):
    shipping_address: ShippingAddress


class OrderStatusRequest(BaseModel):
    status: ShopOrderStatus
    tracking_number: str | None = None


class DoctorProfileRequest(BaseModel):
    name: str | None = None
    email: str | None = None
    phone_number: str | None = None
    specialization: str | None = None
    experience: str | None = None
    qualification: str | None = None
    clinic_name: str | None = None
    clinic_address: str | None = None
    bio: str | None = None
    consultation_fee: Decimal | None = None
    profile_image: str | None = None
    is_active: bool | None = None


class DoctorServiceRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    price: Decimal = Field(ge=0)
    duration_minutes: int = Field(gt=0)
    category: str
    is_active: bool = True


class DoctorServiceUpdateRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    price: Decimal | None = None
    duration_minutes: int | None = None
    category: str | None = None
    is_active: bool | None = None


def _db(request: Request) -> Database:
    return request.app.state.database


def _now(request: Request) -> datetime:
    return request.app.state.now_fn()


async def current_session(
    request: Request, authorization: str | None = Header(default=None)
) -> SessionContext:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthenticationError("Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    identity = await request.app.state.identity.lookup(token)
    return derive_session(_db(request), identity, now=_now(request))


async def admin_session(
    session: SessionContext = Depends(current_session),
) -> SessionContext:
    return require_admin(session)


async def doctor_session(
    session: SessionContext = Depends(current_session),
) -> SessionContext:
    return require_doctor(session)


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/me")
async def me(session: SessionContext = Depends(current_session)) -> dict:
    return {
        "uid": session.uid,
        "phone_number": session.phone_number,
        "display_name": session.display_name,
        "role": session.role.value,
        "is_admin": session.is_admin,
    }


# slots


@router.get("/slots/available")
async def available_slots(
    request: Request, _session: SessionContext = Depends(current_session)
) -> list:
    return slots.list_available_slots(_db(request), _now(request))


@router.get("/admin/slots")
async def all_slots(
    request: Request, _admin: SessionContext = Depends(admin_session)
) -> list:
    return slots.list_all_slots(_db(request))


@router.post("/admin/slots", status_code=201)
async def create_slot(
    body: SlotCreateRequest,
    request: Request,
    _admin: SessionContext = Depends(admin_session),
):
    return slots.add_slot(_db(request), body.starts_at, now=_now(request))


@router.post("/admin/slots/batch", status_code=201)
async def create_slots_batch(
    body: SlotBatchRequest,
    request: Request,
    _admin: SessionContext = Depends(admin_session),
) -> list:
    return slots.add_slots_batch(
        _db(request),
        body.day,
        body.start_hour,
        body.end_hour,
        body.interval_minutes,
        now=_now(request),
    )


@router.delete("/admin/slots/{slot_id}", status_code=204)
async def remove_slot(
    slot_id: str, request: Request, _admin: SessionContext = Depends(admin_session)
) -> None:
    slots.delete_slot(_db(request), slot_id)


@router.post("/admin/slots/{slot_id}/release")
async def free_slot(
    slot_id: str, request: Request, _admin: SessionContext = Depends(admin_session)
):
    return slots.release_slot(_db(request), slot_id)


# booking flow


@router.post("/wizard/{flow}/step")
async def wizard_step(
    flow: BookingKind,
    body: WizardStepRequest,
    _session: SessionContext = Depends(current_session),
) -> dict:
    wizard = BookingWizard(flow, step=body.step, values=body.values)
    step = wizard.advance() if body.action == "next" else wizard.back()
    return {"flow": flow.value, "step": step.value, "values": wizard.values}


@router.post("/payments/orders", status_code=201)
async def create_payment_order(
    body: OrderRequest,
    request: Request,
    session: SessionContext = Depends(current_session),
) -> dict:
    """
    Issue a gateway order at the server's price for what is being bought.
    The order is kept so the paid receipt can be checked against it.
    """
    db = _db(request)
    now = _now(request)
    amount = pricing.quote(db, session.uid, body.purpose, body.form, body.service_id)

    gateway: RazorpayGateway = request.app.state.gateway
    order = await gateway.create_order(
        amount,
        config.PAYMENT_CURRENCY,
        body.receipt or f"{session.uid}-{int(now.timestamp())}",
        notes=body.notes | {"user_id": session.uid, "purpose": body.purpose.value},
    )
    db.put(
        payment_order_key(order["id"]),
        PaymentOrder(
            id=order["id"],
            user_id=session.uid,
            purpose=body.purpose,
            amount=amount,
            currency=config.PAYMENT_CURRENCY,
            created_at=now,
        ),
    )
    logger.info(f"Issued order {order['id']} for {amount} to user {session.uid}")
    return {
        "key_id": gateway.key_id,
        "order_id": order["id"],
        "amount": to_minor_units(amount),
        "currency": config.PAYMENT_CURRENCY,
        "description": body.description,
    }


def _held_response(result: Reconciliation) -> JSONResponse:
    exception: PaymentException = result.payment_exception
    content = {
        "status": Outcome.PAYMENT_HELD.value,
        "reason": exception.reason,
        "detail": SUPPORT_MESSAGE.format(payment_id=exception.payment_id),
        "payment_exception_id": exception.id,
        "payment_id": exception.payment_id,
    }
    if result.error is not None:
        # field errors stay alongside the support message
        error = result.error.to_dict()
        content["error"] = error.pop("detail")
        content |= error
    return JSONResponse(status_code=result.status_code, content=content)


def _reconciliation_response(result: Reconciliation) -> JSONResponse:
    if result.outcome == Outcome.PAYMENT_HELD:
        return _held_response(result)
    return JSONResponse(
        status_code=result.status_code,
        content={
            "status": result.outcome.value,
            "booking": result.booking.model_dump(mode="json"),
        },
    )


@router.post("/bookings/vaccination/confirm")
async def confirm_vaccination(
    body: VaccinationSubmission,
    request: Request,
    session: SessionContext = Depends(current_session),
):
    result = reconcile_vaccination_payment(
        _db(request),
        request.app.state.gateway,
        session,
        body,
        currency=config.PAYMENT_CURRENCY,
        now=_now(request),
    )
    return _reconciliation_response(result)


@router.post("/bookings/{service}/confirm")
async def confirm_service(
    service: ServicePath,
    body: ServiceSubmission,
    request: Request,
    session: SessionContext = Depends(current_session),
):
    result = reconcile_service_payment(
        _db(request),
        request.app.state.gateway,
        session,
        SERVICE_KINDS[service],
        body,
        currency=config.PAYMENT_CURRENCY,
        now=_now(request),
    )
    return _reconciliation_response(result)


@router.get("/bookings")
async def my_bookings(
    request: Request, session: SessionContext = Depends(current_session)
) -> dict:
    return records.list_user_bookings(_db(request), session.uid)


@router.get("/admin/bookings/{kind}")
async def all_bookings(
    kind: BookingKind,
    request: Request,
    _admin: SessionContext = Depends(admin_session),
) -> list:
    return records.list_all_bookings(_db(request), kind)


@router.patch("/admin/bookings/{kind}/{user_id}/{booking_id}/status")
async def set_booking_status(
    kind: BookingKind,
    user_id: str,
    booking_id: str,
    body: StatusUpdateRequest,
    request: Request,
    _admin: SessionContext = Depends(admin_session),
):
    return records.update_booking_status(
        _db(request), kind, user_id, booking_id, body.status, now=_now(request)
    )


@router.put("/admin/bookings/vaccination/{user_id}/{booking_id}/doctor")
async def set_booking_doctor(
    user_id: str,
    booking_id: str,
    body: DoctorAssignmentRequest,
    request: Request,
    _admin: SessionContext = Depends(admin_session),
):
    return records.assign_doctor(
        _db(request), user_id, booking_id, body.doctor_id, now=_now(request)
    )


@router.get("/doctor/bookings")
async def doctor_bookings(
    request: Request, session: SessionContext = Depends(doctor_session)
) -> list:
    return records.list_doctor_bookings(_db(request), session.uid)


@router.post("/doctor/bookings/{user_id}/{booking_id}/complete")
async def complete_doctor_visit(
    user_id: str,
    booking_id: str,
    request: Request,
    session: SessionContext = Depends(doctor_session),
):
    return doctors.complete_visit(
        _db(request), session.uid, user_id, booking_id, now=_now(request)
    )


@router.get("/doctor/profile")
async def doctor_profile(
    request: Request, session: SessionContext = Depends(doctor_session)
):
    return doctors.get_profile(_db(request), session.uid)


@router.put("/doctor/profile")
async def save_doctor_profile(
    body: DoctorProfileRequest,
    request: Request,
    session: SessionContext = Depends(doctor_session),
):
    return doctors.update_profile(
        _db(request), session.uid, body.model_dump(exclude_unset=True), now=_now(request)
    )


@router.get("/doctor/services")
async def doctor_services(
    request: Request, session: SessionContext = Depends(doctor_session)
) -> list:
    return doctors.list_services(_db(request), session.uid)


@router.post("/doctor/services", status_code=201)
async def create_doctor_service(
    body: DoctorServiceRequest,
    request: Request,
    session: SessionContext = Depends(doctor_session),
):
    service = DoctorService(doctor_id=session.uid, **body.model_dump())
    return doctors.add_service(_db(request), service, now=_now(request))


@router.patch("/doctor/services/{service_id}")
async def edit_doctor_service(
    service_id: str,
    body: DoctorServiceUpdateRequest,
    request: Request,
    session: SessionContext = Depends(doctor_session),
):
    return doctors.update_service(
        _db(request),
        session.uid,
        service_id,
        body.model_dump(exclude_unset=True),
        now=_now(request),
    )


@router.delete("/doctor/services/{service_id}", status_code=204)
async def remove_doctor_service(
    service_id: str,
    request: Request,
    session: SessionContext = Depends(doctor_session),
) -> None:
    doctors.delete_service(_db(request), session.uid, service_id)


@router.put("/admin/users/{uid}/role")
async def set_user_role(
    uid: str,
    body: RoleUpdateRequest,
    request: Request,
    _admin: SessionContext = Depends(admin_session),
):
    db = _db(request)
    profile = db.get(user_key(uid))
    if not isinstance(profile, UserProfile):
        raise NotFound("User not found")
    updated = profile.model_copy(update={"role": body.role})
    db.put(user_key(uid), updated)
    logger.info(f"User {uid} role set to {body.role.value}")
    return updated


@router.get("/admin/payment-exceptions")
async def payment_exceptions(
    request: Request,
    status: PaymentExceptionStatus | None = None,
    _admin: SessionContext = Depends(admin_session),
) -> list:
    found = [
        e
        for e in _db(request).scan("payment-exception:")
        if isinstance(e, PaymentException) and (status is None or e.status == status)
    ]
    return sorted(found, key=lambda e: e.created_at, reverse=True)


@router.post("/admin/payment-exceptions/{exception_id}/resolve")
async def resolve_exception(
    exception_id: str,
    body: ResolveRequest,
    request: Request,
    _admin: SessionContext = Depends(admin_session),
):
    return await resolve_payment_exception(
        _db(request),
        request.app.state.gateway,
        exception_id,
        PaymentExceptionStatus(body.resolution),
        note=body.note,
        now=_now(request),
    )


# pets and reminders


@router.get("/pets")
async def my_pets(
    request: Request, session: SessionContext = Depends(current_session)
) -> list:
    return records.list_pets(_db(request), session.uid)


@router.post("/pets", status_code=201)
async def create_pet(
    body: PetRequest,
    request: Request,
    session: SessionContext = Depends(current_session),
):
    pet = Pet(owner_id=session.uid, **body.model_dump())
    return records.add_pet(_db(request), pet)


@router.get("/pets/{pet_id}")
async def pet_detail(
    pet_id: str, request: Request, session: SessionContext = Depends(current_session)
):
    return records.get_pet(_db(request), session.uid, pet_id)


@router.patch("/pets/{pet_id}")
async def edit_pet(
    pet_id: str,
    body: PetUpdateRequest,
    request: Request,
    session: SessionContext = Depends(current_session),
):
    return records.update_pet(
        _db(request), session.uid, pet_id, body.model_dump(exclude_unset=True)
    )


@router.delete("/pets/{pet_id}", status_code=204)
async def remove_pet(
    pet_id: str, request: Request, session: SessionContext = Depends(current_session)
) -> None:
    records.delete_pet(_db(request), session.uid, pet_id)


@router.get("/reminders")
async def my_reminders(
    request: Request,
    pet_name: str | None = None,
    session: SessionContext = Depends(current_session),
) -> list:
    return records.list_reminders(_db(request), session.uid, pet_name)


@router.post("/reminders", status_code=201)
async def create_reminder(
    body: ReminderRequest,
    request: Request,
    session: SessionContext = Depends(current_session),
):
    return records.add_reminder(
        _db(request), session.uid, body.pet_name, body.vaccine, body.due
    )


@router.patch("/reminders/{reminder_id}")
async def change_reminder(
    reminder_id: str,
    body: ReminderEditRequest,
    request: Request,
    session: SessionContext = Depends(current_session),
):
    return records.edit_reminder(
        _db(request), session.uid, reminder_id, vaccine=body.vaccine, due=body.due
    )


@router.post("/reminders/{reminder_id}/complete")
async def finish_reminder(
    reminder_id: str,
    request: Request,
    session: SessionContext = Depends(current_session),
):
    return records.complete_reminder(
        _db(request), session.uid, reminder_id, today=_now(request).date()
    )


@router.delete("/reminders/{reminder_id}", status_code=204)
async def remove_reminder(
    reminder_id: str,
    request: Request,
    session: SessionContext = Depends(current_session),
) -> None:
    records.delete_reminder(_db(request), session.uid, reminder_id)


# catalog


@router.get("/vaccines")
async def vaccines(request: Request, pet_type: str | None = None) -> list:
    return records.list_vaccines(_db(request), pet_type)


@router.post("/admin/vaccines", status_code=201)
async def create_vaccine(
    body: Vaccine, request: Request, _admin: SessionContext = Depends(admin_session)
):
    return records.add_vaccine(_db(request), body)


@router.get("/services/grooming")
async def grooming_services(request: Request) -> list:
    return records.list_grooming_services(_db(request))


@router.post("/admin/services/grooming", status_code=201)
async def create_grooming_service(
    body: GroomingService,
    request: Request,
    _admin: SessionContext = Depends(admin_session),
):
    return records.add_grooming_service(_db(request), body)


@router.get("/services/pet-hostel")
async def pet_hostel_services(request: Request) -> list:
    return records.list_pet_hostel_services(_db(request))


@router.post("/admin/services/pet-hostel", status_code=201)
async def create_pet_hostel_service(
    body: PetHostelService,
    request: Request,
    _admin: SessionContext = Depends(admin_session),
):
    return records.add_pet_hostel_service(_db(request), body)


# shop


@router.get("/shop/categories")
async def categories(request: Request) -> list:
    return shop.list_categories(_db(request))


@router.get("/admin/shop/categories")
async def all_categories(
    request: Request, _admin: SessionContext = Depends(admin_session)
) -> list:
    return shop.list_categories(_db(request), include_inactive=True)


@router.post("/admin/shop/categories", status_code=201)
async def create_category(
    body: Category, request: Request, _admin: SessionContext = Depends(admin_session)
):
    return shop.add_category(_db(request), body, now=_now(request))


@router.patch("/admin/shop/categories/{category_id}")
async def edit_category(
    category_id: str,
    body: CategoryUpdateRequest,
    request: Request,
    _admin: SessionContext = Depends(admin_session),
):
    return shop.update_category(
        _db(request), category_id, body.model_dump(exclude_unset=True)
    )


@router.delete("/admin/shop/categories/{category_id}", status_code=204)
async def remove_category(
    category_id: str, request: Request, _admin: SessionContext = Depends(admin_session)
) -> None:
    shop.delete_category(_db(request), category_id)


@router.get("/shop/products")
async def products(
    request: Request,
    category_id: str | None = None,
    pet_type: str | None = None,
    featured: bool | None = None,
) -> list:
    return shop.list_products(
        _db(request), category_id=category_id, pet_type=pet_type, featured=featured
    )


@router.get("/shop/products/{product_id}")
async def product_detail(product_id: str, request: Request):
    return shop.get_product(_db(request), product_id)


@router.get("/admin/shop/products")
async def all_products(
    request: Request, _admin: SessionContext = Depends(admin_session)
) -> list:
    return shop.list_products(_db(request), include_inactive=True)


@router.post("/admin/shop/products", status_code=201)
async def create_product(
    body: Product, request: Request, _admin: SessionContext = Depends(admin_session)
):
    return shop.add_product(_db(request), body, now=_now(request))


@router.patch("/admin/shop/products/{product_id}")
async def edit_product(
    product_id: str,
    body: ProductUpdateRequest,
    request: Request,
    _admin: SessionContext = Depends(admin_session),
):
    return shop.update_product(_db(request), product_id, body.model_dump(exclude_unset=True))


@router.delete("/admin/shop/products/{product_id}")
async def deactivate_product(
    product_id: str, request: Request, _admin: SessionContext = Depends(admin_session)
):
    return shop.delete_product(_db(request), product_id)


@router.get("/cart")
async def my_cart(request: Request, session: SessionContext = Depends(current_session)):
    return shop.get_cart(_db(request), session.uid)


@router.post("/cart/items")
async def add_cart_item(
    body: CartItemRequest,
    request: Request,
    session: SessionContext = Depends(current_session),
):
    return shop.add_to_cart(_db(request), session.uid, body.product_id, body.quantity)


@router.patch("/cart/items/{product_id}")
async def set_cart_quantity(
    product_id: str,
    body: CartQuantityRequest,
    request: Request,
    session: SessionContext = Depends(current_session),
):
    return shop.update_cart_item(_db(request), session.uid, product_id, body.quantity)


@router.delete("/cart/items/{product_id}")
async def remove_cart_item(
    product_id: str, request: Request, session: SessionContext = Depends(current_session)
):
    return shop.remove_from_cart(_db(request), session.uid, product_id)


@router.delete("/cart", status_code=204)
async def empty_cart(
    request: Request, session: SessionContext = Depends(current_session)
) -> None:
    shop.clear_cart(_db(request), session.uid)


@router.post("/shop/checkout/cod", status_code=201)
async def checkout_cod(
    body: CodOrderRequest,
    request: Request,
    session: SessionContext = Depends(current_session),
):
    return shop.place_cod_order(
        _db(request),
        session.uid,
        body.shipping_address,
        currency=config.PAYMENT_CURRENCY,
        now=_now(request),
    )


@router.post("/shop/checkout/confirm")
async def checkout_paid(
    body: ShopSubmission,
    request: Request,
    session: SessionContext = Depends(current_session),
):
    result = reconcile_shop_payment(
        _db(request),
        request.app.state.gateway,
        session,
        body,
        currency=config.PAYMENT_CURRENCY,
        now=_now(request),
    )
    return _reconciliation_response(result)


@router.get("/orders")
async def my_orders(
    request: Request, session: SessionContext = Depends(current_session)
) -> list:
    return shop.list_orders(_db(request), session.uid)


@router.get("/admin/orders")
async def all_orders(
    request: Request, _admin: SessionContext = Depends(admin_session)
) -> list:
    return shop.list_all_orders(_db(request))


@router.patch("/admin/orders/{user_id}/{order_id}/status")
async def set_order_status(
    user_id: str,
    order_id: str,
    body: OrderStatusRequest,
    request: Request,
    _admin: SessionContext = Depends(admin_session),
):
    return shop.update_order_status(
        _db(request),
        user_id,
        order_id,
        body.status,
        tracking_number=body.tracking_number,
        now=_now(request),
    )


async def _domain_error_handler(_request: Request, exc: VaxDogError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    app = FastAPI(title="VaxDog")
    db: Database = InMemoryKeyValueDatabase()
    app.state.database = db

    app.state.now_fn = lambda: datetime.now(UTC)
    app.state.identity = FirebaseIdentityProvider(config.FIREBASE_API_KEY)
    app.state.gateway = RazorpayGateway(
        config.RAZORPAY_KEY_ID, config.RAZORPAY_KEY_SECRET
    )

    app.add_exception_handler(VaxDogError, _domain_error_handler)
    app.include_router(router)
    return app
