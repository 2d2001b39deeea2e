"""
Domain models for slots, bookings and the records customers own.
"""

import re
import uuid
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

PHONE_PATTERN = re.compile(r"^(\+91)?[6-9]\d{9}$")


def new_id() -> str:
    return uuid.uuid4().hex


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class Role(StrEnum):
    CUSTOMER = "customer"
    DOCTOR = "doctor"


class BookingKind(StrEnum):
    VACCINATION = "vaccination"
    GROOMING = "grooming"
    PET_HOSTEL = "pet_hostel"


class PaymentPurpose(StrEnum):
    """What a gateway order pays for: the three booking kinds plus the shop."""

    VACCINATION = "vaccination"
    GROOMING = "grooming"
    PET_HOSTEL = "pet_hostel"
    SHOP = "shop"


class PaymentStatus(StrEnum):
    PAID = "paid"
    FAILED = "failed"
    PENDING = "pending"


class VaccinationStatus(StrEnum):
    PAID = "paid"
    FAILED = "failed"
    PENDING = "pending"
    COMPLETED = "completed"  # doctor finished the visit


class ServiceBookingStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class FoodPreference(StrEnum):
    VEG = "veg"
    NON_VEG = "non-veg"
    BOTH = "both"


class ReminderStatus(StrEnum):
    UPCOMING = "upcoming"
    COMPLETED = "completed"


class PaymentExceptionStatus(StrEnum):
    OPEN = "open"
    REFUNDING = "refunding"
    REFUNDED = "refunded"
    REBOOKED = "rebooked"


class ShopOrderStatus(StrEnum):
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class ShopPaymentMethod(StrEnum):
    RAZORPAY = "razorpay"
    COD = "cod"


class BookingSlot(BaseModel):
    id: str = Field(default_factory=new_id)
    starts_at: datetime
    is_booked: bool = False  # claimed-flag; only an admin release clears it
    booked_by: str | None = None  # customer uid
    booking_id: str | None = None  # VaccinationBooking id
    created_at: datetime | None = None


class UserProfile(BaseModel):
    uid: str
    phone_number: str | None = None
    display_name: str | None = None
    role: Role = Role.CUSTOMER
    created_at: datetime | None = None


class AdminGrant(BaseModel):
    phone_number: str


class ContactDetails(BaseModel):
    name: str = Field(min_length=2)
    phone: str
    address: str = Field(min_length=10)
    city: str = Field(min_length=2)
    postal_code: str

    @field_validator("phone")
    @classmethod
    def _indian_mobile(cls, value: str) -> str:
        if not PHONE_PATTERN.match(value):
            raise ValueError("Invalid Indian phone number.")
        return value

    @field_validator("postal_code")
    @classmethod
    def _six_digits(cls, value: str) -> str:
        if len(value) != 6 or not value.isdigit():
            raise ValueError("Postal code must be 6 digits.")
        return value


class ShippingAddress(ContactDetails):
    state: str = Field(min_length=2)
    landmark: str | None = None


class Pet(BaseModel):
    id: str = Field(default_factory=new_id)
    owner_id: str
    name: str
    breed: str
    pet_type: str = "Dog"
    date_of_birth: date | None = None
    age: int | None = None
    image_url: str | None = None
    aggression_level: str | None = None  # Low / Medium / High
    weight: float | None = None  # kg
    sex: str | None = None
    mating_interest: bool | None = None
    pregnancy_count: int | None = None
    pup_count: int | None = None
    vaccination_schedule_images: list[str] = Field(default_factory=list)


class PetDetails(BaseModel):
    name: str
    breed: str
    pet_type: str
    date_of_birth: date | None = None
    age: int | None = None
    aggression_level: str | None = None
    weight: float | None = None
    sex: str | None = None
    vaccination_schedule_images: list[str] = Field(default_factory=list)

    @classmethod
    def from_pet(cls, pet: Pet) -> "PetDetails":
        return cls.model_validate(pet.model_dump(include=set(cls.model_fields)))


class Reminder(BaseModel):
    id: str = Field(default_factory=new_id)
    owner_id: str
    pet_name: str
    vaccine: str
    due: date
    status: ReminderStatus = ReminderStatus.UPCOMING
    completed_date: date | None = None


class Vaccine(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    pet_type: str = "Dog"
    price: Decimal = Field(ge=0)
    service_charge: Decimal = Field(default=Decimal("0"), ge=0)


class GroomingService(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    price: Decimal = Field(gt=0)


class PetHostelService(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    daily_rate: Decimal = Field(gt=0)


class PaymentReceipt(BaseModel):
    """What the gateway hands the client on a successful checkout."""

    payment_id: str
    order_id: str
    signature: str


class VaccineLine(BaseModel):
    vaccine_id: str
    name: str
    price: Decimal
    service_charge: Decimal = Decimal("0")


class VaccinationBooking(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    slot_id: str
    slot_datetime: datetime
    reminder_id: str | None = None
    pet_name: str
    vaccines: list[VaccineLine]
    amount: Decimal
    currency: str
    payment_id: str
    order_id: str | None = None
    status: VaccinationStatus = VaccinationStatus.PAID
    customer: ContactDetails
    assigned_doctor_id: str | None = None
    assigned_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class ServiceBooking(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    pet_id: str
    pet: PetDetails
    service_id: str
    service_name: str
    amount: Decimal
    currency: str
    payment_id: str
    order_id: str | None = None
    payment_method: str = "razorpay"
    payment_status: PaymentStatus = PaymentStatus.PAID
    booking_status: ServiceBookingStatus = ServiceBookingStatus.PENDING
    customer: ContactDetails
    created_at: datetime
    updated_at: datetime


class GroomingBooking(ServiceBooking):
    preferred_date: date
    preferred_time: str


class PetHostelBooking(ServiceBooking):
    start_date: date
    end_date: date
    food_preference: FoodPreference


class Category(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str = Field(min_length=1)
    description: str = ""
    image_url: str | None = None
    is_active: bool = True
    created_at: datetime | None = None


class Product(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str = Field(min_length=1)
    description: str = ""
    price: Decimal = Field(gt=0)
    category_id: str
    pet_type: str = "Both"  # Dog / Cat / Both
    image_url: str | None = None
    gallery_images: list[str] = Field(default_factory=list)
    is_featured: bool = False
    is_best_seller: bool = False
    is_active: bool = True
    stock: int | None = Field(default=None, ge=0)
    sku: str | None = None
    created_at: datetime | None = None


class CartItem(BaseModel):
    product_id: str
    quantity: int = Field(gt=0)


class Cart(BaseModel):
    user_id: str
    items: list[CartItem] = Field(default_factory=list)


class OrderItem(BaseModel):
    product_id: str
    name: str
    price: Decimal
    quantity: int


class ShopOrder(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    order_number: str
    items: list[OrderItem]
    subtotal: Decimal
    shipping_fee: Decimal
    total: Decimal
    currency: str
    payment_method: ShopPaymentMethod
    payment_status: PaymentStatus
    order_status: ShopOrderStatus = ShopOrderStatus.CONFIRMED
    shipping_address: ShippingAddress
    payment_id: str | None = None
    order_id: str | None = None
    tracking_number: str | None = None
    estimated_delivery: date | None = None
    created_at: datetime
    updated_at: datetime


class DoctorProfile(BaseModel):
    uid: str
    name: str | None = None
    email: str | None = None
    phone_number: str | None = None
    specialization: str | None = None
    experience: str | None = None
    qualification: str | None = None
    clinic_name: str | None = None
    clinic_address: str | None = None
    bio: str | None = None
    consultation_fee: Decimal | None = Field(default=None, ge=0)
    profile_image: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DoctorService(BaseModel):
    id: str = Field(default_factory=new_id)
    doctor_id: str
    name: str = Field(min_length=1)
    description: str = ""
    price: Decimal = Field(ge=0)
    duration_minutes: int = Field(gt=0)
    category: str
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PaymentOrder(BaseModel):
    """
    A gateway order issued by the server at the price it computed. The
    gateway only lets a payment against an order capture the order's
    amount, so a signed receipt naming this order proves that amount.
    """

    id: str  # gateway order id
    user_id: str
    purpose: PaymentPurpose
    amount: Decimal
    currency: str
    created_at: datetime


class PaymentLedgerEntry(BaseModel):
    """Binds one captured gateway payment to the record it produced."""

    payment_id: str
    kind: PaymentPurpose
    user_id: str
    booking_id: str | None = None  # shop order id for shop payments
    exception_id: str | None = None


class PaymentException(BaseModel):
    """A captured payment that ended without a confirmed booking."""

    id: str = Field(default_factory=new_id)
    payment_id: str
    order_id: str | None = None
    purpose: PaymentPurpose = PaymentPurpose.VACCINATION
    user_id: str
    slot_id: str | None = None
    amount: Decimal | None = None  # None when no issued order is on record
    currency: str
    reason: str
    status: PaymentExceptionStatus = PaymentExceptionStatus.OPEN
    created_at: datetime
    resolved_at: datetime | None = None
    resolution_note: str | None = None


def slot_key(slot_id: str) -> str:
    return f"slot:{slot_id}"


def user_key(uid: str) -> str:
    return f"user:{uid}"


def admin_key(phone_number: str) -> str:
    return f"admin:{phone_number}"


def pet_key(uid: str, pet_id: str) -> str:
    return f"pet:{uid}:{pet_id}"


def reminder_key(uid: str, reminder_id: str) -> str:
    return f"reminder:{uid}:{reminder_id}"


def vaccine_key(vaccine_id: str) -> str:
    return f"vaccine:{vaccine_id}"


def grooming_service_key(service_id: str) -> str:
    return f"service:grooming:{service_id}"


def pet_hostel_service_key(service_id: str) -> str:
    return f"service:pet_hostel:{service_id}"


def booking_key(kind: BookingKind, uid: str, booking_id: str) -> str:
    return f"booking:{kind.value}:{uid}:{booking_id}"


def payment_key(payment_id: str) -> str:
    return f"payment:{payment_id}"


def payment_exception_key(exception_id: str) -> str:
    return f"payment-exception:{exception_id}"


def payment_order_key(order_id: str) -> str:
    return f"payment-order:{order_id}"


def category_key(category_id: str) -> str:
    return f"category:{category_id}"


def product_key(product_id: str) -> str:
    return f"product:{product_id}"


def cart_key(uid: str) -> str:
    return f"cart:{uid}"


def shop_order_key(uid: str, order_id: str) -> str:
    return f"shop-order:{uid}:{order_id}"


def doctor_profile_key(uid: str) -> str:
    return f"doctor:{uid}"


def doctor_service_key(uid: str, service_id: str) -> str:
    return f"doctor-service:{uid}:{service_id}"
