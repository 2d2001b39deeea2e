"""
Server-side prices. Gateway orders are issued at these amounts and
reconciliation recomputes them, so the client never names a price.
"""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ValidationError

from vaxdog import shop
from vaxdog.database import InMemoryKeyValueDatabase
from vaxdog.errors import NotFound, ValidationFailed
from vaxdog.models import (
    BookingKind,
    GroomingService,
    PaymentPurpose,
    PetHostelService,
    Vaccine,
    VaccineLine,
    grooming_service_key,
    pet_hostel_service_key,
    vaccine_key,
)
from vaxdog.wizard import GroomingOptions, HostelOptions, VaccineSelection

Database = InMemoryKeyValueDatabase[str, BaseModel]


def price_vaccines(db: Database, vaccine_ids: list[str]) -> tuple[list[VaccineLine], Decimal]:
    """Each vaccine costs its price plus its home-visit service charge."""
    lines: list[VaccineLine] = []
    for vaccine_id in vaccine_ids:
        vaccine = db.get(vaccine_key(vaccine_id))
        if not isinstance(vaccine, Vaccine):
            raise ValidationFailed({"vaccine_ids": f"Unknown vaccine {vaccine_id}."})
        lines.append(
            VaccineLine(
                vaccine_id=vaccine.id,
                name=vaccine.name,
                price=vaccine.price,
                service_charge=vaccine.service_charge,
            )
        )
    total = sum((line.price + line.service_charge for line in lines), Decimal("0"))
    return lines, total


def load_service(
    db: Database, kind: BookingKind, service_id: str | None
) -> GroomingService | PetHostelService:
    if kind == BookingKind.GROOMING:
        service, service_type = db.get(grooming_service_key(service_id or "")), GroomingService
    elif kind == BookingKind.PET_HOSTEL:
        service, service_type = db.get(pet_hostel_service_key(service_id or "")), PetHostelService
    else:
        raise ValueError(f"{kind.value} is not a service booking")
    if not isinstance(service, service_type):
        raise NotFound("Service not found")
    return service


def service_amount(
    kind: BookingKind,
    service: GroomingService | PetHostelService,
    options: GroomingOptions | HostelOptions,
) -> Decimal:
    """Grooming is a flat price; a hostel stay is billed per day, both ends included."""
    if kind == BookingKind.GROOMING:
        return service.price
    days = (options.end_date - options.start_date).days + 1
    return service.daily_rate * days


def quote(
    db: Database,
    uid: str,
    purpose: PaymentPurpose,
    form: dict[str, Any],
    service_id: str | None = None,
) -> Decimal:
    """The amount a gateway order for ``purpose`` must be issued at."""
    try:
        if purpose == PaymentPurpose.VACCINATION:
            selection = VaccineSelection.model_validate(form)
            return price_vaccines(db, selection.vaccine_ids)[1]
        if purpose == PaymentPurpose.SHOP:
            return shop.checkout_totals(db, shop.get_cart(db, uid)).total

        kind = BookingKind(purpose.value)
        service = load_service(db, kind, service_id)
        if kind == BookingKind.GROOMING:
            options: GroomingOptions | HostelOptions = GroomingOptions.model_validate(form)
        else:
            options = HostelOptions.model_validate(form)
        return service_amount(kind, service, options)
    except ValidationError as e:
        raise ValidationFailed.from_pydantic(e) from e
