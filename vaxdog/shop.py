"""
Pet shop: catalog, per-user cart and orders.

Prices are always read from the current catalog; the cart only holds
product ids and quantities. Placing an order turns the cart into an
order, decrements stock and empties the cart in one transaction.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from pydantic import BaseModel

from vaxdog.database import InMemoryKeyValueDatabase, Transaction
from vaxdog.errors import Conflict, NotFound, ValidationFailed
from vaxdog.models import (
    Cart,
    CartItem,
    Category,
    OrderItem,
    PaymentReceipt,
    PaymentStatus,
    Product,
    ShippingAddress,
    ShopOrder,
    ShopOrderStatus,
    ShopPaymentMethod,
    cart_key,
    category_key,
    new_id,
    product_key,
    shop_order_key,
)
from vaxdog.records import updated_copy

logger = logging.getLogger(__name__)

Database = InMemoryKeyValueDatabase[str, BaseModel]

FREE_SHIPPING_FROM = Decimal("999")
SHIPPING_FEE = Decimal("50")
MAX_QUANTITY = 99  # cap for products without a stock count
DELIVERY_DAYS = 7


# catalog


def add_category(db: Database, category: Category, *, now: datetime) -> Category:
    category = category.model_copy(update={"created_at": category.created_at or now})
    db.put(category_key(category.id), category)
    logger.info(f"Added category {category.id} ({category.name})")
    return category


def get_category(db: Database, category_id: str) -> Category:
    category = db.get(category_key(category_id))
    if not isinstance(category, Category):
        raise NotFound("Category not found")
    return category


def update_category(db: Database, category_id: str, changes: dict) -> Category:
    updated = updated_copy(get_category(db, category_id), changes, {"id", "created_at"})
    db.put(category_key(category_id), updated)
    return updated


def delete_category(db: Database, category_id: str) -> None:
    get_category(db, category_id)
    in_use = list_products(db, category_id=category_id)
    if in_use:
        raise Conflict(f"Category {category_id} still has {len(in_use)} active products")
    db.delete(category_key(category_id))
    logger.info(f"Deleted category {category_id}")


def list_categories(db: Database, *, include_inactive: bool = False) -> list[Category]:
    categories = [
        c
        for c in db.scan("category:")
        if isinstance(c, Category) and (include_inactive or c.is_active)
    ]
    return sorted(categories, key=lambda c: c.name)


def add_product(db: Database, product: Product, *, now: datetime) -> Product:
    if not isinstance(db.get(category_key(product.category_id)), Category):
        raise ValidationFailed({"category_id": f"Unknown category {product.category_id}."})
    product = product.model_copy(update={"created_at": product.created_at or now})
    db.put(product_key(product.id), product)
    logger.info(f"Added product {product.id} ({product.name})")
    return product


def get_product(db: Database, product_id: str, *, include_inactive: bool = False) -> Product:
    product = db.get(product_key(product_id))
    if not isinstance(product, Product) or not (include_inactive or product.is_active):
        raise NotFound("Product not found")
    return product


def update_product(db: Database, product_id: str, changes: dict) -> Product:
    product = get_product(db, product_id, include_inactive=True)
    updated = updated_copy(product, changes, {"id", "created_at"})
    if updated.category_id != product.category_id and not isinstance(
        db.get(category_key(updated.category_id)), Category
    ):
        raise ValidationFailed({"category_id": f"Unknown category {updated.category_id}."})
    db.put(product_key(product_id), updated)
    return updated


def delete_product(db: Database, product_id: str) -> Product:
    """Products are deactivated rather than removed; past orders name them."""
    return update_product(db, product_id, {"is_active": False})


def list_products(
    db: Database,
    *,
    category_id: str | None = None,
    pet_type: str | None = None,
    featured: bool | None = None,
    include_inactive: bool = False,
) -> list[Product]:
    products = [
        p
        for p in db.scan("product:")
        if isinstance(p, Product)
        and (include_inactive or p.is_active)
        and (category_id is None or p.category_id == category_id)
        and (pet_type is None or p.pet_type in (pet_type, "Both"))
        and (featured is None or p.is_featured == featured)
    ]
    return sorted(products, key=lambda p: p.name)


# cart


def _max_quantity(product: Product) -> int:
    return product.stock if product.stock else MAX_QUANTITY


def _check_quantity(product: Product, quantity: int) -> None:
    if product.stock == 0:
        raise Conflict(f"{product.name} is out of stock")
    limit = _max_quantity(product)
    if quantity > limit:
        raise ValidationFailed({"quantity": f"Only {limit} of {product.name} in stock."})


def get_cart(store: Database | Transaction, uid: str) -> Cart:
    cart = store.get(cart_key(uid))
    return cart if isinstance(cart, Cart) else Cart(user_id=uid)


def add_to_cart(db: Database, uid: str, product_id: str, quantity: int = 1) -> Cart:
    if quantity <= 0:
        raise ValidationFailed({"quantity": "Quantity must be at least 1."})
    with db.transaction() as txn:
        product = txn.get(product_key(product_id))
        if not isinstance(product, Product) or not product.is_active:
            raise NotFound("Product not found")
        cart = get_cart(txn, uid)
        item = next((i for i in cart.items if i.product_id == product_id), None)
        total = quantity + (item.quantity if item else 0)
        _check_quantity(product, total)
        if item:
            item.quantity = total
        else:
            cart.items.append(CartItem(product_id=product_id, quantity=quantity))
        txn.put(cart_key(uid), cart)
    return cart


def update_cart_item(db: Database, uid: str, product_id: str, quantity: int) -> Cart:
    """Set a line's quantity; zero or less removes the line."""
    if quantity <= 0:
        return remove_from_cart(db, uid, product_id)
    with db.transaction() as txn:
        cart = get_cart(txn, uid)
        item = next((i for i in cart.items if i.product_id == product_id), None)
        if item is None:
            raise NotFound("Item not in cart")
        product = txn.get(product_key(product_id))
        if isinstance(product, Product):
            _check_quantity(product, quantity)
        item.quantity = quantity
        txn.put(cart_key(uid), cart)
    return cart


def remove_from_cart(db: Database, uid: str, product_id: str) -> Cart:
    with db.transaction() as txn:
        cart = get_cart(txn, uid)
        cart.items = [i for i in cart.items if i.product_id != product_id]
        txn.put(cart_key(uid), cart)
    return cart


def clear_cart(db: Database, uid: str) -> None:
    db.delete(cart_key(uid))


# checkout


@dataclass(frozen=True)
class CheckoutTotals:
    items: list[OrderItem]
    subtotal: Decimal
    shipping_fee: Decimal
    total: Decimal


def checkout_totals(store: Database | Transaction, cart: Cart) -> CheckoutTotals:
    """
    Price the cart against the catalog as it is now. Shipping is free from
    FREE_SHIPPING_FROM upwards.
    """
    if not cart.items:
        raise ValidationFailed({"cart": "Your cart is empty."})

    lines: list[OrderItem] = []
    for item in cart.items:
        product = store.get(product_key(item.product_id))
        if not isinstance(product, Product) or not product.is_active:
            raise ValidationFailed(
                {"cart": f"Product {item.product_id} is no longer available."}
            )
        if product.stock is not None and item.quantity > product.stock:
            raise ValidationFailed(
                {"cart": f"Only {product.stock} of {product.name} left in stock."}
            )
        lines.append(
            OrderItem(
                product_id=product.id,
                name=product.name,
                price=product.price,
                quantity=item.quantity,
            )
        )

    subtotal = sum((line.price * line.quantity for line in lines), Decimal("0"))
    shipping_fee = Decimal("0") if subtotal >= FREE_SHIPPING_FROM else SHIPPING_FEE
    return CheckoutTotals(
        items=lines, subtotal=subtotal, shipping_fee=shipping_fee, total=subtotal + shipping_fee
    )


def _order_number(now: datetime) -> str:
    return f"ORD{int(now.timestamp() * 1000) % 1_000_000:06d}{new_id()[:3].upper()}"


def place_order(
    txn: Transaction,
    uid: str,
    totals: CheckoutTotals,
    address: ShippingAddress,
    *,
    payment_method: ShopPaymentMethod,
    payment_status: PaymentStatus,
    currency: str,
    now: datetime,
    receipt: PaymentReceipt | None = None,
) -> ShopOrder:
    """Write the order, take its items out of stock and empty the cart."""
    order = ShopOrder(
        user_id=uid,
        order_number=_order_number(now),
        items=totals.items,
        subtotal=totals.subtotal,
        shipping_fee=totals.shipping_fee,
        total=totals.total,
        currency=currency,
        payment_method=payment_method,
        payment_status=payment_status,
        shipping_address=address,
        payment_id=receipt.payment_id if receipt else None,
        order_id=receipt.order_id if receipt else None,
        estimated_delivery=(now + timedelta(days=DELIVERY_DAYS)).date(),
        created_at=now,
        updated_at=now,
    )
    for line in totals.items:
        product = txn.get(product_key(line.product_id))
        if product.stock is not None:
            product.stock -= line.quantity
            txn.put(product_key(product.id), product)
    txn.put(shop_order_key(uid, order.id), order)
    txn.delete(cart_key(uid))
    return order


def place_cod_order(
    db: Database, uid: str, address: ShippingAddress, *, currency: str, now: datetime
) -> ShopOrder:
    """Cash on delivery: the order is confirmed now and paid on delivery."""
    with db.transaction() as txn:
        totals = checkout_totals(txn, get_cart(txn, uid))
        order = place_order(
            txn,
            uid,
            totals,
            address,
            payment_method=ShopPaymentMethod.COD,
            payment_status=PaymentStatus.PENDING,
            currency=currency,
            now=now,
        )
    logger.info(f"COD order {order.order_number} placed by user {uid} for {order.total}")
    return order


# orders


def _newest_first(orders) -> list[ShopOrder]:
    return sorted(orders, key=lambda o: o.created_at, reverse=True)


def list_orders(db: Database, uid: str) -> list[ShopOrder]:
    return _newest_first(o for o in db.scan(f"shop-order:{uid}:") if isinstance(o, ShopOrder))


def list_all_orders(db: Database) -> list[ShopOrder]:
    return _newest_first(o for o in db.scan("shop-order:") if isinstance(o, ShopOrder))


def update_order_status(
    db: Database,
    uid: str,
    order_id: str,
    status: ShopOrderStatus,
    *,
    tracking_number: str | None = None,
    now: datetime,
) -> ShopOrder:
    with db.transaction() as txn:
        order = txn.get(shop_order_key(uid, order_id))
        if not isinstance(order, ShopOrder):
            raise NotFound("Order not found")
        order.order_status = status
        if tracking_number:
            order.tracking_number = tracking_number
        order.updated_at = now
        txn.put(shop_order_key(uid, order_id), order)

    logger.info(f"Order {order.order_number} status set to {status.value}")
    return order
