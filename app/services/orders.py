"""Order aggregate: cart lines, derived totals and delivery detail edits.

Totals are always derived from the lines:
``total_amount = sum(line totals) + delivery_charge - promo_discount``, floored
at zero. ``delivery_charge`` is the sum of the per-line charges, taken when
lines are added and frozen again at placement; removing a line leaves it as is.
"""
import logging
import random
import string
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.config import settings
from app.core.enums import OrderStatus, ItemCategory, ChangeActor, ChangeField
from app.core.exceptions import (
    OrderNotFound,
    InvalidOrderItem,
    InvalidTransition,
    OrderChangeNotAllowed,
    ExternalCollaboratorFailure,
)
from app.core.metrics import track_db_operation
from app.models.base import as_utc
from app.models.delivery import DeliveryRecord
from app.models.inventory import InventoryItem
from app.models.order import Order, OrderItem, OrderChangeLog
from app.schemas.delivery import ItemDeliveryQuote
from app.services.geocoding import Geocoder
from app.services.inventory import InventoryLookup
from app.services.pricing import quote_item_delivery
from app.services.status_machine import apply_transition, TransitionResult

logger = logging.getLogger(__name__)

CATEGORY_PREFIXES = {
    ItemCategory.CEMENT: "CEMENT",
    ItemCategory.IRON: "STEEL",
    ItemCategory.CONCRETE_MIXER: "MIXER",
}
MODIFIABLE_STATUSES = {OrderStatus.ORDER_PLACED, OrderStatus.VENDOR_ACCEPTED, OrderStatus.PAYMENT_DONE}

_ALPHABET = string.digits + string.ascii_lowercase


def _base36(number: int) -> str:
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_ALPHABET[rem])
    return "".join(reversed(digits)) or "0"


def _random_token(length: int) -> str:
    return "".join(random.choices(_ALPHABET, k=length))


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_lead_id(categories: Iterable[ItemCategory]) -> str:
    distinct = {ItemCategory(c) for c in categories}
    if len(distinct) > 1:
        prefix = "MIXED"
    elif distinct:
        prefix = CATEGORY_PREFIXES.get(distinct.pop(), "ORDER")
    else:
        prefix = "ORDER"
    return f"{prefix}-{_base36(_now_ms())}{_random_token(8)}".upper()


def generate_invoice_number() -> str:
    return f"INV-{_now_ms()}-{_random_token(9)}"


def generate_transaction_id() -> str:
    return f"TXN-{_now_ms()}-{_random_token(9)}"


def recompute_totals(order: Order) -> Order:
    lines = list(order.items)
    order.total_quantity = sum(line.quantity for line in lines)
    order.items_total = round(sum(line.line_total for line in lines), 2)
    total = order.items_total + (order.delivery_charge or 0.0) - (order.promo_discount or 0.0)
    order.total_amount = round(max(total, 0.0), 2)
    return order


def line_delivery_total(order: Order) -> float:
    return round(sum(line.delivery_charge or 0.0 for line in order.items), 2)


def apply_delivery_quote(line: OrderItem, quote: ItemDeliveryQuote) -> None:
    line.warehouse_offer_id = quote.warehouse_offer_id
    line.warehouse_name = quote.warehouse_name
    line.distance_km = quote.distance_km
    line.delivery_charge = quote.charge
    line.delivery_available = quote.is_available
    line.delivery_reason = quote.reason
    line.estimated_days = quote.estimated_days


def find_line(order: Order, item_id: int) -> Optional[OrderItem]:
    return next((line for line in order.items if line.item_id == item_id), None)


def add_line(order: Order, item: InventoryItem, quantity: int, quote: Optional[ItemDeliveryQuote] = None) -> OrderItem:
    """Add ``quantity`` of ``item``, merging into an existing line for the same item."""
    if not isinstance(quantity, int) or quantity < 1:
        raise InvalidOrderItem(f"Quantity must be a positive integer, got {quantity!r}")
    if item.unit_price is None or item.unit_price < 0:
        raise InvalidOrderItem(f"Item {item.id} has an invalid unit price")

    line = find_line(order, item.id)
    if line is not None:
        line.quantity += quantity
    else:
        line = OrderItem(
            item_id=item.id,
            item_name=item.name,
            description=item.description,
            quantity=quantity,
            unit_price=item.unit_price,
            inventory_item=item,
        )
        order.items.append(line)

    if quote is not None:
        apply_delivery_quote(line, quote)
    order.delivery_charge = line_delivery_total(order)
    recompute_totals(order)
    return line


def remove_line(order: Order, line_id: int) -> Order:
    """Drop a cart line. Emptying the cart deactivates the order, status untouched."""
    if order.status != OrderStatus.PENDING:
        raise OrderChangeNotAllowed(f"Items can only be removed from a pending cart, order {order.lead_id} is {order.status}")
    line = next((line for line in order.items if line.id == line_id), None)
    if line is None:
        raise InvalidOrderItem(f"Item {line_id} is not part of order {order.lead_id}")

    order.items.remove(line)
    if not order.items:
        order.is_active = False
    recompute_totals(order)
    return order


def place_order(
    order: Order,
    delivery_address: str,
    delivery_pincode: Optional[str] = None,
    expected_date: Optional[datetime] = None,
    receiver_name: Optional[str] = None,
    receiver_mobile: Optional[str] = None,
    notification_email: Optional[str] = None,
    actor: ChangeActor = ChangeActor.CUSTOMER,
    user_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> TransitionResult:
    if not order.is_active or order.status != OrderStatus.PENDING:
        raise InvalidTransition(order.status, OrderStatus.ORDER_PLACED, "only an active pending cart can be placed")
    if not order.items:
        raise InvalidOrderItem(f"Order {order.lead_id} has no items")

    now = now or datetime.now(timezone.utc)
    order.delivery_address = delivery_address
    if delivery_pincode:
        order.delivery_pincode = delivery_pincode
    order.delivery_expected_date = as_utc(expected_date) or now + timedelta(days=settings.DEFAULT_DELIVERY_DAYS)
    order.receiver_name = receiver_name
    order.receiver_mobile = receiver_mobile
    order.notification_email = notification_email or (order.customer.email if order.customer else None)
    order.delivery_charge = line_delivery_total(order)
    recompute_totals(order)
    order.placed_at = now

    result = apply_transition(order, OrderStatus.ORDER_PLACED, actor, "Order placed", user_id=user_id)

    if order.delivery is None:
        order.delivery = DeliveryRecord(
            lead_id=order.lead_id,
            invoice_number=order.invoice_number,
        )
    return result


@dataclass
class ChangeWindow:
    allowed: bool
    hours_elapsed: Optional[float]
    reason: Optional[str] = None


def change_window(order: Order, now: Optional[datetime] = None) -> ChangeWindow:
    placed_at = as_utc(order.placed_at)
    if placed_at is None:
        return ChangeWindow(False, None, "Order has not been placed yet")

    now = now or datetime.now(timezone.utc)
    elapsed = (now - placed_at).total_seconds() / 3600
    # rounded for display only
    hours = round(elapsed, 2)
    if not order.is_active:
        return ChangeWindow(False, hours, "Order is no longer active")
    if order.status not in MODIFIABLE_STATUSES:
        return ChangeWindow(False, hours, f"Changes are not allowed once the order is {order.status}")
    if elapsed > settings.CHANGE_WINDOW_HOURS:
        return ChangeWindow(False, hours, f"Changes are only allowed within {settings.CHANGE_WINDOW_HOURS} hours of placing the order")
    return ChangeWindow(True, hours)


def _record_change(order, field, old_value, new_value, actor, reason, user_id) -> OrderChangeLog:
    entry = OrderChangeLog(
        field=field,
        old_value=old_value,
        new_value=new_value,
        changed_by=actor,
        changed_by_user_id=user_id,
        reason=reason,
    )
    order.change_logs.append(entry)
    return entry


def change_address(
    order: Order,
    new_address: str,
    actor: ChangeActor,
    reason: Optional[str] = None,
    user_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> OrderChangeLog:
    # pincode stays as placed; pricing was done against it
    window = change_window(order, now)
    if not window.allowed:
        raise OrderChangeNotAllowed(window.reason)
    new_address = (new_address or "").strip()
    if not new_address:
        raise OrderChangeNotAllowed("Delivery address must not be empty")

    entry = _record_change(order, ChangeField.ADDRESS, order.delivery_address, new_address, actor, reason, user_id)
    order.delivery_address = new_address
    return entry


def change_delivery_date(
    order: Order,
    new_date: datetime,
    actor: ChangeActor,
    reason: Optional[str] = None,
    user_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> OrderChangeLog:
    now = now or datetime.now(timezone.utc)
    window = change_window(order, now)
    if not window.allowed:
        raise OrderChangeNotAllowed(window.reason)
    new_date = as_utc(new_date)
    if new_date <= now:
        raise OrderChangeNotAllowed("Expected delivery date must be in the future")

    old = as_utc(order.delivery_expected_date)
    entry = _record_change(
        order,
        ChangeField.DELIVERY_DATE,
        old.isoformat() if old else None,
        new_date.isoformat(),
        actor,
        reason,
        user_id,
    )
    order.delivery_expected_date = new_date
    return entry


@track_db_operation("select", "orders")
async def load_order(db: AsyncSession, lead_id: str, active_only: bool = False) -> Order:
    q = select(Order).where(Order.lead_id == lead_id).execution_options(populate_existing=True)
    if active_only:
        q = q.where(Order.is_active.is_(True))
    res = await db.execute(q)
    order = res.scalars().first()
    if order is None:
        raise OrderNotFound(lead_id)
    return order


async def _unique_lead_id(db: AsyncSession, categories) -> str:
    lead_id = generate_lead_id(categories)
    res = await db.execute(select(Order.id).where(Order.lead_id == lead_id))
    if res.scalars().first() is not None:
        lead_id = f"{lead_id}{_random_token(4).upper()}"
    return lead_id


async def quote_for(item: InventoryItem, quantity: int, pincode: str, geocoder: Geocoder) -> ItemDeliveryQuote:
    """Price delivery of ``quantity`` units of ``item`` to ``pincode``.

    Unpriceable lines (location lookup down, no warehouse, out of range) come
    back with a zero charge and the reason; a malformed pincode is rejected.
    """
    try:
        destination = await geocoder.resolve(pincode)
    except ExternalCollaboratorFailure as e:
        logger.warning(f"Could not locate pincode {pincode} for delivery pricing: {e}")
        return ItemDeliveryQuote(reason="Delivery location could not be resolved")
    return quote_item_delivery(item.warehouse_offers, destination, item.unit_price * quantity)


async def open_cart(
    db: AsyncSession,
    customer,
    item_id: int,
    quantity: int,
    pincode: str,
    geocoder: Geocoder,
    inventory: InventoryLookup,
) -> Tuple[Order, ItemDeliveryQuote]:
    item = await inventory.get_item(item_id)
    quote = await quote_for(item, quantity, pincode, geocoder)

    order = Order(
        lead_id=await _unique_lead_id(db, [item.category]),
        invoice_number=generate_invoice_number(),
        customer_id=customer.id,
        customer=customer,
        vendor_id=item.vendor_id,
        delivery_pincode=pincode,
        delivery_charge=0.0,
        promo_discount=0.0,
        is_active=True,
    )
    apply_transition(order, OrderStatus.PENDING, ChangeActor.CUSTOMER, "Cart created", user_id=customer.id)
    add_line(order, item, quantity, quote)
    db.add(order)
    logger.info(f"Opened cart {order.lead_id} for user {customer.id}")
    return order, quote


async def add_item_to_cart(
    order: Order,
    item_id: int,
    quantity: int,
    geocoder: Geocoder,
    inventory: InventoryLookup,
) -> Tuple[OrderItem, ItemDeliveryQuote]:
    if not order.is_active or order.status != OrderStatus.PENDING:
        raise OrderChangeNotAllowed(f"Items can only be added to a pending cart, order {order.lead_id} is {order.status}")

    item = await inventory.get_item(item_id)
    existing = find_line(order, item.id)
    total_quantity = quantity + (existing.quantity if existing else 0)
    quote = await quote_for(item, total_quantity, order.delivery_pincode, geocoder)
    line = add_line(order, item, quantity, quote)
    return line, quote
