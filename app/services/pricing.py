"""Warehouse selection and distance-based delivery pricing.

Each cart line is priced against its own nearest warehouse. The order's
delivery charge is the sum of the line charges at placement time.
"""
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from app.schemas.delivery import (
    DeliveryConfig,
    DeliveryCharge,
    DeliveryEstimate,
    ItemDeliveryQuote,
    CartDeliveryQuote,
)
from app.services.distance import Coordinate, distance_km, display_km, is_valid_coordinate

# (upper bound km, description, days)
DELIVERY_BANDS = (
    (10, "Same day delivery available", "0-1 days", 1),
    (50, "1-2 days delivery available", "1-2 days", 2),
    (100, "2-3 days delivery available", "2-3 days", 3),
    (200, "3-5 days delivery available", "3-5 days", 5),
)
LONG_HAUL = ("5-7 days delivery available", "5-7 days", 7)

DISTANCE_CATEGORIES = (
    (10, "Local"),
    (50, "Regional"),
    (100, "State"),
    (200, "Inter-state"),
)


@dataclass(frozen=True)
class WarehouseMatch:
    offer: object
    distance_km: float


def offer_location(offer) -> Optional[Coordinate]:
    if not is_valid_coordinate(offer.latitude, offer.longitude):
        return None
    return Coordinate(float(offer.latitude), float(offer.longitude))


def select_nearest_warehouse(offers: Iterable, destination: Coordinate) -> Optional[WarehouseMatch]:
    """Return the closest active offer with a usable location.

    Ties keep the offer seen first.
    """
    best = None
    for offer in offers:
        if not offer.is_active:
            continue
        location = offer_location(offer)
        if location is None:
            continue
        d = distance_km(location, destination)
        if best is None or d < best.distance_km:
            best = WarehouseMatch(offer=offer, distance_km=d)
    return best


def price_delivery(distance: float, config: DeliveryConfig, order_amount: float) -> DeliveryCharge:
    shown = display_km(distance)

    if config.max_delivery_radius > 0 and distance > config.max_delivery_radius:
        return DeliveryCharge(
            distance_km=shown,
            charge=0.0,
            is_free=False,
            is_available=False,
            reason=f"Delivery not available beyond {config.max_delivery_radius:g}km radius",
        )

    if config.free_delivery_threshold > 0 and order_amount >= config.free_delivery_threshold:
        return DeliveryCharge(
            distance_km=shown,
            charge=0.0,
            is_free=True,
            is_available=True,
            reason=f"Free delivery for orders above ₹{config.free_delivery_threshold:g}",
        )

    if config.free_delivery_radius > 0 and distance <= config.free_delivery_radius:
        return DeliveryCharge(
            distance_km=shown,
            charge=0.0,
            is_free=True,
            is_available=True,
            reason=f"Free delivery within {config.free_delivery_radius:g}km radius",
        )

    charge = config.base_delivery_charge + distance * config.per_km_charge
    return DeliveryCharge(
        distance_km=shown,
        charge=round(charge, 2),
        is_free=False,
        is_available=True,
    )


def estimate_days(distance: float) -> DeliveryEstimate:
    for limit, label, description, days in DELIVERY_BANDS:
        if distance <= limit:
            return DeliveryEstimate(label=label, description=description, days=days)
    label, description, days = LONG_HAUL
    return DeliveryEstimate(label=label, description=description, days=days)


def distance_category(distance: float) -> str:
    for limit, name in DISTANCE_CATEGORIES:
        if distance <= limit:
            return name
    return "Long Distance"


def quote_item_delivery(offers: Sequence, destination: Coordinate, order_amount: float) -> ItemDeliveryQuote:
    """Nearest warehouse plus charge and estimate for one cart line."""
    match = select_nearest_warehouse(offers, destination)
    if match is None:
        return ItemDeliveryQuote(reason="No warehouse available for this item")

    charge = price_delivery(match.distance_km, DeliveryConfig.from_offer(match.offer), order_amount)
    estimate = estimate_days(match.distance_km)
    return ItemDeliveryQuote(
        warehouse_offer_id=match.offer.id,
        warehouse_name=match.offer.warehouse_name,
        distance_km=charge.distance_km,
        charge=charge.charge,
        is_free=charge.is_free,
        is_available=charge.is_available,
        reason=charge.reason,
        estimated_days=estimate.days,
        distance_category=distance_category(match.distance_km),
    )


def price_cart(quotes: Sequence[ItemDeliveryQuote]) -> CartDeliveryQuote:
    total = sum(q.charge for q in quotes)
    max_distance = max((q.distance_km or 0.0 for q in quotes), default=0.0)
    max_days = max((q.estimated_days or 0 for q in quotes), default=0)
    return CartDeliveryQuote(
        items=list(quotes),
        total_charge=round(total, 2),
        max_distance_km=round(max_distance, 2),
        estimated_days=max_days,
    )
