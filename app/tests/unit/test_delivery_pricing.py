from types import SimpleNamespace

import pytest

from app.schemas.delivery import DeliveryConfig, ItemDeliveryQuote
from app.services.distance import Coordinate, distance_km
from app.services.pricing import (
    select_nearest_warehouse,
    price_delivery,
    estimate_days,
    distance_category,
    quote_item_delivery,
    price_cart,
)

ORIGIN = Coordinate(12.9716, 77.5946)
# one degree of latitude is ~111.19 km on a 6371 km sphere
KM_PER_DEG = 6371.0 * 3.141592653589793 / 180.0


def offer(offer_id, km_north, active=True, **config):
    lat = None if km_north is None else ORIGIN.lat + km_north / KM_PER_DEG
    return SimpleNamespace(
        id=offer_id,
        warehouse_name=f"W{offer_id}",
        latitude=lat,
        longitude=ORIGIN.lon if lat is not None else None,
        is_active=active,
        base_delivery_charge=config.get("base", 50.0),
        per_km_charge=config.get("per_km", 10.0),
        minimum_order=0.0,
        free_delivery_threshold=config.get("threshold", 0.0),
        free_delivery_radius=config.get("free_radius", 0.0),
        max_delivery_radius=config.get("max_radius", 0.0),
    )


CONFIG = DeliveryConfig(
    base_delivery_charge=50,
    per_km_charge=10,
    free_delivery_threshold=5000,
    free_delivery_radius=10,
    max_delivery_radius=100,
)


class TestNearestWarehouse:

    def test_tie_keeps_first_listed(self):
        offers = [offer(1, 12.3), offer(2, 5.0), offer(3, 5.0)]
        match = select_nearest_warehouse(offers, ORIGIN)
        assert match.offer.id == 2
        assert match.distance_km == pytest.approx(5.0, abs=1e-6)

    def test_skips_inactive_and_unlocated(self):
        offers = [offer(1, 1.0, active=False), offer(2, None), offer(3, 40.0)]
        assert select_nearest_warehouse(offers, ORIGIN).offer.id == 3

    def test_none_when_nothing_usable(self):
        assert select_nearest_warehouse([offer(1, 1.0, active=False), offer(2, None)], ORIGIN) is None
        assert select_nearest_warehouse([], ORIGIN) is None

    def test_out_of_range_location_is_ignored(self):
        broken = offer(1, 1.0)
        broken.latitude = 123.0
        assert select_nearest_warehouse([broken, offer(2, 20.0)], ORIGIN).offer.id == 2


class TestChargePrecedence:

    def test_free_radius(self):
        result = price_delivery(8, CONFIG, 200)
        assert result.is_free and result.is_available
        assert result.charge == 0
        assert "radius" in result.reason

    def test_threshold_wins_over_radius(self):
        result = price_delivery(8, CONFIG, 6000)
        assert result.is_free
        assert result.charge == 0
        assert "above" in result.reason

    @pytest.mark.parametrize("amount", [0, 200, 6000, 1_000_000])
    def test_beyond_max_radius_unavailable(self, amount):
        result = price_delivery(150, CONFIG, amount)
        assert result.is_available is False
        assert result.is_free is False
        assert result.charge == 0
        assert result.reason == "Delivery not available beyond 100km radius"

    def test_distance_charge(self):
        result = price_delivery(30, CONFIG, 200)
        assert result.charge == 350
        assert result.is_available and not result.is_free
        assert result.reason is None

    def test_charge_rounded_to_paise(self):
        config = DeliveryConfig(base_delivery_charge=10, per_km_charge=3.333)
        assert price_delivery(7.777, config, 0).charge == round(10 + 7.777 * 3.333, 2)

    def test_zero_limits_disable_rules(self):
        config = DeliveryConfig(base_delivery_charge=20, per_km_charge=1)
        result = price_delivery(5000, config, 10_000)
        assert result.is_available
        assert result.charge == 5020


class TestEstimates:

    @pytest.mark.parametrize("distance,days,category", [
        (0, 1, "Local"),
        (10, 1, "Local"),
        (10.01, 2, "Regional"),
        (50, 2, "Regional"),
        (99.9, 3, "State"),
        (200, 5, "Inter-state"),
        (200.5, 7, "Long Distance"),
    ])
    def test_bands(self, distance, days, category):
        assert estimate_days(distance).days == days
        assert distance_category(distance) == category


class TestCartPricing:

    def test_item_quote_uses_nearest_offer(self):
        offers = [offer(1, 80.0), offer(2, 30.0)]
        quote = quote_item_delivery(offers, ORIGIN, 500)
        expected = distance_km(ORIGIN, Coordinate(offers[1].latitude, offers[1].longitude))
        assert quote.warehouse_offer_id == 2
        assert quote.charge == round(50 + expected * 10, 2)
        assert quote.estimated_days == 2

    def test_item_quote_without_warehouse(self):
        quote = quote_item_delivery([], ORIGIN, 500)
        assert quote.is_available is False
        assert quote.charge == 0
        assert quote.reason == "No warehouse available for this item"

    def test_each_item_priced_independently(self):
        quotes = [
            ItemDeliveryQuote(charge=120.5, distance_km=12.0, estimated_days=2, is_available=True),
            ItemDeliveryQuote(charge=0.0, distance_km=4.0, estimated_days=1, is_available=True, is_free=True),
            ItemDeliveryQuote(charge=300.0, distance_km=150.0, estimated_days=5, is_available=True),
        ]
        cart = price_cart(quotes)
        assert cart.total_charge == 420.5
        assert cart.max_distance_km == 150.0
        assert cart.estimated_days == 5
