from datetime import datetime, timedelta, timezone

import pytest

from app.core.enums import DeliveryStatus
from app.core.exceptions import InvalidTransition
from app.models.order import Order
from app.schemas.delivery import FleetUpdate
from app.services.delivery import ensure_delivery_record, update_delivery_status, update_fleet_info, can_transition

NOW = datetime(2026, 3, 5, 9, 30, tzinfo=timezone.utc)


def record():
    order = Order(lead_id="MIXER-DLV00001", invoice_number="INV-4-test", customer_id=1)
    return ensure_delivery_record(order)


class TestDeliveryStatus:

    def test_ensure_is_idempotent(self):
        order = Order(lead_id="MIXER-DLV00002", invoice_number="INV-5-test", customer_id=1)
        first = ensure_delivery_record(order)
        assert ensure_delivery_record(order) is first
        assert first.status == DeliveryStatus.PENDING
        assert first.invoice_number == "INV-5-test"

    def test_happy_path_stamps_times(self):
        rec = record()
        update_delivery_status(rec, DeliveryStatus.PICKED_UP, now=NOW)
        update_delivery_status(rec, "in_transit", now=NOW + timedelta(hours=2))
        update_delivery_status(rec, DeliveryStatus.DELIVERED, remarks="Unloaded at gate 2", now=NOW + timedelta(hours=6))

        assert rec.status == DeliveryStatus.DELIVERED
        assert rec.start_time == NOW
        assert rec.actual_delivery_date == NOW + timedelta(hours=6)
        assert rec.delivery_notes == "Unloaded at gate 2"

    @pytest.mark.parametrize("terminal", [DeliveryStatus.DELIVERED, DeliveryStatus.RETURNED])
    def test_terminal_statuses(self, terminal):
        rec = record()
        rec.status = terminal
        for target in DeliveryStatus:
            assert can_transition(terminal, target) is False
        with pytest.raises(InvalidTransition):
            update_delivery_status(rec, DeliveryStatus.IN_TRANSIT)

    def test_failed_attempt_can_be_rescheduled(self):
        rec = record()
        update_delivery_status(rec, DeliveryStatus.FAILED, now=NOW)
        update_delivery_status(rec, DeliveryStatus.PENDING, now=NOW)
        assert rec.status == DeliveryStatus.PENDING

    def test_skipping_to_delivered_from_pending_rejected(self):
        rec = record()
        with pytest.raises(InvalidTransition):
            update_delivery_status(rec, DeliveryStatus.DELIVERED)
        assert rec.status == DeliveryStatus.PENDING

    def test_unknown_status_rejected(self):
        with pytest.raises(InvalidTransition):
            update_delivery_status(record(), "lost_at_sea")


class TestFleetInfo:

    def test_only_provided_fields_change(self):
        rec = record()
        rec.driver_name = "Suresh"
        update_fleet_info(rec, FleetUpdate(truck_number="KA-01-AB-1234", capacity_tons=12))

        assert rec.truck_number == "KA-01-AB-1234"
        assert rec.capacity_tons == 12
        assert rec.driver_name == "Suresh"
