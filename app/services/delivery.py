"""Physical fulfilment status of an order's delivery record.

Separate from the order's business status. Transitions are table driven;
``delivered`` and ``returned`` are terminal.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Set

from app.core.enums import DeliveryStatus
from app.core.exceptions import InvalidTransition
from app.models.delivery import DeliveryRecord
from app.models.order import Order
from app.schemas.delivery import FleetUpdate

logger = logging.getLogger(__name__)

DELIVERY_TRANSITIONS: Dict[DeliveryStatus, Set[DeliveryStatus]] = {
    DeliveryStatus.PENDING: {
        DeliveryStatus.PICKED_UP,
        DeliveryStatus.IN_TRANSIT,
        DeliveryStatus.FAILED,
    },
    DeliveryStatus.PICKED_UP: {
        DeliveryStatus.IN_TRANSIT,
        DeliveryStatus.FAILED,
        DeliveryStatus.RETURNED,
    },
    DeliveryStatus.IN_TRANSIT: {
        DeliveryStatus.OUT_FOR_DELIVERY,
        DeliveryStatus.DELIVERED,
        DeliveryStatus.FAILED,
        DeliveryStatus.RETURNED,
    },
    DeliveryStatus.OUT_FOR_DELIVERY: {
        DeliveryStatus.DELIVERED,
        DeliveryStatus.FAILED,
        DeliveryStatus.RETURNED,
    },
    # a failed attempt can be rescheduled
    DeliveryStatus.FAILED: {
        DeliveryStatus.PENDING,
        DeliveryStatus.PICKED_UP,
        DeliveryStatus.IN_TRANSIT,
        DeliveryStatus.RETURNED,
    },
    DeliveryStatus.DELIVERED: set(),
    DeliveryStatus.RETURNED: set(),
}

MOVING_STATUSES = {DeliveryStatus.PICKED_UP, DeliveryStatus.IN_TRANSIT, DeliveryStatus.OUT_FOR_DELIVERY}


def can_transition(current: DeliveryStatus, target: DeliveryStatus) -> bool:
    if current == target:
        return current not in (DeliveryStatus.DELIVERED, DeliveryStatus.RETURNED)
    return target in DELIVERY_TRANSITIONS.get(current, set())


def validate_transition(current: DeliveryStatus, target) -> DeliveryStatus:
    try:
        target = DeliveryStatus(target)
    except ValueError:
        raise InvalidTransition(current, target, "unknown delivery status")
    if not can_transition(current, target):
        allowed = ", ".join(sorted(str(s) for s in DELIVERY_TRANSITIONS.get(current, set()))) or "none"
        raise InvalidTransition(current, target, f"allowed next delivery statuses: {allowed}")
    return target


def ensure_delivery_record(order: Order) -> DeliveryRecord:
    if order.delivery is None:
        order.delivery = DeliveryRecord(
            lead_id=order.lead_id,
            invoice_number=order.invoice_number,
            status=DeliveryStatus.PENDING,
        )
    return order.delivery


def update_delivery_status(
    record: DeliveryRecord,
    target,
    remarks: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DeliveryRecord:
    current = record.status or DeliveryStatus.PENDING
    target = validate_transition(current, target)
    now = now or datetime.now(timezone.utc)

    record.status = target
    if target in MOVING_STATUSES and record.start_time is None:
        record.start_time = now
    if target == DeliveryStatus.DELIVERED:
        record.actual_delivery_date = now
    if remarks:
        record.delivery_notes = remarks

    logger.info(f"Delivery for order {record.lead_id}: {current} -> {target}")
    return record


def update_fleet_info(record: DeliveryRecord, fleet: FleetUpdate) -> DeliveryRecord:
    """Apply only the fleet fields that were provided."""
    for field, value in fleet.model_dump(exclude_unset=True).items():
        setattr(record, field, value)
    return record
