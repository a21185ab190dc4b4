"""Order status transitions.

The default policy only refuses unknown statuses and cancelling a delivered
order; any other move, backward or skipping, is allowed. Set
``ORDER_TRANSITION_POLICY=forward_only`` to refuse backward moves as well.

A transition changes ``order.status`` and appends one ``OrderStatusEvent`` in
the same unit of work. Nothing is committed here; the caller commits the
transition together with any outbox rows it writes for the unlocked documents.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, List

from app.core.config import settings
from app.core.enums import OrderStatus, ChangeActor, DocumentKind, TransitionPolicy
from app.core.exceptions import InvalidTransition
from app.core.metrics import status_transitions
from app.models.order import Order
from app.models.order_status import OrderStatusEvent

logger = logging.getLogger(__name__)

PIPELINE = (
    OrderStatus.PENDING,
    OrderStatus.ORDER_PLACED,
    OrderStatus.VENDOR_ACCEPTED,
    OrderStatus.PAYMENT_DONE,
    OrderStatus.ORDER_CONFIRMED,
    OrderStatus.TRUCK_LOADING,
    OrderStatus.IN_TRANSIT,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)
STATUS_RANK = {status: rank for rank, status in enumerate(PIPELINE)}

INVOICE_TRIGGERS = {OrderStatus.IN_TRANSIT, OrderStatus.OUT_FOR_DELIVERY}


@dataclass
class TransitionResult:
    order: Order
    event: OrderStatusEvent
    previous_status: Optional[OrderStatus]
    status: OrderStatus
    unlocked: List[DocumentKind] = field(default_factory=list)


class PermissivePolicy:
    name = TransitionPolicy.PERMISSIVE

    def check(self, current: Optional[OrderStatus], target: OrderStatus) -> None:
        if current == OrderStatus.DELIVERED and target == OrderStatus.CANCELLED:
            raise InvalidTransition(current, target, "a delivered order cannot be cancelled")


class ForwardOnlyPolicy(PermissivePolicy):
    name = TransitionPolicy.FORWARD_ONLY

    def check(self, current: Optional[OrderStatus], target: OrderStatus) -> None:
        super().check(current, target)
        if current is None or current == target:
            return
        if current == OrderStatus.CANCELLED:
            raise InvalidTransition(current, target, "cancelled is terminal")
        if target == OrderStatus.CANCELLED:
            return
        if STATUS_RANK[target] < STATUS_RANK[current]:
            raise InvalidTransition(current, target, "backward transitions are disabled")


POLICIES = {
    TransitionPolicy.PERMISSIVE: PermissivePolicy,
    TransitionPolicy.FORWARD_ONLY: ForwardOnlyPolicy,
}


def get_policy(name: Optional[str] = None) -> PermissivePolicy:
    name = name or settings.ORDER_TRANSITION_POLICY
    try:
        return POLICIES[TransitionPolicy(name)]()
    except ValueError:
        logger.warning(f"Unknown transition policy {name!r}, using permissive")
        return PermissivePolicy()


def parse_status(value, current: Optional[OrderStatus] = None) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidTransition(current, value, "unknown status")


def unlocked_documents(order: Order, previous: Optional[OrderStatus], target: OrderStatus) -> List[DocumentKind]:
    unlocked = []
    if not order.external_quote_id and (
        (target == OrderStatus.VENDOR_ACCEPTED and previous == OrderStatus.ORDER_PLACED)
        or target == OrderStatus.ORDER_CONFIRMED
    ):
        # confirming an order that skipped vendor acceptance still gets it a quote
        unlocked.append(DocumentKind.QUOTE)
    if target == OrderStatus.PAYMENT_DONE and not order.external_sales_order_id:
        unlocked.append(DocumentKind.SALES_ORDER)
    if target in INVOICE_TRIGGERS and not order.external_invoice_id:
        unlocked.append(DocumentKind.INVOICE)
    return unlocked


def apply_transition(
    order: Order,
    target,
    actor: ChangeActor,
    remarks: Optional[str] = None,
    user_id: Optional[int] = None,
    policy: Optional[PermissivePolicy] = None,
) -> TransitionResult:
    """Move ``order`` to ``target`` and append the matching status event.

    Re-issuing the current status is a transition too: it writes an event and
    re-evaluates the unlocks, which the document sync treats as a no-op once
    the document exists.
    """
    previous = order.status
    status = parse_status(target, previous)
    (policy or get_policy()).check(previous, status)

    event = OrderStatusEvent(
        lead_id=order.lead_id,
        invoice_number=order.invoice_number,
        vendor_id=order.vendor_id,
        previous_status=previous,
        status=status,
        changed_by=actor,
        changed_by_user_id=user_id,
        remarks=remarks,
    )
    order.status = status
    order.status_events.append(event)

    status_transitions.labels(status=str(status)).inc()
    logger.info(f"Order {order.lead_id}: {previous} -> {status} by {actor}")

    return TransitionResult(
        order=order,
        event=event,
        previous_status=previous,
        status=status,
        unlocked=unlocked_documents(order, previous, status),
    )
