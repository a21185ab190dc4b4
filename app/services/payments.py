"""Payment record per order, keyed by the order's invoice number.

A settled payment moves the order to ``payment_done``, which unlocks the
sales order. Refunds never exceed the paid amount.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from app.core.enums import OrderStatus, PaymentStatus, PaymentType, PaymentMode, ChangeActor
from app.core.exceptions import InvalidRefund, InvalidPayment
from app.models.order import Order
from app.models.payment import PaymentRecord
from app.services.orders import generate_transaction_id
from app.services.status_machine import apply_transition, TransitionResult

logger = logging.getLogger(__name__)

PAYABLE_STATUSES = {OrderStatus.VENDOR_ACCEPTED, OrderStatus.PAYMENT_DONE}
SETTLED_STATUSES = {PaymentStatus.SUCCESSFUL, PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED}


def record_payment(
    order: Order,
    payment_type: PaymentType,
    payment_mode: PaymentMode,
    amount: Optional[float] = None,
    utr_number: Optional[str] = None,
    gateway_transaction_id: Optional[str] = None,
    remarks: Optional[str] = None,
) -> PaymentRecord:
    """Create the order's payment record, or update it while it is unsettled."""
    if not order.is_active or order.status not in PAYABLE_STATUSES:
        raise InvalidPayment(f"Order {order.lead_id} cannot take a payment while {order.status}")
    if amount is not None and amount < 0:
        raise InvalidPayment(f"Payment amount must not be negative, got {amount}")

    record = order.payment
    if record is not None and record.status in SETTLED_STATUSES:
        raise InvalidPayment(f"Payment for invoice {order.invoice_number} is already {record.status}")

    if record is None:
        record = PaymentRecord(
            lead_id=order.lead_id,
            invoice_number=order.invoice_number,
            customer_id=order.customer_id,
            transaction_id=generate_transaction_id(),
            paid_amount=0.0,
            refund_amount=0.0,
        )
        order.payment = record

    record.payment_type = PaymentType(payment_type)
    record.payment_mode = PaymentMode(payment_mode)
    record.order_amount = order.total_amount if amount is None else round(amount, 2)
    record.status = PaymentStatus.PROCESSING
    if utr_number:
        record.utr_number = utr_number
    if gateway_transaction_id:
        record.gateway_transaction_id = gateway_transaction_id
    if remarks:
        record.remarks = remarks
    return record


def mark_successful(
    record: PaymentRecord,
    gateway_transaction_id: Optional[str] = None,
    utr_number: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PaymentRecord:
    if record.status in (PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED):
        raise InvalidPayment(f"Payment {record.transaction_id} has been refunded")

    record.status = PaymentStatus.SUCCESSFUL
    record.paid_amount = record.order_amount
    # first successful mark wins
    if record.payment_date is None:
        record.payment_date = now or datetime.now(timezone.utc)
    if gateway_transaction_id:
        record.gateway_transaction_id = gateway_transaction_id
    if utr_number:
        record.utr_number = utr_number
    record.failure_reason = None
    return record


def mark_failed(record: PaymentRecord, reason: Optional[str] = None) -> PaymentRecord:
    if record.status in SETTLED_STATUSES:
        raise InvalidPayment(f"Payment {record.transaction_id} is already {record.status}")
    record.status = PaymentStatus.FAILED
    record.paid_amount = 0.0
    record.failure_reason = reason
    return record


def settle_payment(
    order: Order,
    actor: ChangeActor,
    user_id: Optional[int] = None,
    gateway_transaction_id: Optional[str] = None,
    utr_number: Optional[str] = None,
    remarks: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TransitionResult:
    """Mark the order's payment successful and move the order to payment_done."""
    record = order.payment
    if record is None:
        raise InvalidPayment(f"Order {order.lead_id} has no payment to confirm")
    if order.status not in PAYABLE_STATUSES:
        raise InvalidPayment(f"Order {order.lead_id} cannot be marked paid while {order.status}")

    mark_successful(record, gateway_transaction_id, utr_number, now)
    if not order.external_payment_id:
        order.external_payment_id = record.gateway_transaction_id or record.transaction_id

    logger.info(f"Payment {record.transaction_id} for order {order.lead_id} settled at {record.paid_amount}")
    return apply_transition(order, OrderStatus.PAYMENT_DONE, actor, remarks or "Payment received", user_id=user_id)


def process_refund(
    record: PaymentRecord,
    amount: float,
    reason: str,
    refund_utr: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PaymentRecord:
    paid = record.paid_amount or 0.0
    if amount is None or amount <= 0 or amount > paid:
        raise InvalidRefund(amount, paid)

    record.refund_amount = round(amount, 2)
    record.status = PaymentStatus.REFUNDED if record.refund_amount == paid else PaymentStatus.PARTIALLY_REFUNDED
    record.refund_reason = reason
    record.refund_utr = refund_utr
    record.refund_date = now or datetime.now(timezone.utc)
    logger.info(f"Refund of {amount} recorded on payment {record.transaction_id} ({record.status})")
    return record
