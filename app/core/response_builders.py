from app.models.order import Order, OrderItem, OrderChangeLog
from app.models.order_status import OrderStatusEvent
from app.models.payment import PaymentRecord
from app.models.delivery import DeliveryRecord
from app.schemas.order import OrderOut, OrderItemOut, StatusEventOut, ChangeLogOut, TransitionOut
from app.schemas.payment import PaymentOut
from app.schemas.delivery import DeliveryOut
from app.services.status_machine import TransitionResult


def build_order_item_response(item: OrderItem) -> OrderItemOut:
    return OrderItemOut(
        id=item.id,
        item_id=item.item_id,
        item_name=item.item_name,
        quantity=item.quantity,
        unit_price=item.unit_price,
        line_total=item.line_total,
        warehouse_name=item.warehouse_name,
        distance_km=item.distance_km,
        delivery_charge=item.delivery_charge,
        delivery_available=item.delivery_available,
        delivery_reason=item.delivery_reason,
        estimated_days=item.estimated_days,
    )


def build_order_response(order: Order) -> OrderOut:
    return OrderOut(
        lead_id=order.lead_id,
        invoice_number=order.invoice_number,
        status=order.status,
        customer_id=order.customer_id,
        vendor_id=order.vendor_id,
        items=[build_order_item_response(item) for item in order.items],
        total_quantity=order.total_quantity,
        items_total=order.items_total,
        delivery_charge=order.delivery_charge,
        promo_discount=order.promo_discount,
        total_amount=order.total_amount,
        delivery_address=order.delivery_address,
        delivery_pincode=order.delivery_pincode,
        delivery_expected_date=order.delivery_expected_date,
        placed_at=order.placed_at,
        receiver_name=order.receiver_name,
        receiver_mobile=order.receiver_mobile,
        notification_email=order.notification_email,
        external_quote_id=order.external_quote_id,
        external_sales_order_id=order.external_sales_order_id,
        external_invoice_id=order.external_invoice_id,
        external_payment_id=order.external_payment_id,
        is_active=order.is_active,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def build_order_response_list(orders: list) -> list:
    return [build_order_response(order) for order in orders]


def build_transition_response(result: TransitionResult) -> TransitionOut:
    return TransitionOut(
        lead_id=result.order.lead_id,
        previous_status=result.previous_status,
        status=result.status,
        unlocked=result.unlocked,
    )


def build_status_event_response(event: OrderStatusEvent) -> StatusEventOut:
    return StatusEventOut(
        previous_status=event.previous_status,
        status=event.status,
        changed_by=event.changed_by,
        remarks=event.remarks,
        created_at=event.created_at,
    )


def build_change_log_response(entry: OrderChangeLog) -> ChangeLogOut:
    return ChangeLogOut(
        field=entry.field,
        old_value=entry.old_value,
        new_value=entry.new_value,
        changed_by=entry.changed_by,
        reason=entry.reason,
        created_at=entry.created_at,
    )


def build_payment_response(record: PaymentRecord) -> PaymentOut:
    return PaymentOut(
        lead_id=record.lead_id,
        invoice_number=record.invoice_number,
        transaction_id=record.transaction_id,
        payment_type=record.payment_type,
        payment_mode=record.payment_mode,
        status=record.status,
        order_amount=record.order_amount,
        paid_amount=record.paid_amount,
        refund_amount=record.refund_amount,
        net_amount=record.net_amount,
        utr_number=record.utr_number,
        gateway_transaction_id=record.gateway_transaction_id,
        payment_date=record.payment_date,
        failure_reason=record.failure_reason,
        refund_reason=record.refund_reason,
        refund_date=record.refund_date,
    )


def build_delivery_response(record: DeliveryRecord) -> DeliveryOut:
    return DeliveryOut(
        lead_id=record.lead_id,
        invoice_number=record.invoice_number,
        status=record.status,
        tracking_number=record.tracking_number,
        driver_name=record.driver_name,
        driver_phone=record.driver_phone,
        driver_license_no=record.driver_license_no,
        truck_number=record.truck_number,
        vehicle_type=record.vehicle_type,
        capacity_tons=record.capacity_tons,
        start_time=record.start_time,
        estimated_arrival=record.estimated_arrival,
        actual_delivery_date=record.actual_delivery_date,
        last_location=record.last_location,
        delivery_notes=record.delivery_notes,
        updated_at=record.updated_at,
    )
