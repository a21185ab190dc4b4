from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from typing import Optional, List

from app.db.session import get_db
from app.models.order import Order
from app.schemas.order import (
    CartCreate,
    CartItemAdd,
    CartOut,
    PlaceOrderIn,
    StatusUpdate,
    AddressChange,
    DeliveryDateChange,
    OrderOut,
    TransitionOut,
    StatusEventOut,
    ChangeHistoryOut,
)
from app.core.security import get_current_user, require_admin
from app.core.audit_decorator import audit_log
from app.core.rate_limit import check_rate_limit
from app.core.auth_utils import filter_by_user
from app.core.enums import AuditAction, ChangeField, OrderStatus, UserRole
from app.core.exceptions import OrderChangeNotAllowed
from app.core.response_builders import (
    build_order_response,
    build_order_response_list,
    build_transition_response,
    build_status_event_response,
    build_change_log_response,
)
from app.api.deps import get_geocoder, get_inventory, get_dispatcher, load_owned_order, actor_for
from app.services import orders as order_service
from app.services.delivery import ensure_delivery_record, update_fleet_info
from app.services.outbox import record_side_effects
from app.services.status_machine import apply_transition
from app.utils.idempotency import idempotency_key, get_idempotent, set_idempotent

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/cart", response_model=CartOut)
@audit_log(AuditAction.CREATE_CART)
async def create_cart(
    payload: CartCreate,
    idempotency_key_header: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
    geocoder=Depends(get_geocoder),
    inventory=Depends(get_inventory),
):
    """Open a new cart with its first item, priced against the nearest warehouse."""
    await check_rate_limit(int(current_user.id))

    idem_key = idempotency_key("cart", current_user.id, idempotency_key_header)
    cached = await get_idempotent(idem_key)
    if cached:
        return cached

    order, quote = await order_service.open_cart(
        db, current_user, payload.item_id, payload.quantity, payload.pincode, geocoder, inventory
    )
    await db.commit()

    response = CartOut(order=build_order_response(order), delivery=quote)
    await set_idempotent(idem_key, response.model_dump(mode="json"))
    return response


@router.post("/{lead_id}/items", response_model=CartOut)
@audit_log(AuditAction.ADD_ITEM)
async def add_cart_item(
    lead_id: str,
    payload: CartItemAdd,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
    geocoder=Depends(get_geocoder),
    inventory=Depends(get_inventory),
):
    await check_rate_limit(int(current_user.id))

    order = await load_owned_order(db, lead_id, current_user)
    _, quote = await order_service.add_item_to_cart(order, payload.item_id, payload.quantity, geocoder, inventory)
    await db.commit()

    return CartOut(order=build_order_response(order), delivery=quote)


@router.delete("/{lead_id}/items/{line_id}", response_model=OrderOut)
@audit_log(AuditAction.REMOVE_ITEM)
async def remove_cart_item(
    lead_id: str,
    line_id: int,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
):
    await check_rate_limit(int(current_user.id))

    order = await load_owned_order(db, lead_id, current_user)
    order_service.remove_line(order, line_id)
    await db.commit()

    return build_order_response(order)


@router.delete("/{lead_id}")
@audit_log(AuditAction.REMOVE_CART)
async def remove_cart(
    lead_id: str,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """Soft-delete a cart. The status is left as it is."""
    await check_rate_limit(int(current_user.id))

    order = await load_owned_order(db, lead_id, current_user)
    if order.status != OrderStatus.PENDING:
        raise OrderChangeNotAllowed(f"Only pending carts can be removed, order {lead_id} is {order.status}")
    order.is_active = False
    await db.commit()

    return {"removed": True, "lead_id": lead_id}


@router.post("/{lead_id}/place", response_model=OrderOut)
@audit_log(AuditAction.PLACE_ORDER)
async def place_order(
    lead_id: str,
    payload: PlaceOrderIn,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
):
    await check_rate_limit(int(current_user.id))

    order = await load_owned_order(db, lead_id, current_user)
    order_service.place_order(
        order,
        delivery_address=payload.delivery_address,
        delivery_pincode=payload.delivery_pincode,
        expected_date=payload.expected_date,
        receiver_name=payload.receiver_name,
        receiver_mobile=payload.receiver_mobile,
        notification_email=payload.notification_email,
        actor=actor_for(current_user),
        user_id=int(current_user.id),
    )
    await db.commit()

    return build_order_response(order)


@router.put("/{lead_id}/status", response_model=TransitionOut)
@audit_log(AuditAction.UPDATE_STATUS)
async def update_status(
    lead_id: str,
    payload: StatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(require_admin),
    dispatch=Depends(get_dispatcher),
):
    """Move an order to any status the transition policy allows.

    Document creation unlocked by the move is queued in the outbox and runs in
    the background; this call does not wait for it.
    """
    await check_rate_limit(int(current_user.id))

    order = await order_service.load_order(db, lead_id)
    result = apply_transition(
        order, payload.status, actor_for(current_user), payload.remarks, user_id=int(current_user.id)
    )
    if payload.fleet is not None:
        update_fleet_info(ensure_delivery_record(order), payload.fleet)

    effects = await record_side_effects(db, order, result.unlocked)
    await db.commit()
    dispatch([effect.id for effect in effects])

    return build_transition_response(result)


@router.put("/{lead_id}/address", response_model=OrderOut)
@audit_log(AuditAction.CHANGE_ADDRESS)
async def change_address(
    lead_id: str,
    payload: AddressChange,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
):
    await check_rate_limit(int(current_user.id))

    order = await load_owned_order(db, lead_id, current_user)
    order_service.change_address(
        order, payload.delivery_address, actor_for(current_user), payload.reason, user_id=int(current_user.id)
    )
    await db.commit()

    return build_order_response(order)


@router.put("/{lead_id}/delivery-date", response_model=OrderOut)
@audit_log(AuditAction.CHANGE_DELIVERY_DATE)
async def change_delivery_date(
    lead_id: str,
    payload: DeliveryDateChange,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
):
    await check_rate_limit(int(current_user.id))

    order = await load_owned_order(db, lead_id, current_user)
    order_service.change_delivery_date(
        order, payload.delivery_expected_date, actor_for(current_user), payload.reason, user_id=int(current_user.id)
    )
    await db.commit()

    return build_order_response(order)


@router.get("/{lead_id}/changes", response_model=ChangeHistoryOut)
async def change_history(
    lead_id: str,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
):
    order = await load_owned_order(db, lead_id, current_user)
    window = order_service.change_window(order)

    return ChangeHistoryOut(
        lead_id=order.lead_id,
        address_changes=[build_change_log_response(c) for c in order.change_logs if c.field == ChangeField.ADDRESS],
        date_changes=[build_change_log_response(c) for c in order.change_logs if c.field == ChangeField.DELIVERY_DATE],
        can_make_changes=window.allowed,
        hours_elapsed=window.hours_elapsed,
        reason=window.reason,
    )


@router.get("/", response_model=List[OrderOut])
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    include_inactive: bool = Query(False),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
):
    q = filter_by_user(select(Order), Order, current_user)

    if status:
        q = q.where(Order.status == status)
    if not include_inactive or current_user.role != UserRole.ADMIN:
        q = q.where(Order.is_active.is_(True))

    q = q.order_by(Order.id.desc()).limit(limit).offset(offset)
    res = await db.execute(q)
    orders = res.scalars().all()

    return build_order_response_list(orders)


@router.get("/{lead_id}", response_model=OrderOut)
async def get_order(
    lead_id: str,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
):
    order = await load_owned_order(db, lead_id, current_user)
    return build_order_response(order)


@router.get("/{lead_id}/history", response_model=List[StatusEventOut])
async def status_history(
    lead_id: str,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
):
    order = await load_owned_order(db, lead_id, current_user)
    return [build_status_event_response(event) for event in order.status_events]
