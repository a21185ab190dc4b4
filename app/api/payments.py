from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.db.session import get_db
from app.schemas.payment import PaymentIn, PaymentConfirm, PaymentFail, RefundIn, PaymentOut
from app.core.security import get_current_user, require_admin
from app.core.audit_decorator import audit_log
from app.core.rate_limit import check_rate_limit
from app.core.auth_utils import check_not_found
from app.core.enums import AuditAction
from app.core.response_builders import build_payment_response
from app.api.deps import get_dispatcher, load_owned_order, actor_for
from app.services import payments as payment_service
from app.services.orders import load_order
from app.services.outbox import record_side_effects
from app.utils.idempotency import idempotency_key, get_idempotent, set_idempotent

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/{lead_id}", response_model=PaymentOut)
@audit_log(AuditAction.RECORD_PAYMENT)
async def submit_payment(
    lead_id: str,
    payload: PaymentIn,
    idempotency_key_header: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
):
    """Record a payment for an accepted order. An admin confirms it afterwards."""
    await check_rate_limit(int(current_user.id))

    idem_key = idempotency_key("payment", lead_id, idempotency_key_header)
    cached = await get_idempotent(idem_key)
    if cached:
        return cached

    order = await load_owned_order(db, lead_id, current_user)
    record = payment_service.record_payment(
        order,
        payload.payment_type,
        payload.payment_mode,
        amount=payload.amount,
        utr_number=payload.utr_number,
        gateway_transaction_id=payload.gateway_transaction_id,
        remarks=payload.remarks,
    )
    await db.commit()

    response = build_payment_response(record)
    await set_idempotent(idem_key, response.model_dump(mode="json"))
    return response


@router.post("/{lead_id}/confirm", response_model=PaymentOut)
@audit_log(AuditAction.CONFIRM_PAYMENT)
async def confirm_payment(
    lead_id: str,
    payload: PaymentConfirm,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(require_admin),
    dispatch=Depends(get_dispatcher),
):
    """Settle the payment and move the order to payment_done, queuing the sales order."""
    await check_rate_limit(int(current_user.id))

    order = await load_order(db, lead_id)
    result = payment_service.settle_payment(
        order,
        actor_for(current_user),
        user_id=int(current_user.id),
        gateway_transaction_id=payload.gateway_transaction_id,
        utr_number=payload.utr_number,
        remarks=payload.remarks,
    )
    effects = await record_side_effects(db, order, result.unlocked)
    await db.commit()
    dispatch([effect.id for effect in effects])

    return build_payment_response(order.payment)


@router.post("/{lead_id}/fail", response_model=PaymentOut)
@audit_log(AuditAction.CONFIRM_PAYMENT)
async def fail_payment(
    lead_id: str,
    payload: PaymentFail,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(require_admin),
):
    await check_rate_limit(int(current_user.id))

    order = await load_order(db, lead_id)
    check_not_found(order.payment, "Payment", lead_id)
    payment_service.mark_failed(order.payment, payload.reason)
    await db.commit()

    return build_payment_response(order.payment)


@router.post("/{lead_id}/refund", response_model=PaymentOut)
@audit_log(AuditAction.REFUND_PAYMENT)
async def refund_payment(
    lead_id: str,
    payload: RefundIn,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(require_admin),
):
    await check_rate_limit(int(current_user.id))

    order = await load_order(db, lead_id)
    check_not_found(order.payment, "Payment", lead_id)
    payment_service.process_refund(order.payment, payload.amount, payload.reason, payload.refund_utr)
    await db.commit()

    return build_payment_response(order.payment)


@router.get("/{lead_id}", response_model=PaymentOut)
async def get_payment(
    lead_id: str,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
):
    order = await load_owned_order(db, lead_id, current_user)
    check_not_found(order.payment, "Payment", lead_id)
    return build_payment_response(order.payment)
