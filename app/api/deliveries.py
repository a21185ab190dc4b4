from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.schemas.delivery import DeliveryStatusUpdate, FleetUpdate, DeliveryOut
from app.core.security import get_current_user, require_admin
from app.core.audit_decorator import audit_log
from app.core.rate_limit import check_rate_limit
from app.core.auth_utils import check_not_found
from app.core.enums import AuditAction
from app.core.response_builders import build_delivery_response
from app.api.deps import load_owned_order
from app.services.delivery import ensure_delivery_record, update_delivery_status, update_fleet_info
from app.services.orders import load_order

router = APIRouter(prefix="/deliveries", tags=["deliveries"])


@router.get("/{lead_id}", response_model=DeliveryOut)
async def get_delivery(
    lead_id: str,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
):
    order = await load_owned_order(db, lead_id, current_user)
    check_not_found(order.delivery, "Delivery", lead_id)
    return build_delivery_response(order.delivery)


@router.put("/{lead_id}/status", response_model=DeliveryOut)
@audit_log(AuditAction.UPDATE_DELIVERY)
async def update_status(
    lead_id: str,
    payload: DeliveryStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(require_admin),
):
    await check_rate_limit(int(current_user.id))

    order = await load_order(db, lead_id)
    record = update_delivery_status(ensure_delivery_record(order), payload.status, payload.remarks)
    await db.commit()

    return build_delivery_response(record)


@router.put("/{lead_id}/fleet", response_model=DeliveryOut)
@audit_log(AuditAction.UPDATE_DELIVERY)
async def update_fleet(
    lead_id: str,
    payload: FleetUpdate,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(require_admin),
):
    await check_rate_limit(int(current_user.id))

    order = await load_order(db, lead_id)
    record = update_fleet_info(ensure_delivery_record(order), payload)
    await db.commit()

    return build_delivery_response(record)
