from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from app.core.enums import OrderStatus, ChangeActor, ChangeField, DocumentKind
from app.schemas.delivery import ItemDeliveryQuote, FleetUpdate


class CartCreate(BaseModel):
    item_id: int
    quantity: int = Field(..., ge=1)
    pincode: str


class CartItemAdd(BaseModel):
    item_id: int
    quantity: int = Field(..., ge=1)


class PlaceOrderIn(BaseModel):
    delivery_address: str = Field(..., min_length=1, max_length=500)
    delivery_pincode: Optional[str] = None
    expected_date: Optional[datetime] = None
    receiver_name: Optional[str] = None
    receiver_mobile: Optional[str] = None
    notification_email: Optional[str] = None


class StatusUpdate(BaseModel):
    # validated by the status machine so unknown values surface as InvalidTransition
    status: str
    remarks: Optional[str] = None
    fleet: Optional[FleetUpdate] = None


class AddressChange(BaseModel):
    delivery_address: str = Field(..., min_length=1, max_length=500)
    reason: Optional[str] = None


class DeliveryDateChange(BaseModel):
    delivery_expected_date: datetime
    reason: Optional[str] = None


class OrderItemOut(BaseModel):
    id: int
    item_id: int
    item_name: str
    quantity: int
    unit_price: float
    line_total: float
    warehouse_name: Optional[str] = None
    distance_km: Optional[float] = None
    delivery_charge: float
    delivery_available: bool
    delivery_reason: Optional[str] = None
    estimated_days: Optional[int] = None


class OrderOut(BaseModel):
    lead_id: str
    invoice_number: str
    status: OrderStatus
    customer_id: int
    vendor_id: Optional[int] = None
    items: List[OrderItemOut]
    total_quantity: int
    items_total: float
    delivery_charge: float
    promo_discount: float
    total_amount: float
    delivery_address: Optional[str] = None
    delivery_pincode: Optional[str] = None
    delivery_expected_date: Optional[datetime] = None
    placed_at: Optional[datetime] = None
    receiver_name: Optional[str] = None
    receiver_mobile: Optional[str] = None
    notification_email: Optional[str] = None
    external_quote_id: Optional[str] = None
    external_sales_order_id: Optional[str] = None
    external_invoice_id: Optional[str] = None
    external_payment_id: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None


class CartOut(BaseModel):
    order: OrderOut
    delivery: ItemDeliveryQuote


class TransitionOut(BaseModel):
    lead_id: str
    previous_status: Optional[OrderStatus] = None
    status: OrderStatus
    unlocked: List[DocumentKind]


class StatusEventOut(BaseModel):
    previous_status: Optional[OrderStatus] = None
    status: OrderStatus
    changed_by: ChangeActor
    remarks: Optional[str] = None
    created_at: datetime


class ChangeLogOut(BaseModel):
    field: ChangeField
    old_value: Optional[str] = None
    new_value: str
    changed_by: ChangeActor
    reason: Optional[str] = None
    created_at: datetime


class ChangeHistoryOut(BaseModel):
    lead_id: str
    address_changes: List[ChangeLogOut]
    date_changes: List[ChangeLogOut]
    can_make_changes: bool
    hours_elapsed: Optional[float] = None
    reason: Optional[str] = None
