from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from app.core.enums import PaymentStatus, PaymentType, PaymentMode


class PaymentIn(BaseModel):
    payment_type: PaymentType
    payment_mode: PaymentMode
    amount: Optional[float] = Field(None, ge=0)
    utr_number: Optional[str] = None
    gateway_transaction_id: Optional[str] = None
    remarks: Optional[str] = None


class PaymentConfirm(BaseModel):
    gateway_transaction_id: Optional[str] = None
    utr_number: Optional[str] = None
    remarks: Optional[str] = None


class PaymentFail(BaseModel):
    reason: Optional[str] = None


class RefundIn(BaseModel):
    amount: float
    reason: str
    refund_utr: Optional[str] = None


class PaymentOut(BaseModel):
    lead_id: str
    invoice_number: str
    transaction_id: str
    payment_type: PaymentType
    payment_mode: PaymentMode
    status: PaymentStatus
    order_amount: float
    paid_amount: float
    refund_amount: float
    net_amount: float
    utr_number: Optional[str] = None
    gateway_transaction_id: Optional[str] = None
    payment_date: Optional[datetime] = None
    failure_reason: Optional[str] = None
    refund_reason: Optional[str] = None
    refund_date: Optional[datetime] = None
