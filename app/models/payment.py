from sqlalchemy import Column, String, Float, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from app.models.base import BaseModel
from app.core.enums import PaymentStatus, PaymentType, PaymentMode


class PaymentRecord(BaseModel):
    __tablename__ = "order_payments"

    order_id = Column(ForeignKey("orders.id"), unique=True, nullable=False)
    lead_id = Column(String(40), nullable=False, index=True)
    invoice_number = Column(String(40), unique=True, nullable=False, index=True)
    customer_id = Column(ForeignKey("users.id"), nullable=False)

    payment_type = Column(Enum(PaymentType), nullable=False)
    payment_mode = Column(Enum(PaymentMode), nullable=False)
    status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)

    order_amount = Column(Float, nullable=False)
    paid_amount = Column(Float, nullable=False, default=0.0)
    refund_amount = Column(Float, nullable=False, default=0.0)

    transaction_id = Column(String(40), unique=True, nullable=False)
    gateway_transaction_id = Column(String(80), nullable=True)
    utr_number = Column(String(40), nullable=True)
    payment_date = Column(DateTime(timezone=True), nullable=True)
    failure_reason = Column(String(500), nullable=True)
    remarks = Column(String(500), nullable=True)

    refund_reason = Column(String(500), nullable=True)
    refund_utr = Column(String(40), nullable=True)
    refund_date = Column(DateTime(timezone=True), nullable=True)

    order = relationship("Order", back_populates="payment")

    @property
    def net_amount(self) -> float:
        return round((self.paid_amount or 0.0) - (self.refund_amount or 0.0), 2)
