from sqlalchemy import Column, String, ForeignKey, Enum, event
from sqlalchemy.orm import relationship
from app.models.base import BaseModel
from app.core.enums import OrderStatus, ChangeActor


class OrderStatusEvent(BaseModel):
    """One row per status transition. Rows are never updated or deleted."""

    __tablename__ = "order_status_events"

    order_id = Column(ForeignKey("orders.id"), nullable=False, index=True)
    lead_id = Column(String(40), nullable=False, index=True)
    invoice_number = Column(String(40), nullable=False)
    vendor_id = Column(ForeignKey("users.id"), nullable=True)

    previous_status = Column(Enum(OrderStatus), nullable=True)
    status = Column(Enum(OrderStatus), nullable=False)
    changed_by = Column(Enum(ChangeActor), nullable=False)
    changed_by_user_id = Column(ForeignKey("users.id"), nullable=True)
    remarks = Column(String(500), nullable=True)

    order = relationship("Order", back_populates="status_events")


@event.listens_for(OrderStatusEvent, "before_update")
def _reject_update(mapper, connection, target):
    raise ValueError("Order status events are append-only")


@event.listens_for(OrderStatusEvent, "before_delete")
def _reject_delete(mapper, connection, target):
    raise ValueError("Order status events are append-only")
