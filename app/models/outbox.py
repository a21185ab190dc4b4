from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Enum
from app.models.base import BaseModel
from app.core.enums import DocumentKind, SideEffectStatus


class OrderSideEffect(BaseModel):
    """Pending document-sync work, written with the status event that unlocked it."""

    __tablename__ = "order_side_effects"

    order_id = Column(ForeignKey("orders.id"), nullable=False, index=True)
    lead_id = Column(String(40), nullable=False, index=True)
    kind = Column(Enum(DocumentKind), nullable=False)
    status = Column(Enum(SideEffectStatus), nullable=False, default=SideEffectStatus.PENDING, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(String(1000), nullable=True)
    next_attempt_at = Column(DateTime(timezone=True), nullable=True)
