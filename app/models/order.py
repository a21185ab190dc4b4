from sqlalchemy import Column, String, Float, Integer, Boolean, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from app.models.base import BaseModel
from app.core.enums import OrderStatus, ChangeActor, ChangeField

EXTERNAL_ID_FIELDS = (
    "external_quote_id",
    "external_sales_order_id",
    "external_invoice_id",
    "external_payment_id",
)


class Order(BaseModel):
    __tablename__ = "orders"

    lead_id = Column(String(40), unique=True, nullable=False, index=True)
    invoice_number = Column(String(40), unique=True, nullable=False, index=True)

    customer_id = Column(ForeignKey("users.id"), nullable=False, index=True)
    vendor_id = Column(ForeignKey("users.id"), nullable=True)

    status = Column(Enum(OrderStatus), default=OrderStatus.PENDING, nullable=False)

    total_quantity = Column(Integer, nullable=False, default=0)
    items_total = Column(Float, nullable=False, default=0.0)
    delivery_charge = Column(Float, nullable=False, default=0.0)
    promo_discount = Column(Float, nullable=False, default=0.0)
    total_amount = Column(Float, nullable=False, default=0.0)

    delivery_address = Column(String(500), nullable=True)
    delivery_pincode = Column(String(10), nullable=True)
    delivery_expected_date = Column(DateTime(timezone=True), nullable=True)
    placed_at = Column(DateTime(timezone=True), nullable=True)

    notification_email = Column(String(120), nullable=True)
    receiver_name = Column(String(120), nullable=True)
    receiver_mobile = Column(String(40), nullable=True)

    # set at most once, see services.document_sync
    external_quote_id = Column(String(64), nullable=True)
    external_sales_order_id = Column(String(64), nullable=True)
    external_invoice_id = Column(String(64), nullable=True)
    external_payment_id = Column(String(64), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)

    customer = relationship("User", foreign_keys=[customer_id], lazy="selectin")
    vendor = relationship("User", foreign_keys=[vendor_id], lazy="selectin")

    items = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    change_logs = relationship(
        "OrderChangeLog",
        back_populates="order",
        order_by="OrderChangeLog.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    status_events = relationship(
        "OrderStatusEvent",
        back_populates="order",
        order_by="OrderStatusEvent.id",
        lazy="selectin",
    )
    payment = relationship("PaymentRecord", back_populates="order", uselist=False, lazy="selectin")
    delivery = relationship("DeliveryRecord", back_populates="order", uselist=False, lazy="selectin")


class OrderItem(BaseModel):
    __tablename__ = "order_items"

    order_id = Column(ForeignKey("orders.id"), nullable=False, index=True)
    item_id = Column(ForeignKey("inventory_items.id"), nullable=False)
    item_name = Column(String(160), nullable=False)
    description = Column(String(500), nullable=True)

    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Float, nullable=False)

    warehouse_offer_id = Column(ForeignKey("warehouse_offers.id"), nullable=True)
    warehouse_name = Column(String(160), nullable=True)
    distance_km = Column(Float, nullable=True)
    delivery_charge = Column(Float, nullable=False, default=0.0)
    delivery_available = Column(Boolean, nullable=False, default=True)
    delivery_reason = Column(String(120), nullable=True)
    estimated_days = Column(Integer, nullable=True)

    order = relationship("Order", back_populates="items")
    inventory_item = relationship("InventoryItem", lazy="selectin")

    @property
    def line_total(self) -> float:
        return round(self.quantity * self.unit_price, 2)


class OrderChangeLog(BaseModel):
    """Append-only record of a delivery address or expected date edit."""

    __tablename__ = "order_change_logs"

    order_id = Column(ForeignKey("orders.id"), nullable=False, index=True)
    field = Column(Enum(ChangeField), nullable=False)
    old_value = Column(String(500), nullable=True)
    new_value = Column(String(500), nullable=False)
    changed_by = Column(Enum(ChangeActor), nullable=False)
    changed_by_user_id = Column(ForeignKey("users.id"), nullable=True)
    reason = Column(String(500), nullable=True)

    order = relationship("Order", back_populates="change_logs")


# mappers referenced by name above
from app.models import user, inventory, order_status, payment, delivery  # noqa: E402,F401
