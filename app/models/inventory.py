from sqlalchemy import Column, String, Float, Integer, Boolean, ForeignKey, Enum
from sqlalchemy.orm import relationship
from app.models.base import BaseModel
from app.core.enums import ItemCategory


class InventoryItem(BaseModel):
    __tablename__ = "inventory_items"

    name = Column(String(160), nullable=False)
    description = Column(String(500), nullable=True)
    category = Column(Enum(ItemCategory), nullable=False, default=ItemCategory.OTHER)
    unit = Column(String(20), nullable=False, default="unit")
    unit_price = Column(Float, nullable=False)
    vendor_id = Column(ForeignKey("users.id"), nullable=True)
    # linked accounting item, used for document line items when present
    external_item_id = Column(String(64), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    vendor = relationship("User", backref="inventory_items")
    warehouse_offers = relationship(
        "WarehouseOffer",
        back_populates="item",
        order_by="WarehouseOffer.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class WarehouseOffer(BaseModel):
    """A stocking location's price and delivery policy for one item."""

    __tablename__ = "warehouse_offers"

    item_id = Column(ForeignKey("inventory_items.id"), nullable=False, index=True)
    warehouse_name = Column(String(160), nullable=False)
    city = Column(String(80), nullable=True)
    pincode = Column(String(10), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    base_delivery_charge = Column(Float, nullable=False, default=0.0)
    per_km_charge = Column(Float, nullable=False, default=0.0)
    minimum_order = Column(Float, nullable=False, default=0.0)
    free_delivery_threshold = Column(Float, nullable=False, default=0.0)
    free_delivery_radius = Column(Float, nullable=False, default=0.0)
    max_delivery_radius = Column(Float, nullable=False, default=0.0)

    stock_available = Column(Integer, nullable=False, default=0)
    stock_reserved = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    item = relationship("InventoryItem", back_populates="warehouse_offers")
