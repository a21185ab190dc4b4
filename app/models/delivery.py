from sqlalchemy import Column, String, Float, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from app.models.base import BaseModel
from app.core.enums import DeliveryStatus


class DeliveryRecord(BaseModel):
    __tablename__ = "order_deliveries"

    order_id = Column(ForeignKey("orders.id"), unique=True, nullable=False)
    lead_id = Column(String(40), nullable=False, index=True)
    invoice_number = Column(String(40), nullable=False)

    status = Column(Enum(DeliveryStatus), nullable=False, default=DeliveryStatus.PENDING)
    tracking_number = Column(String(60), nullable=True)

    driver_name = Column(String(120), nullable=True)
    driver_phone = Column(String(40), nullable=True)
    driver_license_no = Column(String(40), nullable=True)
    truck_number = Column(String(40), nullable=True)
    vehicle_type = Column(String(60), nullable=True)
    capacity_tons = Column(Float, nullable=True)

    start_time = Column(DateTime(timezone=True), nullable=True)
    estimated_arrival = Column(DateTime(timezone=True), nullable=True)
    actual_delivery_date = Column(DateTime(timezone=True), nullable=True)
    last_location = Column(String(255), nullable=True)
    delivery_notes = Column(String(500), nullable=True)

    order = relationship("Order", back_populates="delivery")
