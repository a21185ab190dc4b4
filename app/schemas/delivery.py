from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from app.core.enums import DeliveryStatus


class DeliveryConfig(BaseModel):
    base_delivery_charge: float = Field(0.0, ge=0)
    per_km_charge: float = Field(0.0, ge=0)
    minimum_order: float = Field(0.0, ge=0)
    free_delivery_threshold: float = Field(0.0, ge=0)
    free_delivery_radius: float = Field(0.0, ge=0)
    max_delivery_radius: float = Field(0.0, ge=0)

    @classmethod
    def from_offer(cls, offer) -> "DeliveryConfig":
        return cls(
            base_delivery_charge=offer.base_delivery_charge or 0.0,
            per_km_charge=offer.per_km_charge or 0.0,
            minimum_order=offer.minimum_order or 0.0,
            free_delivery_threshold=offer.free_delivery_threshold or 0.0,
            free_delivery_radius=offer.free_delivery_radius or 0.0,
            max_delivery_radius=offer.max_delivery_radius or 0.0,
        )


class DeliveryCharge(BaseModel):
    distance_km: float
    charge: float
    is_free: bool
    is_available: bool
    reason: Optional[str] = None


class DeliveryEstimate(BaseModel):
    label: str
    description: str
    days: int


class ItemDeliveryQuote(BaseModel):
    warehouse_offer_id: Optional[int] = None
    warehouse_name: Optional[str] = None
    distance_km: Optional[float] = None
    charge: float = 0.0
    is_free: bool = False
    is_available: bool = False
    reason: Optional[str] = None
    estimated_days: Optional[int] = None
    distance_category: Optional[str] = None


class CartDeliveryQuote(BaseModel):
    items: List[ItemDeliveryQuote]
    total_charge: float
    max_distance_km: float
    estimated_days: int


class DeliveryStatusUpdate(BaseModel):
    status: DeliveryStatus
    remarks: Optional[str] = None


class FleetUpdate(BaseModel):
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    driver_license_no: Optional[str] = None
    truck_number: Optional[str] = None
    vehicle_type: Optional[str] = None
    capacity_tons: Optional[float] = Field(None, ge=0)
    start_time: Optional[datetime] = None
    estimated_arrival: Optional[datetime] = None
    last_location: Optional[str] = None
    delivery_notes: Optional[str] = None


class DeliveryOut(BaseModel):
    lead_id: str
    invoice_number: str
    status: DeliveryStatus
    tracking_number: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    driver_license_no: Optional[str] = None
    truck_number: Optional[str] = None
    vehicle_type: Optional[str] = None
    capacity_tons: Optional[float] = None
    start_time: Optional[datetime] = None
    estimated_arrival: Optional[datetime] = None
    actual_delivery_date: Optional[datetime] = None
    last_location: Optional[str] = None
    delivery_notes: Optional[str] = None
    updated_at: Optional[datetime] = None
