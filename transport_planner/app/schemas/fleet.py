"""
Fleet reference data schemas: drivers, vehicles, customers, routes.
"""

from pydantic import BaseModel, Field
from datetime import time, datetime
from typing import Optional
from transport_planner.app.models.route_enums import RouteStatus, DriverStatus, VehicleStatus, CustomerStatus


class DriverCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    phone: Optional[str] = Field(None, max_length=50)
    email: Optional[str] = Field(None, max_length=255)
    license_number: Optional[str] = Field(None, max_length=100)


class DriverResponse(BaseModel):
    id: int
    driver_code: Optional[str]
    name: str
    phone: Optional[str]
    email: Optional[str]
    license_number: Optional[str]
    status: DriverStatus

    class Config:
        from_attributes = True


class VehicleCreate(BaseModel):
    plate_number: str = Field(..., min_length=1, max_length=50)
    vehicle_type: Optional[str] = Field(None, max_length=50)
    brand: Optional[str] = Field(None, max_length=100)
    model: Optional[str] = Field(None, max_length=100)
    year: Optional[int] = Field(None, ge=1950, le=2100)
    capacity: Optional[int] = Field(None, ge=0)


class VehicleResponse(BaseModel):
    id: int
    vehicle_code: Optional[str]
    plate_number: str
    vehicle_type: Optional[str]
    brand: Optional[str]
    model: Optional[str]
    year: Optional[int]
    capacity: Optional[int]
    status: VehicleStatus

    class Config:
        from_attributes = True


class CustomerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    contact_person: Optional[str] = Field(None, max_length=200)
    phone: Optional[str] = Field(None, max_length=50)
    email: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = None


class CustomerResponse(BaseModel):
    id: int
    customer_code: Optional[str]
    name: str
    contact_person: Optional[str]
    phone: Optional[str]
    email: Optional[str]
    address: Optional[str]
    status: CustomerStatus

    class Config:
        from_attributes = True


class RouteCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, description="Route name")
    description: Optional[str] = None
    customer_id: Optional[int] = None

    origin_name: Optional[str] = Field(None, max_length=200)
    origin_lat: Optional[float] = Field(None, ge=-90, le=90, description="Origin latitude")
    origin_lng: Optional[float] = Field(None, ge=-180, le=180, description="Origin longitude")

    destination_name: Optional[str] = Field(None, max_length=200)
    destination_lat: Optional[float] = Field(None, ge=-90, le=90, description="Destination latitude")
    destination_lng: Optional[float] = Field(None, ge=-180, le=180, description="Destination longitude")

    estimated_distance_km: Optional[float] = Field(None, ge=0)
    estimated_duration_minutes: Optional[int] = Field(None, ge=0)
    default_standby_time: Optional[time] = None
    default_departure_time: Optional[time] = None
    region: Optional[str] = Field(None, max_length=100)
    subcontractor: Optional[str] = Field(None, max_length=200)


class RouteResponse(BaseModel):
    id: int
    route_code: Optional[str]
    name: str
    description: Optional[str]
    customer_id: Optional[int]
    origin_name: Optional[str]
    origin_lat: Optional[float]
    origin_lng: Optional[float]
    destination_name: Optional[str]
    destination_lat: Optional[float]
    destination_lng: Optional[float]
    estimated_distance_km: Optional[float]
    estimated_duration_minutes: Optional[int]
    default_standby_time: Optional[time]
    default_departure_time: Optional[time]
    region: Optional[str]
    status: RouteStatus
    created_at: datetime

    class Config:
        from_attributes = True
