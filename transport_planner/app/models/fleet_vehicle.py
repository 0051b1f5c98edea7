"""
Vehicle database model.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum
from sqlalchemy.sql import func
from transport_planner.app.db.session import Base
from transport_planner.app.models.route_enums import VehicleStatus


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    vehicle_code = Column(String(20), unique=True, index=True, nullable=True)

    # Plate number is the business key
    plate_number = Column(String(50), unique=True, nullable=False, index=True)

    vehicle_type = Column(String(50), nullable=True)  # Van, Truck, Bus, Pickup, SUV
    brand = Column(String(100), nullable=True)
    model = Column(String(100), nullable=True)
    year = Column(Integer, nullable=True)
    capacity = Column(Integer, nullable=True)

    status = Column(Enum(VehicleStatus), default=VehicleStatus.ACTIVE, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Vehicle(id={self.id}, plate='{self.plate_number}', status='{self.status}')>"
