"""
Fleet reference data endpoints: drivers, vehicles, customers, routes.
"""

from fastapi import APIRouter, Depends, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from transport_planner.app.db.session import get_db
from transport_planner.app.core.guards import require_role, ALL_ROLES, PLANNERS
from transport_planner.app.models.customer import Customer
from transport_planner.app.models.driver import Driver
from transport_planner.app.models.fleet_route import Route
from transport_planner.app.models.fleet_vehicle import Vehicle
from transport_planner.app.models.route_enums import RouteStatus, DriverStatus, VehicleStatus
from transport_planner.app.schemas.fleet import (
    DriverCreate, DriverResponse, VehicleCreate, VehicleResponse,
    CustomerCreate, CustomerResponse, RouteCreate, RouteResponse
)
from transport_planner.app.services import fleet_registry

router = APIRouter(prefix="/fleet", tags=["Fleet"])


@router.post("/drivers", response_model=DriverResponse, status_code=status.HTTP_201_CREATED)
async def create_driver(
    data: DriverCreate,
    current_user: dict = Depends(require_role(PLANNERS)),
    db: AsyncSession = Depends(get_db)
):
    """Register a driver. A duplicate license number is rejected with 409."""
    return await fleet_registry.create_driver(db, data, actor=current_user)


@router.get("/drivers", response_model=List[DriverResponse])
async def list_drivers(
    status_filter: Optional[DriverStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(require_role(ALL_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    return await fleet_registry.list_entities(db, Driver, status_filter, skip, limit)


@router.post("/vehicles", response_model=VehicleResponse, status_code=status.HTTP_201_CREATED)
async def create_vehicle(
    data: VehicleCreate,
    current_user: dict = Depends(require_role(PLANNERS)),
    db: AsyncSession = Depends(get_db)
):
    """Register a vehicle. A duplicate plate number is rejected with 409."""
    return await fleet_registry.create_vehicle(db, data, actor=current_user)


@router.get("/vehicles", response_model=List[VehicleResponse])
async def list_vehicles(
    status_filter: Optional[VehicleStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(require_role(ALL_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    return await fleet_registry.list_entities(db, Vehicle, status_filter, skip, limit)


@router.post("/customers", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
async def create_customer(
    data: CustomerCreate,
    current_user: dict = Depends(require_role(PLANNERS)),
    db: AsyncSession = Depends(get_db)
):
    return await fleet_registry.create_customer(db, data, actor=current_user)


@router.get("/customers", response_model=List[CustomerResponse])
async def list_customers(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(require_role(ALL_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    return await fleet_registry.list_entities(db, Customer, None, skip, limit)


@router.post("/routes", response_model=RouteResponse, status_code=status.HTTP_201_CREATED)
async def create_route(
    data: RouteCreate,
    current_user: dict = Depends(require_role(PLANNERS)),
    db: AsyncSession = Depends(get_db)
):
    return await fleet_registry.create_route(db, data, actor=current_user)


@router.get("/routes", response_model=List[RouteResponse])
async def list_routes(
    status_filter: Optional[RouteStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(require_role(ALL_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    return await fleet_registry.list_entities(db, Route, status_filter, skip, limit)


@router.get("/routes/{route_id}", response_model=RouteResponse)
async def get_route(
    route_id: int = Path(..., description="Route ID"),
    current_user: dict = Depends(require_role(ALL_ROLES)),
    db: AsyncSession = Depends(get_db)
):
    return await fleet_registry.get_entity(db, Route, route_id)
