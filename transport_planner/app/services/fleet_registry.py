"""
Fleet reference data: drivers, vehicles, customers and routes.

Unique business keys (plate number, license number) are checked before
insert so a duplicate is reported as a 409 and nothing is written.
Human-readable codes are derived from the id after the first flush.
"""

import logging
from typing import Optional, List, Type

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from transport_planner.app.core.exceptions import DuplicateResourceError, ResourceNotFoundError
from transport_planner.app.models.audit_log import AuditOperation
from transport_planner.app.models.customer import Customer
from transport_planner.app.models.driver import Driver
from transport_planner.app.models.fleet_route import Route
from transport_planner.app.models.fleet_vehicle import Vehicle
from transport_planner.app.schemas.fleet import DriverCreate, VehicleCreate, CustomerCreate, RouteCreate
from transport_planner.app.services.audit import record_audit, snapshot

logger = logging.getLogger(__name__)


async def _ensure_unique(db: AsyncSession, model, resource: str, field: str, value) -> None:
    if value is None:
        return
    result = await db.execute(select(model.id).where(getattr(model, field) == value))
    if result.first() is not None:
        raise DuplicateResourceError(resource, field, value)


async def _insert_with_code(
    db: AsyncSession,
    instance,
    code_field: str,
    prefix: str,
    resource: str,
    unique_field: Optional[str],
    actor: Optional[dict],
):
    key_field = unique_field or code_field
    key_value = getattr(instance, key_field)
    db.add(instance)
    try:
        await db.flush()
        setattr(instance, code_field, f"{prefix}{instance.id:06d}")
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent insert of the same key
        await db.rollback()
        raise DuplicateResourceError(resource, key_field, key_value)
    await db.refresh(instance)

    await record_audit(
        db, instance.__tablename__, instance.id, AuditOperation.INSERT,
        after=snapshot(instance), actor=actor,
    )
    logger.info("Created %s %s", resource, getattr(instance, code_field))
    return instance


async def create_driver(db: AsyncSession, data: DriverCreate, actor: Optional[dict] = None) -> Driver:
    await _ensure_unique(db, Driver, "Driver", "license_number", data.license_number)
    return await _insert_with_code(
        db, Driver(**data.model_dump()), "driver_code", "DRV", "Driver", "license_number", actor
    )


async def create_vehicle(db: AsyncSession, data: VehicleCreate, actor: Optional[dict] = None) -> Vehicle:
    await _ensure_unique(db, Vehicle, "Vehicle", "plate_number", data.plate_number)
    return await _insert_with_code(
        db, Vehicle(**data.model_dump()), "vehicle_code", "VEH", "Vehicle", "plate_number", actor
    )


async def create_customer(db: AsyncSession, data: CustomerCreate, actor: Optional[dict] = None) -> Customer:
    return await _insert_with_code(
        db, Customer(**data.model_dump()), "customer_code", "CST", "Customer", None, actor
    )


async def create_route(db: AsyncSession, data: RouteCreate, actor: Optional[dict] = None) -> Route:
    if data.customer_id is not None and await db.get(Customer, data.customer_id) is None:
        raise ResourceNotFoundError("Customer", data.customer_id)
    return await _insert_with_code(
        db, Route(**data.model_dump()), "route_code", "RTE", "Route", None, actor
    )


async def list_entities(
    db: AsyncSession,
    model: Type,
    status=None,
    skip: int = 0,
    limit: int = 100,
) -> List:
    query = select(model)
    if status is not None:
        query = query.where(model.status == status)
    result = await db.execute(query.order_by(model.id).offset(skip).limit(limit))
    return result.scalars().all()


async def get_entity(db: AsyncSession, model: Type, resource_id: int):
    instance = await db.get(model, resource_id)
    if instance is None:
        raise ResourceNotFoundError(model.__name__, resource_id)
    return instance
