"""
Database seeding script for development.

Creates ADMIN, PLANNER and VIEWER users, the suggestion tuning rows and a
small sample fleet. Run this script after the database is set up but
before first use.
"""

import asyncio
import sys
from datetime import time
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from transport_planner.app.db.session import AsyncSessionLocal, engine, Base
from transport_planner.app.main import app  # noqa: F401  registers every model
from transport_planner.app.models.user import User
from transport_planner.app.models.enums import UserRole
from transport_planner.app.models.suggestion_config import SuggestionConfig
from transport_planner.app.models.team_enums import ResponsibilityRole
from transport_planner.app.core.jwt import token_for_user
from transport_planner.app.schemas.fleet import CustomerCreate, DriverCreate, VehicleCreate, RouteCreate
from transport_planner.app.services import fleet_registry
from transport_planner.app.services.team import assign_responsibility
from sqlalchemy import select

# key, value, min, max, unit, description
SUGGESTION_CONFIG = [
    ("min_gap_minutes", 30, 0, 720, "minutes", "Shortest usable gap between two runs"),
    ("max_gap_minutes", 240, 1, 1440, "minutes", "Longest gap still worth consolidating"),
    ("max_distance_km", 50, 1, 500, "km", "Farthest repositioning distance considered"),
    ("distance_weight", 0.4, 0, 1, "ratio", "Weight of distance in the efficiency score"),
    ("time_weight", 0.6, 0, 1, "ratio", "Weight of gap time in the efficiency score"),
    ("traffic_factor", 1.2, 1, 3, "ratio", "Multiplier applied to free-flow travel time"),
    ("efficiency_threshold", 0.7, 0, 1, "score", "Minimum score for a suggestion"),
    ("max_suggestions_per_route", 5, 1, 50, "count", "Suggestions kept per source route"),
    ("fuel_cost_per_km", 8.5, 0, None, "currency/km", "Fuel cost used in savings estimates"),
    ("driver_hourly_rate", 150, 0, None, "currency/h", "Driver cost used in savings estimates"),
    ("average_speed_kmh", 40, 1, 130, "km/h", "Average repositioning speed"),
]


async def seed_users(db):
    result = await db.execute(select(User).where(User.username == "admin"))
    if result.scalar_one_or_none():
        print("ℹ️  ADMIN user already exists, skipping user seeding")
        return None

    users = [
        User(email="admin@transport.local", username="admin", full_name="Admin", role=UserRole.ADMIN),
        User(email="planner@transport.local", username="planner", full_name="Planner", role=UserRole.PLANNER),
        User(email="viewer@transport.local", username="viewer", full_name="Viewer", role=UserRole.VIEWER),
    ]
    db.add_all(users)
    await db.commit()

    for user in users:
        await db.refresh(user)
        print(f"✅ Created {user.role.value} user '{user.username}'")
        print(f"   dev token: {token_for_user(user)}")
    return users


async def seed_suggestion_config(db):
    result = await db.execute(select(SuggestionConfig.config_key))
    existing = set(result.scalars().all())

    created = 0
    for key, value, min_value, max_value, unit, description in SUGGESTION_CONFIG:
        if key in existing:
            continue
        db.add(SuggestionConfig(
            config_key=key, config_value=value, min_value=min_value, max_value=max_value,
            unit=unit, description=description, category="suggestion",
        ))
        created += 1
    await db.commit()
    print(f"✅ Seeded {created} suggestion config rows")


async def seed_fleet(db, planner):
    customer = await fleet_registry.create_customer(db, CustomerCreate(name="Northwind Foods"))
    await fleet_registry.create_driver(db, DriverCreate(name="Somchai K.", license_number="DL-0001"))
    await fleet_registry.create_driver(db, DriverCreate(name="Anan P.", license_number="DL-0002"))
    await fleet_registry.create_vehicle(db, VehicleCreate(plate_number="70-1234", vehicle_type="Truck"))
    await fleet_registry.create_vehicle(db, VehicleCreate(plate_number="70-5678", vehicle_type="Van"))

    morning = await fleet_registry.create_route(db, RouteCreate(
        name="Warehouse to City Market", customer_id=customer.id,
        origin_name="Central Warehouse", origin_lat=13.7563, origin_lng=100.5018,
        destination_name="City Market", destination_lat=13.7367, destination_lng=100.5231,
        estimated_duration_minutes=90,
        default_standby_time=time(5, 30), default_departure_time=time(6, 0),
    ))
    afternoon = await fleet_registry.create_route(db, RouteCreate(
        name="City Market Depot Run", customer_id=customer.id,
        origin_name="City Market Depot", origin_lat=13.7400, origin_lng=100.5300,
        destination_name="Central Warehouse", destination_lat=13.7563, destination_lng=100.5018,
        estimated_duration_minutes=75,
        default_standby_time=time(8, 0), default_departure_time=time(8, 30),
    ))
    print(f"✅ Created routes {morning.route_code} and {afternoon.route_code}")

    if planner is not None:
        for route in (morning, afternoon):
            await assign_responsibility(db, route.id, planner.id, ResponsibilityRole.PRIMARY)
        print(f"✅ Planner '{planner.username}' is responsible for both routes")


async def seed():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting seeding...")
        users = await seed_users(db)
        await seed_suggestion_config(db)
        if users is not None:
            await seed_fleet(db, users[1])
        print("\n🎉 Seeding completed successfully!")


if __name__ == "__main__":
    asyncio.run(seed())
