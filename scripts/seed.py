"""
Seed a demo truck owner, truck and menu for local development.

Run from project root: python scripts/seed.py [--province ON]
Prints the truck id to pass to scripts/simulate.py.
"""

import argparse
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from qrtruck.core.config import setup_logging
from qrtruck.core.security import hash_password
from qrtruck.database import async_session_maker, engine, init_db
from qrtruck.models import FoodTruck, MenuItem, Province, User, UserRole
from qrtruck.services.pricing import get_tax_rate
from qrtruck.services.qr import generate_truck_qr_data_url, truck_menu_url

if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

DEMO_EMAIL = "demo-owner@example.com"
DEMO_PASSWORD = "demo-password"

DEMO_MENU = [
    ("Tacos", "Carne Asada Taco", "Grilled steak, onion, cilantro", 4.50),
    ("Tacos", "Al Pastor Taco", "Marinated pork with pineapple", 4.25),
    ("Tacos", "Baja Fish Taco", "Beer-battered cod, chipotle slaw", 5.00),
    ("Burritos", "Chicken Burrito", "Rice, beans, pico de gallo", 12.99),
    ("Burritos", "Veggie Burrito", "Roasted peppers, black beans, guacamole", 11.49),
    ("Sides", "Chips & Guac", "Made to order", 6.50),
    ("Sides", "Elote", "Street corn with cotija", 5.25),
    ("Drinks", "Horchata", "House-made", 3.75),
    ("Drinks", "Jarritos", "Assorted flavours", 3.00),
]


async def seed(province: Province) -> FoodTruck:
    await init_db()

    async with async_session_maker() as db:
        result = await db.execute(select(User).where(User.email == DEMO_EMAIL))
        owner = result.scalar_one_or_none()
        if owner is None:
            owner = User(
                email=DEMO_EMAIL,
                name="Demo Owner",
                password_hash=hash_password(DEMO_PASSWORD),
                role=UserRole.TRUCK_OWNER,
            )
            db.add(owner)
            await db.flush()

        truck = FoodTruck(
            owner_id=owner.id,
            name="Taco Loco",
            description="Street tacos and burritos",
            address="100 Queen St W",
            province=province,
            tax_rate=float(get_tax_rate(province)),
        )
        db.add(truck)
        await db.flush()
        truck.qr_code_url = generate_truck_qr_data_url(truck.id)

        for position, (category, name, description, price) in enumerate(DEMO_MENU):
            db.add(MenuItem(
                truck_id=truck.id,
                name=name,
                description=description,
                price=price,
                category=category,
                sort_order=position,
            ))

        await db.commit()
        await db.refresh(truck)

    await engine.dispose()

    print("=" * 60)
    print("🌱 DEMO DATA SEEDED")
    print("=" * 60)
    print(f"   Owner: {DEMO_EMAIL} / {DEMO_PASSWORD}")
    print(f"   Truck: {truck.name} ({truck.province.value}, tax {truck.tax_rate:.3f})")
    print(f"   Truck ID: {truck.id}")
    print(f"   Menu: {len(DEMO_MENU)} items")
    print(f"   Storefront: {truck_menu_url(truck.id)}")
    print("=" * 60)
    return truck


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed demo data")
    parser.add_argument("--province", default="ON", choices=[p.value for p in Province])
    args = parser.parse_args()

    setup_logging()
    asyncio.run(seed(Province(args.province)))
