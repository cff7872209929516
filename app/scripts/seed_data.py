# scripts/seed_data.py
"""
Demo bootstrap: one restaurant with a few tables, a supplier and stocked
inventory items. Safe to run repeatedly; existing records are left alone.

    python -m app.scripts.seed_data
"""
import asyncio
import logging
from decimal import Decimal

from tortoise.exceptions import DBConnectionError

from app.core.config import SEED_MAX_ATTEMPTS, SEED_RETRY_DELAY
from app.core.db import close_db, init_db
from app.core.permissions import Actor, Role
from app.models.inventory import InventoryItem, Supplier
from app.models.reservation import Table
from app.models.restaurant import Restaurant
from app.schemas.inventory import InventoryItemCreateRequest, SupplierCreateRequest
from app.schemas.reservation import TableCreateRequest
from app.schemas.restaurant import RestaurantRequest
from app.services.inventory_service import create_inventory_item, create_supplier
from app.services.reservation_service import create_table
from app.services.restaurant_service import create_restaurant

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger(__name__)

SEED_ACTOR = Actor(id="seed-admin", role=Role.ADMIN)
DEMO_OWNER_ID = "owner-demo"

TABLES = [
    {"table_number": "T1", "capacity": 2, "location": "Window"},
    {"table_number": "T2", "capacity": 4, "location": "Main hall"},
    {"table_number": "T3", "capacity": 6, "location": "Terrace"},
]

ITEMS = [
    {"name": "Basmati Rice", "category": "Grains", "unit": "kg", "quantity": "50", "unit_price": "2.40", "threshold": "10", "sku": "RICE-001"},
    {"name": "Paneer", "category": "Dairy", "unit": "kg", "quantity": "12", "unit_price": "8.75", "threshold": "5", "sku": "DAIRY-001"},
    {"name": "Sunflower Oil", "category": "Oils", "unit": "l", "quantity": "20", "unit_price": "3.10", "threshold": "4", "sku": "OIL-001"},
]


async def connect():
    """Connects to the database, retrying a bounded number of times while it starts up."""
    for attempt in range(1, SEED_MAX_ATTEMPTS + 1):
        try:
            await init_db()
            return
        except (DBConnectionError, OSError) as e:
            if attempt == SEED_MAX_ATTEMPTS:
                raise
            log.warning(f"Database not ready (attempt {attempt}/{SEED_MAX_ATTEMPTS}): {e}")
            await asyncio.sleep(SEED_RETRY_DELAY)


async def seed():
    restaurant = await Restaurant.get_or_none(name="Demo Restaurant")
    if not restaurant:
        restaurant = await create_restaurant(
            RestaurantRequest(name="Demo Restaurant", owner_id=DEMO_OWNER_ID), SEED_ACTOR
        )
    log.info(f"Restaurant: {restaurant.id}")

    for table in TABLES:
        if not await Table.exists(restaurant_id=restaurant.id, table_number=table["table_number"]):
            await create_table(TableCreateRequest(restaurant_id=restaurant.id, **table), SEED_ACTOR)

    supplier = await Supplier.get_or_none(email="orders@freshfarm.example")
    if not supplier:
        supplier = await create_supplier(
            SupplierCreateRequest(
                name="Fresh Farm Supplies",
                contact_name="Asha Rao",
                phone="+91 98450 00000",
                email="orders@freshfarm.example",
                address="12 Market Road, Bengaluru",
            ),
            SEED_ACTOR,
        )

    for item in ITEMS:
        if await InventoryItem.exists(restaurant_id=restaurant.id, sku=item["sku"]):
            continue
        await create_inventory_item(
            InventoryItemCreateRequest(
                restaurant_id=restaurant.id,
                supplier_id=supplier.id,
                name=item["name"],
                category=item["category"],
                unit=item["unit"],
                quantity=Decimal(item["quantity"]),
                unit_price=Decimal(item["unit_price"]),
                threshold=Decimal(item["threshold"]),
                sku=item["sku"],
            ),
            SEED_ACTOR,
        )

    log.info("Demo data seeded.")


async def main():
    await connect()
    try:
        await seed()
    finally:
        await close_db()

if __name__ == "__main__":
    asyncio.run(main())
