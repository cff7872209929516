import os
import sys
from datetime import date, timedelta

import pytest
import pytest_asyncio

# Add app to path
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from app.core.db import close_db, init_db
from app.core.permissions import Actor, Role
from app.models.reservation import Table
from app.models.restaurant import Restaurant, StaffAssignment

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite://:memory:"


@pytest_asyncio.fixture
async def db():
    """Fresh schema per test."""
    await init_db(TEST_DATABASE_URL)
    yield
    await close_db()


@pytest.fixture
def admin():
    return Actor(id="admin-1", role=Role.ADMIN)


@pytest.fixture
def owner():
    return Actor(id="owner-1", role=Role.RESTAURANT_OWNER)


@pytest.fixture
def staff():
    return Actor(id="staff-1", role=Role.RESTAURANT_STAFF)


@pytest.fixture
def customer():
    return Actor(id="customer-1", role=Role.CUSTOMER)


@pytest.fixture
def booking_date():
    return date.today() + timedelta(days=3)


@pytest_asyncio.fixture
async def restaurant(db, owner, staff):
    restaurant = await Restaurant.create(name="Test Bistro", owner_id=owner.id)
    await StaffAssignment.create(restaurant=restaurant, user_id=staff.id)
    return restaurant


@pytest_asyncio.fixture
async def other_restaurant(db):
    return await Restaurant.create(name="Other Place", owner_id="owner-2")


@pytest_asyncio.fixture
async def table(restaurant):
    return await Table.create(restaurant=restaurant, table_number="T1", capacity=4)
