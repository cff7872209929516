import pytest

from tortoise.exceptions import IntegrityError

from app.core.errors import Conflict, Forbidden
from app.models.restaurant import StaffAssignment
from app.schemas.restaurant import RestaurantRequest, StaffAssignmentRequest
from app.services.restaurant_service import assign_staff, create_restaurant


class TestRestaurantRecords:
    @pytest.mark.asyncio
    async def test_owner_always_owns_what_they_create(self, db, owner):
        restaurant = await create_restaurant(RestaurantRequest(name="Mine", owner_id="someone-else"), owner)
        assert restaurant.owner_id == owner.id

    @pytest.mark.asyncio
    async def test_admin_names_the_owner(self, db, admin):
        restaurant = await create_restaurant(RestaurantRequest(name="Theirs", owner_id="owner-9"), admin)
        assert restaurant.owner_id == "owner-9"

    @pytest.mark.asyncio
    async def test_duplicate_staff_assignment(self, restaurant, owner, staff):
        with pytest.raises(Conflict):
            await assign_staff(restaurant.id, StaffAssignmentRequest(user_id=staff.id), owner)

    @pytest.mark.asyncio
    async def test_staff_cannot_assign_staff(self, restaurant, staff):
        with pytest.raises(Forbidden):
            await assign_staff(restaurant.id, StaffAssignmentRequest(user_id="staff-2"), staff)

    @pytest.mark.asyncio
    async def test_concurrent_assignment_is_a_conflict(self, restaurant, owner, monkeypatch):
        async def lost_race(*args, **kwargs):
            raise IntegrityError("UNIQUE constraint failed")

        monkeypatch.setattr(StaffAssignment, "create", lost_race)
        with pytest.raises(Conflict):
            await assign_staff(restaurant.id, StaffAssignmentRequest(user_id="staff-2"), owner)
