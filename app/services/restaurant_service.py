import logging
from uuid import UUID

from tortoise.exceptions import IntegrityError

from app.core.errors import Conflict, NotFound
from app.core.permissions import Action, Actor, authorize, ensure_restaurant_access
from app.models.restaurant import Restaurant, StaffAssignment
from app.schemas.restaurant import RestaurantRequest, StaffAssignmentRequest

log = logging.getLogger(__name__)


async def create_restaurant(data: RestaurantRequest, actor: Actor) -> Restaurant:
    """Owners always own what they create; admins may name another owner."""
    authorize(actor, Action.RESTAURANT_CREATE)
    owner_id = data.owner_id if actor.is_admin and data.owner_id else actor.id

    restaurant = await Restaurant.create(name=data.name, owner_id=owner_id, is_active=data.is_active)
    log.info(f"Restaurant '{restaurant.name}' created for owner {owner_id}.")
    return restaurant


async def get_restaurant(restaurant_id: UUID) -> Restaurant:
    restaurant = await Restaurant.get_or_none(id=restaurant_id)
    if not restaurant:
        raise NotFound(f"Restaurant with ID {restaurant_id} not found")
    return restaurant


async def assign_staff(restaurant_id: UUID, data: StaffAssignmentRequest, actor: Actor) -> StaffAssignment:
    authorize(actor, Action.RESTAURANT_ASSIGN_STAFF)
    restaurant = await ensure_restaurant_access(actor, restaurant_id)

    if await StaffAssignment.exists(restaurant_id=restaurant.id, user_id=data.user_id):
        raise Conflict("User is already assigned to this restaurant")

    try:
        assignment = await StaffAssignment.create(restaurant=restaurant, user_id=data.user_id)
    except IntegrityError:
        raise Conflict("User is already assigned to this restaurant")
    log.info(f"User {data.user_id} assigned to restaurant {restaurant.id}.")
    return assignment
