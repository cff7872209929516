import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status

from app.api.deps import get_current_actor
from app.core.permissions import Actor
from app.schemas.response import SuccessResponse
from app.schemas.restaurant import (
    RestaurantRequest,
    RestaurantResponse,
    StaffAssignmentRequest,
    StaffAssignmentResponse,
)
from app.services.restaurant_service import assign_staff, create_restaurant, get_restaurant

router = APIRouter()
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger("uvicorn")


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_restaurant_endpoint(request_data: RestaurantRequest, actor: Actor = Depends(get_current_actor)):
    """Registers a restaurant. Owners always own what they create; admins may name the owner."""
    restaurant = await create_restaurant(request_data, actor)
    log.info(f"Restaurant {restaurant.id} created by {actor.id}.")
    return SuccessResponse(data=RestaurantResponse.model_validate(restaurant).model_dump())


@router.get("/{restaurant_id}", response_model=SuccessResponse)
async def get_restaurant_endpoint(restaurant_id: UUID, actor: Actor = Depends(get_current_actor)):
    restaurant = await get_restaurant(restaurant_id)
    return SuccessResponse(data=RestaurantResponse.model_validate(restaurant).model_dump())


@router.post("/{restaurant_id}/staff", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def assign_staff_endpoint(
    restaurant_id: UUID,
    request_data: StaffAssignmentRequest,
    actor: Actor = Depends(get_current_actor),
):
    """Attaches a staff member to the restaurant, granting them its staff-level actions."""
    assignment = await assign_staff(restaurant_id, request_data, actor)
    return SuccessResponse(data=StaffAssignmentResponse.model_validate(assignment).model_dump())
