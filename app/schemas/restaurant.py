import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RestaurantRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Name of the restaurant.")
    owner_id: Optional[str] = Field(None, max_length=64, description="Owner's user id; defaults to the caller.")
    is_active: bool = Field(True, description="Whether the restaurant is currently accepting reservations.")


class StaffAssignmentRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)


class RestaurantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    owner_id: str
    is_active: bool


class StaffAssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    restaurant_id: uuid.UUID
    user_id: str
