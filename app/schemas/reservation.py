import uuid
from datetime import date, time
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.reservation import ReservationStatus, ReservationType, TableStatus


# ----------- Tables -----------

class TableCreateRequest(BaseModel):
    restaurant_id: uuid.UUID
    table_number: str = Field(..., min_length=1, max_length=20, description="Number shown on the table, unique per restaurant.")
    capacity: int = Field(..., ge=1, description="Maximum number of guests.")
    location: Optional[str] = Field(None, max_length=100, description="Area of the restaurant, e.g. 'Terrace'.")
    status: TableStatus = TableStatus.AVAILABLE
    minimum_charge: Decimal = Field(Decimal("0"), ge=0)


class TableUpdateRequest(BaseModel):
    table_number: Optional[str] = Field(None, min_length=1, max_length=20)
    capacity: Optional[int] = Field(None, ge=1)
    location: Optional[str] = Field(None, max_length=100)
    status: Optional[TableStatus] = None
    minimum_charge: Optional[Decimal] = Field(None, ge=0)


class TableResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    restaurant_id: uuid.UUID
    table_number: str
    capacity: int
    location: Optional[str] = None
    status: TableStatus
    minimum_charge: Decimal


# ----------- Reservations -----------

class ReservationCreateRequest(BaseModel):
    """Booking request. user_id defaults to the calling user."""
    user_id: Optional[str] = Field(None, max_length=64)
    restaurant_id: uuid.UUID
    table_id: Optional[uuid.UUID] = None
    reservation_type: ReservationType = ReservationType.TABLE
    reservation_date: date
    reservation_time: time
    guest_count: int = Field(..., ge=1, le=50)
    special_request: Optional[str] = None
    status: Optional[ReservationStatus] = None
    deposit_amount: Decimal = Field(Decimal("0"), ge=0)


class ReservationUpdateRequest(BaseModel):
    table_id: Optional[uuid.UUID] = None
    reservation_date: Optional[date] = None
    reservation_time: Optional[time] = None
    guest_count: Optional[int] = Field(None, ge=1, le=50)
    special_request: Optional[str] = None
    deposit_amount: Optional[Decimal] = Field(None, ge=0)


class ReservationStatusUpdate(BaseModel):
    status: ReservationStatus


class ReservationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    reservation_number: str
    user_id: str
    restaurant_id: uuid.UUID
    table_id: Optional[uuid.UUID] = None
    reservation_type: ReservationType
    reservation_date: date
    reservation_time: str
    guest_count: int
    status: ReservationStatus
    deposit_amount: Decimal
    special_request: Optional[str] = None


class AvailabilityResponse(BaseModel):
    available: bool
    available_tables: List[TableResponse] = []
    message: Optional[str] = None


class ReservationStatsResponse(BaseModel):
    total: int
    pending: int
    confirmed: int
    completed: int
    cancelled: int
    no_show: int
    occupancy_rate: float
