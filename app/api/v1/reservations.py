import logging
from datetime import date, time
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_current_actor
from app.core.config import DEFAULT_PAGE_SIZE, UPCOMING_WINDOW_HOURS
from app.core.errors import DomainError
from app.core.permissions import Actor
from app.models.reservation import ReservationStatus, TableStatus
from app.schemas.reservation import (
    AvailabilityResponse,
    ReservationCreateRequest,
    ReservationResponse,
    ReservationStatsResponse,
    ReservationStatusUpdate,
    ReservationUpdateRequest,
    TableCreateRequest,
    TableResponse,
    TableUpdateRequest,
)
from app.schemas.response import PageResponse, SuccessResponse
from app.services import reservation_service

router = APIRouter()
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger("uvicorn")


def _reservation_data(reservation):
    return ReservationResponse.model_validate(reservation).model_dump()


def _table_data(table):
    return TableResponse.model_validate(table).model_dump()


# ----------- Tables -----------

@router.post("/tables", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_table_endpoint(request_data: TableCreateRequest, actor: Actor = Depends(get_current_actor)):
    table = await reservation_service.create_table(request_data, actor)
    return SuccessResponse(data=_table_data(table))


@router.get("/tables", response_model=SuccessResponse)
async def list_tables_endpoint(
    restaurant_id: Optional[UUID] = None,
    min_capacity: Optional[int] = Query(None, ge=1),
    location: Optional[str] = None,
    table_status: Optional[TableStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
):
    tables, total = await reservation_service.list_tables(
        restaurant_id, min_capacity, location, table_status, page, limit
    )
    page_data = PageResponse(items=[_table_data(t) for t in tables], total=total, page=page, limit=limit)
    return SuccessResponse(data=page_data.model_dump())


@router.get("/tables/{table_id}", response_model=SuccessResponse)
async def get_table_endpoint(table_id: UUID, actor: Actor = Depends(get_current_actor)):
    table = await reservation_service.get_table(table_id)
    return SuccessResponse(data=_table_data(table))


@router.patch("/tables/{table_id}", response_model=SuccessResponse)
async def update_table_endpoint(
    table_id: UUID, request_data: TableUpdateRequest, actor: Actor = Depends(get_current_actor)
):
    table = await reservation_service.update_table(table_id, request_data, actor)
    return SuccessResponse(data=_table_data(table))


@router.delete("/tables/{table_id}", response_model=SuccessResponse)
async def delete_table_endpoint(table_id: UUID, actor: Actor = Depends(get_current_actor)):
    await reservation_service.delete_table(table_id, actor)
    return SuccessResponse(data={"message": "Table deleted successfully"})


# ----------- Availability -----------

@router.get("/availability", response_model=SuccessResponse)
async def check_availability_endpoint(
    restaurant_id: UUID,
    reservation_date: date,
    reservation_time: time,
    guest_count: int = Query(..., ge=1, le=50),
    actor: Actor = Depends(get_current_actor),
):
    """Lists the tables that can seat the party at the requested slot."""
    result = await reservation_service.check_availability(
        restaurant_id, reservation_date, reservation_time, guest_count
    )
    data = AvailabilityResponse(
        available=result["available"],
        available_tables=[TableResponse.model_validate(t) for t in result["available_tables"]],
        message=result["message"],
    ).model_dump()
    return SuccessResponse(data=data)


# ----------- Reservations -----------

@router.post("/", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_reservation_endpoint(
    request_data: ReservationCreateRequest, actor: Actor = Depends(get_current_actor)
):
    """
    Books a table (or the whole restaurant). The slot check and the insert run
    under the restaurant lock, so two overlapping requests cannot both succeed.
    """
    try:
        reservation = await reservation_service.create_reservation(request_data, actor)
        return SuccessResponse(data=_reservation_data(reservation))
    except DomainError as e:
        log.info(f"Reservation rejected for {actor.id}: {e.message}")
        raise
    except Exception as e:
        log.error(f"Error creating reservation: {e}")
        raise HTTPException(status_code=500, detail="Server failed to create reservation.")


@router.get("/", response_model=SuccessResponse)
async def list_reservations_endpoint(
    restaurant_id: Optional[UUID] = None,
    user_id: Optional[str] = None,
    table_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    reservation_status: Optional[ReservationStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
):
    reservations, total = await reservation_service.list_reservations(
        actor,
        restaurant_id=restaurant_id,
        user_id=user_id,
        table_id=table_id,
        start_date=start_date,
        end_date=end_date,
        status=reservation_status,
        page=page,
        limit=limit,
    )
    page_data = PageResponse(
        items=[_reservation_data(r) for r in reservations], total=total, page=page, limit=limit
    )
    return SuccessResponse(data=page_data.model_dump())


@router.get("/number/{reservation_number}", response_model=SuccessResponse)
async def get_reservation_by_number_endpoint(reservation_number: str, actor: Actor = Depends(get_current_actor)):
    reservation = await reservation_service.get_reservation_by_number(reservation_number, actor)
    return SuccessResponse(data=_reservation_data(reservation))


# ----------- Restaurant reports -----------

@router.get("/restaurants/{restaurant_id}/stats", response_model=SuccessResponse)
async def reservation_stats_endpoint(
    restaurant_id: UUID,
    start_date: date,
    end_date: date,
    actor: Actor = Depends(get_current_actor),
):
    if end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date.")
    stats = await reservation_service.get_reservation_stats(restaurant_id, start_date, end_date, actor)
    return SuccessResponse(data=ReservationStatsResponse(**stats).model_dump())


@router.get("/restaurants/{restaurant_id}/upcoming", response_model=SuccessResponse)
async def upcoming_reservations_endpoint(
    restaurant_id: UUID,
    hours: int = Query(UPCOMING_WINDOW_HOURS, ge=1, le=168),
    actor: Actor = Depends(get_current_actor),
):
    reservations = await reservation_service.get_upcoming_reservations(restaurant_id, actor, hours)
    return SuccessResponse(data=[_reservation_data(r) for r in reservations])


@router.get("/restaurants/{restaurant_id}/daily", response_model=SuccessResponse)
async def daily_reservations_endpoint(
    restaurant_id: UUID,
    day: Optional[date] = None,
    actor: Actor = Depends(get_current_actor),
):
    reservations = await reservation_service.get_daily_reservations(restaurant_id, day or date.today(), actor)
    return SuccessResponse(data=[_reservation_data(r) for r in reservations])


# ----------- Single reservation -----------

@router.get("/{reservation_id}", response_model=SuccessResponse)
async def get_reservation_endpoint(reservation_id: UUID, actor: Actor = Depends(get_current_actor)):
    reservation = await reservation_service.get_reservation(reservation_id, actor)
    return SuccessResponse(data=_reservation_data(reservation))


@router.patch("/{reservation_id}", response_model=SuccessResponse)
async def update_reservation_endpoint(
    reservation_id: UUID, request_data: ReservationUpdateRequest, actor: Actor = Depends(get_current_actor)
):
    reservation = await reservation_service.update_reservation(reservation_id, request_data, actor)
    return SuccessResponse(data=_reservation_data(reservation))


@router.patch("/{reservation_id}/status", response_model=SuccessResponse)
async def update_reservation_status_endpoint(
    reservation_id: UUID, status_update: ReservationStatusUpdate, actor: Actor = Depends(get_current_actor)
):
    """Moves the reservation through its lifecycle; the table status follows."""
    reservation = await reservation_service.update_reservation_status(reservation_id, status_update.status, actor)
    log.info(f"Reservation {reservation.reservation_number} moved to {status_update.status.value}.")
    return SuccessResponse(data=_reservation_data(reservation))


@router.post("/{reservation_id}/cancel", response_model=SuccessResponse)
async def cancel_reservation_endpoint(reservation_id: UUID, actor: Actor = Depends(get_current_actor)):
    reservation = await reservation_service.cancel_reservation(reservation_id, actor)
    return SuccessResponse(data=_reservation_data(reservation))
