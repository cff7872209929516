"""
Reservation engine: tables, bookings, time-slot availability and the
reservation status state machine.

Every booking write runs inside one transaction that first locks the
restaurant row, so the conflict check and the insert that follows it cannot
interleave with another booking for the same restaurant.
"""
import logging
import random
import string
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from tortoise.exceptions import IntegrityError
from tortoise.transactions import in_transaction

from app.core.config import (
    DEFAULT_PAGE_SIZE,
    RESERVATION_DEFAULT_DURATION,
    RESERVATION_WINDOW_POLICY,
    UPCOMING_WINDOW_HOURS,
)
from app.core.errors import (
    CapacityExceeded,
    Conflict,
    Forbidden,
    InvalidOperation,
    InvalidState,
    InvalidStatusTransition,
    NotFound,
    TableUnavailable,
)
from app.core.permissions import (
    Action,
    Actor,
    accessible_restaurant_ids,
    authorize,
    ensure_restaurant_access,
    is_self_scoped,
)
from app.events.outbox_utility import create_outbox_event
from app.models.reservation import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Reservation,
    ReservationStatus,
    ReservationType,
    Table,
    TableStatus,
)
from app.models.restaurant import Restaurant
from app.schemas.reservation import (
    ReservationCreateRequest,
    ReservationUpdateRequest,
    TableCreateRequest,
    TableUpdateRequest,
)
from app.services.conflict_window import WindowPolicy, format_time, has_conflict, to_minutes

log = logging.getLogger(__name__)

STATUS_TRANSITIONS: Dict[ReservationStatus, Tuple[ReservationStatus, ...]] = {
    ReservationStatus.PENDING: (ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED),
    ReservationStatus.CONFIRMED: (ReservationStatus.COMPLETED, ReservationStatus.CANCELLED, ReservationStatus.NO_SHOW),
    ReservationStatus.COMPLETED: (),
    ReservationStatus.CANCELLED: (),
    ReservationStatus.NO_SHOW: (),
}

# Table status a reservation transition forces onto its table
TABLE_STATUS_ON_TRANSITION: Dict[ReservationStatus, TableStatus] = {
    ReservationStatus.CONFIRMED: TableStatus.RESERVED,
    ReservationStatus.COMPLETED: TableStatus.AVAILABLE,
    ReservationStatus.CANCELLED: TableStatus.AVAILABLE,
    ReservationStatus.NO_SHOW: TableStatus.AVAILABLE,
}

_BASE36 = string.digits + string.ascii_uppercase


def _base36(number: int) -> str:
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def generate_reservation_number() -> str:
    """Human-readable booking reference: 'RSV' + base36 epoch millis + 6 random chars."""
    timestamp = _base36(int(datetime.now().timestamp() * 1000))
    suffix = "".join(random.choices(_BASE36, k=6))
    return f"RSV{timestamp}{suffix}"


def validate_status_transition(current: ReservationStatus, new: ReservationStatus) -> None:
    if new not in STATUS_TRANSITIONS[current]:
        raise InvalidStatusTransition(f"Invalid status transition from {current.value} to {new.value}")


def window_policy() -> WindowPolicy:
    return WindowPolicy(RESERVATION_WINDOW_POLICY)


# ----------- Loading helpers -----------

async def _lock_restaurant(restaurant_id: UUID, conn: Any) -> Restaurant:
    restaurant = await Restaurant.filter(id=restaurant_id).using_db(conn).select_for_update().first()
    if not restaurant:
        raise NotFound(f"Restaurant with ID {restaurant_id} not found")
    return restaurant


async def _lock_table(table_id: UUID, conn: Any) -> Table:
    table = await Table.filter(id=table_id).using_db(conn).select_for_update().first()
    if not table:
        raise NotFound(f"Table with ID {table_id} not found")
    return table


async def _load_reservation(reservation_id: UUID, conn: Any = None, lock: bool = False) -> Reservation:
    query = Reservation.filter(id=reservation_id).using_db(conn)
    if lock:
        query = query.select_for_update()
    reservation = await query.first()
    if not reservation:
        raise NotFound(f"Reservation with ID {reservation_id} not found")
    return reservation


async def _ensure_reservation_access(actor: Actor, reservation: Reservation, conn: Any = None) -> None:
    """Customers only see their own bookings; restaurant users only their restaurant's."""
    if is_self_scoped(actor):
        if reservation.user_id != actor.id:
            raise Forbidden("You can only access your own reservations")
        return
    await ensure_restaurant_access(actor, reservation.restaurant_id, conn)


async def _set_table_status(table_id: Optional[UUID], status: TableStatus, conn: Any) -> None:
    if table_id:
        await Table.filter(id=table_id).using_db(conn).update(status=status)


# ----------- Tables -----------

async def create_table(data: TableCreateRequest, actor: Actor) -> Table:
    authorize(actor, Action.TABLE_CREATE)
    await ensure_restaurant_access(actor, data.restaurant_id)

    if await Table.filter(restaurant_id=data.restaurant_id, table_number=data.table_number).exists():
        raise Conflict("Table with this number already exists in this restaurant")

    try:
        table = await Table.create(**data.model_dump())
    except IntegrityError:
        raise Conflict("Table with this number already exists in this restaurant")
    log.info(f"Table {table.table_number} created for restaurant {data.restaurant_id}.")
    return table


async def list_tables(
    restaurant_id: Optional[UUID] = None,
    min_capacity: Optional[int] = None,
    location: Optional[str] = None,
    status: Optional[TableStatus] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> Tuple[List[Table], int]:
    query = Table.all()
    if restaurant_id:
        query = query.filter(restaurant_id=restaurant_id)
    if min_capacity is not None:
        query = query.filter(capacity__gte=min_capacity)
    if location:
        query = query.filter(location__icontains=location)
    if status:
        query = query.filter(status=status)

    total = await query.count()
    tables = await query.order_by("table_number").offset((page - 1) * limit).limit(limit)
    return tables, total


async def get_table(table_id: UUID) -> Table:
    table = await Table.get_or_none(id=table_id)
    if not table:
        raise NotFound(f"Table with ID {table_id} not found")
    return table


async def update_table(table_id: UUID, data: TableUpdateRequest, actor: Actor) -> Table:
    authorize(actor, Action.TABLE_UPDATE)
    table = await get_table(table_id)
    await ensure_restaurant_access(actor, table.restaurant_id)

    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    new_number = changes.get("table_number")
    if new_number and new_number != table.table_number:
        if await Table.filter(restaurant_id=table.restaurant_id, table_number=new_number).exists():
            raise Conflict("Table with this number already exists in this restaurant")

    table.update_from_dict(changes)
    try:
        await table.save()
    except IntegrityError:
        raise Conflict("Table with this number already exists in this restaurant")
    return table


async def delete_table(table_id: UUID, actor: Actor) -> None:
    authorize(actor, Action.TABLE_DELETE)
    table = await get_table(table_id)
    await ensure_restaurant_access(actor, table.restaurant_id)

    if await Reservation.filter(table_id=table_id, status__in=ACTIVE_STATUSES).exists():
        raise InvalidOperation("Cannot delete table with active reservations")

    await table.delete()
    log.info(f"Table {table_id} deleted.")


# ----------- Availability -----------

async def is_table_available(
    table_id: UUID,
    reservation_date: date,
    reservation_time: Any,
    exclude_reservation_id: Optional[UUID] = None,
    duration: Optional[int] = None,
    conn: Any = None,
) -> bool:
    """
    True when no PENDING/CONFIRMED booking of the table on that date collides
    with the requested slot under the configured window policy.
    """
    duration = duration or RESERVATION_DEFAULT_DURATION
    query = Reservation.filter(
        table_id=table_id,
        reservation_date=reservation_date,
        status__in=ACTIVE_STATUSES,
    )
    if exclude_reservation_id:
        query = query.exclude(id=exclude_reservation_id)

    booked_times = await query.using_db(conn).values_list("reservation_time", flat=True)
    return not has_conflict(reservation_time, booked_times, duration, window_policy())


async def find_available_tables(
    restaurant_id: UUID,
    reservation_date: date,
    reservation_time: Any,
    guest_count: int,
    duration: Optional[int] = None,
    conn: Any = None,
) -> List[Table]:
    """AVAILABLE tables seating at least guest_count that are free for the slot."""
    tables = await Table.filter(
        restaurant_id=restaurant_id,
        capacity__gte=guest_count,
        status=TableStatus.AVAILABLE,
    ).using_db(conn).order_by("table_number")

    available = []
    for table in tables:
        if await is_table_available(table.id, reservation_date, reservation_time, duration=duration, conn=conn):
            available.append(table)
    return available


async def is_restaurant_available(
    restaurant_id: UUID,
    reservation_date: date,
    reservation_time: Any,
    guest_count: int,
    duration: Optional[int] = None,
    conn: Any = None,
) -> bool:
    """Full-restaurant check: summed capacity of every free table covers the party."""
    tables = await find_available_tables(restaurant_id, reservation_date, reservation_time, 1, duration, conn)
    return sum(table.capacity for table in tables) >= guest_count


async def check_availability(
    restaurant_id: UUID,
    reservation_date: date,
    reservation_time: Any,
    guest_count: int,
    duration: Optional[int] = None,
) -> Dict[str, Any]:
    tables = await find_available_tables(restaurant_id, reservation_date, reservation_time, guest_count, duration)
    if not tables:
        return {
            "available": False,
            "available_tables": [],
            "message": "No available tables for the selected time and guest count",
        }
    return {"available": True, "available_tables": tables, "message": None}


# ----------- Reservations -----------

async def create_reservation(data: ReservationCreateRequest, actor: Actor) -> Reservation:
    authorize(actor, Action.RESERVATION_CREATE)

    user_id = data.user_id or actor.id
    if is_self_scoped(actor):
        if user_id != actor.id:
            raise Forbidden("You can only create reservations for yourself")
    else:
        await ensure_restaurant_access(actor, data.restaurant_id)

    initial_status = data.status or ReservationStatus.PENDING
    if initial_status not in ACTIVE_STATUSES:
        raise InvalidOperation(f"A reservation cannot be created in status {initial_status.value}")
    if data.reservation_type == ReservationType.TABLE and not data.table_id:
        raise InvalidOperation("Table reservations require a table")

    reservation_time = format_time(data.reservation_time)

    async with in_transaction() as conn:
        restaurant = await _lock_restaurant(data.restaurant_id, conn)
        if not restaurant.is_active:
            raise InvalidOperation("Restaurant is not accepting reservations")

        if data.table_id:
            table = await _lock_table(data.table_id, conn)
            if table.restaurant_id != restaurant.id:
                raise InvalidOperation("Table does not belong to this restaurant")
            if table.status == TableStatus.OUT_OF_SERVICE:
                raise TableUnavailable("Table is out of service")
            if data.guest_count > table.capacity:
                raise CapacityExceeded("Guest count exceeds table capacity")
            if not await is_table_available(table.id, data.reservation_date, reservation_time, conn=conn):
                raise TableUnavailable("Table is not available for the selected time")

        if data.reservation_type == ReservationType.FULL_RESTAURANT:
            if not await is_restaurant_available(
                restaurant.id, data.reservation_date, reservation_time, data.guest_count, conn=conn
            ):
                raise TableUnavailable("Restaurant is not available for the selected time and guest count")

        reservation = await Reservation.create(
            reservation_number=generate_reservation_number(),
            user_id=user_id,
            restaurant_id=restaurant.id,
            table_id=data.table_id,
            reservation_type=data.reservation_type,
            reservation_date=data.reservation_date,
            reservation_time=reservation_time,
            guest_count=data.guest_count,
            status=initial_status,
            deposit_amount=data.deposit_amount,
            special_request=data.special_request,
            using_db=conn,
        )
        await _set_table_status(reservation.table_id, TableStatus.RESERVED, conn)

    log.info(f"Reservation {reservation.reservation_number} created for user {user_id}.")
    return reservation


async def get_reservation(reservation_id: UUID, actor: Actor) -> Reservation:
    authorize(actor, Action.RESERVATION_VIEW)
    reservation = await _load_reservation(reservation_id)
    await _ensure_reservation_access(actor, reservation)
    return reservation


async def get_reservation_by_number(reservation_number: str, actor: Actor) -> Reservation:
    authorize(actor, Action.RESERVATION_VIEW)
    reservation = await Reservation.get_or_none(reservation_number=reservation_number)
    if not reservation:
        raise NotFound(f"Reservation with number {reservation_number} not found")
    await _ensure_reservation_access(actor, reservation)
    return reservation


async def list_reservations(
    actor: Actor,
    restaurant_id: Optional[UUID] = None,
    user_id: Optional[str] = None,
    table_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status: Optional[ReservationStatus] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> Tuple[List[Reservation], int]:
    """Role-scoped search; filters outside the actor's scope simply match nothing."""
    authorize(actor, Action.RESERVATION_VIEW)

    query = Reservation.all()
    if is_self_scoped(actor):
        query = query.filter(user_id=actor.id)
    else:
        scope = await accessible_restaurant_ids(actor)
        if scope is not None:
            query = query.filter(restaurant_id__in=scope)

    if restaurant_id:
        query = query.filter(restaurant_id=restaurant_id)
    if user_id:
        query = query.filter(user_id=user_id)
    if table_id:
        query = query.filter(table_id=table_id)
    if start_date and end_date:
        query = query.filter(reservation_date__range=(start_date, end_date))
    if status:
        query = query.filter(status=status)

    total = await query.count()
    reservations = await query.order_by("-reservation_date", "-reservation_time").offset((page - 1) * limit).limit(limit)
    return reservations, total


async def update_reservation(reservation_id: UUID, data: ReservationUpdateRequest, actor: Actor) -> Reservation:
    authorize(actor, Action.RESERVATION_UPDATE)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if "reservation_time" in changes:
        changes["reservation_time"] = format_time(changes["reservation_time"])

    async with in_transaction() as conn:
        reservation = await _load_reservation(reservation_id, conn, lock=True)
        await _ensure_reservation_access(actor, reservation, conn)

        if reservation.status in TERMINAL_STATUSES:
            raise InvalidState("Cannot update completed, cancelled, or no-show reservation")

        old_table_id = reservation.table_id
        new_table_id = changes.get("table_id", old_table_id)
        reservation_date = changes.get("reservation_date", reservation.reservation_date)
        reservation_time = changes.get("reservation_time", reservation.reservation_time)
        guest_count = changes.get("guest_count", reservation.guest_count)
        slot_changed = any(key in changes for key in ("table_id", "reservation_date", "reservation_time"))

        if new_table_id and (slot_changed or "guest_count" in changes):
            await _lock_restaurant(reservation.restaurant_id, conn)
            table = await _lock_table(new_table_id, conn)
            if table.restaurant_id != reservation.restaurant_id:
                raise InvalidOperation("Table does not belong to this restaurant")
            if guest_count > table.capacity:
                raise CapacityExceeded("Guest count exceeds table capacity")
            if slot_changed and not await is_table_available(
                table.id, reservation_date, reservation_time, exclude_reservation_id=reservation.id, conn=conn
            ):
                raise TableUnavailable("Table is not available for the selected time")

        if reservation.reservation_type == ReservationType.FULL_RESTAURANT and (slot_changed or "guest_count" in changes):
            await _lock_restaurant(reservation.restaurant_id, conn)
            if not await is_restaurant_available(
                reservation.restaurant_id, reservation_date, reservation_time, guest_count, conn=conn
            ):
                raise TableUnavailable("Restaurant is not available for the selected time and guest count")

        reservation.update_from_dict(changes)
        await reservation.save(using_db=conn)

        if new_table_id != old_table_id:
            await _set_table_status(old_table_id, TableStatus.AVAILABLE, conn)
            await _set_table_status(new_table_id, TableStatus.RESERVED, conn)

    return reservation


async def update_reservation_status(reservation_id: UUID, new_status: ReservationStatus, actor: Actor) -> Reservation:
    """
    Moves a reservation along the state machine, mirrors the change onto its
    table and records a status event, all in one transaction.
    """
    authorize(actor, Action.RESERVATION_UPDATE_STATUS)

    async with in_transaction() as conn:
        reservation = await _load_reservation(reservation_id, conn, lock=True)
        await _ensure_reservation_access(actor, reservation, conn)

        old_status = reservation.status
        validate_status_transition(old_status, new_status)

        table_status = TABLE_STATUS_ON_TRANSITION.get(new_status)
        if table_status:
            await _set_table_status(reservation.table_id, table_status, conn)

        reservation.status = new_status
        await reservation.save(using_db=conn)

        await create_outbox_event(
            aggregate_type="reservation",
            aggregate_id=reservation.id,
            event_type=f"reservation.status.{new_status.value.lower()}.v1",
            payload={
                "reservation_id": str(reservation.id),
                "reservation_number": reservation.reservation_number,
                "old_status": old_status.value,
                "new_status": new_status.value,
                "user_id": reservation.user_id,
                "performed_by": actor.id,
            },
            conn=conn
        )

    log.info(f"Reservation {reservation.reservation_number}: {old_status.value} -> {new_status.value}")
    return reservation


async def cancel_reservation(reservation_id: UUID, actor: Actor) -> Reservation:
    authorize(actor, Action.RESERVATION_CANCEL)

    async with in_transaction() as conn:
        reservation = await _load_reservation(reservation_id, conn, lock=True)
        await _ensure_reservation_access(actor, reservation, conn)

        if reservation.status not in ACTIVE_STATUSES:
            raise InvalidState(f"Cannot cancel reservation in status {reservation.status.value}")

        old_status = reservation.status
        await _set_table_status(reservation.table_id, TableStatus.AVAILABLE, conn)

        reservation.status = ReservationStatus.CANCELLED
        await reservation.save(using_db=conn)

        await create_outbox_event(
            aggregate_type="reservation",
            aggregate_id=reservation.id,
            event_type="reservation.status.cancelled.v1",
            payload={
                "reservation_id": str(reservation.id),
                "reservation_number": reservation.reservation_number,
                "old_status": old_status.value,
                "new_status": ReservationStatus.CANCELLED.value,
                "user_id": reservation.user_id,
                "performed_by": actor.id,
            },
            conn=conn
        )

    log.info(f"Reservation {reservation.reservation_number} cancelled by {actor.id}.")
    return reservation


# ----------- Reporting -----------

async def get_reservation_stats(restaurant_id: UUID, start_date: date, end_date: date, actor: Actor) -> Dict[str, Any]:
    authorize(actor, Action.RESERVATION_REPORT)
    await ensure_restaurant_access(actor, restaurant_id)

    statuses = await Reservation.filter(
        restaurant_id=restaurant_id,
        reservation_date__range=(start_date, end_date),
    ).values_list("status", flat=True)

    counts = {status: 0 for status in ReservationStatus}
    for status in statuses:
        counts[ReservationStatus(status)] += 1

    # Share of concluded bookings where the guests actually came
    concluded = counts[ReservationStatus.COMPLETED] + counts[ReservationStatus.CANCELLED] + counts[ReservationStatus.NO_SHOW]
    occupancy_rate = (counts[ReservationStatus.COMPLETED] / concluded) * 100 if concluded else 0.0

    return {
        "total": len(statuses),
        "pending": counts[ReservationStatus.PENDING],
        "confirmed": counts[ReservationStatus.CONFIRMED],
        "completed": counts[ReservationStatus.COMPLETED],
        "cancelled": counts[ReservationStatus.CANCELLED],
        "no_show": counts[ReservationStatus.NO_SHOW],
        "occupancy_rate": occupancy_rate,
    }


async def get_upcoming_reservations(
    restaurant_id: UUID,
    actor: Actor,
    hours: int = UPCOMING_WINDOW_HOURS,
    now: Optional[datetime] = None,
) -> List[Reservation]:
    authorize(actor, Action.RESERVATION_REPORT)
    await ensure_restaurant_access(actor, restaurant_id)

    now = now or datetime.now()
    until = now + timedelta(hours=hours)
    candidates = await Reservation.filter(
        restaurant_id=restaurant_id,
        status__in=ACTIVE_STATUSES,
        reservation_date__range=(now.date(), until.date()),
    ).order_by("reservation_date", "reservation_time")

    upcoming = []
    for reservation in candidates:
        minutes = to_minutes(reservation.reservation_time)
        starts_at = datetime.combine(reservation.reservation_date, datetime.min.time()) + timedelta(minutes=minutes)
        if now <= starts_at <= until:
            upcoming.append(reservation)
    return upcoming


async def get_daily_reservations(restaurant_id: UUID, day: date, actor: Actor) -> List[Reservation]:
    authorize(actor, Action.RESERVATION_REPORT)
    await ensure_restaurant_access(actor, restaurant_id)

    return await Reservation.filter(
        restaurant_id=restaurant_id,
        reservation_date=day,
        status__in=ACTIVE_STATUSES,
    ).order_by("reservation_time")
