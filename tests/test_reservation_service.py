import pytest
from datetime import datetime, time, timedelta

from tortoise.exceptions import IntegrityError

from app.core.errors import (
    CapacityExceeded,
    Conflict,
    ConflictError,
    Forbidden,
    InvalidOperation,
    InvalidState,
    InvalidStatusTransition,
    TableUnavailable,
)
from app.models.outbox import OutboxEvent
from app.models.reservation import (
    Reservation,
    ReservationStatus,
    ReservationType,
    Table,
    TableStatus,
)
from app.schemas.reservation import (
    ReservationCreateRequest,
    ReservationUpdateRequest,
    TableCreateRequest,
    TableUpdateRequest,
)
from app.services import reservation_service


def booking(restaurant, table=None, when=time(19, 0), guests=2, day=None, **extra):
    return ReservationCreateRequest(
        restaurant_id=restaurant.id,
        table_id=table.id if table else None,
        reservation_date=day,
        reservation_time=when,
        guest_count=guests,
        **extra,
    )


async def table_status(table):
    return (await Table.get(id=table.id)).status


async def lost_race(*args, **kwargs):
    raise IntegrityError("UNIQUE constraint failed")


class TestCreateReservation:
    @pytest.mark.asyncio
    async def test_books_table_and_marks_it_reserved(self, table, restaurant, customer, booking_date):
        reservation = await reservation_service.create_reservation(
            booking(restaurant, table, day=booking_date), customer
        )

        assert reservation.reservation_number.startswith("RSV")
        assert reservation.user_id == customer.id
        assert reservation.status == ReservationStatus.PENDING
        assert reservation.reservation_time == "19:00"
        assert await table_status(table) == TableStatus.RESERVED

    @pytest.mark.asyncio
    async def test_guest_count_over_capacity(self, table, restaurant, customer, booking_date):
        with pytest.raises(CapacityExceeded):
            await reservation_service.create_reservation(
                booking(restaurant, table, guests=6, day=booking_date), customer
            )
        assert await Reservation.all().count() == 0

    @pytest.mark.asyncio
    async def test_overlapping_slot_is_rejected(self, table, restaurant, customer, booking_date):
        await reservation_service.create_reservation(booking(restaurant, table, day=booking_date), customer)

        with pytest.raises(TableUnavailable) as exc_info:
            await reservation_service.create_reservation(
                booking(restaurant, table, when=time(20, 0), day=booking_date), customer
            )
        assert exc_info.value.status_code == 409
        assert isinstance(exc_info.value, ConflictError)

    @pytest.mark.asyncio
    async def test_non_overlapping_slot_is_accepted(self, table, restaurant, customer, booking_date):
        await reservation_service.create_reservation(booking(restaurant, table, day=booking_date), customer)
        later = await reservation_service.create_reservation(
            booking(restaurant, table, when=time(21, 0), day=booking_date), customer
        )
        other_day = await reservation_service.create_reservation(
            booking(restaurant, table, day=booking_date + timedelta(days=1)), customer
        )

        assert later.id != other_day.id
        assert await Reservation.filter(table_id=table.id).count() == 3

    @pytest.mark.asyncio
    async def test_cancelled_booking_frees_the_slot(self, table, restaurant, customer, booking_date):
        first = await reservation_service.create_reservation(booking(restaurant, table, day=booking_date), customer)
        await reservation_service.cancel_reservation(first.id, customer)

        second = await reservation_service.create_reservation(booking(restaurant, table, day=booking_date), customer)
        assert second.status == ReservationStatus.PENDING

    @pytest.mark.asyncio
    async def test_out_of_service_table(self, table, restaurant, customer, booking_date):
        table.status = TableStatus.OUT_OF_SERVICE
        await table.save()

        with pytest.raises(TableUnavailable):
            await reservation_service.create_reservation(booking(restaurant, table, day=booking_date), customer)

    @pytest.mark.asyncio
    async def test_table_from_another_restaurant(self, table, other_restaurant, admin, booking_date):
        with pytest.raises(InvalidOperation):
            await reservation_service.create_reservation(booking(other_restaurant, table, day=booking_date), admin)

    @pytest.mark.asyncio
    async def test_customer_cannot_book_for_someone_else(self, table, restaurant, customer, booking_date):
        with pytest.raises(Forbidden):
            await reservation_service.create_reservation(
                booking(restaurant, table, day=booking_date, user_id="customer-2"), customer
            )

    @pytest.mark.asyncio
    async def test_staff_books_for_a_guest(self, table, restaurant, staff, booking_date):
        reservation = await reservation_service.create_reservation(
            booking(restaurant, table, day=booking_date, user_id="walk-in-7", status=ReservationStatus.CONFIRMED),
            staff,
        )
        assert reservation.user_id == "walk-in-7"
        assert reservation.status == ReservationStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_initial_status_must_be_active(self, table, restaurant, staff, booking_date):
        with pytest.raises(InvalidOperation):
            await reservation_service.create_reservation(
                booking(restaurant, table, day=booking_date, status=ReservationStatus.COMPLETED), staff
            )

    @pytest.mark.asyncio
    async def test_full_restaurant_uses_combined_capacity(self, table, restaurant, customer, booking_date):
        await Table.create(restaurant=restaurant, table_number="T2", capacity=2)

        with pytest.raises(TableUnavailable):
            await reservation_service.create_reservation(
                booking(restaurant, guests=8, day=booking_date, reservation_type=ReservationType.FULL_RESTAURANT),
                customer,
            )

        reservation = await reservation_service.create_reservation(
            booking(restaurant, guests=6, day=booking_date, reservation_type=ReservationType.FULL_RESTAURANT),
            customer,
        )
        assert reservation.table_id is None

    @pytest.mark.asyncio
    async def test_table_booking_without_table_is_rejected(self, table, restaurant, customer, booking_date):
        with pytest.raises(InvalidOperation):
            await reservation_service.create_reservation(
                booking(restaurant, guests=40, day=booking_date, reservation_type=ReservationType.TABLE), customer
            )
        assert await Reservation.all().count() == 0

    @pytest.mark.asyncio
    async def test_back_to_back_booking_under_forward_window(self, table, restaurant, customer, booking_date):
        await reservation_service.create_reservation(
            booking(restaurant, table, when=time(18, 0), day=booking_date), customer
        )

        reservation = await reservation_service.create_reservation(
            booking(restaurant, table, when=time(20, 0), day=booking_date), customer
        )
        assert reservation.reservation_time == "20:00"

    @pytest.mark.asyncio
    async def test_symmetric_window_includes_both_edges(self, table, restaurant, customer, booking_date, monkeypatch):
        monkeypatch.setattr(reservation_service, "RESERVATION_WINDOW_POLICY", "symmetric")
        await reservation_service.create_reservation(
            booking(restaurant, table, when=time(18, 0), day=booking_date), customer
        )

        with pytest.raises(TableUnavailable):
            await reservation_service.create_reservation(
                booking(restaurant, table, when=time(20, 0), day=booking_date), customer
            )
        with pytest.raises(TableUnavailable):
            await reservation_service.create_reservation(
                booking(restaurant, table, when=time(16, 0), day=booking_date), customer
            )
        assert await reservation_service.is_table_available(table.id, booking_date, "20:01")
        assert await reservation_service.is_table_available(table.id, booking_date, "15:59")
        assert await Reservation.filter(table_id=table.id).count() == 1


class TestStatusMachine:
    @pytest.mark.asyncio
    async def test_lifecycle_mirrors_table_status(self, table, restaurant, customer, staff, booking_date):
        reservation = await reservation_service.create_reservation(
            booking(restaurant, table, day=booking_date), customer
        )

        confirmed = await reservation_service.update_reservation_status(
            reservation.id, ReservationStatus.CONFIRMED, staff
        )
        assert confirmed.status == ReservationStatus.CONFIRMED
        assert await table_status(table) == TableStatus.RESERVED

        completed = await reservation_service.update_reservation_status(
            reservation.id, ReservationStatus.COMPLETED, staff
        )
        assert completed.status == ReservationStatus.COMPLETED
        assert await table_status(table) == TableStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_status_change_records_event(self, table, restaurant, customer, staff, booking_date):
        reservation = await reservation_service.create_reservation(
            booking(restaurant, table, day=booking_date), customer
        )
        await reservation_service.update_reservation_status(reservation.id, ReservationStatus.CONFIRMED, staff)

        event = await OutboxEvent.get(aggregate_id=reservation.id)
        assert event.event_type == "reservation.status.confirmed.v1"
        assert event.payload["old_status"] == "PENDING"
        assert event.payload["new_status"] == "CONFIRMED"

    @pytest.mark.asyncio
    async def test_pending_cannot_jump_to_completed(self, table, restaurant, customer, staff, booking_date):
        reservation = await reservation_service.create_reservation(
            booking(restaurant, table, day=booking_date), customer
        )
        with pytest.raises(InvalidStatusTransition):
            await reservation_service.update_reservation_status(reservation.id, ReservationStatus.COMPLETED, staff)

        assert (await Reservation.get(id=reservation.id)).status == ReservationStatus.PENDING

    @pytest.mark.asyncio
    async def test_terminal_status_is_final(self, table, restaurant, customer, staff, booking_date):
        reservation = await reservation_service.create_reservation(
            booking(restaurant, table, day=booking_date), customer
        )
        await reservation_service.update_reservation_status(reservation.id, ReservationStatus.CANCELLED, staff)

        with pytest.raises(InvalidStatusTransition):
            await reservation_service.update_reservation_status(reservation.id, ReservationStatus.CONFIRMED, staff)

    @pytest.mark.asyncio
    async def test_customer_cannot_change_status(self, table, restaurant, customer, booking_date):
        reservation = await reservation_service.create_reservation(
            booking(restaurant, table, day=booking_date), customer
        )
        with pytest.raises(Forbidden):
            await reservation_service.update_reservation_status(reservation.id, ReservationStatus.CONFIRMED, customer)


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_confirmed_frees_table(self, table, restaurant, customer, staff, booking_date):
        reservation = await reservation_service.create_reservation(
            booking(restaurant, table, day=booking_date), customer
        )
        await reservation_service.update_reservation_status(reservation.id, ReservationStatus.CONFIRMED, staff)

        cancelled = await reservation_service.cancel_reservation(reservation.id, customer)

        assert cancelled.status == ReservationStatus.CANCELLED
        assert await table_status(table) == TableStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_cancel_completed_is_invalid(self, table, restaurant, customer, staff, booking_date):
        reservation = await reservation_service.create_reservation(
            booking(restaurant, table, day=booking_date), customer
        )
        await reservation_service.update_reservation_status(reservation.id, ReservationStatus.CONFIRMED, staff)
        await reservation_service.update_reservation_status(reservation.id, ReservationStatus.COMPLETED, staff)

        with pytest.raises(InvalidState):
            await reservation_service.cancel_reservation(reservation.id, customer)

    @pytest.mark.asyncio
    async def test_customer_cannot_cancel_foreign_booking(self, table, restaurant, customer, staff, booking_date):
        reservation = await reservation_service.create_reservation(
            booking(restaurant, table, day=booking_date, user_id="someone-else"), staff
        )
        with pytest.raises(Forbidden):
            await reservation_service.cancel_reservation(reservation.id, customer)


class TestUpdateReservation:
    @pytest.mark.asyncio
    async def test_moving_own_slot_does_not_conflict_with_itself(self, table, restaurant, customer, booking_date):
        reservation = await reservation_service.create_reservation(
            booking(restaurant, table, day=booking_date), customer
        )
        updated = await reservation_service.update_reservation(
            reservation.id, ReservationUpdateRequest(reservation_time=time(19, 30)), customer
        )
        assert updated.reservation_time == "19:30"

    @pytest.mark.asyncio
    async def test_moving_into_taken_slot(self, table, restaurant, customer, booking_date):
        await reservation_service.create_reservation(booking(restaurant, table, day=booking_date), customer)
        late = await reservation_service.create_reservation(
            booking(restaurant, table, when=time(22, 0), day=booking_date), customer
        )

        with pytest.raises(TableUnavailable):
            await reservation_service.update_reservation(
                late.id, ReservationUpdateRequest(reservation_time=time(20, 0)), customer
            )

    @pytest.mark.asyncio
    async def test_growing_party_beyond_table(self, table, restaurant, customer, booking_date):
        reservation = await reservation_service.create_reservation(
            booking(restaurant, table, day=booking_date), customer
        )
        with pytest.raises(CapacityExceeded):
            await reservation_service.update_reservation(
                reservation.id, ReservationUpdateRequest(guest_count=5), customer
            )

    @pytest.mark.asyncio
    async def test_changing_table_frees_the_old_one(self, table, restaurant, customer, booking_date):
        bigger = await Table.create(restaurant=restaurant, table_number="T9", capacity=8)
        reservation = await reservation_service.create_reservation(
            booking(restaurant, table, day=booking_date), customer
        )

        await reservation_service.update_reservation(
            reservation.id, ReservationUpdateRequest(table_id=bigger.id, guest_count=7), customer
        )

        assert await table_status(table) == TableStatus.AVAILABLE
        assert await table_status(bigger) == TableStatus.RESERVED

    @pytest.mark.asyncio
    async def test_terminal_reservation_is_read_only(self, table, restaurant, customer, booking_date):
        reservation = await reservation_service.create_reservation(
            booking(restaurant, table, day=booking_date), customer
        )
        await reservation_service.cancel_reservation(reservation.id, customer)

        with pytest.raises(InvalidState):
            await reservation_service.update_reservation(
                reservation.id, ReservationUpdateRequest(guest_count=3), customer
            )


class TestTablesAndAvailability:
    @pytest.mark.asyncio
    async def test_availability_lists_free_tables(self, table, restaurant, customer, booking_date):
        small = await Table.create(restaurant=restaurant, table_number="T2", capacity=2)
        await reservation_service.create_reservation(booking(restaurant, table, day=booking_date), customer)

        result = await reservation_service.check_availability(restaurant.id, booking_date, time(19, 0), 2)
        assert result["available"] is True
        assert [t.id for t in result["available_tables"]] == [small.id]

        result = await reservation_service.check_availability(restaurant.id, booking_date, time(19, 0), 3)
        assert result["available"] is False
        assert result["message"]

    @pytest.mark.asyncio
    async def test_table_with_active_booking_cannot_be_deleted(self, table, restaurant, owner, customer, booking_date):
        await reservation_service.create_reservation(booking(restaurant, table, day=booking_date), customer)
        with pytest.raises(InvalidOperation):
            await reservation_service.delete_table(table.id, owner)

    @pytest.mark.asyncio
    async def test_list_tables_filters(self, table, restaurant):
        await Table.create(restaurant=restaurant, table_number="T2", capacity=8, location="Terrace")

        tables, total = await reservation_service.list_tables(restaurant.id, min_capacity=6)
        assert total == 1
        assert tables[0].table_number == "T2"

    @pytest.mark.asyncio
    async def test_table_number_race_is_a_conflict(self, table, restaurant, owner, monkeypatch):
        monkeypatch.setattr(Table, "create", lost_race)
        with pytest.raises(Conflict):
            await reservation_service.create_table(
                TableCreateRequest(restaurant_id=restaurant.id, table_number="T2", capacity=2), owner
            )

        monkeypatch.setattr(Table, "save", lost_race)
        with pytest.raises(Conflict):
            await reservation_service.update_table(table.id, TableUpdateRequest(table_number="T3"), owner)


class TestListingAndReports:
    @pytest.mark.asyncio
    async def test_customer_only_sees_own_reservations(self, table, restaurant, customer, staff, booking_date):
        await reservation_service.create_reservation(booking(restaurant, table, day=booking_date), customer)
        await reservation_service.create_reservation(
            booking(restaurant, table, when=time(12, 0), day=booking_date, user_id="guest-2"), staff
        )

        mine, total = await reservation_service.list_reservations(customer)
        assert total == 1
        assert mine[0].user_id == customer.id

        everything, total = await reservation_service.list_reservations(staff, restaurant_id=restaurant.id)
        assert total == 2

    @pytest.mark.asyncio
    async def test_stats(self, table, restaurant, customer, staff, booking_date):
        first = await reservation_service.create_reservation(booking(restaurant, table, day=booking_date), customer)
        second = await reservation_service.create_reservation(
            booking(restaurant, table, when=time(12, 0), day=booking_date), customer
        )
        await reservation_service.update_reservation_status(first.id, ReservationStatus.CONFIRMED, staff)
        await reservation_service.update_reservation_status(first.id, ReservationStatus.COMPLETED, staff)
        await reservation_service.cancel_reservation(second.id, customer)

        stats = await reservation_service.get_reservation_stats(restaurant.id, booking_date, booking_date, staff)
        assert stats["total"] == 2
        assert stats["completed"] == 1
        assert stats["cancelled"] == 1
        assert stats["occupancy_rate"] == 50.0

    @pytest.mark.asyncio
    async def test_daily_reservations_in_time_order(self, table, restaurant, customer, staff, booking_date):
        await reservation_service.create_reservation(booking(restaurant, table, day=booking_date), customer)
        await reservation_service.create_reservation(
            booking(restaurant, table, when=time(12, 0), day=booking_date), customer
        )

        daily = await reservation_service.get_daily_reservations(restaurant.id, booking_date, staff)
        assert [r.reservation_time for r in daily] == ["12:00", "19:00"]

    @pytest.mark.asyncio
    async def test_upcoming_window(self, table, restaurant, customer, staff, booking_date):
        tonight = await reservation_service.create_reservation(booking(restaurant, table, day=booking_date), customer)
        await reservation_service.create_reservation(
            booking(restaurant, table, when=time(12, 0), day=booking_date + timedelta(days=1)), customer
        )

        now = datetime.combine(booking_date, time(10, 0))
        upcoming = await reservation_service.get_upcoming_reservations(restaurant.id, staff, hours=24, now=now)
        assert [r.id for r in upcoming] == [tonight.id]
