from enum import Enum
from tortoise import fields, models
import uuid


class TableStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    OCCUPIED = "OCCUPIED"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"


class ReservationType(str, Enum):
    TABLE = "TABLE"
    FULL_RESTAURANT = "FULL_RESTAURANT"


class ReservationStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


# Statuses that hold a table for their time slot
ACTIVE_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)
TERMINAL_STATUSES = (ReservationStatus.COMPLETED, ReservationStatus.CANCELLED, ReservationStatus.NO_SHOW)


class Table(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    restaurant = fields.ForeignKeyField("models.Restaurant", related_name="tables")
    table_number = fields.CharField(max_length=20)
    capacity = fields.IntField()
    location = fields.CharField(max_length=100, null=True) # e.g., 'Terrace', 'Window'
    status = fields.CharEnumField(TableStatus, default=TableStatus.AVAILABLE)
    minimum_charge = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "tables"
        unique_together = (("restaurant", "table_number"),)
        indexes = [
            ("restaurant_id", "status"),    # Available tables of a restaurant
            ("restaurant_id", "capacity"),  # Capacity filtering
        ]


class Reservation(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    reservation_number = fields.CharField(max_length=32, unique=True)
    user_id = fields.CharField(max_length=64)
    restaurant = fields.ForeignKeyField("models.Restaurant", related_name="reservations")
    # Null for full-restaurant bookings, or once the table itself was removed
    table = fields.ForeignKeyField("models.Table", related_name="reservations", null=True, on_delete=fields.SET_NULL)
    reservation_type = fields.CharEnumField(ReservationType, default=ReservationType.TABLE)
    reservation_date = fields.DateField()
    reservation_time = fields.CharField(max_length=5) # "HH:MM"
    guest_count = fields.IntField()
    status = fields.CharEnumField(ReservationStatus, default=ReservationStatus.PENDING)
    deposit_amount = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    special_request = fields.TextField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "reservations"
        indexes = [
            ("table_id", "reservation_date", "status"),       # Conflict checks
            ("restaurant_id", "reservation_date", "status"),  # Daily / upcoming views
            ("user_id",),                                     # Customer history
        ]
