from tortoise import fields, models
import uuid


class Restaurant(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    name = fields.CharField(max_length=255)
    owner_id = fields.CharField(max_length=64) # User id issued by the external auth layer
    is_active = fields.BooleanField(default=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "restaurants"
        indexes = [
            ("owner_id",),   # Owner's restaurants
            ("is_active",),  # For filtering active restaurants
        ]


class StaffAssignment(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    restaurant = fields.ForeignKeyField("models.Restaurant", related_name="staff")
    user_id = fields.CharField(max_length=64)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "staff_assignments"
        unique_together = (("restaurant", "user_id"),)
        indexes = [
            ("user_id",),  # Staff member's restaurants
        ]
