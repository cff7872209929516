from tortoise import fields, models
import uuid


class OutboxEvent(models.Model):
    """
    Domain events recorded in the same transaction as the change that caused
    them (reservation status changes, low-stock alerts). Delivery to
    notification channels happens outside this service.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    aggregate_type = fields.CharField(max_length=64) # 'reservation' or 'inventory_item'
    aggregate_id = fields.UUIDField(null=True)
    event_type = fields.CharField(max_length=128) # e.g., 'reservation.status.confirmed.v1'
    payload = fields.JSONField()
    published = fields.BooleanField(default=False)
    attempts = fields.IntField(default=0)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "outbox_events"
        indexes = [
            ("published", "created_at"),  # Unpublished backlog, oldest first
        ]
