from enum import Enum
from tortoise import fields, models
import uuid

from app.core.errors import LedgerImmutable


class TransactionType(str, Enum):
    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"


class Supplier(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    name = fields.CharField(max_length=255)
    contact_name = fields.CharField(max_length=255)
    phone = fields.CharField(max_length=32, unique=True)
    email = fields.CharField(max_length=255, unique=True)
    address = fields.CharField(max_length=500)
    active = fields.BooleanField(default=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "suppliers"


class InventoryItem(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    restaurant = fields.ForeignKeyField("models.Restaurant", related_name="inventory_items")
    supplier = fields.ForeignKeyField(
        "models.Supplier", related_name="inventory_items", null=True, on_delete=fields.RESTRICT
    )
    name = fields.CharField(max_length=255)
    category = fields.CharField(max_length=100)
    # Materialized view of the ledger: always equals the sum of its transactions' quantity_change
    quantity = fields.DecimalField(max_digits=14, decimal_places=3, default=0)
    unit = fields.CharField(max_length=20) # e.g., 'kg', 'l', 'pcs'
    unit_price = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    threshold = fields.DecimalField(max_digits=14, decimal_places=3, default=0) # For low stock alert
    sku = fields.CharField(max_length=64, null=True)
    expiry_date = fields.DateField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "inventory_items"
        unique_together = (("restaurant", "sku"),)
        indexes = [
            ("restaurant_id", "category"),     # Category breakdown
            ("restaurant_id", "expiry_date"),  # Expiring items
        ]

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.threshold


class StockTransaction(models.Model):
    """
    Append-only ledger row. Written exactly once per quantity-affecting
    operation and never updated or deleted afterwards.

    quantity_change is the signed delta applied to the item (OUT rows are
    negative, ADJUSTMENT rows carry the difference to the target level);
    resulting_quantity is the item quantity right after this row.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    inventory_item = fields.ForeignKeyField("models.InventoryItem", related_name="transactions", on_delete=fields.RESTRICT)
    quantity_change = fields.DecimalField(max_digits=14, decimal_places=3)
    resulting_quantity = fields.DecimalField(max_digits=14, decimal_places=3)
    transaction_type = fields.CharEnumField(TransactionType)
    reference_id = fields.CharField(max_length=128, null=True) # e.g., 'TRANSFER_TO_<id>'
    reason = fields.CharField(max_length=500, null=True)
    performed_by = fields.CharField(max_length=64)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "stock_transactions"
        ordering = ["created_at"]
        indexes = [
            ("inventory_item_id", "created_at"),  # Item history
            ("created_at",),                      # Movement reports
        ]

    async def save(self, *args, **kwargs):
        if self._saved_in_db:
            raise LedgerImmutable(f"Stock transaction {self.id} is immutable")
        await super().save(*args, **kwargs)

    async def delete(self, *args, **kwargs):
        raise LedgerImmutable(f"Stock transaction {self.id} cannot be deleted")
