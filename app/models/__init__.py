# app/models/__init__.py
from .restaurant import Restaurant, StaffAssignment
from .reservation import Table, TableStatus, Reservation, ReservationStatus, ReservationType
from .inventory import Supplier, InventoryItem, StockTransaction, TransactionType
from .outbox import OutboxEvent

# Export all models
__all__ = [
    "Restaurant",
    "StaffAssignment",
    "Table",
    "TableStatus",
    "Reservation",
    "ReservationStatus",
    "ReservationType",
    "Supplier",
    "InventoryItem",
    "StockTransaction",
    "TransactionType",
    "OutboxEvent",
]
