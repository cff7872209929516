
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.inventory import TransactionType


# ----------- Suppliers -----------

class SupplierCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    contact_name: str = Field(..., min_length=1, max_length=255)
    phone: str = Field(..., min_length=5, max_length=32, pattern=r"^\+?[0-9 ()-]+$")
    email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    address: str = Field(..., min_length=1, max_length=500)
    active: bool = Field(True, description="Whether the supplier currently delivers.")


class SupplierUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    contact_name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = Field(None, min_length=5, max_length=32, pattern=r"^\+?[0-9 ()-]+$")
    email: Optional[str] = Field(None, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    address: Optional[str] = Field(None, min_length=1, max_length=500)
    active: Optional[bool] = None


class SupplierResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    contact_name: str
    phone: str
    email: str
    address: str
    active: bool


# ----------- Inventory items -----------

class InventoryItemCreateRequest(BaseModel):
    restaurant_id: uuid.UUID
    supplier_id: Optional[uuid.UUID] = None
    name: str = Field(..., min_length=1, max_length=255, description="Name of the stock item (e.g., Basmati Rice).")
    category: str = Field(..., min_length=1, max_length=100)
    quantity: Decimal = Field(Decimal("0"), ge=0, max_digits=14, decimal_places=3, description="Opening stock, recorded as the first ledger entry.")
    unit: str = Field(..., min_length=1, max_length=20)
    unit_price: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    threshold: Decimal = Field(Decimal("0"), ge=0, max_digits=14, decimal_places=3, description="Stock level at or below which the item is low.")
    sku: Optional[str] = Field(None, max_length=64)
    expiry_date: Optional[date] = None


class InventoryItemUpdateRequest(BaseModel):
    """Quantity is deliberately absent: stock only moves through the ledger."""
    supplier_id: Optional[uuid.UUID] = None
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    unit: Optional[str] = Field(None, min_length=1, max_length=20)
    unit_price: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    threshold: Optional[Decimal] = Field(None, ge=0, max_digits=14, decimal_places=3)
    sku: Optional[str] = Field(None, max_length=64)
    expiry_date: Optional[date] = None


class InventoryItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    restaurant_id: uuid.UUID
    supplier_id: Optional[uuid.UUID] = None
    name: str
    category: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    threshold: Decimal
    sku: Optional[str] = None
    expiry_date: Optional[date] = None
    is_low_stock: bool


# ----------- Ledger -----------

class StockTransactionRequest(BaseModel):
    """
    For IN/OUT, quantity is the amount moved. For ADJUSTMENT it is the
    target stock level the item is set to.
    """
    inventory_item_id: uuid.UUID
    transaction_type: TransactionType
    quantity: Decimal = Field(..., ge=0, max_digits=14, decimal_places=3)
    reason: Optional[str] = Field(None, max_length=500)
    reference_id: Optional[str] = Field(None, max_length=128)

    @model_validator(mode="after")
    def _movement_is_positive(self):
        if self.transaction_type != TransactionType.ADJUSTMENT and self.quantity <= 0:
            raise ValueError("quantity must be greater than 0 for IN and OUT transactions")
        return self


class StockAdjustmentRequest(BaseModel):
    inventory_item_id: uuid.UUID
    new_quantity: Decimal = Field(..., ge=0, max_digits=14, decimal_places=3)
    reason: str = Field(..., min_length=1, max_length=500)


class StockTransferRequest(BaseModel):
    from_inventory_item_id: uuid.UUID
    to_inventory_item_id: uuid.UUID
    quantity: Decimal = Field(..., gt=0, max_digits=14, decimal_places=3)
    reason: Optional[str] = Field(None, max_length=500)


class StockTransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    inventory_item_id: uuid.UUID
    quantity_change: Decimal
    resulting_quantity: Decimal
    transaction_type: TransactionType
    reference_id: Optional[str] = None
    reason: Optional[str] = None
    performed_by: str
    created_at: datetime


class StockMutationResponse(BaseModel):
    transaction: StockTransactionResponse
    inventory_item: InventoryItemResponse


class StockTransferResponse(BaseModel):
    from_transaction: StockTransactionResponse
    to_transaction: StockTransactionResponse
    from_item: InventoryItemResponse
    to_item: InventoryItemResponse


# ----------- Reports -----------

class InventoryValueResponse(BaseModel):
    total_value: Decimal
    item_count: int


class CategoryBreakdownEntry(BaseModel):
    category: str
    count: int
    value: Decimal


class StockMovementReport(BaseModel):
    total_in: Decimal
    total_out: Decimal
    total_adjustments: Decimal
    by_category: Dict[str, Dict[str, Decimal]]  # category -> {"in", "out", "adjustments"}


class LedgerCheckResponse(BaseModel):
    inventory_item_id: uuid.UUID
    quantity: Decimal
    ledger_total: Decimal
    consistent: bool


class InventoryAnalyticsResponse(BaseModel):
    restaurant_id: uuid.UUID
    inventory_value: InventoryValueResponse
    low_stock_count: int
    expiring_count: int
    category_breakdown: List[CategoryBreakdownEntry]
    last_updated: datetime
