"""
Inventory ledger: suppliers, stock items and the append-only stock
transaction history behind every quantity change.

Item quantity is a materialized view of the ledger. It is only ever written
by `_write_ledger`, inside the same transaction as the StockTransaction row
that explains it, so `quantity == sum(quantity_change)` holds for every item.
"""
import logging
from collections import defaultdict
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from tortoise import timezone
from tortoise.exceptions import IntegrityError
from tortoise.expressions import Q
from tortoise.transactions import in_transaction

from app.core.config import DEFAULT_PAGE_SIZE, EXPIRY_WINDOW_DAYS, MOVEMENT_REPORT_DAYS
from app.core.errors import (
    Conflict,
    ForbiddenCrossRestaurantTransfer,
    InsufficientStock,
    InvalidOperation,
    NotFound,
)
from app.core.permissions import (
    Action,
    Actor,
    accessible_restaurant_ids,
    authorize,
    ensure_restaurant_access,
    is_allowed,
)
from app.events.outbox_utility import create_outbox_event
from app.models.inventory import InventoryItem, StockTransaction, Supplier, TransactionType
from app.schemas.inventory import (
    InventoryItemCreateRequest,
    InventoryItemUpdateRequest,
    SupplierCreateRequest,
    SupplierUpdateRequest,
)

log = logging.getLogger(__name__)

ZERO = Decimal("0")
# Precision of the quantity columns (decimal_places=3)
QUANTITY_STEP = Decimal("0.001")


def to_stock_precision(value: Decimal) -> Decimal:
    return Decimal(value).quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)


# ----------- Suppliers -----------

async def create_supplier(data: SupplierCreateRequest, actor: Actor) -> Supplier:
    authorize(actor, Action.SUPPLIER_MANAGE)

    if await Supplier.filter(Q(email=data.email) | Q(phone=data.phone)).exists():
        raise Conflict("Supplier with this email or phone already exists")

    try:
        supplier = await Supplier.create(**data.model_dump())
    except IntegrityError:
        raise Conflict("Supplier with this email or phone already exists")
    log.info(f"Supplier '{supplier.name}' created by {actor.id}.")
    return supplier


async def list_suppliers(
    actor: Actor,
    name: Optional[str] = None,
    contact_name: Optional[str] = None,
    active: Optional[bool] = None,
) -> List[Supplier]:
    authorize(actor, Action.SUPPLIER_VIEW)

    query = Supplier.all()
    if name:
        query = query.filter(name__icontains=name)
    if contact_name:
        query = query.filter(contact_name__icontains=contact_name)
    if active is not None:
        query = query.filter(active=active)
    return await query.order_by("name", "-created_at")


async def get_supplier(supplier_id: UUID, actor: Actor) -> Supplier:
    authorize(actor, Action.SUPPLIER_VIEW)
    supplier = await Supplier.get_or_none(id=supplier_id)
    if not supplier:
        raise NotFound(f"Supplier with ID {supplier_id} not found")
    return supplier


async def update_supplier(supplier_id: UUID, data: SupplierUpdateRequest, actor: Actor) -> Supplier:
    authorize(actor, Action.SUPPLIER_MANAGE)
    supplier = await get_supplier(supplier_id, actor)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)

    if "email" in changes and changes["email"] != supplier.email:
        if await Supplier.filter(email=changes["email"]).exists():
            raise Conflict("Supplier with this email already exists")
    if "phone" in changes and changes["phone"] != supplier.phone:
        if await Supplier.filter(phone=changes["phone"]).exists():
            raise Conflict("Supplier with this phone already exists")

    supplier.update_from_dict(changes)
    try:
        await supplier.save()
    except IntegrityError:
        raise Conflict("Supplier with this email or phone already exists")
    return supplier


async def delete_supplier(supplier_id: UUID, actor: Actor) -> None:
    authorize(actor, Action.SUPPLIER_MANAGE)
    supplier = await get_supplier(supplier_id, actor)

    if await InventoryItem.filter(supplier_id=supplier_id).exists():
        raise InvalidOperation("Cannot delete supplier with existing inventory items")

    await supplier.delete()
    log.info(f"Supplier {supplier_id} deleted by {actor.id}.")


# ----------- Inventory items -----------

async def _load_item(item_id: UUID, conn: Any = None, lock: bool = False) -> InventoryItem:
    query = InventoryItem.filter(id=item_id).using_db(conn)
    if lock:
        query = query.select_for_update()
    item = await query.first()
    if not item:
        raise NotFound(f"Inventory item with ID {item_id} not found")
    return item


async def _load_accessible_item(item_id: UUID, actor: Actor, conn: Any = None, lock: bool = False) -> InventoryItem:
    item = await _load_item(item_id, conn, lock)
    await ensure_restaurant_access(actor, item.restaurant_id, conn)
    return item


async def _ensure_supplier_exists(supplier_id: Optional[UUID]) -> None:
    if supplier_id and not await Supplier.exists(id=supplier_id):
        raise NotFound(f"Supplier with ID {supplier_id} not found")


async def _write_ledger(
    item: InventoryItem,
    transaction_type: TransactionType,
    new_quantity: Decimal,
    actor: Actor,
    conn: Any,
    reason: Optional[str] = None,
    reference_id: Optional[str] = None,
) -> StockTransaction:
    """
    Sets the item to new_quantity and appends the ledger row recording the
    signed delta. Must run inside the caller's transaction.
    """
    new_quantity = to_stock_precision(new_quantity)
    delta = new_quantity - item.quantity
    item.quantity = new_quantity
    await item.save(update_fields=["quantity", "updated_at"], using_db=conn)

    transaction = await StockTransaction.create(
        inventory_item_id=item.id,
        quantity_change=delta,
        resulting_quantity=new_quantity,
        transaction_type=transaction_type,
        reference_id=reference_id,
        reason=reason,
        performed_by=actor.id,
        using_db=conn,
    )

    if delta < 0 and item.is_low_stock:
        await check_for_low_stock(item, transaction, conn)
    return transaction


async def check_for_low_stock(item: InventoryItem, transaction: StockTransaction, conn: Any) -> None:
    """Records a low-stock alert in the same transaction as the write that caused it."""
    log.warning(f"Low stock detected for item {item.id} ({item.name}): {item.quantity} {item.unit}")
    await create_outbox_event(
        aggregate_type="inventory_item",
        aggregate_id=item.id,
        event_type="inventory.low_stock_alert.v1",
        payload={
            "inventory_item_id": str(item.id),
            "restaurant_id": str(item.restaurant_id),
            "name": item.name,
            "quantity": str(item.quantity),
            "threshold": str(item.threshold),
            "triggered_by_transaction_id": str(transaction.id),
        },
        conn=conn
    )


async def create_inventory_item(data: InventoryItemCreateRequest, actor: Actor) -> InventoryItem:
    """
    Creates the item at zero and, for a positive opening quantity, books it
    through the ledger as an 'Initial stock' IN transaction.
    """
    authorize(actor, Action.INVENTORY_WRITE)
    await ensure_restaurant_access(actor, data.restaurant_id)
    await _ensure_supplier_exists(data.supplier_id)

    if data.sku and await InventoryItem.filter(restaurant_id=data.restaurant_id, sku=data.sku).exists():
        raise Conflict("Inventory item with this SKU already exists in this restaurant")

    opening_quantity = to_stock_precision(data.quantity)
    try:
        async with in_transaction() as conn:
            item = await InventoryItem.create(
                **data.model_dump(exclude={"quantity"}),
                quantity=ZERO,
                using_db=conn,
            )
            if opening_quantity > 0:
                await _write_ledger(
                    item, TransactionType.IN, opening_quantity, actor, conn,
                    reason="Initial stock", reference_id=f"INIT_{item.id}",
                )
    except IntegrityError:
        # A concurrent create won the (restaurant, sku) constraint
        raise Conflict("Inventory item with this SKU already exists in this restaurant")

    log.info(f"Inventory item '{item.name}' created for restaurant {data.restaurant_id}.")
    return item


async def list_inventory_items(
    actor: Actor,
    restaurant_id: Optional[UUID] = None,
    supplier_id: Optional[UUID] = None,
    category: Optional[str] = None,
    name: Optional[str] = None,
    low_stock: bool = False,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> Tuple[List[InventoryItem], int]:
    authorize(actor, Action.INVENTORY_VIEW)

    query = InventoryItem.all()
    scope = await accessible_restaurant_ids(actor)
    if scope is not None:
        query = query.filter(restaurant_id__in=scope)
    if restaurant_id:
        query = query.filter(restaurant_id=restaurant_id)
    if supplier_id:
        query = query.filter(supplier_id=supplier_id)
    if category:
        query = query.filter(category__icontains=category)
    if name:
        query = query.filter(name__icontains=name)
    query = query.order_by("category", "name")
    offset = (page - 1) * limit

    if low_stock:
        # quantity <= threshold compares two decimal columns; done here so it
        # behaves the same on every backend
        items = [item for item in await query if item.is_low_stock]
        return items[offset:offset + limit], len(items)

    total = await query.count()
    return await query.offset(offset).limit(limit), total


async def get_inventory_item(item_id: UUID, actor: Actor) -> InventoryItem:
    authorize(actor, Action.INVENTORY_VIEW)
    return await _load_accessible_item(item_id, actor)


async def update_inventory_item(item_id: UUID, data: InventoryItemUpdateRequest, actor: Actor) -> InventoryItem:
    authorize(actor, Action.INVENTORY_WRITE)
    item = await _load_accessible_item(item_id, actor)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)

    if "sku" in changes and changes["sku"] != item.sku:
        if await InventoryItem.filter(restaurant_id=item.restaurant_id, sku=changes["sku"]).exists():
            raise Conflict("Inventory item with this SKU already exists in this restaurant")
    await _ensure_supplier_exists(changes.get("supplier_id"))

    item.update_from_dict(changes)
    try:
        await item.save()
    except IntegrityError:
        raise Conflict("Inventory item with this SKU already exists in this restaurant")
    return item


async def delete_inventory_item(item_id: UUID, actor: Actor) -> None:
    authorize(actor, Action.INVENTORY_DELETE)
    item = await _load_accessible_item(item_id, actor)

    # The ledger is an audit trail; an item that has one stays
    if await StockTransaction.exists(inventory_item_id=item.id):
        raise InvalidOperation("Cannot delete inventory item with stock history")

    await item.delete()
    log.info(f"Inventory item {item_id} deleted by {actor.id}.")


# ----------- Ledger operations -----------

async def apply_stock_transaction(
    item_id: UUID,
    transaction_type: TransactionType,
    quantity: Decimal,
    actor: Actor,
    reason: Optional[str] = None,
    reference_id: Optional[str] = None,
) -> Tuple[StockTransaction, InventoryItem]:
    """
    IN adds quantity, OUT removes it (never below zero), ADJUSTMENT sets the
    item to quantity as an absolute level. The item row is locked for the
    duration of the write.
    """
    authorize(actor, Action.INVENTORY_WRITE)
    quantity = to_stock_precision(quantity)
    if quantity < 0:
        raise InvalidOperation("Quantity cannot be negative")
    if transaction_type != TransactionType.ADJUSTMENT and quantity == 0:
        raise InvalidOperation("Quantity must be greater than 0")

    async with in_transaction() as conn:
        item = await _load_accessible_item(item_id, actor, conn, lock=True)

        if transaction_type == TransactionType.IN:
            new_quantity = item.quantity + quantity
        elif transaction_type == TransactionType.OUT:
            if item.quantity < quantity:
                raise InsufficientStock(
                    f"Insufficient stock for this transaction. Requested: {quantity}, Available: {item.quantity}"
                )
            new_quantity = item.quantity - quantity
        else:
            new_quantity = quantity

        transaction = await _write_ledger(
            item, transaction_type, new_quantity, actor, conn, reason=reason, reference_id=reference_id
        )

    return transaction, item


async def adjust_stock(
    item_id: UUID, new_quantity: Decimal, reason: str, actor: Actor
) -> Tuple[StockTransaction, InventoryItem]:
    """Stock count correction: the item ends at new_quantity, the ledger row holds the difference."""
    return await apply_stock_transaction(item_id, TransactionType.ADJUSTMENT, new_quantity, actor, reason=reason)


async def transfer_stock(
    from_item_id: UUID,
    to_item_id: UUID,
    quantity: Decimal,
    actor: Actor,
    reason: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Moves stock between two items as one unit: an OUT row on the source, an
    IN row on the destination and both quantity updates commit together or
    not at all.
    """
    authorize(actor, Action.INVENTORY_WRITE)
    if from_item_id == to_item_id:
        raise InvalidOperation("Cannot transfer stock to the same item")
    quantity = to_stock_precision(quantity)
    if quantity <= 0:
        raise InvalidOperation("Quantity must be greater than 0")

    async with in_transaction() as conn:
        # Lock both rows in id order so concurrent opposite transfers cannot deadlock
        locked = await InventoryItem.filter(id__in=[from_item_id, to_item_id]).using_db(conn).select_for_update().order_by("id")
        items = {item.id: item for item in locked}
        from_item = items.get(from_item_id)
        to_item = items.get(to_item_id)
        if not from_item:
            raise NotFound(f"Inventory item with ID {from_item_id} not found")
        if not to_item:
            raise NotFound(f"Inventory item with ID {to_item_id} not found")

        if from_item.restaurant_id != to_item.restaurant_id and not is_allowed(
            actor, Action.INVENTORY_CROSS_RESTAURANT_TRANSFER
        ):
            raise ForbiddenCrossRestaurantTransfer("Cannot transfer stock between different restaurants")
        await ensure_restaurant_access(actor, from_item.restaurant_id, conn)
        await ensure_restaurant_access(actor, to_item.restaurant_id, conn)

        if from_item.quantity < quantity:
            raise InsufficientStock("Insufficient stock in source item for transfer")

        from_transaction = await _write_ledger(
            from_item, TransactionType.OUT, from_item.quantity - quantity, actor, conn,
            reason=reason or f"Transfer to {to_item.name}",
            reference_id=f"TRANSFER_TO_{to_item.id}",
        )
        to_transaction = await _write_ledger(
            to_item, TransactionType.IN, to_item.quantity + quantity, actor, conn,
            reason=reason or f"Transfer from {from_item.name}",
            reference_id=f"TRANSFER_FROM_{from_item.id}",
        )

    log.info(f"Transferred {quantity} from {from_item.id} to {to_item.id} by {actor.id}.")
    return {
        "from_transaction": from_transaction,
        "to_transaction": to_transaction,
        "from_item": from_item,
        "to_item": to_item,
    }


async def list_stock_transactions(
    item_id: UUID, actor: Actor, days: int = MOVEMENT_REPORT_DAYS
) -> List[StockTransaction]:
    authorize(actor, Action.INVENTORY_VIEW)
    await _load_accessible_item(item_id, actor)

    since = timezone.now() - timedelta(days=days)
    return await StockTransaction.filter(
        inventory_item_id=item_id, created_at__gte=since
    ).order_by("-created_at")


async def verify_ledger(item_id: UUID, actor: Actor) -> Dict[str, Any]:
    """Replays the ledger and compares it with the materialized quantity."""
    authorize(actor, Action.INVENTORY_VIEW)
    item = await _load_accessible_item(item_id, actor)

    transactions = await StockTransaction.filter(inventory_item_id=item.id)
    ledger_total = sum((t.quantity_change for t in transactions), ZERO)
    return {
        "inventory_item_id": item.id,
        "quantity": item.quantity,
        "ledger_total": ledger_total,
        "consistent": ledger_total == item.quantity,
    }


# ----------- Reporting -----------
# Read-only; each report works on one snapshot query, so concurrent writes
# can make reports slightly stale but never inconsistent with themselves.

async def _restaurant_items(restaurant_id: UUID, actor: Actor) -> List[InventoryItem]:
    authorize(actor, Action.INVENTORY_REPORT)
    await ensure_restaurant_access(actor, restaurant_id)
    return await InventoryItem.filter(restaurant_id=restaurant_id)


async def get_low_stock_items(restaurant_id: UUID, actor: Actor) -> List[InventoryItem]:
    items = await _restaurant_items(restaurant_id, actor)
    return sorted((item for item in items if item.is_low_stock), key=lambda item: item.quantity)


async def is_item_low_stock(item_id: UUID, actor: Actor) -> bool:
    item = await get_inventory_item(item_id, actor)
    return item.is_low_stock


async def get_expiring_items(
    restaurant_id: UUID, actor: Actor, days: int = EXPIRY_WINDOW_DAYS, today: Optional[date] = None
) -> List[InventoryItem]:
    """Items whose expiry date falls within the next `days` days (already expired included)."""
    authorize(actor, Action.INVENTORY_REPORT)
    await ensure_restaurant_access(actor, restaurant_id)

    cutoff = (today or date.today()) + timedelta(days=days)
    return await InventoryItem.filter(
        restaurant_id=restaurant_id,
        expiry_date__isnull=False,
        expiry_date__lte=cutoff,
    ).order_by("expiry_date")


async def get_inventory_value(restaurant_id: UUID, actor: Actor) -> Dict[str, Any]:
    items = await _restaurant_items(restaurant_id, actor)
    return {
        "total_value": sum((item.quantity * item.unit_price for item in items), ZERO),
        "item_count": len(items),
    }


async def get_category_breakdown(restaurant_id: UUID, actor: Actor) -> List[Dict[str, Any]]:
    items = await _restaurant_items(restaurant_id, actor)

    breakdown: Dict[str, Dict[str, Any]] = {}
    for item in items:
        entry = breakdown.setdefault(item.category, {"category": item.category, "count": 0, "value": ZERO})
        entry["count"] += 1
        entry["value"] += item.quantity * item.unit_price

    return sorted(breakdown.values(), key=lambda entry: entry["value"], reverse=True)


async def get_stock_movement_report(
    restaurant_id: UUID, actor: Actor, days: int = MOVEMENT_REPORT_DAYS
) -> Dict[str, Any]:
    """
    Buckets the trailing `days` of ledger rows by type and item category.
    Amounts are absolute: an OUT of 5 counts as 5 out, an adjustment of -3
    as 3 adjusted.
    """
    authorize(actor, Action.INVENTORY_REPORT)
    await ensure_restaurant_access(actor, restaurant_id)

    since = timezone.now() - timedelta(days=days)
    item_ids = await InventoryItem.filter(restaurant_id=restaurant_id).values_list("id", flat=True)
    transactions = await StockTransaction.filter(
        inventory_item_id__in=list(item_ids),
        created_at__gte=since,
    ).prefetch_related("inventory_item")

    bucket_for = {
        TransactionType.IN: "in",
        TransactionType.OUT: "out",
        TransactionType.ADJUSTMENT: "adjustments",
    }
    totals = {"in": ZERO, "out": ZERO, "adjustments": ZERO}
    by_category = defaultdict(lambda: {"in": ZERO, "out": ZERO, "adjustments": ZERO})

    for transaction in transactions:
        bucket = bucket_for[transaction.transaction_type]
        amount = abs(transaction.quantity_change)
        totals[bucket] += amount
        by_category[transaction.inventory_item.category][bucket] += amount

    return {
        "total_in": totals["in"],
        "total_out": totals["out"],
        "total_adjustments": totals["adjustments"],
        "by_category": dict(by_category),
    }


async def get_inventory_analytics(restaurant_id: UUID, actor: Actor) -> Dict[str, Any]:
    return {
        "restaurant_id": restaurant_id,
        "inventory_value": await get_inventory_value(restaurant_id, actor),
        "low_stock_count": len(await get_low_stock_items(restaurant_id, actor)),
        "expiring_count": len(await get_expiring_items(restaurant_id, actor)),
        "category_breakdown": await get_category_breakdown(restaurant_id, actor),
        "last_updated": timezone.now(),
    }
