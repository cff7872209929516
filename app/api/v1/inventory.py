import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_current_actor
from app.core.config import DEFAULT_PAGE_SIZE, EXPIRY_WINDOW_DAYS, MOVEMENT_REPORT_DAYS
from app.core.errors import DomainError
from app.core.permissions import Actor
from app.schemas.inventory import (
    CategoryBreakdownEntry,
    InventoryAnalyticsResponse,
    InventoryItemCreateRequest,
    InventoryItemResponse,
    InventoryItemUpdateRequest,
    InventoryValueResponse,
    LedgerCheckResponse,
    StockAdjustmentRequest,
    StockMovementReport,
    StockMutationResponse,
    StockTransactionRequest,
    StockTransactionResponse,
    StockTransferRequest,
    StockTransferResponse,
    SupplierCreateRequest,
    SupplierResponse,
    SupplierUpdateRequest,
)
from app.schemas.response import PageResponse, SuccessResponse
from app.services import inventory_service

log = logging.getLogger("uvicorn")
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

router = APIRouter()


def _item_data(item):
    return InventoryItemResponse.model_validate(item).model_dump()


def _mutation_data(transaction, item):
    return StockMutationResponse(
        transaction=StockTransactionResponse.model_validate(transaction),
        inventory_item=InventoryItemResponse.model_validate(item),
    ).model_dump()


# ----------- Suppliers -----------

@router.post("/suppliers", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_supplier_endpoint(request_data: SupplierCreateRequest, actor: Actor = Depends(get_current_actor)):
    supplier = await inventory_service.create_supplier(request_data, actor)
    return SuccessResponse(data=SupplierResponse.model_validate(supplier).model_dump())


@router.get("/suppliers", response_model=SuccessResponse)
async def list_suppliers_endpoint(
    name: Optional[str] = None,
    contact_name: Optional[str] = None,
    active: Optional[bool] = None,
    actor: Actor = Depends(get_current_actor),
):
    suppliers = await inventory_service.list_suppliers(actor, name=name, contact_name=contact_name, active=active)
    return SuccessResponse(data=[SupplierResponse.model_validate(s).model_dump() for s in suppliers])


@router.get("/suppliers/{supplier_id}", response_model=SuccessResponse)
async def get_supplier_endpoint(supplier_id: UUID, actor: Actor = Depends(get_current_actor)):
    supplier = await inventory_service.get_supplier(supplier_id, actor)
    return SuccessResponse(data=SupplierResponse.model_validate(supplier).model_dump())


@router.patch("/suppliers/{supplier_id}", response_model=SuccessResponse)
async def update_supplier_endpoint(
    supplier_id: UUID, request_data: SupplierUpdateRequest, actor: Actor = Depends(get_current_actor)
):
    supplier = await inventory_service.update_supplier(supplier_id, request_data, actor)
    return SuccessResponse(data=SupplierResponse.model_validate(supplier).model_dump())


@router.delete("/suppliers/{supplier_id}", response_model=SuccessResponse)
async def delete_supplier_endpoint(supplier_id: UUID, actor: Actor = Depends(get_current_actor)):
    await inventory_service.delete_supplier(supplier_id, actor)
    return SuccessResponse(data={"message": "Supplier deleted successfully"})


# ----------- Items -----------

@router.post("/items", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_inventory_item_endpoint(
    request_data: InventoryItemCreateRequest, actor: Actor = Depends(get_current_actor)
):
    """
    Adds a stock item to a restaurant. A positive opening quantity is booked
    as the item's first ledger entry.
    """
    item = await inventory_service.create_inventory_item(request_data, actor)
    return SuccessResponse(data=_item_data(item))


@router.get("/items", response_model=SuccessResponse)
async def list_inventory_items_endpoint(
    restaurant_id: Optional[UUID] = None,
    supplier_id: Optional[UUID] = None,
    category: Optional[str] = None,
    name: Optional[str] = None,
    low_stock: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
):
    items, total = await inventory_service.list_inventory_items(
        actor,
        restaurant_id=restaurant_id,
        supplier_id=supplier_id,
        category=category,
        name=name,
        low_stock=low_stock,
        page=page,
        limit=limit,
    )
    page_data = PageResponse(items=[_item_data(i) for i in items], total=total, page=page, limit=limit)
    return SuccessResponse(data=page_data.model_dump())


@router.get("/items/{item_id}", response_model=SuccessResponse)
async def get_inventory_item_endpoint(item_id: UUID, actor: Actor = Depends(get_current_actor)):
    item = await inventory_service.get_inventory_item(item_id, actor)
    return SuccessResponse(data=_item_data(item))


@router.patch("/items/{item_id}", response_model=SuccessResponse)
async def update_inventory_item_endpoint(
    item_id: UUID, request_data: InventoryItemUpdateRequest, actor: Actor = Depends(get_current_actor)
):
    item = await inventory_service.update_inventory_item(item_id, request_data, actor)
    return SuccessResponse(data=_item_data(item))


@router.delete("/items/{item_id}", response_model=SuccessResponse)
async def delete_inventory_item_endpoint(item_id: UUID, actor: Actor = Depends(get_current_actor)):
    await inventory_service.delete_inventory_item(item_id, actor)
    return SuccessResponse(data={"message": "Inventory item deleted successfully"})


@router.get("/items/{item_id}/transactions", response_model=SuccessResponse)
async def list_item_transactions_endpoint(
    item_id: UUID,
    days: int = Query(MOVEMENT_REPORT_DAYS, ge=1, le=365),
    actor: Actor = Depends(get_current_actor),
):
    transactions = await inventory_service.list_stock_transactions(item_id, actor, days)
    return SuccessResponse(data=[StockTransactionResponse.model_validate(t).model_dump() for t in transactions])


@router.get("/items/{item_id}/ledger", response_model=SuccessResponse)
async def verify_item_ledger_endpoint(item_id: UUID, actor: Actor = Depends(get_current_actor)):
    """Compares the stored quantity with the sum of the item's ledger rows."""
    check = await inventory_service.verify_ledger(item_id, actor)
    if not check["consistent"]:
        log.error(f"Ledger mismatch on item {item_id}: {check['quantity']} vs {check['ledger_total']}")
    return SuccessResponse(data=LedgerCheckResponse(**check).model_dump())


# ----------- Ledger writes -----------

@router.post("/transactions", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_stock_transaction_endpoint(
    request_data: StockTransactionRequest, actor: Actor = Depends(get_current_actor)
):
    try:
        transaction, item = await inventory_service.apply_stock_transaction(
            request_data.inventory_item_id,
            request_data.transaction_type,
            request_data.quantity,
            actor,
            reason=request_data.reason,
            reference_id=request_data.reference_id,
        )
        return SuccessResponse(data=_mutation_data(transaction, item))
    except DomainError as e:
        log.info(f"Stock transaction rejected for item {request_data.inventory_item_id}: {e.message}")
        raise
    except Exception as e:
        log.error(f"Error recording stock transaction: {e}")
        raise HTTPException(status_code=500, detail="Server failed to record stock transaction.")


@router.post("/adjustments", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def adjust_stock_endpoint(request_data: StockAdjustmentRequest, actor: Actor = Depends(get_current_actor)):
    """Sets the item to the counted quantity; the ledger records the difference."""
    transaction, item = await inventory_service.adjust_stock(
        request_data.inventory_item_id, request_data.new_quantity, request_data.reason, actor
    )
    return SuccessResponse(data=_mutation_data(transaction, item))


@router.post("/transfers", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def transfer_stock_endpoint(request_data: StockTransferRequest, actor: Actor = Depends(get_current_actor)):
    try:
        result = await inventory_service.transfer_stock(
            request_data.from_inventory_item_id,
            request_data.to_inventory_item_id,
            request_data.quantity,
            actor,
            reason=request_data.reason,
        )
        data = StockTransferResponse(
            from_transaction=StockTransactionResponse.model_validate(result["from_transaction"]),
            to_transaction=StockTransactionResponse.model_validate(result["to_transaction"]),
            from_item=InventoryItemResponse.model_validate(result["from_item"]),
            to_item=InventoryItemResponse.model_validate(result["to_item"]),
        ).model_dump()
        return SuccessResponse(data=data)
    except DomainError as e:
        log.info(f"Stock transfer rejected: {e.message}")
        raise
    except Exception as e:
        log.error(f"Error transferring stock: {e}")
        raise HTTPException(status_code=500, detail="Server failed to transfer stock.")


# ----------- Restaurant reports -----------

@router.get("/restaurants/{restaurant_id}/low-stock", response_model=SuccessResponse)
async def low_stock_endpoint(restaurant_id: UUID, actor: Actor = Depends(get_current_actor)):
    items = await inventory_service.get_low_stock_items(restaurant_id, actor)
    return SuccessResponse(data=[_item_data(i) for i in items])


@router.get("/restaurants/{restaurant_id}/expiring", response_model=SuccessResponse)
async def expiring_items_endpoint(
    restaurant_id: UUID,
    days: int = Query(EXPIRY_WINDOW_DAYS, ge=0, le=365),
    actor: Actor = Depends(get_current_actor),
):
    items = await inventory_service.get_expiring_items(restaurant_id, actor, days)
    return SuccessResponse(data=[_item_data(i) for i in items])


@router.get("/restaurants/{restaurant_id}/value", response_model=SuccessResponse)
async def inventory_value_endpoint(restaurant_id: UUID, actor: Actor = Depends(get_current_actor)):
    value = await inventory_service.get_inventory_value(restaurant_id, actor)
    return SuccessResponse(data=InventoryValueResponse(**value).model_dump())


@router.get("/restaurants/{restaurant_id}/categories", response_model=SuccessResponse)
async def category_breakdown_endpoint(restaurant_id: UUID, actor: Actor = Depends(get_current_actor)):
    breakdown = await inventory_service.get_category_breakdown(restaurant_id, actor)
    return SuccessResponse(data=[CategoryBreakdownEntry(**entry).model_dump() for entry in breakdown])


@router.get("/restaurants/{restaurant_id}/movement", response_model=SuccessResponse)
async def stock_movement_endpoint(
    restaurant_id: UUID,
    days: int = Query(MOVEMENT_REPORT_DAYS, ge=1, le=365),
    actor: Actor = Depends(get_current_actor),
):
    report = await inventory_service.get_stock_movement_report(restaurant_id, actor, days)
    return SuccessResponse(data=StockMovementReport(**report).model_dump())


@router.get("/restaurants/{restaurant_id}/analytics", response_model=SuccessResponse)
async def inventory_analytics_endpoint(restaurant_id: UUID, actor: Actor = Depends(get_current_actor)):
    analytics = await inventory_service.get_inventory_analytics(restaurant_id, actor)
    return SuccessResponse(data=InventoryAnalyticsResponse(**analytics).model_dump())
