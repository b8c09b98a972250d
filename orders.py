"""
Order placement workflow

1. Validate the requested line items against the catalogue (all problems are
   collected, nothing is written when any exist)
2. Allocate a sequential order number
3. Persist the order with catalogue price snapshots
4. Decrement stock per product with a conditional update; a late shortage
   rolls the order back and asks the client to retry

Also holds the order status transitions and the owner/admin read check.
"""

from typing import List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError
from pydantic import BaseModel, Field

from database import now, stamp
from errors import AuthorizationError, ConflictError, NotFoundError, OutOfStockError, ValidationError
from logging_config import get_logger
from schemas import CurrentUser, Order, OrderItem, OrderItemIn, OrderRequest, OrderStatus, ProductRef
from sequences import next_order_number

log = get_logger(__name__)

INVALID_ID = "invalid_id"
NOT_FOUND = "not_found"
INSUFFICIENT_STOCK = "insufficient_stock"


class ItemProblem(BaseModel):
    index: int = Field(..., description="Position of the line item in the request")
    product_id: Optional[str] = None
    reason: str
    message: str
    available: Optional[int] = None
    requested: Optional[int] = None


class ItemValidation(BaseModel):
    items: List[OrderItem] = Field(default_factory=list)
    problems: List[ItemProblem] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


def normalize_product_id(raw) -> Optional[ObjectId]:
    """Accepts an id string or an embedded product object; None if unparseable."""
    if isinstance(raw, ProductRef):
        raw = raw.id
    if isinstance(raw, ObjectId):
        return raw
    if isinstance(raw, str) and ObjectId.is_valid(raw):
        return ObjectId(raw)
    return None


def _raw_id(item: OrderItemIn) -> Optional[str]:
    if isinstance(item.product_id, ProductRef):
        return item.product_id.id
    return item.product_id


def validate_order_items(db, items: List[OrderItemIn]) -> ItemValidation:
    """
    Check requested items against current stock.

    Quantities are summed per product before comparing with stock_quantity, so
    two lines for the same product cannot together exceed what is on hand.
    """
    problems: List[ItemProblem] = []
    resolved = []

    for index, item in enumerate(items):
        oid = normalize_product_id(item.product_id)
        if oid is None:
            raw = _raw_id(item)
            problems.append(ItemProblem(
                index=index,
                product_id=raw,
                reason=INVALID_ID,
                message=f"Invalid product ID format for item: {item.name or 'Unknown Product'}. ID: {raw}",
            ))
            continue
        resolved.append((index, item, oid))

    products = {}
    if resolved:
        ids = list({oid for _, _, oid in resolved})
        products = {p["_id"]: p for p in db["product"].find({"_id": {"$in": ids}})}
        log.info(f"Found {len(products)} of {len(ids)} requested products")

    requested = {}
    for _, item, oid in resolved:
        requested[oid] = requested.get(oid, 0) + item.quantity

    short_reported = set()
    cleaned: List[OrderItem] = []
    for index, item, oid in resolved:
        product = products.get(oid)
        if product is None:
            problems.append(ItemProblem(
                index=index,
                product_id=str(oid),
                reason=NOT_FOUND,
                message=f"Product with ID {oid} not found.",
            ))
            continue

        available = product.get("stock_quantity", 0)
        if requested[oid] > available:
            if oid not in short_reported:
                short_reported.add(oid)
                problems.append(ItemProblem(
                    index=index,
                    product_id=str(oid),
                    reason=INSUFFICIENT_STOCK,
                    message=(f"Not enough stock for {product['name']}. "
                             f"Available: {available}, Requested: {requested[oid]}."),
                    available=available,
                    requested=requested[oid],
                ))
            continue

        cleaned.append(OrderItem(
            product_id=str(oid),
            name=product["name"],
            quantity=item.quantity,
            price=product["price"],
            image=product.get("image"),
        ))

    problems.sort(key=lambda p: p.index)
    return ItemValidation(items=cleaned, problems=problems)


def _compensate(db, order: dict, applied: list, log_prefix: str) -> None:
    for pid, taken in applied:
        db["product"].update_one({"_id": ObjectId(pid)}, {"$inc": {"stock_quantity": taken}})
    db["order"].delete_one({"_id": order["_id"]})
    log.info(f"{log_prefix} Compensation done: restored {len(applied)} product(s), order removed.")


def _decrement_stock(db, order: dict, items: List[OrderItem]) -> None:
    log_prefix = f"[Order: {order['order_number']}]"

    quantities = {}
    for item in items:
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity

    applied = []
    try:
        for product_id, quantity in quantities.items():
            res = db["product"].update_one(
                {"_id": ObjectId(product_id), "stock_quantity": {"$gte": quantity}},
                {"$inc": {"stock_quantity": -quantity}, "$set": {"updated_at": now()}},
            )
            if res.matched_count == 0:
                log.warning(f"{log_prefix} Stock for product {product_id} ran out before decrement. Rolling back.")
                break
            applied.append((product_id, quantity))
            log.info(f"{log_prefix} Decremented stock for product {product_id} by {quantity}.")
        else:
            return
    except PyMongoError as e:
        log.error(f"{log_prefix} Stock decrement failed after {len(applied)} product(s): {e}. Rolling back.")
        _compensate(db, order, applied, log_prefix)
        raise

    # late shortage
    _compensate(db, order, applied, log_prefix)
    raise OutOfStockError(errors=[ItemProblem(
        index=next(i for i, item in enumerate(items) if item.product_id == product_id),
        product_id=product_id,
        reason=INSUFFICIENT_STOCK,
        message=f"Product with ID {product_id} no longer has enough stock.",
        requested=quantity,
    ).model_dump(exclude_none=True)])


def place_order(db, request: OrderRequest, user: CurrentUser) -> dict:
    log_prefix = f"[User: {user.id}]"

    if not request.order_items:
        log.warning(f"{log_prefix} No order items provided.")
        raise ValidationError("No order items")
    log.info(f"{log_prefix} Received order with {len(request.order_items)} item(s).")

    result = validate_order_items(db, request.order_items)
    if not result.ok:
        log.warning(f"{log_prefix} Order validation failed: {[p.message for p in result.problems]}")
        raise ValidationError(errors=[p.model_dump(exclude_none=True) for p in result.problems])

    order_number = next_order_number(db)

    items_price = round(sum(i.price * i.quantity for i in result.items), 2)
    total_price = round(items_price + request.tax_price + request.shipping_price, 2)
    if request.total_price is not None and abs(request.total_price - total_price) >= 0.01:
        log.warning(f"{log_prefix} Client total {request.total_price} differs from computed {total_price}; using computed.")

    order = Order(
        user_id=user.id,
        order_number=order_number,
        order_items=result.items,
        shipping_address=request.shipping_address,
        payment_method=request.payment_method,
        items_price=items_price,
        tax_price=request.tax_price,
        shipping_price=request.shipping_price,
        total_price=total_price,
        is_paid=True,
        paid_at=now(),
        status=OrderStatus.processing,
    )
    document = stamp(order.model_dump())

    try:
        inserted = db["order"].insert_one(document)
    except DuplicateKeyError as e:
        log.error(f"{log_prefix} Duplicate order number {order_number}: {e}")
        raise ConflictError()
    document["_id"] = inserted.inserted_id
    log.info(f"[Order: {order_number}] Saved order {inserted.inserted_id}.")

    _decrement_stock(db, document, result.items)
    return document


def get_order_for(db, order_id: ObjectId, user: CurrentUser) -> dict:
    order = db["order"].find_one({"_id": order_id})
    if order is None:
        raise NotFoundError("Order not found")
    if order.get("user_id") != user.id and not user.is_admin:
        raise AuthorizationError("Not authorized to view this order")
    return order


def apply_status(db, order_id: ObjectId, status: str) -> dict:
    """
    Set an order's status.

    Delivered sets is_delivered/delivered_at (kept if already delivered); every
    other status clears them. Cancelling does not give stock back.
    """
    if status not in {s.value for s in OrderStatus}:
        raise ValidationError("Invalid status provided.")

    order = db["order"].find_one({"_id": order_id})
    if order is None:
        raise NotFoundError("Order not found")

    update = {"status": status, "updated_at": now()}
    if status == OrderStatus.delivered.value:
        if not order.get("is_delivered"):
            update["is_delivered"] = True
            update["delivered_at"] = now()
    else:
        update["is_delivered"] = False
        update["delivered_at"] = None

    updated = db["order"].find_one_and_update(
        {"_id": order_id},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        # removed between the read and the update
        raise NotFoundError("Order not found")
    log.info(f"[Order: {updated['order_number']}] Status set to {status}.")
    return updated
