import math
import os
import re
from typing import Optional

from bson import ObjectId
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError, PyMongoError

import orders
import products
from database import db, create_document, ensure_indexes, now, serialize
from errors import ApiError, ConflictError, InternalError, NotFoundError
from logging_config import get_logger, setup_logging
from schemas import (
    BulkStatusPayload,
    CurrentUser,
    InventoryPayload,
    OrderRequest,
    Product,
    ProductUpdate,
    ReviewPayload,
    StatusPayload,
)

setup_logging()
log = get_logger(__name__)

app = FastAPI(title="Storefront Orders API")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error handlers
@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "errors": exc.errors})


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"] if part != "body")
        errors.append(f"{field}: {err['msg']}")
    return JSONResponse(status_code=400, content={"detail": "Validation failed", "errors": errors})


@app.exception_handler(PyMongoError)
async def handle_database_error(request: Request, exc: PyMongoError):
    log.error(f"Database error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return await handle_api_error(request, InternalError())


# Helpers
def require_db():
    if db is None:
        raise HTTPException(status_code=503, detail="Database not available")
    return db


def parse_object_id(value: str, label: str) -> ObjectId:
    if not ObjectId.is_valid(value):
        raise HTTPException(status_code=400, detail=f"Invalid {label} id")
    return ObjectId(value)


def user_from_token(token: Optional[str]) -> Optional[CurrentUser]:
    if not token:
        return None
    user = require_db()["user"].find_one({"token": token})
    if not user:
        return None
    return CurrentUser(
        id=str(user["_id"]),
        name=user.get("name"),
        email=user.get("email"),
        is_admin=bool(user.get("is_admin", False)),
    )


def current_user(authorization: Optional[str] = Header(default=None, alias="Authorization")) -> CurrentUser:
    token = None
    if authorization and authorization.startswith("Bearer "):
        token = authorization.split(" ", 1)[1]
    user = user_from_token(token)
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def admin_user(user: CurrentUser = Depends(current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin only")
    return user


@app.get("/")
def read_root():
    return {"message": "Storefront Orders API running"}


@app.get("/health")
def health():
    response = {"status": "ok", "database": "not configured", "collections": []}
    if db is None:
        return response
    try:
        response["database"] = db.name
        response["collections"] = db.list_collection_names()[:10]
    except PyMongoError as e:
        response["status"] = "degraded"
        response["database"] = f"error: {str(e)[:50]}"
    return response


# Product endpoints
@app.get("/api/products")
def list_products(
    search: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    query = {}
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"name": pattern}, {"brand": pattern}, {"sku": pattern}]
    if category:
        query["category"] = category
    if status:
        query["status"] = status

    collection = require_db()["product"]
    total = collection.count_documents(query)
    cursor = collection.find(query).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    found = [serialize(p) for p in cursor]
    return {
        "total_products": total,
        "total_pages": math.ceil(total / limit),
        "current_page": page,
        "results": len(found),
        "data": found,
    }


@app.get("/api/products/count")
def count_products():
    return {"count": require_db()["product"].count_documents({})}


@app.get("/api/products/featured")
def featured_products(limit: int = Query(8, ge=1, le=100)):
    found = require_db()["product"].find({"is_featured": True, "status": "active"}).limit(limit)
    return [serialize(p) for p in found]


@app.get("/api/products/sale")
def on_sale_products(limit: int = Query(8, ge=1, le=100)):
    found = require_db()["product"].find({"on_sale": True, "status": "active"}).limit(limit)
    return [serialize(p) for p in found]


@app.get("/api/products/slug/{slug}")
def get_product_by_slug(slug: str):
    product = require_db()["product"].find_one({"slug": slug})
    if not product:
        raise NotFoundError("Product not found")
    return serialize(product)


@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    product = require_db()["product"].find_one({"_id": parse_object_id(product_id, "product")})
    if not product:
        raise NotFoundError("Product not found")
    return serialize(product)


@app.post("/api/products", status_code=201)
def create_product(payload: Product, user: CurrentUser = Depends(admin_user)):
    require_db()
    try:
        product_id = create_document("product", products.new_product_document(payload))
    except DuplicateKeyError:
        raise ConflictError("A product with this name or SKU already exists")
    log.info(f"Product {product_id} created by {user.email}")
    return {"product_id": product_id}


@app.post("/api/products/bulk/status")
def bulk_update_status(payload: BulkStatusPayload, user: CurrentUser = Depends(admin_user)):
    ids = [parse_object_id(pid, "product") for pid in payload.product_ids]
    res = require_db()["product"].update_many(
        {"_id": {"$in": ids}},
        {"$set": {"status": payload.status, "updated_at": now()}},
    )
    log.info(f"{res.matched_count} products set to {payload.status} by {user.email}")
    return {"message": f"{res.matched_count} products updated to {payload.status}", "matched": res.matched_count}


@app.put("/api/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, user: CurrentUser = Depends(admin_user)):
    oid = parse_object_id(product_id, "product")
    collection = require_db()["product"]
    existing = collection.find_one({"_id": oid})
    if not existing:
        raise NotFoundError("Product not found")
    update = products.build_update(existing, payload.model_dump(exclude_unset=True))
    try:
        res = collection.update_one({"_id": oid}, update)
    except DuplicateKeyError:
        raise ConflictError("A product with this name or SKU already exists")
    if res.matched_count == 0:
        raise NotFoundError("Product not found")
    return {"updated": True}


@app.post("/api/products/{product_id}/reviews", status_code=201)
def add_product_review(product_id: str, payload: ReviewPayload, user: CurrentUser = Depends(current_user)):
    product = products.add_review(require_db(), parse_object_id(product_id, "product"), user, payload)
    return {"message": "Review added", "product": serialize(product)}


@app.put("/api/products/{product_id}/inventory")
def update_inventory(product_id: str, payload: InventoryPayload, user: CurrentUser = Depends(admin_user)):
    oid = parse_object_id(product_id, "product")
    collection = require_db()["product"]
    res = collection.update_one(
        {"_id": oid},
        {"$set": {"stock_quantity": max(0, payload.quantity), "updated_at": now()}},
    )
    if res.matched_count == 0:
        raise NotFoundError("Product not found")
    log.info(f"Inventory for product {product_id} set to {max(0, payload.quantity)} by {user.email}")
    return {"message": "Inventory updated", "product": serialize(collection.find_one({"_id": oid}))}


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, user: CurrentUser = Depends(admin_user)):
    res = require_db()["product"].delete_one({"_id": parse_object_id(product_id, "product")})
    if res.deleted_count == 0:
        raise NotFoundError("Product not found")
    return {"deleted": True}


# Orders
@app.post("/api/orders", status_code=201)
def create_order(payload: OrderRequest, user: CurrentUser = Depends(current_user)):
    order = orders.place_order(require_db(), payload, user)
    return {"message": "Order placed successfully", "order": serialize(order)}


@app.get("/api/orders/mine")
def my_orders(user: CurrentUser = Depends(current_user)):
    found = require_db()["order"].find({"user_id": user.id}).sort("created_at", -1)
    return {"orders": [serialize(o) for o in found]}


@app.get("/api/orders")
def list_orders(user: CurrentUser = Depends(admin_user)):
    found = require_db()["order"].find({}).sort("created_at", -1)
    return {"orders": [serialize(o) for o in found]}


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user: CurrentUser = Depends(current_user)):
    order = orders.get_order_for(require_db(), parse_object_id(order_id, "order"), user)
    return serialize(order)


@app.put("/api/orders/{order_id}/status")
def update_order_status(order_id: str, payload: StatusPayload, user: CurrentUser = Depends(admin_user)):
    order = orders.apply_status(require_db(), parse_object_id(order_id, "order"), payload.status)
    return {"message": f"Order status updated to {payload.status}!", "order": serialize(order)}


@app.put("/api/orders/{order_id}/deliver")
def mark_order_delivered(order_id: str, user: CurrentUser = Depends(admin_user)):
    order = orders.apply_status(require_db(), parse_object_id(order_id, "order"), "Delivered")
    return {"message": "Order delivered successfully!", "order": serialize(order)}


@app.delete("/api/orders/{order_id}")
def delete_order(order_id: str, user: CurrentUser = Depends(admin_user)):
    res = require_db()["order"].delete_one({"_id": parse_object_id(order_id, "order")})
    if res.deleted_count == 0:
        raise NotFoundError("Order not found")
    log.info(f"Order {order_id} removed by {user.email}")
    return {"message": "Order removed"}


# Indexes and sample catalogue
@app.on_event("startup")
def on_startup():
    if db is None:
        log.warning("DATABASE_URL / DATABASE_NAME not set; running without a database.")
        return
    ensure_indexes(db)
    if os.getenv("SEED_PRODUCTS", "1") == "0":
        return
    count = db["product"].count_documents({})
    if count == 0:
        samples = [
            {
                "name": "Aurora Card Wallet",
                "description": "Slim RFID wallet with glassmorphic sheen.",
                "price": 29.99,
                "category": "accessories",
                "sku": "ACC-WALLET-01",
                "stock_quantity": 40,
                "image": "https://images.unsplash.com/photo-1592417817030-2f1b1c86a8e7?q=80&w=1200&auto=format&fit=crop",
                "status": "active",
            },
            {
                "name": "Nebula Headphones",
                "description": "Wireless noise-cancelling over-ears.",
                "price": 129.0,
                "category": "audio",
                "sku": "AUD-HEAD-01",
                "stock_quantity": 15,
                "image": "https://images.unsplash.com/photo-1518445145672-c8cfc6a2d6b1?q=80&w=1200&auto=format&fit=crop",
                "status": "active",
            },
            {
                "name": "Lumos Desk Lamp",
                "description": "Minimal, touch dimmer, USB-C powered.",
                "price": 49.5,
                "category": "home",
                "sku": "HOME-LAMP-01",
                "stock_quantity": 25,
                "image": "https://images.unsplash.com/photo-1555041469-a586c61ea9bc?q=80&w=1200&auto=format&fit=crop",
                "status": "active",
            },
        ]
        for s in samples:
            create_document("product", products.new_product_document(Product(**s)))
        log.info(f"Seeded {len(samples)} sample products.")


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
