"""
Catalogue helpers: slug and sale price derivation, reviews.

Slug, sale_price and on_sale are always derived from name, price and
discount_percentage, never taken from the client.
"""

import re
from typing import Optional

from pymongo import ReturnDocument

from database import now
from errors import NotFoundError, ValidationError
from logging_config import get_logger
from schemas import CurrentUser, Product, ReviewPayload

log = get_logger(__name__)

# cleared with $unset when explicitly sent as null on update
NULLABLE_FIELDS = {"description", "brand", "sku", "image"}


def slugify(value: str) -> str:
    value = re.sub(r"[^\w\s-]", "", value.lower(), flags=re.ASCII)
    return re.sub(r"[\s_-]+", "-", value).strip("-")


def derive_fields(product: dict) -> dict:
    """Fill slug, sale_price and on_sale from the product's own fields."""
    derived = {}
    if product.get("name"):
        derived["slug"] = slugify(product["name"])
    price = product.get("price", 0)
    discount = product.get("discount_percentage", 0) or 0
    if discount > 0:
        derived["sale_price"] = round(price * (1 - discount / 100), 2)
        derived["on_sale"] = True
    else:
        derived["sale_price"] = price
        derived["on_sale"] = False
    return derived


def new_product_document(payload: Product) -> dict:
    # sku and slug are uniquely indexed (sparse), so unset fields are left out entirely
    doc = payload.model_dump(exclude_none=True)
    doc.update(derive_fields(doc))
    return doc


def build_update(existing: dict, changes: dict) -> dict:
    """Turn a partial payload into a $set/$unset update; untouched fields keep their value."""
    to_set = {k: v for k, v in changes.items() if v is not None}
    to_unset = {k: "" for k, v in changes.items() if v is None and k in NULLABLE_FIELDS}

    merged = {**existing, **to_set}
    if {"name", "price", "discount_percentage"} & set(to_set):
        to_set.update(derive_fields(merged))
    to_set["updated_at"] = now()

    update = {"$set": to_set}
    if to_unset:
        update["$unset"] = to_unset
    return update


def add_review(db, product_id, user: CurrentUser, payload: ReviewPayload) -> dict:
    collection = db["product"]
    if collection.find_one({"_id": product_id}, {"_id": 1}) is None:
        raise NotFoundError("Product not found")

    review = {
        "user_id": user.id,
        "name": user.name or user.email,
        "rating": payload.rating,
        "comment": payload.comment,
        "created_at": now(),
    }
    # the user_id guard keeps it to one review per user even with concurrent posts
    res = collection.update_one(
        {"_id": product_id, "reviews.user_id": {"$ne": user.id}},
        {"$push": {"reviews": review}},
    )
    if res.matched_count == 0:
        raise ValidationError("Product already reviewed")

    product = collection.find_one({"_id": product_id})
    ratings = [r["rating"] for r in product.get("reviews", [])]
    rating = round(sum(ratings) / len(ratings), 1) if ratings else 0
    updated: Optional[dict] = collection.find_one_and_update(
        {"_id": product_id},
        {"$set": {"rating": rating, "num_reviews": len(ratings), "updated_at": now()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise NotFoundError("Product not found")
    log.info(f"Review by {user.id} added to product {product_id}; rating now {rating} ({len(ratings)})")
    return updated
